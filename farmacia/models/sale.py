"""Sale model."""
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from farmacia.database import Base
from farmacia.stores.records import PaymentMethod, ReceiptType, SaleStatus


class Sale(Base):
    """Sale (venta finalizada). Never updated after insert."""

    __tablename__ = 'sale'

    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    sale_number = Column(String(40), nullable=False, unique=True)
    receipt_type = Column(Enum(ReceiptType, name='receipt_type'), nullable=False)
    customer_id = Column(BigInteger().with_variant(Integer, 'sqlite'), ForeignKey('customer.id'), nullable=True)
    subtotal = Column(Numeric(10, 2), nullable=False)
    tax = Column(Numeric(10, 2), nullable=False)
    tax_rate = Column(Numeric(5, 4), nullable=False)
    total = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(Enum(PaymentMethod, name='payment_method'), nullable=False)
    status = Column(Enum(SaleStatus, name='sale_status'), nullable=False, default=SaleStatus.COMPLETED)
    # Store-local time; "today" reports compare against local midnight
    created_at = Column(DateTime, nullable=False, index=True)

    # Relationships
    customer = relationship('Customer', back_populates='sales')
    items = relationship('SaleItem', back_populates='sale', cascade='all, delete-orphan', order_by='SaleItem.id')

    def __repr__(self):
        return f"<Sale(id={self.id}, sale_number='{self.sale_number}', total={self.total})>"
