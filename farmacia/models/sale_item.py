"""Sale Item model."""
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from farmacia.database import Base


class SaleItem(Base):
    """Sale Item (detalle de venta). Price and name are frozen at sale time."""

    __tablename__ = 'sale_item'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='ck_sale_item_quantity_positive'),
    )

    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    sale_id = Column(BigInteger().with_variant(Integer, 'sqlite'), ForeignKey('sale.id'), nullable=False, index=True)
    product_id = Column(BigInteger().with_variant(Integer, 'sqlite'), ForeignKey('product.id'), nullable=False, index=True)
    product_code = Column(String(50), nullable=False)
    product_name = Column(String(200), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False)

    # Relationships
    sale = relationship('Sale', back_populates='items')
    product = relationship('Product')

    def __repr__(self):
        return f"<SaleItem(id={self.id}, product_id={self.product_id}, quantity={self.quantity})>"
