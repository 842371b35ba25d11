"""Product model."""
from sqlalchemy import Column, BigInteger, Integer, String, Boolean, Numeric, Date, DateTime, CheckConstraint
from sqlalchemy.sql import func
from farmacia.database import Base


class Product(Base):
    """Product (producto del catálogo)."""

    __tablename__ = 'product'
    __table_args__ = (
        CheckConstraint('stock >= 0', name='ck_product_stock_non_negative'),
        CheckConstraint('min_stock >= 0', name='ck_product_min_stock_non_negative'),
        CheckConstraint('price >= 0', name='ck_product_price_non_negative'),
    )

    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    code = Column(String(50), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    cost_price = Column(Numeric(10, 2), nullable=True)
    stock = Column(Integer, nullable=False, default=0, server_default='0')
    min_stock = Column(Integer, nullable=False, default=0, server_default='0')
    category = Column(String(100), nullable=True)
    laboratory = Column(String(100), nullable=True)
    expiry_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Product(id={self.id}, code='{self.code}', name='{self.name}', stock={self.stock})>"
