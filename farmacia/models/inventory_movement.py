"""Inventory Movement model."""
from sqlalchemy import Column, BigInteger, Integer, DateTime, Text, Enum, ForeignKey
from sqlalchemy.orm import relationship
from farmacia.database import Base
from farmacia.stores.records import MovementReferenceType, MovementType


class InventoryMovement(Base):
    """Inventory Movement (movimiento de stock). Append-only."""

    __tablename__ = 'inventory_movement'

    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    product_id = Column(BigInteger().with_variant(Integer, 'sqlite'), ForeignKey('product.id'), nullable=False, index=True)
    # Signed: negative for sales
    quantity = Column(Integer, nullable=False)
    movement_type = Column(Enum(MovementType, name='movement_type'), nullable=False)
    reference_type = Column(Enum(MovementReferenceType, name='movement_ref_type'), nullable=False)
    reference_id = Column(BigInteger().with_variant(Integer, 'sqlite'), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False)

    # Relationships
    product = relationship('Product')

    def __repr__(self):
        return f"<InventoryMovement(id={self.id}, type={self.movement_type.value}, quantity={self.quantity})>"
