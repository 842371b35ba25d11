"""Customer model."""
from sqlalchemy import Column, BigInteger, Integer, String, Text, DateTime, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from farmacia.database import Base
from farmacia.stores.records import DocumentType


class Customer(Base):
    """Customer (cliente)."""

    __tablename__ = 'customer'

    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    document_type = Column(Enum(DocumentType, name='document_type'), nullable=False, default=DocumentType.DNI)
    document_number = Column(String(20), nullable=True, unique=True)
    name = Column(String(200), nullable=False)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    sales = relationship('Sale', back_populates='customer')

    def __repr__(self):
        return f"<Customer(id={self.id}, name='{self.name}', document_number='{self.document_number}')>"
