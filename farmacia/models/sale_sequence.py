"""Sale number sequence model."""
from sqlalchemy import Column, BigInteger, Integer, Enum
from farmacia.database import Base
from farmacia.stores.records import ReceiptType


class SaleSequence(Base):
    """
    Last issued sale number per receipt type.

    Incremented with UPDATE inside the sale transaction, so the row lock
    serializes concurrent checkouts and a rolled back sale returns its number.
    """

    __tablename__ = 'sale_sequence'

    receipt_type = Column(Enum(ReceiptType, name='receipt_type'), primary_key=True)
    last_value = Column(BigInteger().with_variant(Integer, 'sqlite'), nullable=False, default=0)

    def __repr__(self):
        return f"<SaleSequence(receipt_type={self.receipt_type.value}, last_value={self.last_value})>"
