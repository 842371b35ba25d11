"""
Domain records shared by every store backend.

Records are frozen: a Sale and its items never change once committed, and a
Product record is a snapshot of the row at read time.
"""
import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Tuple


class ReceiptType(str, enum.Enum):
    """Commercial document issued for a sale."""
    BOLETA = 'BOLETA'
    FACTURA = 'FACTURA'
    TICKET = 'TICKET'


class PaymentMethod(str, enum.Enum):
    """Accepted payment methods."""
    EFECTIVO = 'EFECTIVO'
    TARJETA = 'TARJETA'
    YAPE = 'YAPE'
    PLIN = 'PLIN'


class SaleStatus(str, enum.Enum):
    """Sale status. COMPLETED is the only terminal state."""
    COMPLETED = 'COMPLETED'


class DocumentType(str, enum.Enum):
    """Customer identity document."""
    DNI = 'DNI'
    RUC = 'RUC'
    CE = 'CE'


class MovementType(str, enum.Enum):
    """Inventory movement type."""
    IN = 'IN'
    OUT = 'OUT'
    ADJUST = 'ADJUST'


class MovementReferenceType(str, enum.Enum):
    """What originated an inventory movement."""
    SALE = 'SALE'
    MANUAL = 'MANUAL'


def parse_enum(enum_cls, value, label: str):
    """Coerce a raw value (case-insensitive) into an enum member."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError:
        valid = ', '.join(member.value for member in enum_cls)
        raise ValueError(f'{label} inválido: {value!r}. Valores permitidos: {valid}')


@dataclass(frozen=True)
class Product:
    id: int
    code: str
    name: str
    price: Decimal
    stock: int
    min_stock: int = 0
    is_active: bool = True
    cost_price: Optional[Decimal] = None
    category: Optional[str] = None
    laboratory: Optional[str] = None
    expiry_date: Optional[date] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_low_stock(self) -> bool:
        return self.is_active and self.stock <= self.min_stock


@dataclass(frozen=True)
class Customer:
    id: int
    name: str
    document_type: DocumentType = DocumentType.DNI
    document_number: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class SaleItem:
    product_id: int
    product_code: str
    product_name: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal


@dataclass(frozen=True)
class Sale:
    id: int
    sale_number: str
    receipt_type: ReceiptType
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    payment_method: PaymentMethod
    created_at: datetime
    status: SaleStatus = SaleStatus.COMPLETED
    customer_id: Optional[int] = None
    customer: Optional[Customer] = None
    items: Tuple[SaleItem, ...] = field(default_factory=tuple)
    # Rate the sale was priced at; receipts print this, not the current config
    tax_rate: Optional[Decimal] = None


@dataclass(frozen=True)
class InventoryMovement:
    id: int
    product_id: int
    quantity: int
    movement_type: MovementType
    reference_type: MovementReferenceType
    created_at: datetime
    reference_id: Optional[int] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class TopProduct:
    """Cumulative sales figures for one product."""
    product_id: int
    code: str
    name: str
    total_sold: int
    total_revenue: Decimal


@dataclass(frozen=True)
class SaleDraft:
    """Fields of a sale about to be written inside a unit of work."""
    sale_number: str
    receipt_type: ReceiptType
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    payment_method: PaymentMethod
    created_at: datetime
    customer_id: Optional[int] = None
    tax_rate: Optional[Decimal] = None


@dataclass(frozen=True)
class SaleItemDraft:
    product_id: int
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    product_code: str = ''
    product_name: str = ''


@dataclass(frozen=True)
class MovementDraft:
    product_id: int
    quantity: int
    movement_type: MovementType
    reference_type: MovementReferenceType
    created_at: datetime
    reference_id: Optional[int] = None
    notes: Optional[str] = None
