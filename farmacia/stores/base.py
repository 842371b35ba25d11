"""
Persistence contract for the POS core.

Services depend on PosStore only; the concrete backend (in-memory or SQL) is
chosen once at startup by init_store().
"""
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from farmacia.stores.records import (
    Customer, InventoryMovement, MovementDraft, Product, ReceiptType,
    Sale, SaleDraft, SaleItemDraft, TopProduct
)

PRODUCT_FIELDS = (
    'code', 'name', 'price', 'stock', 'min_stock', 'is_active',
    'cost_price', 'category', 'laboratory', 'expiry_date'
)

CUSTOMER_FIELDS = ('name', 'document_type', 'document_number', 'phone', 'email', 'address')


class DuplicateKeyError(Exception):
    """A unique field (product code, customer document) is already taken."""
    def __init__(self, field_name: str, value: Any):
        super().__init__(f'{field_name} duplicado: {value}')
        self.field_name = field_name
        self.value = value


class UnitOfWork(ABC):
    """
    Write batch for one sale or one catalog stock change.

    Everything done through a unit of work is committed together when the
    `with store.unit_of_work()` block exits normally, and undone if it raises.
    """

    @abstractmethod
    def decrement_stock(self, product_id: int, quantity: int) -> bool:
        """
        Guarded decrement: stock -= quantity only if stock >= quantity.

        Returns False (and changes nothing) when the guard fails.
        """

    @abstractmethod
    def current_stock(self, product_id: int) -> Optional[int]:
        """Stock as seen inside this unit of work (None for unknown products)."""

    @abstractmethod
    def next_sale_number(self, receipt_type: ReceiptType) -> str:
        """Allocate the next unique sale number for a receipt type."""

    @abstractmethod
    def add_sale(self, draft: SaleDraft, items: Sequence[SaleItemDraft]) -> Sale:
        """Insert a sale with its items and return the stored record."""

    @abstractmethod
    def set_stock(self, product_id: int, new_stock: int, expected_stock: int) -> bool:
        """Compare-and-swap on stock; see PosStore.set_stock."""

    @abstractmethod
    def add_product(self, fields: Dict[str, Any]) -> Product:
        """
        Insert a product with its initial stock.

        Raises DuplicateKeyError when the code is taken.
        """

    @abstractmethod
    def add_movement(self, draft: MovementDraft) -> InventoryMovement:
        """Append an inventory movement."""


class PosStore(ABC):
    """Products, customers, sales and movements."""

    backend_name = 'abstract'

    # Products

    @abstractmethod
    def list_active_products(self) -> List[Product]:
        """Active products in catalog order (name, then id)."""

    @abstractmethod
    def find_product_by_code(self, code: str) -> Optional[Product]:
        ...

    @abstractmethod
    def find_product_by_id(self, product_id: int) -> Optional[Product]:
        ...

    def create_product(self, fields: Dict[str, Any]) -> Product:
        """Insert a product on its own; catalog_service.create_product also records its stock."""
        with self.unit_of_work() as uow:
            return uow.add_product(fields)

    @abstractmethod
    def update_product(self, product_id: int, fields: Dict[str, Any]) -> Product:
        """Update catalog fields. Stock is not accepted here; use set_stock."""

    def set_stock(self, product_id: int, new_stock: int, expected_stock: int) -> bool:
        """
        Compare-and-swap on stock.

        Writes new_stock only if the current stock still equals
        expected_stock. Returns whether the write happened.
        """
        with self.unit_of_work() as uow:
            return uow.set_stock(product_id, new_stock, expected_stock)

    # Customers

    @abstractmethod
    def list_customers(self) -> List[Customer]:
        ...

    @abstractmethod
    def find_customer_by_document(self, document_number: str) -> Optional[Customer]:
        ...

    @abstractmethod
    def find_customer_by_id(self, customer_id: int) -> Optional[Customer]:
        ...

    @abstractmethod
    def create_customer(self, fields: Dict[str, Any]) -> Customer:
        ...

    # Sales

    @abstractmethod
    @contextmanager
    def unit_of_work(self) -> Iterator[UnitOfWork]:
        ...

    @abstractmethod
    def find_sale(self, sale_id: int) -> Optional[Sale]:
        ...

    @abstractmethod
    def list_sales_between(self, start: datetime, end: datetime) -> List[Sale]:
        """Sales with start <= created_at < end, newest first."""

    @abstractmethod
    def sales_summary_between(self, start: datetime, end: datetime) -> Tuple[Decimal, int]:
        """(sum of totals, number of sales) for start <= created_at < end."""

    @abstractmethod
    def count_sales(self) -> int:
        ...

    # Movements

    @abstractmethod
    def list_movements(self, product_id: Optional[int] = None) -> List[InventoryMovement]:
        """Movements in insertion order, optionally for one product."""

    # Reporting queries

    @abstractmethod
    def count_active_products(self) -> int:
        ...

    @abstractmethod
    def count_low_stock_products(self) -> int:
        ...

    @abstractmethod
    def list_low_stock_products(self) -> List[Product]:
        """Active products with stock <= min_stock, by (stock, name)."""

    @abstractmethod
    def count_customers(self) -> int:
        ...

    @abstractmethod
    def top_sold_products(self, limit: int) -> List[TopProduct]:
        """Products by cumulative quantity sold desc, code asc."""

    def close(self) -> None:
        """Release backend resources."""
