"""
In-memory store.

Used for demos, local development without a database and the test suite.
Stock decrements are applied immediately under a per-product lock so the
guard is race-free; sales and movements are staged in the unit of work and
published only on commit. On failure the unit of work replays its undo log
to give back any stock, product or sale number it already took.
"""
import dataclasses
import itertools
import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from farmacia.stores.base import (
    CUSTOMER_FIELDS, PRODUCT_FIELDS, DuplicateKeyError, PosStore, UnitOfWork
)
from farmacia.stores.records import (
    Customer, DocumentType, InventoryMovement, MovementDraft, Product,
    ReceiptType, Sale, SaleDraft, SaleItem, SaleItemDraft, TopProduct
)
from farmacia.utils.money import round2, to_decimal

logger = logging.getLogger(__name__)


class MemoryUnitOfWork(UnitOfWork):
    """
    Unit of work over MemoryStore with an undo log.

    Allocating a sale number takes the store's sequence lock until commit or
    rollback, like the row lock on sale_sequence in the SQL backend, so a
    rolled-back number is handed out again.
    """

    def __init__(self, store: 'MemoryStore'):
        self._store = store
        self._undo: List[Callable[[], None]] = []
        self._sales: List[Sale] = []
        self._movements: List[InventoryMovement] = []
        self._holds_sequence = False

    def decrement_stock(self, product_id: int, quantity: int) -> bool:
        if quantity <= 0:
            raise ValueError('La cantidad debe ser mayor a 0')
        with self._store._product_lock(product_id):
            product = self._store._products.get(product_id)
            if product is None or product.stock < quantity:
                return False
            self._store._replace_product(product_id, stock=product.stock - quantity)
        self._undo.append(lambda: self._store._shift_stock(product_id, quantity))
        return True

    def current_stock(self, product_id: int) -> Optional[int]:
        product = self._store.find_product_by_id(product_id)
        return product.stock if product else None

    def next_sale_number(self, receipt_type: ReceiptType) -> str:
        if not self._holds_sequence:
            self._store._sequence_lock.acquire()
            self._holds_sequence = True
        number = self._store._next_sale_number(receipt_type)
        self._undo.append(lambda: self._store._release_sale_number(receipt_type))
        return number

    def add_sale(self, draft: SaleDraft, items: Sequence[SaleItemDraft]) -> Sale:
        customer = None
        if draft.customer_id is not None:
            customer = self._store.find_customer_by_id(draft.customer_id)
        sale = Sale(
            id=self._store._next_id('sale'),
            sale_number=draft.sale_number,
            receipt_type=draft.receipt_type,
            subtotal=draft.subtotal,
            tax=draft.tax,
            total=draft.total,
            payment_method=draft.payment_method,
            created_at=draft.created_at,
            customer_id=draft.customer_id,
            customer=customer,
            tax_rate=draft.tax_rate,
            items=tuple(
                SaleItem(
                    product_id=item.product_id,
                    product_code=item.product_code,
                    product_name=item.product_name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    subtotal=item.subtotal
                )
                for item in items
            )
        )
        self._sales.append(sale)
        return sale

    def set_stock(self, product_id: int, new_stock: int, expected_stock: int) -> bool:
        if new_stock < 0:
            raise ValueError('El stock no puede ser negativo')
        with self._store._product_lock(product_id):
            product = self._store._products.get(product_id)
            if product is None or product.stock != expected_stock:
                return False
            self._store._replace_product(product_id, stock=new_stock)
        self._undo.append(lambda: self._store._shift_stock(product_id, expected_stock - new_stock))
        return True

    def add_product(self, fields: Dict[str, Any]) -> Product:
        product = self._store._insert_product(fields)
        self._undo.append(lambda: self._store._discard_product(product.id))
        return product

    def add_movement(self, draft: MovementDraft) -> InventoryMovement:
        movement = self._store._build_movement(draft)
        self._movements.append(movement)
        return movement

    def commit(self) -> None:
        try:
            with self._store._lock:
                for sale in self._sales:
                    self._store._sales[sale.id] = sale
                self._store._movements.extend(self._movements)
            self._undo.clear()
        finally:
            self._release_sequence()

    def rollback(self) -> None:
        """Compensate changes already applied, newest first."""
        try:
            while self._undo:
                undo = self._undo.pop()
                undo()
            self._sales.clear()
            self._movements.clear()
        finally:
            self._release_sequence()

    def _release_sequence(self) -> None:
        if self._holds_sequence:
            self._holds_sequence = False
            self._store._sequence_lock.release()


class MemoryStore(PosStore):
    """Thread-safe dictionary-backed store."""

    backend_name = 'memory'

    def __init__(self):
        self._lock = threading.RLock()
        self._locks: Dict[int, threading.Lock] = defaultdict(threading.Lock)
        self._ids = defaultdict(lambda: itertools.count(1))
        self._sequence_lock = threading.Lock()
        self._sequences: Dict[ReceiptType, int] = defaultdict(int)
        self._products: Dict[int, Product] = {}
        self._customers: Dict[int, Customer] = {}
        self._sales: Dict[int, Sale] = {}
        self._movements: List[InventoryMovement] = []

    # Internal helpers

    def _next_id(self, kind: str) -> int:
        with self._lock:
            return next(self._ids[kind])

    def _product_lock(self, product_id: int) -> threading.Lock:
        with self._lock:
            return self._locks[product_id]

    def _replace_product(self, product_id: int, **changes) -> Product:
        with self._lock:
            product = dataclasses.replace(self._products[product_id], updated_at=datetime.now(), **changes)
            self._products[product_id] = product
            return product

    def _shift_stock(self, product_id: int, delta: int) -> None:
        with self._product_lock(product_id):
            product = self._products.get(product_id)
            if product is None:
                return
            self._replace_product(product_id, stock=product.stock + delta)
        logger.info(f"[MEMORY] Compensated stock for product {product_id}: {delta:+d}")

    def _next_sale_number(self, receipt_type: ReceiptType) -> str:
        with self._lock:
            self._sequences[receipt_type] += 1
            value = self._sequences[receipt_type]
        return f'{receipt_type.value}-{value:08d}'

    def _release_sale_number(self, receipt_type: ReceiptType) -> None:
        # Only called with _sequence_lock held, so the value is still ours
        with self._lock:
            self._sequences[receipt_type] -= 1

    def _build_movement(self, draft: MovementDraft) -> InventoryMovement:
        return InventoryMovement(
            id=self._next_id('movement'),
            product_id=draft.product_id,
            quantity=draft.quantity,
            movement_type=draft.movement_type,
            reference_type=draft.reference_type,
            reference_id=draft.reference_id,
            notes=draft.notes,
            created_at=draft.created_at
        )

    @staticmethod
    def _catalog_key(product: Product) -> Tuple[str, int]:
        return (product.name.lower(), product.id)

    # Products

    def list_active_products(self) -> List[Product]:
        with self._lock:
            products = [p for p in self._products.values() if p.is_active]
        return sorted(products, key=self._catalog_key)

    def find_product_by_code(self, code: str) -> Optional[Product]:
        with self._lock:
            for product in self._products.values():
                if product.code == code:
                    return product
        return None

    def find_product_by_id(self, product_id: int) -> Optional[Product]:
        with self._lock:
            return self._products.get(product_id)

    def _insert_product(self, fields: Dict[str, Any]) -> Product:
        data = {key: fields[key] for key in PRODUCT_FIELDS if key in fields}
        with self._lock:
            if self.find_product_by_code(data['code']) is not None:
                raise DuplicateKeyError('code', data['code'])
            now = datetime.now()
            product = Product(
                id=self._next_id('product'),
                code=data['code'],
                name=data['name'],
                price=round2(data.get('price', 0)),
                stock=int(data.get('stock', 0)),
                min_stock=int(data.get('min_stock', 0)),
                is_active=data.get('is_active', True),
                cost_price=round2(data['cost_price']) if data.get('cost_price') is not None else None,
                category=data.get('category'),
                laboratory=data.get('laboratory'),
                expiry_date=data.get('expiry_date'),
                created_at=now,
                updated_at=now
            )
            self._products[product.id] = product
            return product

    def _discard_product(self, product_id: int) -> None:
        with self._lock:
            self._products.pop(product_id, None)

    def update_product(self, product_id: int, fields: Dict[str, Any]) -> Product:
        changes = {key: fields[key] for key in PRODUCT_FIELDS if key in fields and key != 'stock'}
        if 'price' in changes:
            changes['price'] = round2(changes['price'])
        if changes.get('cost_price') is not None:
            changes['cost_price'] = round2(changes['cost_price'])
        with self._lock:
            if product_id not in self._products:
                raise KeyError(product_id)
            code = changes.get('code')
            if code is not None:
                existing = self.find_product_by_code(code)
                if existing is not None and existing.id != product_id:
                    raise DuplicateKeyError('code', code)
            return self._replace_product(product_id, **changes)

    # Customers

    def list_customers(self) -> List[Customer]:
        with self._lock:
            customers = list(self._customers.values())
        return sorted(customers, key=lambda c: (c.name.lower(), c.id))

    def find_customer_by_document(self, document_number: str) -> Optional[Customer]:
        with self._lock:
            for customer in self._customers.values():
                if customer.document_number == document_number:
                    return customer
        return None

    def find_customer_by_id(self, customer_id: int) -> Optional[Customer]:
        with self._lock:
            return self._customers.get(customer_id)

    def create_customer(self, fields: Dict[str, Any]) -> Customer:
        data = {key: fields[key] for key in CUSTOMER_FIELDS if key in fields}
        with self._lock:
            document_number = data.get('document_number')
            if document_number and self.find_customer_by_document(document_number) is not None:
                raise DuplicateKeyError('document_number', document_number)
            customer = Customer(
                id=self._next_id('customer'),
                name=data['name'],
                document_type=DocumentType(data.get('document_type') or DocumentType.DNI),
                document_number=document_number,
                phone=data.get('phone'),
                email=data.get('email'),
                address=data.get('address'),
                created_at=datetime.now()
            )
            self._customers[customer.id] = customer
            return customer

    # Sales

    @contextmanager
    def unit_of_work(self) -> Iterator[MemoryUnitOfWork]:
        uow = MemoryUnitOfWork(self)
        try:
            yield uow
        except Exception:
            uow.rollback()
            raise
        uow.commit()

    def find_sale(self, sale_id: int) -> Optional[Sale]:
        with self._lock:
            return self._sales.get(sale_id)

    def list_sales_between(self, start: datetime, end: datetime) -> List[Sale]:
        with self._lock:
            sales = [s for s in self._sales.values() if start <= s.created_at < end]
        return sorted(sales, key=lambda s: (s.created_at, s.id), reverse=True)

    def sales_summary_between(self, start: datetime, end: datetime) -> Tuple[Decimal, int]:
        sales = self.list_sales_between(start, end)
        return sum((s.total for s in sales), Decimal('0.00')), len(sales)

    def count_sales(self) -> int:
        with self._lock:
            return len(self._sales)

    # Movements

    def list_movements(self, product_id: Optional[int] = None) -> List[InventoryMovement]:
        with self._lock:
            movements = list(self._movements)
        if product_id is not None:
            movements = [m for m in movements if m.product_id == product_id]
        return movements

    # Reporting queries

    def count_active_products(self) -> int:
        with self._lock:
            return sum(1 for p in self._products.values() if p.is_active)

    def count_low_stock_products(self) -> int:
        with self._lock:
            return sum(1 for p in self._products.values() if p.is_low_stock)

    def list_low_stock_products(self) -> List[Product]:
        with self._lock:
            products = [p for p in self._products.values() if p.is_low_stock]
        return sorted(products, key=lambda p: (p.stock, p.name.lower(), p.id))

    def count_customers(self) -> int:
        with self._lock:
            return len(self._customers)

    def top_sold_products(self, limit: int) -> List[TopProduct]:
        sold: Dict[int, int] = defaultdict(int)
        revenue: Dict[int, Decimal] = defaultdict(Decimal)
        snapshot: Dict[int, SaleItem] = {}
        with self._lock:
            for sale in self._sales.values():
                for item in sale.items:
                    sold[item.product_id] += item.quantity
                    revenue[item.product_id] += to_decimal(item.subtotal)
                    snapshot.setdefault(item.product_id, item)
            products = dict(self._products)

        ranking = []
        for product_id, quantity in sold.items():
            product = products.get(product_id)
            code = product.code if product else snapshot[product_id].product_code
            name = product.name if product else snapshot[product_id].product_name
            ranking.append(TopProduct(
                product_id=product_id,
                code=code,
                name=name,
                total_sold=quantity,
                total_revenue=round2(revenue[product_id])
            ))
        ranking.sort(key=lambda t: (-t.total_sold, t.code))
        return ranking[:limit]
