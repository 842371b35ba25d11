"""
SQLAlchemy store (PostgreSQL in production, SQLite for local runs and tests).

A sale's unit of work is one database transaction: the guarded stock
decrements, the sequence bump, the sale, its items and the movements are
committed together or rolled back together.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy import desc, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload, selectinload

from farmacia import models
from farmacia.database import create_db_engine, create_schema, create_session_registry
from farmacia.stores.base import (
    CUSTOMER_FIELDS, PRODUCT_FIELDS, DuplicateKeyError, PosStore, UnitOfWork
)
from farmacia.stores.records import (
    Customer, InventoryMovement, MovementDraft, Product, ReceiptType,
    Sale, SaleDraft, SaleItem, SaleItemDraft, TopProduct
)
from farmacia.utils.money import round2

logger = logging.getLogger(__name__)


# =====================================================
# ROW -> RECORD CONVERSION
# =====================================================

def _product_record(row: models.Product) -> Product:
    return Product(
        id=row.id,
        code=row.code,
        name=row.name,
        price=round2(row.price),
        stock=row.stock,
        min_stock=row.min_stock,
        is_active=bool(row.is_active),
        cost_price=round2(row.cost_price) if row.cost_price is not None else None,
        category=row.category,
        laboratory=row.laboratory,
        expiry_date=row.expiry_date,
        created_at=row.created_at,
        updated_at=row.updated_at
    )


def _customer_record(row: models.Customer) -> Customer:
    return Customer(
        id=row.id,
        name=row.name,
        document_type=row.document_type,
        document_number=row.document_number,
        phone=row.phone,
        email=row.email,
        address=row.address,
        created_at=row.created_at
    )


def _sale_record(row: models.Sale) -> Sale:
    return Sale(
        id=row.id,
        sale_number=row.sale_number,
        receipt_type=row.receipt_type,
        subtotal=round2(row.subtotal),
        tax=round2(row.tax),
        total=round2(row.total),
        payment_method=row.payment_method,
        status=row.status,
        tax_rate=row.tax_rate.normalize() if row.tax_rate is not None else None,
        created_at=row.created_at,
        customer_id=row.customer_id,
        customer=_customer_record(row.customer) if row.customer is not None else None,
        items=tuple(
            SaleItem(
                product_id=item.product_id,
                product_code=item.product_code,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=round2(item.unit_price),
                subtotal=round2(item.subtotal)
            )
            for item in row.items
        )
    )


def _movement_record(row: models.InventoryMovement) -> InventoryMovement:
    return InventoryMovement(
        id=row.id,
        product_id=row.product_id,
        quantity=row.quantity,
        movement_type=row.movement_type,
        reference_type=row.reference_type,
        reference_id=row.reference_id,
        notes=row.notes,
        created_at=row.created_at
    )


def _movement_row(draft: MovementDraft) -> models.InventoryMovement:
    return models.InventoryMovement(
        product_id=draft.product_id,
        quantity=draft.quantity,
        movement_type=draft.movement_type,
        reference_type=draft.reference_type,
        reference_id=draft.reference_id,
        notes=draft.notes,
        created_at=draft.created_at
    )


# =====================================================
# UNIT OF WORK
# =====================================================

class SqlUnitOfWork(UnitOfWork):
    """Operations bound to one open session/transaction."""

    def __init__(self, session):
        self.session = session

    def decrement_stock(self, product_id: int, quantity: int) -> bool:
        if quantity <= 0:
            raise ValueError('La cantidad debe ser mayor a 0')
        result = self.session.execute(
            update(models.Product)
            .where(models.Product.id == product_id, models.Product.stock >= quantity)
            .values(stock=models.Product.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def current_stock(self, product_id: int) -> Optional[int]:
        return self.session.execute(
            select(models.Product.stock).where(models.Product.id == product_id)
        ).scalar_one_or_none()

    def next_sale_number(self, receipt_type: ReceiptType) -> str:
        result = self.session.execute(
            update(models.SaleSequence)
            .where(models.SaleSequence.receipt_type == receipt_type)
            .values(last_value=models.SaleSequence.last_value + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.session.add(models.SaleSequence(receipt_type=receipt_type, last_value=1))
            self.session.flush()
        value = self.session.execute(
            select(models.SaleSequence.last_value)
            .where(models.SaleSequence.receipt_type == receipt_type)
        ).scalar_one()
        return f'{receipt_type.value}-{value:08d}'

    def add_sale(self, draft: SaleDraft, items: Sequence[SaleItemDraft]) -> Sale:
        sale = models.Sale(
            sale_number=draft.sale_number,
            receipt_type=draft.receipt_type,
            customer_id=draft.customer_id,
            subtotal=draft.subtotal,
            tax=draft.tax,
            tax_rate=draft.tax_rate,
            total=draft.total,
            payment_method=draft.payment_method,
            created_at=draft.created_at
        )
        self.session.add(sale)
        self.session.flush()

        for item in items:
            self.session.add(models.SaleItem(
                sale_id=sale.id,
                product_id=item.product_id,
                product_code=item.product_code,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                subtotal=item.subtotal
            ))
        self.session.flush()

        customer = None
        if draft.customer_id is not None:
            customer_row = self.session.get(models.Customer, draft.customer_id)
            customer = _customer_record(customer_row) if customer_row is not None else None

        return Sale(
            id=sale.id,
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

    def set_stock(self, product_id: int, new_stock: int, expected_stock: int) -> bool:
        if new_stock < 0:
            raise ValueError('El stock no puede ser negativo')
        result = self.session.execute(
            update(models.Product)
            .where(models.Product.id == product_id, models.Product.stock == expected_stock)
            .values(stock=new_stock)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def add_product(self, fields: Dict[str, Any]) -> Product:
        data = {key: fields[key] for key in PRODUCT_FIELDS if key in fields}
        row = models.Product(**data)
        self.session.add(row)
        try:
            self.session.flush()
        except IntegrityError:
            raise DuplicateKeyError('code', data.get('code'))
        return _product_record(row)

    def add_movement(self, draft: MovementDraft) -> InventoryMovement:
        row = _movement_row(draft)
        self.session.add(row)
        self.session.flush()
        return _movement_record(row)


# =====================================================
# STORE
# =====================================================

class SqlStore(PosStore):
    """Store backed by a thread-local SQLAlchemy session registry."""

    backend_name = 'sql'

    def __init__(self, session_registry, engine=None):
        self._registry = session_registry
        self._engine = engine

    @classmethod
    def from_url(cls, database_uri: str, echo: bool = False, create_tables: bool = True) -> 'SqlStore':
        """Build a standalone store (CLI, tests) with its own engine."""
        engine = create_db_engine(database_uri, echo=echo)
        if create_tables:
            create_schema(engine)
        return cls(create_session_registry(engine), engine=engine)

    @property
    def engine(self):
        return self._engine

    def remove_session(self) -> None:
        """Release the current thread's session (request teardown)."""
        self._registry.remove()

    @contextmanager
    def _reading(self) -> Iterator[Any]:
        # A fresh session per call: stock must never come from a stale identity map
        session = self._registry()
        try:
            yield session
        finally:
            self._registry.remove()

    # Products

    def list_active_products(self) -> List[Product]:
        with self._reading() as session:
            rows = session.query(models.Product).filter(
                models.Product.is_active == True
            ).order_by(
                func.lower(models.Product.name),
                models.Product.id
            ).all()
            return [_product_record(row) for row in rows]

    def find_product_by_code(self, code: str) -> Optional[Product]:
        with self._reading() as session:
            row = session.query(models.Product).filter(models.Product.code == code).first()
            return _product_record(row) if row else None

    def find_product_by_id(self, product_id: int) -> Optional[Product]:
        with self._reading() as session:
            row = session.get(models.Product, product_id)
            return _product_record(row) if row else None

    def update_product(self, product_id: int, fields: Dict[str, Any]) -> Product:
        changes = {key: fields[key] for key in PRODUCT_FIELDS if key in fields and key != 'stock'}
        session = self._registry()
        try:
            row = session.get(models.Product, product_id)
            if row is None:
                raise KeyError(product_id)
            for key, value in changes.items():
                setattr(row, key, value)
            session.commit()
            return _product_record(row)
        except IntegrityError:
            session.rollback()
            raise DuplicateKeyError('code', changes.get('code'))
        except Exception:
            session.rollback()
            raise
        finally:
            self._registry.remove()

    # Customers

    def list_customers(self) -> List[Customer]:
        with self._reading() as session:
            rows = session.query(models.Customer).order_by(
                func.lower(models.Customer.name),
                models.Customer.id
            ).all()
            return [_customer_record(row) for row in rows]

    def find_customer_by_document(self, document_number: str) -> Optional[Customer]:
        with self._reading() as session:
            row = session.query(models.Customer).filter(
                models.Customer.document_number == document_number
            ).first()
            return _customer_record(row) if row else None

    def find_customer_by_id(self, customer_id: int) -> Optional[Customer]:
        with self._reading() as session:
            row = session.get(models.Customer, customer_id)
            return _customer_record(row) if row else None

    def create_customer(self, fields: Dict[str, Any]) -> Customer:
        data = {key: fields[key] for key in CUSTOMER_FIELDS if key in fields}
        session = self._registry()
        try:
            row = models.Customer(**data)
            session.add(row)
            session.commit()
            return _customer_record(row)
        except IntegrityError:
            session.rollback()
            raise DuplicateKeyError('document_number', data.get('document_number'))
        except Exception:
            session.rollback()
            raise
        finally:
            self._registry.remove()

    # Sales

    @contextmanager
    def unit_of_work(self) -> Iterator[SqlUnitOfWork]:
        session = self._registry()
        try:
            yield SqlUnitOfWork(session)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            self._registry.remove()

    def _sales_query(self, session):
        return session.query(models.Sale).options(
            selectinload(models.Sale.items),
            joinedload(models.Sale.customer)
        )

    def find_sale(self, sale_id: int) -> Optional[Sale]:
        with self._reading() as session:
            row = self._sales_query(session).filter(models.Sale.id == sale_id).first()
            return _sale_record(row) if row else None

    def list_sales_between(self, start: datetime, end: datetime) -> List[Sale]:
        with self._reading() as session:
            rows = self._sales_query(session).filter(
                models.Sale.created_at >= start,
                models.Sale.created_at < end
            ).order_by(
                models.Sale.created_at.desc(),
                models.Sale.id.desc()
            ).all()
            return [_sale_record(row) for row in rows]

    def sales_summary_between(self, start: datetime, end: datetime) -> Tuple[Decimal, int]:
        with self._reading() as session:
            revenue, count = session.query(
                func.coalesce(func.sum(models.Sale.total), 0),
                func.count(models.Sale.id)
            ).filter(
                models.Sale.created_at >= start,
                models.Sale.created_at < end
            ).one()
            return round2(revenue or 0), int(count or 0)

    def count_sales(self) -> int:
        with self._reading() as session:
            return session.query(func.count(models.Sale.id)).scalar() or 0

    # Movements

    def list_movements(self, product_id: Optional[int] = None) -> List[InventoryMovement]:
        with self._reading() as session:
            query = session.query(models.InventoryMovement)
            if product_id is not None:
                query = query.filter(models.InventoryMovement.product_id == product_id)
            rows = query.order_by(models.InventoryMovement.id).all()
            return [_movement_record(row) for row in rows]

    # Reporting queries

    def _low_stock_filter(self, query):
        return query.filter(
            models.Product.is_active == True,
            models.Product.stock <= models.Product.min_stock
        )

    def count_active_products(self) -> int:
        with self._reading() as session:
            return session.query(func.count(models.Product.id)).filter(
                models.Product.is_active == True
            ).scalar() or 0

    def count_low_stock_products(self) -> int:
        with self._reading() as session:
            return self._low_stock_filter(session.query(func.count(models.Product.id))).scalar() or 0

    def list_low_stock_products(self) -> List[Product]:
        with self._reading() as session:
            rows = self._low_stock_filter(session.query(models.Product)).order_by(
                models.Product.stock.asc(),
                func.lower(models.Product.name).asc(),
                models.Product.id.asc()
            ).all()
            return [_product_record(row) for row in rows]

    def count_customers(self) -> int:
        with self._reading() as session:
            return session.query(func.count(models.Customer.id)).scalar() or 0

    def top_sold_products(self, limit: int) -> List[TopProduct]:
        with self._reading() as session:
            rows = (
                session.query(
                    models.Product.id.label('product_id'),
                    models.Product.code.label('code'),
                    models.Product.name.label('name'),
                    func.sum(models.SaleItem.quantity).label('total_sold'),
                    func.sum(models.SaleItem.subtotal).label('total_revenue')
                )
                .join(models.SaleItem, models.SaleItem.product_id == models.Product.id)
                .group_by(models.Product.id, models.Product.code, models.Product.name)
                .order_by(desc('total_sold'), models.Product.code.asc())
                .limit(limit)
                .all()
            )
            return [
                TopProduct(
                    product_id=row.product_id,
                    code=row.code,
                    name=row.name,
                    total_sold=int(row.total_sold),
                    total_revenue=round2(row.total_revenue)
                )
                for row in rows
            ]

    def close(self) -> None:
        self._registry.remove()
        if self._engine is not None:
            self._engine.dispose()
