"""
Catalog service.
Resolves scanned/typed tokens to sellable products and manages the catalog
(create, edit, deactivate, manual stock corrections).
"""
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from farmacia.exceptions import (
    BusinessLogicError, NotFoundError, OutOfStockError, PersistenceFailure, PosError,
    StockConflictError
)
from farmacia.stores.base import DuplicateKeyError, PosStore
from farmacia.stores.records import (
    InventoryMovement, MovementDraft, MovementReferenceType, MovementType, Product
)
from farmacia.utils.money import round2, to_decimal

logger = logging.getLogger(__name__)

MAX_SEARCH_LENGTH = 100

DEMO_PRODUCTS = [
    {'code': '001', 'name': 'Paracetamol 500mg', 'price': Decimal('2.50'), 'stock': 100, 'min_stock': 5},
    {'code': '002', 'name': 'Ibuprofeno 400mg', 'price': Decimal('3.20'), 'stock': 50, 'min_stock': 5},
    {'code': '003', 'name': 'Amoxicilina 500mg', 'price': Decimal('8.90'), 'stock': 25, 'min_stock': 5},
    {'code': '004', 'name': 'Vitamina C 1000mg', 'price': Decimal('15.00'), 'stock': 80, 'min_stock': 5},
    {'code': '005', 'name': 'Aspirina 100mg', 'price': Decimal('1.80'), 'stock': 200, 'min_stock': 5},
]


# =====================================================
# LOOKUP
# =====================================================

def find_sellable(store: PosStore, token: str) -> Product:
    """
    Resolve a scan/search token to a product that can be added to a cart.

    Exact code match first, then case-insensitive substring match on the name
    in catalog order (name, then creation order).

    Raises:
        NotFoundError: empty or over-long token, no match, or only inactive matches
        OutOfStockError: the matched product has stock 0
    """
    token = (token or '').strip()
    if not token:
        raise NotFoundError('Ingrese un código o nombre de producto')
    if len(token) > MAX_SEARCH_LENGTH:
        raise NotFoundError(f'Código o nombre demasiado largo (máximo {MAX_SEARCH_LENGTH} caracteres)')

    product = store.find_product_by_code(token)
    if product is None or not product.is_active:
        needle = token.lower()
        product = next(
            (p for p in store.list_active_products() if needle in p.name.lower()),
            None
        )

    if product is None:
        raise NotFoundError(f'Producto no encontrado: "{token}"')
    if product.stock <= 0:
        raise OutOfStockError(product.id, product.name)
    return product


def search_products(store: PosStore, query: str = '', limit: int = 20) -> List[Product]:
    """Active products whose code or name contains the query, in catalog order."""
    needle = (query or '').strip()[:MAX_SEARCH_LENGTH].lower()
    products = store.list_active_products()
    if needle:
        products = [p for p in products if needle in p.code.lower() or needle in p.name.lower()]
    return products[:limit]


def get_product(store: PosStore, product_id: int) -> Product:
    product = store.find_product_by_id(product_id)
    if product is None:
        raise NotFoundError(f'Producto #{product_id} no encontrado')
    return product


# =====================================================
# CATALOG MANAGEMENT
# =====================================================

def _parse_int(value: Any, label: str) -> int:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        raise BusinessLogicError(f'{label} debe ser un número entero')
    if number < 0:
        raise BusinessLogicError(f'{label} no puede ser negativo')
    return number


def _parse_money(value: Any, label: str) -> Decimal:
    try:
        amount = round2(to_decimal(value))
    except ValueError:
        raise BusinessLogicError(f'{label} inválido')
    if amount < 0:
        raise BusinessLogicError(f'{label} no puede ser negativo')
    return amount


def _parse_date(value: Any) -> Optional[date]:
    if value in (None, ''):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise BusinessLogicError('Fecha de vencimiento inválida. Use AAAA-MM-DD')


def _clean_product_data(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Validate and normalize product form data."""
    cleaned: Dict[str, Any] = {}

    for key in ('code', 'name'):
        if key in data or not partial:
            value = str(data.get(key) or '').strip()
            if not value:
                label = 'El código' if key == 'code' else 'El nombre'
                raise BusinessLogicError(f'{label} es requerido')
            cleaned[key] = value

    if 'price' in data or not partial:
        if data.get('price') in (None, ''):
            raise BusinessLogicError('El precio es requerido')
        cleaned['price'] = _parse_money(data['price'], 'El precio')

    if 'cost_price' in data:
        cost = data.get('cost_price')
        cleaned['cost_price'] = None if cost in (None, '') else _parse_money(cost, 'El costo')

    if 'min_stock' in data or not partial:
        cleaned['min_stock'] = _parse_int(data.get('min_stock', 0), 'El stock mínimo')

    for key in ('category', 'laboratory'):
        if key in data:
            cleaned[key] = (data.get(key) or '').strip() or None

    if 'expiry_date' in data:
        cleaned['expiry_date'] = _parse_date(data.get('expiry_date'))

    if 'is_active' in data:
        value = data['is_active']
        if isinstance(value, str):
            value = value.strip().lower() in ('1', 'true', 'yes', 'on')
        cleaned['is_active'] = bool(value)

    return cleaned


def create_product(store: PosStore, data: Dict[str, Any]) -> Product:
    """
    Create a catalog product.

    Initial stock, when positive, is recorded as an IN movement in the same
    unit of work, so the audit trail explains every unit on hand.
    """
    fields = _clean_product_data(data)
    fields['stock'] = _parse_int(data.get('stock', 0), 'El stock')
    fields.setdefault('is_active', True)

    if store.find_product_by_code(fields['code']) is not None:
        raise BusinessLogicError(f'Ya existe un producto con el código "{fields["code"]}"')

    try:
        with store.unit_of_work() as uow:
            product = uow.add_product(fields)
            if product.stock > 0:
                uow.add_movement(MovementDraft(
                    product_id=product.id,
                    quantity=product.stock,
                    movement_type=MovementType.IN,
                    reference_type=MovementReferenceType.MANUAL,
                    created_at=datetime.now(),
                    notes='Stock inicial'
                ))
    except DuplicateKeyError:
        raise BusinessLogicError(f'Ya existe un producto con el código "{fields["code"]}"')
    except Exception as e:
        logger.error(f"[CATALOG] Product creation failed for {fields['code']}, rolled back: {e}", exc_info=True)
        raise PersistenceFailure('Error al crear el producto. No se guardaron cambios.') from e

    logger.info(f"[CATALOG] Product created: {product.code} '{product.name}' stock={product.stock}")
    return product


def update_product(store: PosStore, product_id: int, data: Dict[str, Any]) -> Product:
    """Edit catalog fields. Stock changes go through adjust_stock()."""
    if 'stock' in data:
        raise BusinessLogicError('El stock se modifica con un ajuste de inventario')

    get_product(store, product_id)
    fields = _clean_product_data(data, partial=True)
    if not fields:
        raise BusinessLogicError('No hay cambios para guardar')

    code = fields.get('code')
    if code is not None:
        existing = store.find_product_by_code(code)
        if existing is not None and existing.id != product_id:
            raise BusinessLogicError(f'Ya existe un producto con el código "{code}"')

    try:
        product = store.update_product(product_id, fields)
    except DuplicateKeyError:
        raise BusinessLogicError(f'Ya existe un producto con el código "{code}"')

    logger.info(f"[CATALOG] Product updated: {product.code} fields={sorted(fields)}")
    return product


def deactivate_product(store: PosStore, product_id: int) -> Product:
    """Products are never deleted, only hidden from the catalog."""
    get_product(store, product_id)
    product = store.update_product(product_id, {'is_active': False})
    logger.info(f"[CATALOG] Product deactivated: {product.code}")
    return product


def adjust_stock(store: PosStore, product_id: int, new_stock: Any,
                 expected_stock: Optional[int] = None, notes: Optional[str] = None) -> InventoryMovement:
    """
    Manual stock correction (physical count, reception).

    Uses the store's compare-and-swap: if stock moved since it was read (or
    since expected_stock was shown to the operator), nothing is written and
    StockConflictError is raised. The new stock and its ADJUST movement are
    committed together.
    """
    target = _parse_int(new_stock, 'El stock')
    product = get_product(store, product_id)
    if expected_stock in (None, ''):
        current = product.stock
    else:
        current = _parse_int(expected_stock, 'El stock esperado')

    try:
        with store.unit_of_work() as uow:
            if not uow.set_stock(product_id, target, current):
                raise StockConflictError(product_id)
            movement = uow.add_movement(MovementDraft(
                product_id=product_id,
                quantity=target - current,
                movement_type=MovementType.ADJUST,
                reference_type=MovementReferenceType.MANUAL,
                created_at=datetime.now(),
                notes=notes or f'Ajuste manual: {current} -> {target}'
            ))
    except PosError:
        raise
    except Exception as e:
        logger.error(f"[CATALOG] Stock adjustment failed for {product.code}, rolled back: {e}", exc_info=True)
        raise PersistenceFailure('Error al ajustar el stock. No se guardaron cambios.') from e

    logger.info(f"[CATALOG] Stock adjusted for {product.code}: {current} -> {target}")
    return movement


def seed_demo_catalog(store: PosStore) -> List[Product]:
    """Insert the demo pharmacy products that are not in the store yet."""
    created = []
    for data in DEMO_PRODUCTS:
        if store.find_product_by_code(data['code']) is None:
            created.append(create_product(store, dict(data)))
    return created
