"""
Sales service with transactional logic.
Turns a cart into an immutable sale: stock decrement, sale + items and
inventory movements are committed as one unit or not at all.
"""
import enum
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from farmacia.exceptions import (
    BusinessLogicError, EmptyCartError, InsufficientStockError, NotFoundError,
    PersistenceFailure, PosError
)
from farmacia.services.cart_service import Cart, CartLine
from farmacia.services.customer_service import CustomerInput, resolve_customer
from farmacia.stores.base import PosStore, UnitOfWork
from farmacia.stores.records import (
    MovementDraft, MovementReferenceType, MovementType, PaymentMethod,
    ReceiptType, Sale, SaleDraft, SaleItemDraft, parse_enum
)
from farmacia.utils.metrics import pos_sales_completed_total, pos_sales_failed_total
from farmacia.utils.money import DEFAULT_TAX_RATE, round2, to_decimal

logger = logging.getLogger(__name__)


class SaleState(enum.Enum):
    """Finalization states."""
    BUILDING = "BUILDING"
    VALIDATING = "VALIDATING"
    RESERVING_STOCK = "RESERVING_STOCK"
    PERSISTING = "PERSISTING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


_TRANSITIONS = {
    SaleState.BUILDING: {SaleState.VALIDATING},
    SaleState.VALIDATING: {SaleState.RESERVING_STOCK, SaleState.FAILED},
    SaleState.RESERVING_STOCK: {SaleState.PERSISTING, SaleState.FAILED},
    SaleState.PERSISTING: {SaleState.COMPLETED, SaleState.FAILED},
    SaleState.COMPLETED: set(),
    SaleState.FAILED: set(),
}


class SaleTransaction:
    """State of one finalization attempt."""

    def __init__(self):
        self.state = SaleState.BUILDING
        self.history: List[SaleState] = [SaleState.BUILDING]
        self.error: Optional[Exception] = None

    def advance(self, state: SaleState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f'Invalid sale transition {self.state.value} -> {state.value}')
        logger.debug(f"[SALE] {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def fail(self, error: Exception) -> None:
        self.error = error
        if self.state in (SaleState.COMPLETED, SaleState.FAILED):
            return
        self.advance(SaleState.FAILED)


def finalize_sale(
    store: PosStore,
    cart: Cart,
    customer_input: Union[CustomerInput, Dict[str, Any], None] = None,
    receipt_type: Union[ReceiptType, str] = ReceiptType.BOLETA,
    payment_method: Union[PaymentMethod, str] = PaymentMethod.EFECTIVO,
    tax_rate: Any = DEFAULT_TAX_RATE,
    transaction: Optional[SaleTransaction] = None
) -> Sale:
    """
    Finalize a cart into a committed sale.

    Steps:
    1. Validate: cart not empty; each line re-checked against current stock
    2. Resolve customer (lookup by document, create when a name is given)
    3. Compute totals from the prices captured in the cart
    4-5. Inside one unit of work: guarded stock decrements, sale number,
       sale + items, one OUT movement per line
    6. Clear the cart and return the sale

    The cart is left untouched on any failure.

    Raises:
        EmptyCartError, NotFoundError, InsufficientStockError,
        BusinessLogicError, CustomerResolutionError: nothing was written
        PersistenceFailure: the store failed; everything was rolled back
    """
    tx = transaction or SaleTransaction()
    tx.advance(SaleState.VALIDATING)

    try:
        receipt_type = parse_enum(ReceiptType, receipt_type, 'Tipo de comprobante')
        payment_method = parse_enum(PaymentMethod, payment_method, 'Método de pago')
    except ValueError as e:
        error = BusinessLogicError(str(e))
        _reject(tx, error)
        raise error

    try:
        # 1. Validate against authoritative stock
        if cart.is_empty:
            raise EmptyCartError()
        lines = cart.lines
        _validate_lines(store, lines)

        # 2. Resolve customer
        customer = resolve_customer(store, customer_input)

        # 3. Totals from add-time prices
        rate = to_decimal(tax_rate)
        subtotal, tax, total = cart.totals(rate)
        items = [
            SaleItemDraft(
                product_id=line.product_id,
                product_code=line.code,
                product_name=line.name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                subtotal=round2(line.line_total)
            )
            for line in lines
        ]

        # 4-5. Atomic commit
        created_at = datetime.now()
        tx.advance(SaleState.RESERVING_STOCK)
        with store.unit_of_work() as uow:
            _reserve_stock(uow, lines)

            tx.advance(SaleState.PERSISTING)
            sale_number = uow.next_sale_number(receipt_type)
            sale = uow.add_sale(
                SaleDraft(
                    sale_number=sale_number,
                    receipt_type=receipt_type,
                    subtotal=subtotal,
                    tax=tax,
                    total=total,
                    payment_method=payment_method,
                    created_at=created_at,
                    customer_id=customer.id if customer else None,
                    tax_rate=rate
                ),
                items
            )
            for item in items:
                uow.add_movement(MovementDraft(
                    product_id=item.product_id,
                    quantity=-item.quantity,
                    movement_type=MovementType.OUT,
                    reference_type=MovementReferenceType.SALE,
                    reference_id=sale.id,
                    created_at=created_at,
                    notes=f'Venta {sale_number}'
                ))

    except PosError as e:
        _reject(tx, e)
        raise
    except Exception as e:
        tx.fail(e)
        pos_sales_failed_total.labels(reason='PersistenceFailure').inc()
        logger.error(f"[SALE] Commit failed in state {tx.history[-2].value}, rolled back: {e}", exc_info=True)
        raise PersistenceFailure() from e

    tx.advance(SaleState.COMPLETED)
    cart.clear()
    pos_sales_completed_total.labels(receipt_type=receipt_type.value).inc()
    logger.info(f"[SALE] {sale.sale_number} completed total={sale.total} items={len(sale.items)}")
    return sale


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _validate_lines(store: PosStore, lines: List[CartLine]) -> None:
    """Re-fetch every product; the cart snapshot may be stale."""
    for line in lines:
        if line.quantity <= 0:
            raise BusinessLogicError('La cantidad debe ser mayor a 0')
        product = store.find_product_by_id(line.product_id)
        if product is None or not product.is_active:
            raise NotFoundError(f'El producto "{line.name}" ya no está disponible')
        if line.quantity > product.stock:
            raise InsufficientStockError(product.id, product.name, line.quantity, product.stock)


def _reserve_stock(uow: UnitOfWork, lines: List[CartLine]) -> None:
    """Guarded decrement per line; a lost race aborts the whole sale."""
    for line in lines:
        if not uow.decrement_stock(line.product_id, line.quantity):
            available = uow.current_stock(line.product_id) or 0
            raise InsufficientStockError(line.product_id, line.name, line.quantity, available)


def _reject(tx: SaleTransaction, error: PosError) -> None:
    tx.fail(error)
    pos_sales_failed_total.labels(reason=type(error).__name__).inc()
    logger.warning(f"[SALE] Rejected: {error.message}")
