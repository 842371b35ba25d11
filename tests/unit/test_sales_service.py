"""
Unit tests for sale finalization, run against both store backends.
"""

import pytest
from decimal import Decimal

from farmacia.exceptions import (
    BusinessLogicError, CustomerResolutionError, EmptyCartError, InsufficientStockError,
    NotFoundError
)
from farmacia.services import catalog_service, dashboard_service
from farmacia.services.cart_service import Cart
from farmacia.services.customer_service import CustomerInput
from farmacia.services.receipt_service import render_receipt
from farmacia.services.sales_service import SaleState, SaleTransaction, finalize_sale
from farmacia.stores.records import (
    MovementReferenceType, MovementType, PaymentMethod, ReceiptType, SaleStatus
)


def _cart_with(store, code, qty):
    cart = Cart()
    cart.add_line(store.find_product_by_code(code), qty)
    return cart


class TestFinalizeSale:
    """Happy path and resulting state."""

    def test_happy_path(self, demo_store):
        cart = _cart_with(demo_store, '001', 3)

        sale = finalize_sale(demo_store, cart)

        assert sale.sale_number == 'BOLETA-00000001'
        assert sale.receipt_type == ReceiptType.BOLETA
        assert sale.payment_method == PaymentMethod.EFECTIVO
        assert sale.status == SaleStatus.COMPLETED
        assert (sale.subtotal, sale.tax, sale.total) == (Decimal('7.50'), Decimal('1.35'), Decimal('8.85'))
        assert sale.customer is None
        assert len(sale.items) == 1
        assert sale.items[0].product_name == 'Paracetamol 500mg'
        assert sale.items[0].subtotal == Decimal('7.50')

        assert demo_store.find_product_by_code('001').stock == 97
        assert cart.is_empty

    def test_sale_is_persisted(self, demo_store):
        sale = finalize_sale(demo_store, _cart_with(demo_store, '001', 3))

        stored = demo_store.find_sale(sale.id)
        assert stored.sale_number == sale.sale_number
        assert stored.total == Decimal('8.85')
        assert [item.quantity for item in stored.items] == [3]

    def test_out_movement_per_line(self, demo_store):
        cart = _cart_with(demo_store, '001', 3)
        cart.add_line(demo_store.find_product_by_code('003'), 2)

        sale = finalize_sale(demo_store, cart)

        out = [m for m in demo_store.list_movements() if m.movement_type == MovementType.OUT]
        assert sorted(m.quantity for m in out) == [-3, -2]
        assert all(m.reference_type == MovementReferenceType.SALE for m in out)
        assert all(m.reference_id == sale.id for m in out)

    def test_top_products_updated(self, demo_store):
        finalize_sale(demo_store, _cart_with(demo_store, '001', 3))

        top = dashboard_service.top_products(demo_store, 5)

        assert top[0].code == '001'
        assert top[0].total_sold == 3
        assert top[0].total_revenue == Decimal('7.50')

    def test_sale_numbers_are_sequential_per_receipt_type(self, demo_store):
        first = finalize_sale(demo_store, _cart_with(demo_store, '001', 1))
        second = finalize_sale(demo_store, _cart_with(demo_store, '001', 1))
        factura = finalize_sale(demo_store, _cart_with(demo_store, '002', 1), receipt_type='FACTURA')

        assert first.sale_number == 'BOLETA-00000001'
        assert second.sale_number == 'BOLETA-00000002'
        assert factura.sale_number == 'FACTURA-00000001'

    def test_price_from_cart_snapshot(self, demo_store):
        cart = _cart_with(demo_store, '001', 2)
        product = demo_store.find_product_by_code('001')
        catalog_service.update_product(demo_store, product.id, {'price': '3.00'})

        sale = finalize_sale(demo_store, cart)

        assert sale.items[0].unit_price == Decimal('2.50')
        assert sale.subtotal == Decimal('5.00')

    def test_payment_method_and_transaction_states(self, demo_store):
        tx = SaleTransaction()
        sale = finalize_sale(demo_store, _cart_with(demo_store, '004', 1), payment_method='yape', transaction=tx)

        assert sale.payment_method == PaymentMethod.YAPE
        assert tx.history == [
            SaleState.BUILDING, SaleState.VALIDATING, SaleState.RESERVING_STOCK,
            SaleState.PERSISTING, SaleState.COMPLETED
        ]


class TestFinalizeSaleRejections:
    """Rejected finalizations leave no trace."""

    def test_empty_cart(self, demo_store):
        tx = SaleTransaction()
        with pytest.raises(EmptyCartError):
            finalize_sale(demo_store, Cart(), transaction=tx)

        assert tx.state == SaleState.FAILED
        assert demo_store.count_sales() == 0

    def test_stock_changed_since_add(self, demo_store):
        cart = _cart_with(demo_store, '003', 20)
        product = demo_store.find_product_by_code('003')
        catalog_service.adjust_stock(demo_store, product.id, 10)

        with pytest.raises(InsufficientStockError) as exc:
            finalize_sale(demo_store, cart)

        assert exc.value.product_id == product.id
        assert exc.value.available == 10
        assert cart.lines[0].quantity == 20
        assert demo_store.find_product_by_id(product.id).stock == 10
        assert demo_store.count_sales() == 0

    def test_deactivated_since_add(self, demo_store):
        cart = _cart_with(demo_store, '002', 1)
        catalog_service.deactivate_product(demo_store, demo_store.find_product_by_code('002').id)

        with pytest.raises(NotFoundError):
            finalize_sale(demo_store, cart)
        assert not cart.is_empty

    def test_invalid_receipt_type(self, demo_store):
        cart = _cart_with(demo_store, '001', 1)
        with pytest.raises(BusinessLogicError):
            finalize_sale(demo_store, cart, receipt_type='RECIBO')
        assert demo_store.find_product_by_code('001').stock == 100


class TestCustomerResolution:
    """Customer handling during finalization."""

    def test_new_customer_is_created(self, demo_store):
        sale = finalize_sale(
            demo_store,
            _cart_with(demo_store, '001', 1),
            customer_input=CustomerInput(document_number='12345678', name='Ana Torres')
        )

        assert sale.customer.name == 'Ana Torres'
        assert demo_store.find_customer_by_document('12345678').id == sale.customer_id

    def test_existing_customer_is_reused(self, demo_store):
        customer = demo_store.create_customer({'name': 'Luis Rojas', 'document_number': '87654321'})

        sale = finalize_sale(
            demo_store,
            _cart_with(demo_store, '001', 1),
            customer_input={'document_number': '87654321', 'name': 'Otro Nombre'}
        )

        assert sale.customer_id == customer.id
        assert sale.customer.name == 'Luis Rojas'
        assert demo_store.count_customers() == 1

    def test_document_without_name_and_unknown(self, demo_store):
        sale = finalize_sale(
            demo_store,
            _cart_with(demo_store, '001', 1),
            customer_input={'document_number': '11112222'}
        )

        assert sale.customer is None
        assert demo_store.count_customers() == 0

    def test_customer_lookup_failure_aborts_sale(self, demo_store, monkeypatch):
        cart = _cart_with(demo_store, '001', 2)
        tx = SaleTransaction()

        def broken(doc):
            raise RuntimeError('connection lost')

        monkeypatch.setattr(demo_store, 'find_customer_by_document', broken)

        with pytest.raises(CustomerResolutionError):
            finalize_sale(
                demo_store,
                cart,
                customer_input={'document_number': '12345678', 'name': 'Ana Torres'},
                transaction=tx
            )

        assert tx.state == SaleState.FAILED
        assert [(line.product_id, line.quantity) for line in cart.lines] == [
            (demo_store.find_product_by_code('001').id, 2)
        ]
        assert demo_store.count_sales() == 0
        assert demo_store.count_customers() == 0
        assert demo_store.find_product_by_code('001').stock == 100
        assert [m for m in demo_store.list_movements() if m.movement_type == MovementType.OUT] == []


class TestStoredTaxRate:
    """The rate a sale was priced at travels with the sale."""

    def test_rate_is_persisted(self, demo_store):
        sale = finalize_sale(demo_store, _cart_with(demo_store, '001', 3), tax_rate='0.10')

        stored = demo_store.find_sale(sale.id)
        assert stored.tax_rate == Decimal('0.10')
        assert (stored.subtotal, stored.tax, stored.total) == (Decimal('7.50'), Decimal('0.75'), Decimal('8.25'))

    def test_receipt_shows_rate_of_the_sale(self, demo_store):
        sale = finalize_sale(demo_store, _cart_with(demo_store, '001', 3), tax_rate='0.10')

        # Reprint after the configured rate went back to 18%
        text = render_receipt(demo_store.find_sale(sale.id), tax_rate=Decimal('0.18'))

        assert 'IGV (10%):       S/ 0.75' in text
        assert '18%' not in text
