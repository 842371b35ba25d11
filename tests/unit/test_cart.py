"""
Unit tests for the cart.
"""

import pytest
from decimal import Decimal

from farmacia.exceptions import BusinessLogicError, InsufficientStockError, NotFoundError
from farmacia.services.cart_service import Cart
from farmacia.stores.records import Product


def _product(id=1, code='001', name='Paracetamol 500mg', price='2.50', stock=100, is_active=True):
    return Product(id=id, code=code, name=name, price=Decimal(price), stock=stock, min_stock=5, is_active=is_active)


class TestAddLine:
    """Tests for Cart.add_line."""

    def test_add_new_line(self):
        cart = Cart()
        line = cart.add_line(_product(), 3)

        assert line.quantity == 3
        assert line.unit_price == Decimal('2.50')
        assert cart.item_count == 3
        assert not cart.is_empty

    def test_duplicate_add_merges(self):
        cart = Cart()
        cart.add_line(_product(), 2)
        cart.add_line(_product(), 3)

        assert len(cart.lines) == 1
        assert cart.lines[0].quantity == 5

    def test_merge_over_stock_fails_and_keeps_line(self):
        cart = Cart()
        cart.add_line(_product(stock=4), 3)

        with pytest.raises(InsufficientStockError) as exc:
            cart.add_line(_product(stock=4), 2)

        assert exc.value.required == 5
        assert exc.value.available == 4
        assert cart.lines[0].quantity == 3

    @pytest.mark.parametrize('qty', [0, -1, '1.5', 'abc', None, True])
    def test_invalid_quantity(self, qty):
        cart = Cart()
        with pytest.raises(BusinessLogicError):
            cart.add_line(_product(), qty)
        assert cart.is_empty

    def test_quantity_as_string(self):
        cart = Cart()
        cart.add_line(_product(), '2')
        assert cart.lines[0].quantity == 2

    def test_inactive_product(self):
        cart = Cart()
        with pytest.raises(NotFoundError):
            cart.add_line(_product(is_active=False))

    def test_price_captured_at_add_time(self):
        cart = Cart()
        cart.add_line(_product(price='2.50'), 1)
        cart.add_line(_product(price='9.99'), 1)
        assert cart.lines[0].unit_price == Decimal('2.50')


class TestSetQuantity:
    """Tests for Cart.set_quantity."""

    def test_set_quantity(self):
        cart = Cart()
        cart.add_line(_product(), 1)
        cart.set_quantity(_product(), 7)
        assert cart.lines[0].quantity == 7

    def test_over_stock_keeps_previous_quantity(self):
        cart = Cart()
        cart.add_line(_product(stock=10), 2)

        with pytest.raises(InsufficientStockError):
            cart.set_quantity(_product(stock=10), 11)

        assert cart.lines[0].quantity == 2

    def test_zero_removes_line(self):
        cart = Cart()
        cart.add_line(_product(), 2)
        assert cart.set_quantity(_product(), 0) is None
        assert cart.is_empty

    def test_by_id_with_live_stock(self):
        cart = Cart()
        cart.add_line(_product(stock=100), 2)

        with pytest.raises(InsufficientStockError):
            cart.set_quantity(1, 5, stock=4)
        cart.set_quantity(1, 4, stock=4)

        assert cart.lines[0].quantity == 4

    def test_by_id_requires_stock(self):
        cart = Cart()
        cart.add_line(_product(), 1)
        with pytest.raises(ValueError):
            cart.set_quantity(1, 2)

    def test_unknown_product(self):
        cart = Cart()
        with pytest.raises(NotFoundError):
            cart.set_quantity(_product(id=99), 1)


class TestTotals:
    """Tests for totals and serialization."""

    def test_happy_path_totals(self):
        cart = Cart()
        cart.add_line(_product(), 3)
        assert cart.totals() == (Decimal('7.50'), Decimal('1.35'), Decimal('8.85'))

    def test_totals_idempotent(self):
        cart = Cart()
        cart.add_line(_product(), 3)
        cart.add_line(_product(id=2, code='003', name='Amoxicilina 500mg', price='8.90'), 2)

        first = cart.totals()
        assert cart.totals() == first
        assert cart.lines[0].quantity == 3

    def test_empty_cart_totals(self):
        assert Cart().totals() == (Decimal('0.00'), Decimal('0.00'), Decimal('0.00'))

    def test_clear_and_remove(self):
        cart = Cart()
        cart.add_line(_product(), 1)
        cart.add_line(_product(id=2, code='002', name='Ibuprofeno 400mg', price='3.20'), 1)

        assert cart.remove_line(2) is True
        assert cart.remove_line(2) is False
        cart.clear()
        assert cart.is_empty

    def test_dict_round_trip_keeps_prices(self):
        cart = Cart()
        cart.add_line(_product(), 3)

        restored = Cart.from_dict(cart.to_dict())

        assert restored.lines[0].unit_price == Decimal('2.50')
        assert restored.totals() == cart.totals()

    def test_from_empty_session(self):
        assert Cart.from_dict(None).is_empty

    def test_summary_amounts_are_strings(self):
        cart = Cart()
        cart.add_line(_product(), 3)
        summary = cart.summary()

        assert summary['total'] == '8.85'
        assert summary['lines'][0]['line_total'] == '7.50'
        assert summary['item_count'] == 3
