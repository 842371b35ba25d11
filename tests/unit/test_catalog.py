"""
Unit tests for catalog lookup and management, run against both store backends.
"""

import pytest
from decimal import Decimal

from farmacia.exceptions import (
    BusinessLogicError, NotFoundError, OutOfStockError, PersistenceFailure, StockConflictError
)
from farmacia.services import catalog_service
from farmacia.stores.memory_store import MemoryUnitOfWork
from farmacia.stores.records import MovementType
from farmacia.stores.sql_store import SqlUnitOfWork


def _broken_movements(store, monkeypatch):
    uow_class = MemoryUnitOfWork if store.backend_name == 'memory' else SqlUnitOfWork

    def add_movement(self, draft):
        raise RuntimeError('disk full')

    monkeypatch.setattr(uow_class, 'add_movement', add_movement)


class TestFindSellable:
    """Tests for find_sellable."""

    def test_exact_code_match(self, demo_store):
        product = catalog_service.find_sellable(demo_store, '003')
        assert product.name == 'Amoxicilina 500mg'

    def test_token_is_stripped(self, demo_store):
        product = catalog_service.find_sellable(demo_store, '  001 ')
        assert product.code == '001'

    def test_name_substring_case_insensitive(self, demo_store):
        product = catalog_service.find_sellable(demo_store, 'vitamina')
        assert product.code == '004'

    def test_name_match_follows_catalog_order(self, store, make_product):
        make_product(name='Zinc Jarabe', code='Z1')
        make_product(name='Acido Folico Jarabe', code='A1')

        product = catalog_service.find_sellable(store, 'jarabe')

        assert product.code == 'A1'

    def test_empty_token(self, demo_store):
        with pytest.raises(NotFoundError):
            catalog_service.find_sellable(demo_store, '   ')

    def test_over_long_token_is_rejected(self, store, make_product):
        name = 'Suero Oral ' + 'x' * 89
        make_product(name=name, code='L1')

        # Cutting the token at 100 characters would match the product above
        with pytest.raises(NotFoundError):
            catalog_service.find_sellable(store, name + ' Fresa')

        assert catalog_service.find_sellable(store, name).code == 'L1'

    def test_no_match(self, demo_store):
        with pytest.raises(NotFoundError):
            catalog_service.find_sellable(demo_store, 'xyz-no-existe')

    def test_inactive_products_are_not_sellable(self, store, make_product):
        product = make_product(name='Descontinuado', code='D1')
        catalog_service.deactivate_product(store, product.id)

        with pytest.raises(NotFoundError):
            catalog_service.find_sellable(store, 'D1')

    def test_out_of_stock(self, store, make_product):
        make_product(name='Agotado', code='X1', stock=0)

        with pytest.raises(OutOfStockError):
            catalog_service.find_sellable(store, 'X1')

    def test_search_products(self, demo_store):
        names = [p.name for p in catalog_service.search_products(demo_store, '500')]
        assert names == ['Amoxicilina 500mg', 'Paracetamol 500mg']


class TestCatalogManagement:
    """Tests for create/update/deactivate/adjust_stock."""

    def test_create_records_initial_stock_movement(self, store):
        product = catalog_service.create_product(store, {
            'code': '100', 'name': 'Loratadina 10mg', 'price': '4.50', 'stock': 30, 'min_stock': 5
        })

        assert product.price == Decimal('4.50')
        movements = store.list_movements(product.id)
        assert [(m.movement_type, m.quantity) for m in movements] == [(MovementType.IN, 30)]

    def test_create_without_stock_has_no_movement(self, store):
        product = catalog_service.create_product(store, {'code': '101', 'name': 'Gasa', 'price': '1.00'})
        assert product.stock == 0
        assert store.list_movements(product.id) == []

    def test_duplicate_code(self, demo_store):
        with pytest.raises(BusinessLogicError):
            catalog_service.create_product(demo_store, {'code': '001', 'name': 'Otro', 'price': '1.00'})

    @pytest.mark.parametrize('data', [
        {'name': 'Sin código', 'price': '1.00'},
        {'code': '200', 'price': '1.00'},
        {'code': '200', 'name': 'Precio negativo', 'price': '-1'},
        {'code': '200', 'name': 'Stock negativo', 'price': '1', 'stock': -3},
    ])
    def test_create_validation(self, store, data):
        with pytest.raises(BusinessLogicError):
            catalog_service.create_product(store, data)

    def test_update_product(self, demo_store):
        product = demo_store.find_product_by_code('002')
        updated = catalog_service.update_product(demo_store, product.id, {'price': '3.50', 'laboratory': 'Genfar'})

        assert updated.price == Decimal('3.50')
        assert updated.laboratory == 'Genfar'
        assert updated.stock == product.stock

    def test_update_rejects_stock(self, demo_store):
        product = demo_store.find_product_by_code('002')
        with pytest.raises(BusinessLogicError):
            catalog_service.update_product(demo_store, product.id, {'stock': 1})

    def test_update_code_conflict(self, demo_store):
        product = demo_store.find_product_by_code('002')
        with pytest.raises(BusinessLogicError):
            catalog_service.update_product(demo_store, product.id, {'code': '001'})

    def test_update_missing_product(self, store):
        with pytest.raises(NotFoundError):
            catalog_service.update_product(store, 999, {'name': 'X'})

    def test_deactivate(self, demo_store):
        product = demo_store.find_product_by_code('005')
        catalog_service.deactivate_product(demo_store, product.id)

        assert demo_store.find_product_by_id(product.id).is_active is False
        assert demo_store.count_active_products() == 4

    def test_adjust_stock_records_delta(self, demo_store):
        product = demo_store.find_product_by_code('003')
        movement = catalog_service.adjust_stock(demo_store, product.id, 20, notes='Conteo físico')

        assert movement.movement_type == MovementType.ADJUST
        assert movement.quantity == -5
        assert movement.notes == 'Conteo físico'
        assert demo_store.find_product_by_id(product.id).stock == 20

    def test_adjust_stock_conflict(self, demo_store):
        product = demo_store.find_product_by_code('003')

        with pytest.raises(StockConflictError):
            catalog_service.adjust_stock(demo_store, product.id, 10, expected_stock=24)

        assert demo_store.find_product_by_id(product.id).stock == 25

    def test_adjust_stock_negative(self, demo_store):
        product = demo_store.find_product_by_code('003')
        with pytest.raises(BusinessLogicError):
            catalog_service.adjust_stock(demo_store, product.id, -1)

    def test_seed_is_idempotent(self, demo_store):
        assert catalog_service.seed_demo_catalog(demo_store) == []
        assert demo_store.count_active_products() == 5


class TestStockWritesAreAudited:
    """A stock change and its movement are written together or not at all."""

    def test_adjust_rolls_back_when_movement_fails(self, demo_store, monkeypatch):
        product = demo_store.find_product_by_code('003')
        _broken_movements(demo_store, monkeypatch)

        with pytest.raises(PersistenceFailure):
            catalog_service.adjust_stock(demo_store, product.id, 10)

        assert demo_store.find_product_by_id(product.id).stock == 25
        assert [m.movement_type for m in demo_store.list_movements(product.id)] == [MovementType.IN]

    def test_store_usable_after_failed_adjust(self, demo_store, monkeypatch):
        product = demo_store.find_product_by_code('003')
        _broken_movements(demo_store, monkeypatch)
        with pytest.raises(PersistenceFailure):
            catalog_service.adjust_stock(demo_store, product.id, 10)
        monkeypatch.undo()

        movement = catalog_service.adjust_stock(demo_store, product.id, 10)

        assert movement.quantity == -15
        assert demo_store.find_product_by_id(product.id).stock == 10

    def test_create_rolls_back_when_movement_fails(self, store, monkeypatch):
        _broken_movements(store, monkeypatch)

        with pytest.raises(PersistenceFailure):
            catalog_service.create_product(store, {'code': '300', 'name': 'Suero', 'price': '2.00', 'stock': 12})

        assert store.find_product_by_code('300') is None
        assert store.list_movements() == []

    def test_movements_explain_stock_on_hand(self, demo_store):
        product = demo_store.find_product_by_code('002')
        catalog_service.adjust_stock(demo_store, product.id, 44)
        catalog_service.adjust_stock(demo_store, product.id, 61)

        total = sum(m.quantity for m in demo_store.list_movements(product.id))

        assert total == demo_store.find_product_by_id(product.id).stock == 61

    def test_store_compare_and_swap(self, demo_store):
        product = demo_store.find_product_by_code('004')

        assert demo_store.set_stock(product.id, 70, expected_stock=79) is False
        assert demo_store.set_stock(product.id, 70, expected_stock=80) is True
        assert demo_store.find_product_by_id(product.id).stock == 70
