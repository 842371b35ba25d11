"""
Unit tests for customer resolution.
"""

import pytest

from farmacia.exceptions import CustomerResolutionError
from farmacia.services.customer_service import CustomerInput, resolve_customer
from farmacia.stores.base import DuplicateKeyError
from farmacia.stores.memory_store import MemoryStore
from farmacia.stores.records import DocumentType


class TestCustomerInput:

    def test_from_dict_strips_values(self):
        data = CustomerInput.from_dict({'document_number': ' 20123456789 ', 'name': ' Botica SAC ', 'document_type': 'ruc'})

        assert data.document_number == '20123456789'
        assert data.name == 'Botica SAC'
        assert data.document_type == DocumentType.RUC

    def test_invalid_document_type(self):
        with pytest.raises(CustomerResolutionError):
            CustomerInput.from_dict({'document_number': '1', 'document_type': 'PASAPORTE'})


class TestResolveCustomer:

    def test_no_input(self, store):
        assert resolve_customer(store, None) is None
        assert resolve_customer(store, {}) is None

    def test_creates_when_name_given(self, store):
        customer = resolve_customer(store, {'document_number': '12345678', 'name': 'Ana Torres'})

        assert customer.id is not None
        assert customer.document_type == DocumentType.DNI
        assert store.count_customers() == 1

    def test_finds_existing(self, store):
        existing = store.create_customer({'name': 'Luis', 'document_number': '12345678'})

        customer = resolve_customer(store, CustomerInput(document_number='12345678'))

        assert customer.id == existing.id

    def test_lost_insert_race_uses_existing_row(self, monkeypatch):
        store = MemoryStore()
        winner = store.create_customer({'name': 'Ana', 'document_number': '12345678'})
        lookups = iter([None, winner])

        def lost_race(fields):
            raise DuplicateKeyError('document_number', fields['document_number'])

        # First lookup misses, the insert loses to the other checkout, the retry finds its row
        monkeypatch.setattr(store, 'find_customer_by_document', lambda doc: next(lookups))
        monkeypatch.setattr(store, 'create_customer', lost_race)

        assert resolve_customer(store, {'document_number': '12345678', 'name': 'Ana'}).id == winner.id
        assert store.count_customers() == 1

    def test_store_failure(self, monkeypatch):
        store = MemoryStore()

        def broken(doc):
            raise RuntimeError('connection lost')

        monkeypatch.setattr(store, 'find_customer_by_document', broken)

        with pytest.raises(CustomerResolutionError):
            resolve_customer(store, {'document_number': '12345678', 'name': 'Ana'})

    def test_duplicate_key_without_row_is_reported(self, monkeypatch):
        store = MemoryStore()

        def duplicate(fields):
            raise DuplicateKeyError('document_number', fields['document_number'])

        monkeypatch.setattr(store, 'create_customer', duplicate)

        with pytest.raises(CustomerResolutionError):
            resolve_customer(store, {'document_number': '12345678', 'name': 'Ana'})
