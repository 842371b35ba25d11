import pytest
from decimal import Decimal

from config import TestConfig
from farmacia import create_app
from farmacia.services.catalog_service import seed_demo_catalog
from farmacia.stores.memory_store import MemoryStore
from farmacia.stores.sql_store import SqlStore


@pytest.fixture(scope='function')
def app():
    """Create application instance for testing (memory store, demo catalog)."""
    app = create_app(TestConfig)
    return app


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def app_store(app):
    """Store the test app is using."""
    return app.extensions['pos_store']


@pytest.fixture(scope='function', params=['memory', 'sql'])
def store(request, tmp_path):
    """Empty store; every test using it runs once per backend."""
    if request.param == 'memory':
        store = MemoryStore()
    else:
        store = SqlStore.from_url(f"sqlite:///{tmp_path / 'pos.db'}")
    yield store
    store.close()


@pytest.fixture(scope='function')
def demo_store(store):
    """Store holding the five demo products (001 Paracetamol 500mg ...)."""
    seed_demo_catalog(store)
    return store


@pytest.fixture(scope='function')
def make_product(store):
    """Factory creating products directly in the store."""
    counter = {'n': 0}

    def _make(name='Producto de prueba', price='10.00', stock=10, min_stock=2, code=None, **extra):
        counter['n'] += 1
        fields = {
            'code': code or f'T{counter["n"]:03d}',
            'name': name,
            'price': Decimal(str(price)),
            'stock': stock,
            'min_stock': min_stock,
            'is_active': True
        }
        fields.update(extra)
        return store.create_product(fields)

    return _make
