"""
Persistence backends.

The backend is picked once at startup from STORE_BACKEND ('memory' or 'sql')
and handed to the services; business code never checks which one it got.
"""
import logging

from farmacia.exceptions import ConfigurationError
from farmacia.stores.base import DuplicateKeyError, PosStore, UnitOfWork
from farmacia.stores.memory_store import MemoryStore

logger = logging.getLogger(__name__)

STORE_BACKENDS = ('memory', 'sql')

_store = None


def build_store(config) -> PosStore:
    """Create the store described by a config mapping (Flask config or dict)."""
    backend = (config.get('STORE_BACKEND') or 'sql').lower()

    if backend == 'memory':
        store = MemoryStore()
        if config.get('SEED_DEMO_CATALOG', False):
            from farmacia.services.catalog_service import seed_demo_catalog
            seed_demo_catalog(store)
        return store

    if backend == 'sql':
        from sqlalchemy.exc import SQLAlchemyError
        from farmacia.database import check_connection, create_db_engine, create_schema, create_session_registry
        from farmacia.stores.sql_store import SqlStore

        database_uri = config.get('SQLALCHEMY_DATABASE_URI')
        if not database_uri:
            raise ConfigurationError('SQLALCHEMY_DATABASE_URI no está configurado')
        try:
            engine = create_db_engine(database_uri, echo=config.get('SQLALCHEMY_ECHO', False))
            check_connection(engine)
            if config.get('DB_CREATE_ALL', True):
                create_schema(engine)
        except SQLAlchemyError as e:
            raise ConfigurationError(f'No se pudo conectar a la base de datos: {e}')
        return SqlStore(create_session_registry(engine), engine=engine)

    raise ConfigurationError(
        f"STORE_BACKEND inválido: {backend!r}. Valores permitidos: {', '.join(STORE_BACKENDS)}"
    )


def init_store(app) -> PosStore:
    """Build the configured store and register it on the Flask app."""
    global _store

    try:
        store = build_store(app.config)
    except ConfigurationError as e:
        app.logger.error(f"[STORE] {e.message}")
        raise

    _store = store
    app.extensions['pos_store'] = store
    app.logger.info(f"[STORE] Using '{store.backend_name}' backend")

    if store.backend_name == 'sql':
        @app.teardown_appcontext
        def release_store_session(exception=None):
            store.remove_session()

    return store


def get_store() -> PosStore:
    """Store of the current Flask app (falls back to the last one initialized)."""
    try:
        from flask import current_app
        return current_app.extensions['pos_store']
    except (RuntimeError, KeyError):
        if _store is None:
            raise ConfigurationError('El almacenamiento no fue inicializado')
        return _store


__all__ = [
    'PosStore', 'UnitOfWork', 'DuplicateKeyError', 'MemoryStore',
    'build_store', 'init_store', 'get_store', 'STORE_BACKENDS',
]
