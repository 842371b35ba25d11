"""Database configuration and initialization."""
from sqlalchemy import create_engine, text
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base

# Create SQLAlchemy base
Base = declarative_base()


def create_db_engine(database_uri: str, echo: bool = False):
    """Create an engine with pool settings suited to the backend."""
    options = {'echo': echo, 'pool_pre_ping': True}
    if database_uri.startswith('sqlite'):
        # Threads share the file; wait on locks instead of failing fast
        options['connect_args'] = {'check_same_thread': False, 'timeout': 30}
    else:
        options['pool_size'] = 10
        options['max_overflow'] = 20
    return create_engine(database_uri, **options)


def create_session_registry(bind):
    """Thread-local session registry bound to an engine."""
    return scoped_session(sessionmaker(autoflush=False, bind=bind))


def create_schema(bind) -> None:
    """Create all tables and the per-receipt-type sale number sequences."""
    # Import models so they register on Base.metadata
    from farmacia.models import SaleSequence
    from farmacia.stores.records import ReceiptType

    Base.metadata.create_all(bind)

    Session = sessionmaker(bind=bind)
    with Session() as session:
        existing = {row[0] for row in session.query(SaleSequence.receipt_type).all()}
        for receipt_type in ReceiptType:
            if receipt_type not in existing:
                session.add(SaleSequence(receipt_type=receipt_type, last_value=0))
        session.commit()


def check_connection(bind) -> None:
    """Execute a trivial query; raises if the database is unreachable."""
    with bind.connect() as connection:
        connection.execute(text("SELECT 1"))
