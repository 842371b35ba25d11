"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name, default='false'):
    return os.getenv(name, default).lower() in ('1', 'true', 'yes')


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '0') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')

    # Session Configuration (the POS cart lives in the session cookie)
    SESSION_COOKIE_SECURE = _env_bool('SESSION_COOKIE_SECURE')
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = 86400  # 24 hours

    # CSRF on the JSON blueprints (sales, catalog)
    CSRF_PROTECT_API = _env_bool('CSRF_PROTECT_API')

    # Persistence backend: 'sql' (PostgreSQL/SQLite) or 'memory'
    STORE_BACKEND = os.getenv('STORE_BACKEND', 'sql').lower()
    SEED_DEMO_CATALOG = _env_bool('SEED_DEMO_CATALOG')

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'farmacia')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'farmacia')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'farmacia')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = _env_bool('SQLALCHEMY_ECHO')
    DB_CREATE_ALL = _env_bool('DB_CREATE_ALL', 'true')

    # Tax and currency (Peru: IGV 18%, soles)
    TAX_RATE = os.getenv('TAX_RATE', '0.18')
    TAX_LABEL = os.getenv('TAX_LABEL', 'IGV')
    CURRENCY_PREFIX = os.getenv('CURRENCY_PREFIX', 'S/')

    # Business Information (for receipts)
    BUSINESS_NAME = os.getenv('BUSINESS_NAME', 'FARMACIA SALUD')
    DEFAULT_CUSTOMER_NAME = os.getenv('DEFAULT_CUSTOMER_NAME', 'Cliente General')
    DEFAULT_CUSTOMER_DOC = os.getenv('DEFAULT_CUSTOMER_DOC', '00000000')

    # Reports
    TOP_PRODUCTS_LIMIT = int(os.getenv('TOP_PRODUCTS_LIMIT', '10'))
    SALES_BY_DAY_WINDOW = int(os.getenv('SALES_BY_DAY_WINDOW', '7'))


class TestConfig(Config):
    """In-memory store, no CSRF; used by the test suite."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    SECRET_KEY = 'test-secret-key'
    WTF_CSRF_ENABLED = False
    STORE_BACKEND = 'memory'
    SEED_DEMO_CATALOG = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
