import os
from datetime import timedelta

from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, '.env'))


def _normalize_database_url(database_url):
    """Ensure we're using postgresql:// not postgres://"""
    if database_url and database_url.startswith('postgres://'):
        return database_url.replace('postgres://', 'postgresql://', 1)
    return database_url


def _split_env_list(name, default):
    raw = os.environ.get(name)
    if not raw:
        return list(default)
    return [part.strip() for part in raw.split(',') if part.strip()]


class Config:
    """Base configuration"""

    # Security Configuration
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'

    @staticmethod
    def get_database_url():
        """Get properly formatted database URL string"""
        database_url = _normalize_database_url(os.environ.get('DATABASE_URL'))
        if database_url:
            return database_url
        # Fallback for local development
        return 'sqlite:///' + os.path.join(basedir, 'instance', 'fieldflow_billing.db')

    SQLALCHEMY_DATABASE_URI = None  # Will be set in __init__
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_recycle': 3600,
        'pool_pre_ping': True,
    }

    # Session Configuration
    PERMANENT_SESSION_LIFETIME = timedelta(hours=24)
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'None'
    SESSION_COOKIE_NAME = 'fieldflow_auth'

    CORS_ORIGINS = _split_env_list('CORS_ORIGINS', [
        'http://localhost:3000',
        'http://127.0.0.1:3000',
    ])
    CORS_SUPPORTS_CREDENTIALS = True

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # --- Business & Document Settings ---
    # House tax rate for new documents, as a fraction (0.10 == 10%)
    DEFAULT_TAX_RATE = os.environ.get('DEFAULT_TAX_RATE', '0.10')
    # Catalog products whose name, tags or category contain one of these
    # terms (case-insensitive) are offered in the warranty step
    WARRANTY_MATCH_TERMS = _split_env_list('WARRANTY_MATCH_TERMS', ['warranty', 'protection plan'])
    INVOICE_DUE_DAYS = int(os.environ.get('INVOICE_DUE_DAYS', 30))
    ESTIMATE_VALID_DAYS = int(os.environ.get('ESTIMATE_VALID_DAYS', 30))
    NUMBER_PADDING = int(os.environ.get('NUMBER_PADDING', 4))
    TIMEZONE = os.environ.get('TIMEZONE', 'America/Los_Angeles')
    # Builder sessions untouched for this long are closed and no longer block the document
    BUILDER_SESSION_IDLE_MINUTES = int(os.environ.get('BUILDER_SESSION_IDLE_MINUTES', 60))

    def __init__(self):
        """Initialize configuration with proper database URL"""
        self.SQLALCHEMY_DATABASE_URI = self.get_database_url()


class DevelopmentConfig(Config):
    """Development configuration for local testing"""
    DEBUG = True
    DEVELOPMENT = True

    def __init__(self):
        super().__init__()

        # Relaxed settings for development
        self.SESSION_COOKIE_SECURE = False
        self.SESSION_COOKIE_SAMESITE = 'Lax'

        dev_database_url = _normalize_database_url(os.environ.get('DEV_DATABASE_URL'))
        if dev_database_url:
            self.SQLALCHEMY_DATABASE_URI = dev_database_url

        # Enable SQL logging in development
        self.SQLALCHEMY_ENGINE_OPTIONS = {
            **Config.SQLALCHEMY_ENGINE_OPTIONS,
            'echo': os.environ.get('SQL_ECHO', 'False').lower() in ('true', '1', 't'),
        }


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    DEVELOPMENT = False

    def __init__(self):
        super().__init__()

        secret_key = os.environ.get('SECRET_KEY')
        if not secret_key:
            raise ValueError("SECRET_KEY environment variable is required for production")
        self.SECRET_KEY = secret_key

        database_url = os.environ.get('DATABASE_URL')
        if not database_url:
            raise ValueError("DATABASE_URL environment variable is required for production")
        self.SQLALCHEMY_DATABASE_URI = _normalize_database_url(database_url)

        self.SQLALCHEMY_ENGINE_OPTIONS = {
            'pool_recycle': 3600,
            'pool_pre_ping': True,
            'pool_size': 10,
            'max_overflow': 20,
            'pool_timeout': 30,
        }


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    SECRET_KEY = 'testing-secret-key'

    def __init__(self):
        super().__init__()
        self.SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
        self.SQLALCHEMY_ENGINE_OPTIONS = {}
        self.SESSION_COOKIE_SECURE = False
        self.SESSION_COOKIE_SAMESITE = 'Lax'
        self.CORS_ORIGINS = ['*']


# Configuration mapping
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config_name():
    """Detect environment from environment variables"""

    # Check explicit environment setting
    flask_env = os.environ.get('FLASK_ENV', '').lower()
    if flask_env in ['production', 'testing', 'development']:
        return flask_env

    # Check for testing environment
    if os.environ.get('TESTING') or os.environ.get('CI'):
        return 'testing'

    # Default to development
    return 'development'


__all__ = [
    'config',
    'get_config_name',
]
