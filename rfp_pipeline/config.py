"""
RFP Pricing Pipeline
Per-environment settings consumed by ``create_app``.

``APP_ENV`` picks the class (development / testing / production); the
factory instantiates it so production can refuse to boot half-configured.
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'rfp_pipeline_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"


def _database_url(var: str = "DATABASE_URL") -> str:
    """Env database URL, normalised for SQLAlchemy 2 (``postgres://`` is rejected)."""
    raw = os.getenv(var, "")
    return raw.replace("postgres://", "postgresql://", 1) if raw else ""


class Config:
    """Settings shared by every environment."""

    # Random per process outside production; tokens die with the process.
    SECRET_KEY = os.getenv("SECRET_KEY", secrets.token_hex(32))
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ACCESS_EXPIRES = int(os.getenv("JWT_ACCESS_EXPIRES", "900"))
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
    }

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Percent, kept as a string so Decimal sees the exact value.
    RFP_GST_RATE = os.getenv("RFP_GST_RATE", "18")
    RFP_LIST_MAX_LIMIT = int(os.getenv("RFP_LIST_MAX_LIMIT", "200"))


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url() or _SQLITE_DEV
    # the SQLite fallback takes no QueuePool sizing
    SQLALCHEMY_ENGINE_OPTIONS = Config.SQLALCHEMY_ENGINE_OPTIONS if _database_url() else {}


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = _database_url("TEST_DATABASE_URL") or _SQLITE_TEST
    SQLALCHEMY_ENGINE_OPTIONS = {}
    JWT_SECRET_KEY = "test-jwt-secret-key-with-at-least-32-bytes"
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url() or None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        **Config.SQLALCHEMY_ENGINE_OPTIONS,
        "connect_args": {"options": "-c statement_timeout=30000"},
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
