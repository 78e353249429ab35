"""
Print Production Workflow
Configuration classes for the Flask app factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'printflow_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Single-active timer/session checks rely on this level for every engine transaction.
_ISOLATION_LEVEL = os.getenv("WORKFLOW_ISOLATION_LEVEL", "SERIALIZABLE")


def _database_url(env_var: str, fallback: str | None) -> str | None:
    """Read a database URL, normalising Heroku-style ``postgres://``."""
    raw = os.getenv(env_var, "")
    if not raw:
        return fallback
    return raw.replace("postgres://", "postgresql://", 1)


def _engine_options(url: str | None, **server_extra) -> dict:
    """Pool sizing (and ``server_extra``) for server databases; SQLite only gets the isolation level."""
    options = {"isolation_level": _ISOLATION_LEVEL}
    if url and not url.startswith("sqlite"):
        options.update(
            pool_pre_ping=True,
            pool_size=5,
            max_overflow=10,
            pool_recycle=300,
            pool_timeout=20,
            **server_extra,
        )
    return options


class Config:
    """Settings shared by every environment."""

    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options(None)

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Workflow engine
    WORKFLOW_ISOLATION_LEVEL = _ISOLATION_LEVEL
    FALLBACK_ASSIGNEE_ID = os.getenv("FALLBACK_ASSIGNEE_ID") or None
    FALLBACK_ASSIGNEE_USERNAME = os.getenv("FALLBACK_ASSIGNEE_USERNAME", "handoff")
    REJECTION_NOTE_MIN_LENGTH = int(os.getenv("REJECTION_NOTE_MIN_LENGTH", "10"))
    NOTE_MAX_LENGTH = 5000
    FILE_NO_PREFIX = os.getenv("FILE_NO_PREFIX", "REP")
    BULK_ASSIGN_MAX = int(os.getenv("BULK_ASSIGN_MAX", "100"))


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url("DATABASE_URL", _SQLITE_DEV)
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options(SQLALCHEMY_DATABASE_URI)


class TestingConfig(Config):
    """In-memory SQLite unless TEST_DATABASE_URL points at a real server."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = _database_url("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options(SQLALCHEMY_DATABASE_URI)
    FALLBACK_ASSIGNEE_ID = None
    FALLBACK_ASSIGNEE_USERNAME = "handoff"
    REJECTION_NOTE_MIN_LENGTH = 10
    FILE_NO_PREFIX = "REP"
    BULK_ASSIGN_MAX = 5


class ProductionConfig(Config):
    """Instantiated (not just referenced) so the guards below run at startup."""

    SQLALCHEMY_DATABASE_URI = _database_url("DATABASE_URL", None)
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options(
        SQLALCHEMY_DATABASE_URI,
        connect_args={"options": "-c statement_timeout=30000"},
    )
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")

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
