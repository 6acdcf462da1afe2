"""
Database configuration

``DatabaseConfig`` owns the SQLAlchemy engine and session factory. One
instance is created per application (``init_database``) and stored on
``app.state``; request handlers get sessions through ``api.deps.get_db``.
"""
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .base import Base

logger = logging.getLogger(__name__)


class DatabaseConfig:
    """Engine + session factory for one database URL"""

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.engine: Engine = self._create_engine(database_url, echo)
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False, expire_on_commit=False)

    @staticmethod
    def _create_engine(database_url: str, echo: bool) -> Engine:
        if database_url.startswith("sqlite"):
            kwargs = {"connect_args": {"check_same_thread": False}, "echo": echo}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                # Single shared connection so every session sees the same in-memory DB
                kwargs["poolclass"] = StaticPool
            engine = create_engine(database_url, **kwargs)

            @event.listens_for(engine, "connect")
            def _enable_foreign_keys(dbapi_connection, _record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

            return engine

        return create_engine(
            database_url,
            echo=echo,
            pool_pre_ping=True,
            pool_size=10,
            max_overflow=20,
        )

    def create_tables(self) -> None:
        # Import models so they register on Base.metadata
        from . import models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables created", extra={"url": self._safe_url()})

    def session(self) -> Session:
        return self.SessionLocal()

    def dispose(self) -> None:
        self.engine.dispose()

    def _safe_url(self) -> str:
        return self.engine.url.render_as_string(hide_password=True)


_db_config: Optional[DatabaseConfig] = None


def init_database(database_url: str, create_tables: bool = True) -> DatabaseConfig:
    """Create the process-wide DatabaseConfig (used by scripts and the app factory)."""
    global _db_config
    _db_config = DatabaseConfig(database_url)
    if create_tables:
        _db_config.create_tables()
    return _db_config


def get_db_config() -> DatabaseConfig:
    if _db_config is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _db_config


@contextmanager
def get_db_session(config: Optional[DatabaseConfig] = None) -> Iterator[Session]:
    """Session scope for code running outside a request (sweeper, scripts)."""
    db = (config or get_db_config()).session()
    try:
        yield db
    finally:
        db.close()
