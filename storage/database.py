"""
Storage - Database.

============================================================
RESPONSIBILITY
============================================================
Manages the engine, connection pool and session lifecycle.

- Engine creation (pooled for servers, static pool for
  in-memory SQLite)
- Session and transaction context managers
- Schema creation and connection health checks

============================================================
DESIGN PRINCIPLES
============================================================
- One Database handle per process, injected where needed
- Explicit transaction boundaries
- Rolled back on ANY exception, never half-committed

============================================================
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from storage.models.base import Base


logger = logging.getLogger(__name__)


class DatabasePersistenceError(Exception):
    """A transaction could not be committed."""
    pass


class DatabaseConnectionError(Exception):
    """The database is unreachable."""
    pass


def _redact(url: str) -> str:
    return url.split("@")[-1]


def create_database_engine(
    database_url: str,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    echo: bool = False,
) -> Engine:
    """
    Create SQLAlchemy engine.

    SQLite URLs get a single shared connection for ":memory:"
    databases so every session sees the same data.
    """
    logger.info(f"Creating database engine for: {_redact(database_url)}")

    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    engine = create_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        pool_pre_ping=True,
        echo=echo,
    )

    @event.listens_for(engine, "connect")
    def on_connect(dbapi_conn, connection_record):
        logger.debug("Database connection established")

    return engine


class Database:
    """
    Engine plus session factory.

    Usage:
        db = Database("sqlite:///market_intel.db")
        db.create_all()
        with db.transaction_scope() as session:
            MarketPriceRepository(session).add_quotes(quotes)
    """

    def __init__(self, database_url: str, engine: Optional[Engine] = None, echo: bool = False):
        self._url = database_url
        self._engine = engine or create_database_engine(database_url, echo=echo)
        self._session_factory = sessionmaker(
            bind=self._engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )

    @property
    def engine(self) -> Engine:
        return self._engine

    def get_session(self) -> Session:
        """
        Get a new session.

        IMPORTANT: Caller is responsible for committing/closing.
        Prefer session_scope() or transaction_scope().
        """
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Read-mostly session; the caller commits if it writes.

        On exception the session is rolled back and the error re-raised.
        """
        session = self.get_session()
        try:
            yield session
        except Exception as e:
            logger.error(f"Session error, rolling back: {e}")
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def transaction_scope(self) -> Generator[Session, None, None]:
        """
        Explicit transaction boundary.

        Commits only if no exception occurs. Rolls back on ANY
        exception; driver errors surface as DatabasePersistenceError,
        everything else is re-raised unchanged.
        """
        session = self.get_session()
        try:
            yield session
            session.commit()
            logger.debug("Database transaction committed successfully")
        except SQLAlchemyError as e:
            logger.error(f"Database transaction failed, rolling back: {e}")
            session.rollback()
            raise DatabasePersistenceError(f"Transaction failed: {e}") from e
        except Exception as e:
            logger.error(f"Transaction failed with unexpected error: {e}")
            session.rollback()
            raise
        finally:
            session.close()

    def create_all(self) -> None:
        """Create every table registered on Base."""
        import storage.models  # noqa: F401  registers models on Base

        try:
            Base.metadata.create_all(bind=self._engine)
            logger.info("Database tables created successfully")
        except SQLAlchemyError as e:
            logger.error(f"Failed to create database tables: {e}")
            raise DatabasePersistenceError(f"Table creation failed: {e}") from e

    def verify_connection(self) -> bool:
        """
        Raises:
            DatabaseConnectionError: If the database is unreachable
        """
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()
            logger.info("Database connection verified successfully")
            return True
        except OperationalError as e:
            logger.error(f"Database connection failed: {e}")
            raise DatabaseConnectionError(f"Cannot connect to database: {e}") from e

    def dispose(self) -> None:
        self._engine.dispose()
