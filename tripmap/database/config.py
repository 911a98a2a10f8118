"""
Engine and session management for the tripmap row store.

SQLite is the default backend; MySQL/MariaDB and PostgreSQL work through
their optional drivers. The URL comes from ``DATABASE_URL`` or is assembled
from the ``DB_*`` variables.
"""

import os
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from .models import Base, create_all_tables

logger = logging.getLogger(__name__)

# driver name, default port, default user per server backend
_SERVER_BACKENDS = {
    "mysql": ("mysql+pymysql", 3306, "root"),
    "mariadb": ("mysql+pymysql", 3306, "root"),
    "postgresql": ("postgresql", 5432, "postgres"),
}


def database_url_from_env() -> str:
    """
    Resolve the database URL.

    ``DATABASE_URL`` wins; otherwise ``DB_TYPE`` picks the backend and
    ``DB_HOST``, ``DB_PORT``, ``DB_NAME``, ``DB_USER`` and ``DB_PASSWORD``
    fill in the rest.
    """
    explicit = os.getenv("DATABASE_URL")
    if explicit:
        return explicit

    db_type = os.getenv("DB_TYPE", "sqlite").lower()
    if db_type == "sqlite":
        return f"sqlite:///{os.getenv('DB_NAME', 'tripmap.db')}"
    if db_type not in _SERVER_BACKENDS:
        raise ValueError(f"Unsupported database type: {db_type}")

    driver, port, user = _SERVER_BACKENDS[db_type]
    url = URL.create(
        driver,
        username=os.getenv("DB_USER", user),
        password=os.getenv("DB_PASSWORD") or None,
        host=os.getenv("DB_HOST", "localhost"),
        port=int(os.getenv("DB_PORT", str(port))),
        database=os.getenv("DB_NAME", "tripmap"),
        query={"charset": "utf8mb4"} if driver.startswith("mysql") else {},
    )
    return url.render_as_string(hide_password=False)


class DatabaseConfig:
    """
    Lazily created engine plus session factory for one database URL.

    Nothing connects until ``initialize()`` (or the first call that needs
    the engine).
    """

    def __init__(self, database_url: Optional[str] = None, echo: bool = False):
        self.database_url = database_url or database_url_from_env()
        self.echo = echo
        self.engine: Optional[Engine] = None
        self._sessions: Optional[sessionmaker] = None

        self.db_type = make_url(self.database_url).get_backend_name()
        logger.info(f"Database configured for {self.db_type}")

    @property
    def is_memory_database(self) -> bool:
        if self.db_type != "sqlite":
            return False
        return make_url(self.database_url).database in (None, "", ":memory:")

    @property
    def is_initialized(self) -> bool:
        return self.engine is not None

    def _engine_kwargs(self) -> Dict[str, Any]:
        if self.db_type == "sqlite":
            # one shared connection keeps an in-memory database alive across sessions
            return {
                "echo": self.echo,
                "poolclass": StaticPool,
                "connect_args": {"check_same_thread": False, "timeout": 30},
            }
        return {
            "echo": self.echo,
            "poolclass": QueuePool,
            "pool_size": int(os.getenv("DB_POOL_SIZE", "5")),
            "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "10")),
            "pool_timeout": int(os.getenv("DB_POOL_TIMEOUT", "30")),
            "pool_recycle": int(os.getenv("DB_POOL_RECYCLE", "3600")),
            "pool_pre_ping": True,
        }

    def initialize(self) -> None:
        """
        Create the engine and check it answers ``SELECT 1``.

        Raises:
            SQLAlchemyError: If the database cannot be reached
        """
        if self.is_initialized:
            return

        engine = create_engine(self.database_url, **self._engine_kwargs())
        if self.db_type == "sqlite" and not self.is_memory_database:
            event.listen(engine, "connect", _enable_wal)

        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            engine.dispose()
            logger.error(f"Failed to initialize database ({self.db_type}): {e}")
            raise

        self.engine = engine
        self._sessions = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        logger.info(f"Database engine ready ({self.db_type})")

    def create_tables(self) -> None:
        """Create any missing tables."""
        self.initialize()
        create_all_tables(self.engine)
        logger.info("Database tables created")

    def missing_tables(self) -> List[str]:
        """Names of the row store's tables absent from the database."""
        self.initialize()
        existing = set(inspect(self.engine).get_table_names())
        return [name for name in Base.metadata.tables if name not in existing]

    @contextmanager
    def get_session_context(self) -> Iterator[Session]:
        """Session that commits on success and rolls back on error."""
        self.initialize()
        session = self._sessions()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            session.close()

    def test_connection(self) -> bool:
        try:
            self.initialize()
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error(f"Database connection test failed: {e}")
            return False
        return True

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None
            self._sessions = None
            logger.info("Database connections closed")


def _enable_wal(dbapi_connection, connection_record) -> None:
    # unlocked readers must not block the single writer
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


__all__ = [
    "DatabaseConfig",
    "database_url_from_env",
]
