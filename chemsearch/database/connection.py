"""
Engine and session handling for the compound database.

One DatabaseManager owns one SQLAlchemy engine. File databases get a
QueuePool and WAL journaling; ":memory:" databases get a single shared
connection so that every session sees the same tables.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine, event, inspect, pool
from sqlalchemy.orm import Session, sessionmaker

from .models import Base, CompoundRecord


DEFAULT_DB_PATH = "data/chemsearch.db"
MEMORY_PATH = ":memory:"

# Seconds SQLite waits on a locked database before raising
DEFAULT_BUSY_TIMEOUT = 15

# Applied to every new DBAPI connection
COMMON_PRAGMAS = {
    "cache_size": "-64000",  # 64MB
    "temp_store": "MEMORY",
}
FILE_PRAGMAS = {
    "journal_mode": "WAL",
    "synchronous": "NORMAL",
}


def sqlite_url(db_path: str) -> str:
    """SQLAlchemy URL for a database file path or ":memory:"."""
    if db_path == MEMORY_PATH:
        return "sqlite://"
    return f"sqlite:///{db_path}"


class DatabaseManager:
    """
    Owns the engine and session factory for one SQLite database.

    Sessions from :meth:`session_scope` commit on success and roll back on
    any exception; the primary store opens one per operation.
    """

    def __init__(
        self,
        db_path: Optional[str] = None,
        echo: bool = False,
        timeout: float = DEFAULT_BUSY_TIMEOUT,
        pool_size: int = 5,
        max_overflow: int = 10,
        pool_timeout: int = 30,
    ):
        """
        Args:
            db_path: SQLite file path, or ":memory:"
            echo: Log every SQL statement
            timeout: Busy timeout for a locked database, in seconds
            pool_size: Pooled connections kept open (file databases)
            max_overflow: Extra connections allowed beyond pool_size
            pool_timeout: Seconds to wait for a pooled connection
        """
        self.db_path = str(db_path or DEFAULT_DB_PATH)
        self.echo = echo
        self.database_url = sqlite_url(self.db_path)

        if not self.in_memory:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(
            self.database_url,
            echo=echo,
            # Stores hand sessions to worker threads
            connect_args={"check_same_thread": False, "timeout": timeout},
            **self._pool_options(pool_size, max_overflow, pool_timeout),
        )
        event.listen(self.engine, "connect", self._apply_pragmas)

        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )

    @property
    def in_memory(self) -> bool:
        return self.db_path == MEMORY_PATH

    def _pool_options(self, pool_size: int, max_overflow: int, pool_timeout: int) -> Dict[str, Any]:
        if self.in_memory:
            # A second connection would open a second, empty database
            return {"poolclass": pool.StaticPool}
        return {
            "poolclass": pool.QueuePool,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "pool_timeout": pool_timeout,
            "pool_pre_ping": True,
        }

    def _apply_pragmas(self, dbapi_conn, connection_record) -> None:
        pragmas = dict(COMMON_PRAGMAS)
        if not self.in_memory:
            pragmas.update(FILE_PRAGMAS)

        cursor = dbapi_conn.cursor()
        for name, value in pragmas.items():
            cursor.execute(f"PRAGMA {name}={value}")
        cursor.close()

    def has_schema(self) -> bool:
        """True if the compounds table already exists."""
        return inspect(self.engine).has_table(CompoundRecord.__tablename__)

    def create_all_tables(self) -> None:
        """Create missing tables; existing tables are left untouched."""
        Base.metadata.create_all(bind=self.engine)

    def drop_all_tables(self) -> None:
        """Drop every table (tests use this to simulate a broken store)."""
        Base.metadata.drop_all(bind=self.engine)

    def get_session(self) -> Session:
        """Plain session; the caller commits and closes it."""
        return self.SessionLocal()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Transactional session.

        Usage:
            with db.session_scope() as session:
                session.add(CompoundRecord.from_compound(compound))
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        """Dispose of the engine and its pooled connections."""
        self.engine.dispose()


def create_test_db() -> DatabaseManager:
    """In-memory database with the schema already created."""
    db = DatabaseManager(db_path=MEMORY_PATH)
    db.create_all_tables()
    return db
