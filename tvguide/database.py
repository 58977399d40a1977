import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine


logger = logging.getLogger(__name__)


def create_engine_for_path(
    database_path: str,
    *,
    journal_mode: str = "WAL",
    synchronous: str = "NORMAL",
    cache_size_kb: int = 64000,
    busy_timeout_sec: float = 30.0,
) -> AsyncEngine:
    """
    Create an async SQLite engine with connection pragmas applied on every connect

    Args:
        database_path: SQLite file path
        journal_mode: SQLite journal_mode pragma (WAL lets readers run beside a writer)
        synchronous: SQLite synchronous pragma
        cache_size_kb: Page cache size in KB
        busy_timeout_sec: How long a connection waits on a lock held by another writer
    """
    logger.info(f"Creating database engine for {database_path}")

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{database_path}",
        echo=False,
        pool_pre_ping=True,
        connect_args={"timeout": busy_timeout_sec, "check_same_thread": False},
    )

    def configure_sqlite(dbapi_conn, _):
        """Configure SQLite connection parameters"""
        cursor = dbapi_conn.cursor()
        cursor.execute(f"PRAGMA journal_mode = {journal_mode}")
        cursor.execute(f"PRAGMA synchronous = {synchronous}")
        cursor.execute(f"PRAGMA cache_size = -{cache_size_kb}")
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()

    event.listen(engine.sync_engine, "connect", configure_sqlite)

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create async session factory from engine"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
        autocommit=False,
    )
