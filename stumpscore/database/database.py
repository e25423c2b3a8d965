"""Engine, sessions and schema setup for StumpScore.

SQLite is the default for local development. Production points
`DATABASE_URL` at PostgreSQL, where payment verification relies on row
locks (`SELECT ... FOR UPDATE`).
"""

import os
from typing import Iterator

from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./stumpscore.db")

# How long a SQLite writer waits for a concurrent writer before failing.
SQLITE_BUSY_TIMEOUT_MS = 5000


def _is_sqlite_url(database_url: str) -> bool:
    return "sqlite" in (database_url or "")


def _env_flag(name: str) -> bool:
    return os.getenv(name, "False").lower() == "true"


def get_engine_kwargs(database_url: str) -> dict:
    """create_engine kwargs for a DB URL, without connecting."""
    kwargs: dict = {"echo": _env_flag("DEBUG"), "pool_pre_ping": True}

    if _is_sqlite_url(database_url):
        # One process serves requests from several threads.
        kwargs["connect_args"] = {"check_same_thread": False}
        return kwargs

    kwargs.update(
        pool_size=int(os.getenv("DB_POOL_SIZE", "5")),
        max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "5")),
        pool_timeout=int(os.getenv("DB_POOL_TIMEOUT_SEC", "30")),
    )
    return kwargs


def build_engine(database_url: str) -> Engine:
    return create_engine(database_url, **get_engine_kwargs(database_url))


engine = build_engine(DATABASE_URL)


@event.listens_for(Engine, "connect")
def set_sqlite_pragmas(dbapi_conn, connection_record):
    """Foreign keys, WAL and a busy timeout for SQLite connections."""
    if not _is_sqlite_url(DATABASE_URL):
        return
    cursor = dbapi_conn.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    finally:
        cursor.close()


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding one session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _upgrade_with_alembic() -> None:
    from alembic import command
    from alembic.config import Config

    config = Config(os.getenv("ALEMBIC_INI", "alembic.ini"))
    config.set_main_option("sqlalchemy.url", DATABASE_URL)
    command.upgrade(config, "head")


def init_db() -> None:
    """Create or migrate the schema.

    SQLite uses `create_all()`. Other databases run Alembic migrations when
    `RUN_MIGRATIONS=true`, and fall back to `create_all()` otherwise.
    """
    # Register ORM models on Base.metadata.
    from stumpscore.database import models  # noqa: F401

    if _env_flag("RUN_MIGRATIONS") and not _is_sqlite_url(DATABASE_URL):
        _upgrade_with_alembic()
        return

    Base.metadata.create_all(bind=engine)
