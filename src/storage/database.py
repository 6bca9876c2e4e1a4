"""
Message store engine and session handling.

One module-level engine is built from DATABASE_URL. SQLite is the local
default; any SQLAlchemy URL works. Repositories only ever go through
get_db_session, which owns commit, rollback and close.

Pooling by backend:
- In-memory SQLite: a single shared connection (StaticPool), otherwise
  every checkout would see an empty database
- File SQLite: QueuePool with a busy timeout so concurrent classification
  writes wait instead of failing on a locked file
- Server databases: QueuePool with pre-ping to drop stale connections
"""

import os
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool

from src.storage.models import Base

logger = logging.getLogger(__name__)

load_dotenv(override=True)

DB_PATH = os.getenv("DATABASE_URL", "sqlite:///data/inbox.db")
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "5"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "10"))
DB_POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
SQLITE_BUSY_TIMEOUT = float(os.getenv("SQLITE_BUSY_TIMEOUT", "15"))


def _is_memory_sqlite(url: str) -> bool:
    parsed = make_url(url)
    return parsed.get_backend_name() == "sqlite" and parsed.database in (None, "", ":memory:")


def build_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine with pooling suited to the database behind url.

    Args:
        url: SQLAlchemy database URL
        echo: Log every SQL statement

    Returns:
        Configured SQLAlchemy engine
    """
    backend = make_url(url).get_backend_name()
    if _is_memory_sqlite(url):
        return create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=echo
        )

    options = {
        "poolclass": QueuePool,
        "pool_size": DB_POOL_SIZE,
        "max_overflow": DB_MAX_OVERFLOW,
        "pool_timeout": DB_POOL_TIMEOUT,
        "echo": echo
    }
    if backend == "sqlite":
        options["connect_args"] = {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT}
    else:
        options["pool_pre_ping"] = True
    return create_engine(url, **options)


engine = build_engine(DB_PATH, echo=os.getenv("SQL_ECHO", "False").lower() == "true")
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def _ensure_sqlite_directory(url: str) -> None:
    """Create the parent directory of a file-based SQLite database."""
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and not _is_memory_sqlite(url):
        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)


def init_db() -> None:
    """
    Create the messages and policies tables if they don't exist.

    Raises:
        RuntimeError: If schema creation fails
    """
    try:
        _ensure_sqlite_directory(DB_PATH)
        Base.metadata.create_all(bind=engine)
        logger.info(f"Message store ready at {make_url(DB_PATH).render_as_string(hide_password=True)}")
    except Exception as e:
        logger.error(f"Database initialization failed: {str(e)}")
        raise RuntimeError(f"Failed to initialize database: {str(e)}")


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Yield a session that commits when the block exits cleanly.

    Any exception rolls the session back and is re-raised; the session is
    closed either way.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Database session error: {str(e)}")
        raise
    finally:
        session.close()
