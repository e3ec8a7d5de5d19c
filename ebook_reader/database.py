"""
Database engine and session. Supports SQLite (dev) and Postgres via DATABASE_URL.

get_db is the single dependency for DB access; used by every router.
init_db is called once from the app lifespan and is the only place that
retries: the first connection is attempted on a fixed delay before giving up.
"""
import logging
import time

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker, declarative_base

from ebook_reader.config import (
    DATABASE_URL,
    DB_CONNECT_RETRIES,
    DB_CONNECT_RETRY_DELAY,
    SKIP_DB_INIT,
)

logger = logging.getLogger(__name__)

# SQLite needs check_same_thread=False for FastAPI; Postgres does not
_connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    _connect_args["check_same_thread"] = False

engine = create_engine(DATABASE_URL, connect_args=_connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False)

Base = declarative_base()


def enable_sqlite_foreign_keys(target_engine) -> None:
    """SQLite ignores ON DELETE CASCADE unless the pragma is set per connection."""
    if target_engine.dialect.name != "sqlite":
        return

    @event.listens_for(target_engine, "connect")
    def _set_pragma(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


enable_sqlite_foreign_keys(engine)


def init_db(
    retries: int = DB_CONNECT_RETRIES,
    delay: float = DB_CONNECT_RETRY_DELAY,
    *,
    sleep=time.sleep,
) -> None:
    """
    Connect to the store, retrying on a fixed delay, then create tables unless
    SKIP_DB_INIT is set. Raises the last OperationalError when all attempts fail.
    """
    # Registers the tables on Base.metadata
    from ebook_reader import models  # noqa: F401

    for attempt in range(1, retries + 1):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            break
        except OperationalError:
            if attempt == retries:
                logger.error("Database connection failed after %d attempts", retries)
                raise
            logger.warning(
                "Database connection failed (attempt %d/%d); retrying in %ss",
                attempt,
                retries,
                delay,
            )
            sleep(delay)
    logger.info("Database connected")

    if not SKIP_DB_INIT:
        Base.metadata.create_all(bind=engine)


def get_db():
    """FastAPI dependency: yields a DB session and closes it after the request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
