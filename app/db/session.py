"""Database engine setup.

For test runs (ENV=test) we fall back to synchronous in-memory SQLite when
DATABASE_URL is unset, so billing logic tests need no PostgreSQL driver.
The scheduled-downgrade partial index and CHECK constraints exist on both
backends; row locks (FOR UPDATE) are only honoured by PostgreSQL.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings

raw_url = settings.DATABASE_URL

use_sqlite_memory = settings.ENV.lower() == "test" and (not raw_url or raw_url == "sqlite:///:memory:")

if use_sqlite_memory:
    # shared cache enables multiple connections to the same in-memory database
    raw_url = "sqlite:///file:seat_billing_test?mode=memory&cache=shared&uri=true"
    engine = create_engine(raw_url, future=True)
elif raw_url and raw_url.startswith("postgresql"):
    engine = create_engine(
        raw_url,
        future=True,
        pool_size=5,
        max_overflow=10,
        pool_recycle=3600,  # Recycle connections after 1 hour
        pool_pre_ping=True,  # Verify connection health before use
        pool_timeout=10,  # Surface pool exhaustion as a storage timeout quickly
    )
else:
    engine = create_engine(raw_url or "sqlite:///./storage/dev.db", future=True)
SessionLocal = sessionmaker(bind=engine, class_=Session, expire_on_commit=False, autoflush=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
