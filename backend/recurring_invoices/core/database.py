import time
from collections.abc import Generator, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from recurring_invoices.core.config import settings
from recurring_invoices.core.exceptions import TransactionTimeoutError, TransientPersistenceError


def _engine_kwargs(dsn: str) -> dict[str, Any]:
    if "sqlite" in dsn:
        # The busy timeout bounds how long a writer waits for the database lock
        return {
            "connect_args": {
                "check_same_thread": False,
                "timeout": settings.GENERATION_LOCK_TIMEOUT_MS / 1000,
            }
        }
    return {"isolation_level": settings.DB_ISOLATION_LEVEL}


engine = create_engine(settings.APP_DATABASE_DSN, **_engine_kwargs(settings.APP_DATABASE_DSN))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base: Any = declarative_base()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker[Session]:
    """Return the active session factory (resolved at call time)."""
    return SessionLocal


def init_db() -> None:
    """Initialize database tables."""
    Base.metadata.create_all(bind=engine)


@contextmanager
def generation_transaction(
    db: Session,
    lock_timeout_ms: int | None = None,
    timeout_ms: int | None = None,
) -> Iterator[Session]:
    """Run a block of writes as one commit-or-rollback unit.

    On PostgreSQL the lock wait and statement time are bounded with
    ``SET LOCAL``; on SQLite the connection busy timeout bounds the lock wait.
    The total elapsed time is checked before committing.

    Raises:
        TransientPersistenceError: The database rejected or timed out the
            transaction, or the block ran past ``timeout_ms``.
    """
    if lock_timeout_ms is None:
        lock_timeout_ms = settings.GENERATION_LOCK_TIMEOUT_MS
    if timeout_ms is None:
        timeout_ms = settings.GENERATION_TIMEOUT_MS

    started = time.monotonic()
    try:
        if db.get_bind().dialect.name == "postgresql":
            db.execute(text(f"SET LOCAL lock_timeout = {int(lock_timeout_ms)}"))
            db.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))
        yield db
        elapsed_ms = (time.monotonic() - started) * 1000
        if elapsed_ms > timeout_ms:
            raise TransactionTimeoutError(
                f"Transaction exceeded {timeout_ms}ms (took {elapsed_ms:.0f}ms)"
            )
        db.commit()
    except DBAPIError as exc:
        db.rollback()
        raise TransientPersistenceError(f"Database error: {exc.orig}") from exc
    except BaseException:
        db.rollback()
        raise
