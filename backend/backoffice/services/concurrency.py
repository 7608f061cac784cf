# Overview: Locking and retry helpers for the ledger's read-modify-write units.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import StorageFailure


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_exclusive() covers it there.
    """
    return query.with_for_update()


def _sqlite_connection_in_transaction() -> bool:
    dbapi_conn = db.session.connection().connection.dbapi_connection
    return bool(getattr(dbapi_conn, "in_transaction", False))


def begin_exclusive() -> None:
    """
    Take the SQLite write lock up front so two writers cannot both read the
    same stock level before either writes.

    No-op on other dialects (row locks do the job) and when the connection
    already holds an open transaction.
    """
    if db.engine.dialect.name != "sqlite":
        return
    if _sqlite_connection_in_transaction():
        return
    db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). The session is rolled back before each
    retry so func() always starts from a clean unit of work.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise StorageFailure(
                    "Storage conflict, please retry",
                    {"attempts": attempts},
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def commit_or_fail() -> None:
    """Commit the session; any storage error rolls back and surfaces as StorageFailure."""
    try:
        db.session.commit()
    except (OperationalError, StaleDataError):
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageFailure("Failed to commit transaction") from exc
