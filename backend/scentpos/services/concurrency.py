# Overview: Transaction-boundary helpers shared by every stock-mutating service.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError


class PendingWorkError(ConflictError):
    """Raised when a stock mutation starts on a session that already holds uncommitted work."""
    pass


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_transaction()
    takes the database write lock up front there instead.
    """
    return query.with_for_update()


def _has_pending_work() -> bool:
    session = db.session
    if session.new or session.dirty or session.deleted:
        return True
    if db.engine.dialect.name == "sqlite" and session().in_transaction():
        # Flushed DML leaves the sqlite3 connection inside an implicit BEGIN.
        return bool(session.connection().connection.dbapi_connection.in_transaction)
    return False


def begin_write_transaction() -> None:
    """
    Open the unit of work for a stock mutation.

    On SQLite this issues BEGIN IMMEDIATE so concurrent settlements/receipts
    serialize on the write lock before reading batch quantities. Other
    dialects rely on lock_for_update() row locks taken later in the same
    transaction.

    The session must be clean: pending or flushed changes raise
    PendingWorkError and are left in place for the caller to commit or roll
    back.
    """
    if _has_pending_work():
        raise PendingWorkError(
            "Session has uncommitted changes; commit or roll back before this operation"
        )
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic version_id conflicts). PendingWorkError propagates without
    touching the session. Any other exception rolls the session back and
    propagates unchanged, so business errors are never retried and never
    leave a half-applied unit of work behind.
    """
    if attempts is None:
        attempts = current_app.config.get("DB_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("DB_RETRY_BACKOFF", 0.1)

    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except PendingWorkError:
            raise
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            current_app.logger.warning(
                "DB conflict on attempt %s/%s: %s", attempt + 1, attempts, exc.__class__.__name__
            )
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc
