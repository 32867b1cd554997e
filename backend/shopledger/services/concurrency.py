# Overview: Service-layer operations for concurrency; write locks, row locks and retry.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from .errors import ConcurrencyConflictError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_transaction()
    covers it by taking the database write lock up front.
    """
    return query.with_for_update()


def begin_write_transaction() -> None:
    """
    Start the current unit of work as a writer.

    On SQLite this issues BEGIN IMMEDIATE so concurrent writers queue on the
    database lock instead of interleaving read-then-write. No-op when the
    connection is already inside a transaction (nested ledger calls) or on
    backends that honor row locks.
    """
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.dbapi_connection
    if not raw.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). When attempts run out the failure is
    surfaced as ConcurrencyConflictError.
    """
    if attempts is None:
        attempts = current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("LEDGER_RETRY_BACKOFF_SECONDS", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise ConcurrencyConflictError(
                    "Concurrent update conflict, please retry",
                    details={"attempts": attempts},
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
    raise ConcurrencyConflictError("Concurrent update conflict, please retry")


def run_in_transaction(op):
    """
    Run `op` as one write transaction: take the write lock, run, commit.

    Lock/serialization failures are retried. Any failure rolls the session
    back before propagating, so no partial unit survives.
    """
    def _attempt():
        begin_write_transaction()
        result = op()
        db.session.commit()
        return result

    try:
        return run_with_retry(_attempt)
    except Exception:
        db.session.rollback()
        raise
