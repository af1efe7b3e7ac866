# Overview: Service-layer operations for concurrency; transaction boundaries, row locks and retry policy.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from .errors import ConcurrencyConflict, OperationResult, OrderOperationError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_unit_of_work() takes the
    database write lock up front there instead.
    """
    return query.with_for_update()


def _session_has_pending_writes() -> bool:
    session = db.session
    if session.new or session.deleted:
        return True
    return any(session.is_modified(obj) for obj in session.dirty)


def begin_unit_of_work() -> None:
    """
    Start a fresh write transaction for one core operation.

    Ends any read-only transaction the session autobegan so the rows we read
    next are read under our lock, not from a stale snapshot. On SQLite,
    BEGIN IMMEDIATE takes the RESERVED lock now, so a second writer blocks
    (up to the driver timeout) before it reads any stock.

    Callers go through run_unit_of_work(), which refuses to start on top of
    unflushed caller changes.
    """
    db.session.rollback()
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def is_concurrency_failure(exc: BaseException) -> bool:
    """Deadlocks, lock timeouts and optimistic version mismatches."""
    return isinstance(exc, (OperationalError, StaleDataError))


def conflict_from(exc: BaseException) -> ConcurrencyConflict:
    return ConcurrencyConflict(
        "Another request modified the same records; retry the operation",
        details={"cause": exc.__class__.__name__},
    )


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, on_retry=None):
    """
    Caller-side retry for operations that report ConcurrencyConflict.

    The core never retries on its own; HTTP handlers and the CLI use this to
    re-run the whole operation from scratch. func returns an OperationResult.
    """
    result: OperationResult | None = None
    for attempt in range(attempts):
        result = func()
        if result.ok or not isinstance(result.error, ConcurrencyConflict):
            return result
        if attempt >= attempts - 1:
            break
        if on_retry is not None:
            on_retry(attempt + 1, result.error)
        time.sleep(backoff_base * (2 ** attempt))
    return result


def run_unit_of_work(operation) -> OperationResult:
    """
    Run operation() as one all-or-nothing transaction.

    operation returns (value, movements). Expected business failures and
    concurrency failures come back as a failed OperationResult; anything else
    is rolled back and re-raised.

    Pending caller changes raise RuntimeError before anything is rolled back,
    since they would otherwise be committed or discarded together with ours.
    """
    if _session_has_pending_writes():
        raise RuntimeError("unit of work requires a session without pending changes")
    try:
        begin_unit_of_work()
        value, movements = operation()
        db.session.commit()
    except OrderOperationError as exc:
        db.session.rollback()
        return OperationResult.failure(exc)
    except Exception as exc:
        db.session.rollback()
        if is_concurrency_failure(exc):
            return OperationResult.failure(conflict_from(exc))
        raise
    return OperationResult.success(value, movements)
