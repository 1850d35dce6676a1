# Overview: Transaction helpers shared by the services: row locks, bounded retry, commit/rollback boundary.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import TransactionConflictError
from ..extensions import db


logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Correctness never depends on it: the writes that matter are conditional
    updates (see purchase_request_service).
    """
    return query.with_for_update()


def _setting(name: str, default):
    try:
        return current_app.config.get(name, default)
    except RuntimeError:
        # Outside an app context (plain scripts); fall back to defaults
        return default


def run_with_retry(
    func,
    *,
    attempts: int | None = None,
    backoff_base: float | None = None,
    timeout: float | None = None,
    retry_on: tuple = RETRYABLE_ERRORS,
):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, "database is locked") and
    StaleDataError (optimistic locking conflicts), plus anything extra in
    retry_on. Each failed attempt is rolled back before sleeping.

    Gives up after `attempts` tries or once `timeout` seconds have elapsed,
    raising TransactionConflictError chained to the last storage error.
    """
    if attempts is None:
        attempts = _setting("TRANSACTION_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = _setting("TRANSACTION_RETRY_BACKOFF", 0.1)
    if timeout is None:
        timeout = _setting("TRANSACTION_TIMEOUT_SECONDS", 10.0)

    deadline = time.monotonic() + timeout
    attempt = 0
    while True:
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            attempt += 1
            delay = backoff_base * (2 ** (attempt - 1))
            if attempt >= attempts or time.monotonic() + delay > deadline:
                logger.warning("Transaction gave up after %d attempt(s): %s", attempt, exc)
                raise TransactionConflictError(
                    "The operation conflicted with concurrent activity; please retry"
                ) from exc
            logger.info("Retrying transaction after conflict (attempt %d/%d): %s", attempt, attempts, exc)
            time.sleep(delay)


def run_in_transaction(func, **retry_kwargs):
    """
    Run func as one unit of work: commit on success, roll back on any failure.

    The whole unit (reads included) is re-executed on retryable conflicts, so
    func must re-read everything it depends on.
    """
    def _op():
        try:
            result = func()
            db.session.commit()
            return result
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op, **retry_kwargs)
