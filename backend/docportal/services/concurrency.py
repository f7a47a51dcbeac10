# Overview: Retry helpers for store operations; turns exhausted retries into TransientError.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import TransientError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (timeouts, deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Once attempts are exhausted the failure is
    surfaced as TransientError so callers can tell it from a definitive
    rejection.
    """
    if attempts is None:
        attempts = current_app.config.get("STORE_RETRY_ATTEMPTS", 3)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.warning("Store operation failed after %s attempts: %s", attempts, exc)
                raise TransientError("Storage temporarily unavailable, retry later") from exc
            time.sleep(backoff_base * (2 ** attempt))
