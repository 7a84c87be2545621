# Overview: Row locking and retry for the checkout, refund, stock and shift writes.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on the rows a write is about to change.

    SQLite has no row locks and drops the clause; there the version_id
    columns catch lost updates instead (StaleDataError on flush).
    """
    return query.with_for_update()


def run_with_retry(op, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run op() (which must commit its own transaction) and re-run it from
    scratch after a lock timeout, deadlock or version conflict.

    The session is rolled back before every retry. Any other exception
    propagates untouched on the first attempt.
    """
    for attempt in range(1, attempts + 1):
        try:
            return op()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt == attempts:
                current_app.logger.error("Giving up after %d attempts: %s", attempts, exc)
                raise
            delay = backoff_base * (2 ** (attempt - 1))
            current_app.logger.warning(
                "Concurrent write conflict (attempt %d/%d), retrying in %.2fs: %s",
                attempt, attempts, delay, exc,
            )
            time.sleep(delay)
