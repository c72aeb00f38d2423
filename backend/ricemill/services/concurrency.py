# Overview: Service-layer operations for concurrency; locking and retry around DB work.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

# Lock timeouts/deadlocks and Product.version_id mismatches
RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """SELECT ... FOR UPDATE on backends that honor it (SQLite ignores it)."""
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Call func until it succeeds or attempts run out.

    The session is rolled back after every retryable failure, so func has to
    re-read the rows it mutates. Waits backoff_base * 2**n between tries and
    re-raises the last error once exhausted.
    """
    tries = max(1, attempts)
    for n in range(1, tries + 1):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if n == tries:
                raise
            current_app.logger.warning(
                "Stock write conflict, retrying (%d/%d): %s", n, tries, exc
            )
            time.sleep(backoff_base * (2 ** (n - 1)))
