# Overview: Row locking and bounded retry for checkout, settlement and points writes.

"""
Concurrency helpers

Two checkouts for the same store and product, or a webhook replayed while
the first delivery is still committing, meet at the database. These
helpers wrap the unit of work that gets there:

- lock_for_update: SELECT ... FOR UPDATE on engines that support it
  (points account rows before a debit).
- run_with_retry: re-runs a whole commit unit when the engine reports a
  lock timeout or deadlock (OperationalError) or a stale ORM row
  (StaleDataError). Domain errors raised by the unit propagate untouched.
"""

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """NOTE: SQLite ignores FOR UPDATE; writes there are serialized by the DB lock."""
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Call func() until it succeeds or attempts run out.

    func must own its transaction: start from a clean session and commit at
    the end, so a rollback followed by a re-run is safe. Backoff doubles
    per attempt (0.1s, 0.2s, ...).
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt == attempts:
                current_app.logger.error("DB unit failed after %s attempts: %s", attempts, exc)
                raise
            delay = backoff_base * (2 ** (attempt - 1))
            current_app.logger.warning(
                "Retrying DB unit (attempt %s/%s) in %.2fs after %s",
                attempt, attempts, delay, type(exc).__name__,
            )
            time.sleep(delay)
