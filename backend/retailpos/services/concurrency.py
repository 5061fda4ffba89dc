# Overview: Service-layer helpers for row locking and retrying optimistic-lock conflicts.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Lock the selected product/customer/sale rows until commit.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id column
    on the model is what catches the lost update.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run a whole read-validate-write operation, re-running it on lock
    conflicts.

    func must start from fresh reads: the session is rolled back before each
    retry, so a sale that lost the race re-checks stock against the winner's
    committed quantity. Business errors propagate on the first attempt.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt == attempts:
                raise
            current_app.logger.warning(
                "Concurrent modification (attempt %s/%s): %s", attempt, attempts, exc
            )
            time.sleep(backoff_base * (2 ** (attempt - 1)))
