# Overview: Row locking and retry helpers for status changes on transaction records.

from __future__ import annotations

import time
from typing import Callable, TypeVar

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

T = TypeVar("T")


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE for cancel/refund/payment paths.

    NOTE: SQLite ignores FOR UPDATE; version_id_col on the models still
    catches a concurrent change as StaleDataError.
    """
    return query.with_for_update()


def run_with_retry(func: Callable[[], T], *, attempts: int = 3, backoff_base: float = 0.05) -> T:
    """
    Run a whole unit of work (reads, writes and commit) with retry on
    lock contention and optimistic-lock conflicts.

    func must be safe to re-run from scratch: the session is rolled back
    between attempts.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts:
                raise
            current_app.logger.warning(
                "Retrying after concurrent update (attempt %s/%s): %s", attempt, attempts, exc
            )
            time.sleep(backoff_base * (2 ** (attempt - 1)))
    raise RuntimeError("unreachable")
