# Overview: Row locking and retry helpers for stock-mutating units of work.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 3
DEFAULT_BACKOFF = 0.1


def lock_for_update(query):
    """
    Apply row-level locking to a stock read.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; concurrent writers there are
    caught by the Medicine/Order version_id check instead.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = DEFAULT_ATTEMPTS, backoff_base: float = DEFAULT_BACKOFF):
    """
    Execute a unit of work, retrying on concurrency-related failures.

    Retries on OperationalError (deadlocks, busy database) and StaleDataError
    (optimistic version mismatch). The session is rolled back before every
    retry, so func must re-read whatever it mutates.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning(
                "Concurrent update conflict (%s), retry %d of %d",
                type(exc).__name__, attempt + 1, attempts - 1,
            )
            time.sleep(backoff_base * (2 ** attempt))
