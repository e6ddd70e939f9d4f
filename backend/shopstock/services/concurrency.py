# Overview: Row locking and retry helpers for stock-mutating units of work.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrentModification
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id columns
    on Product/ShopInventory/RestockRequest catch the lost update instead.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a unit of work with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). The session is rolled back before each
    retry so func re-reads current state. Domain errors raised by func are
    not retried.

    Exhausting the budget raises ConcurrentModification.
    """
    if attempts is None:
        attempts = current_app.config.get("RESTOCK_RETRY_ATTEMPTS", 5)
    if backoff_base is None:
        backoff_base = current_app.config.get("RESTOCK_RETRY_BACKOFF", 0.05)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise ConcurrentModification(attempts) from exc
            current_app.logger.info(
                "Concurrent modification (attempt %s/%s): %s", attempt + 1, attempts, exc.__class__.__name__
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise

