# Overview: Atomic scopes, row locking and bounded retry for write operations.

from __future__ import annotations

import time

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


# Unique keys that two writers can both try to create. A collision on one of
# these means another request inserted the row first; re-running the
# operation finds and locks that row. Matched against the driver message
# (constraint name on PostgreSQL, column list on SQLite).
RETRYABLE_UNIQUE_KEYS = (
    "uq_inventory_product_location",
    "inventory.product_id, inventory.location_id",
)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id columns still catch lost updates there.
    A missing row takes no lock; concurrent first inserts collide on
    RETRYABLE_UNIQUE_KEYS instead.
    """
    return query.with_for_update()


def is_retryable(exc: Exception) -> bool:
    """True for lock, version and first-insert conflicts."""
    if isinstance(exc, (OperationalError, StaleDataError)):
        return True
    if isinstance(exc, IntegrityError):
        message = str(exc.orig)
        return any(key in message for key in RETRYABLE_UNIQUE_KEYS)
    return False


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks), StaleDataError
    (optimistic locking conflicts) and IntegrityError on RETRYABLE_UNIQUE_KEYS
    (two first inserts of one counter). Domain errors are not caught here.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError, IntegrityError) as exc:
            db.session.rollback()
            if not is_retryable(exc) or attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))


def run_in_transaction(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run func as one atomic unit: commit when it returns, roll back when it raises.

    Every statement func issues (ledger rows, counter updates, audit rows)
    lands together or not at all. Lock/version conflicts re-run func from
    scratch so its validation sees the winning writer's state.
    """
    def _op():
        try:
            result = func()
            db.session.commit()
            return result
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
