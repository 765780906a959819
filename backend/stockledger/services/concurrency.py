# Overview: Unit-of-work context, row locking and retry policy for every mutating ledger operation.

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from flask import current_app, has_app_context
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import StorageError
from ..extensions import db

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (OperationalError, StaleDataError, IntegrityError)


class UnitOfWork:
    """
    Explicit context for one atomic mutating operation.

    Every helper that writes inside the operation receives this object instead
    of reaching for an ambient connection. It also collects what the operation
    touched so post-commit hooks (cache invalidation, audit) know what to do.
    """

    def __init__(self, session, *, actor_id: int | None = None):
        self.session = session
        self.actor_id = actor_id
        self.movements: list = []
        self.touched_product_ids: set[int] = set()
        self.result: Any = None

    def add(self, obj) -> None:
        self.session.add(obj)

    def flush(self) -> None:
        self.session.flush()

    def record_movement(self, movement) -> None:
        self.movements.append(movement)
        self.touched_product_ids.add(movement.product_id)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the unit of work takes the database write lock up front instead.
    """
    return query.with_for_update()


def _config(key: str, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def _begin_immediate(session) -> None:
    """Take SQLite's write lock before the first read so check-then-write cannot race."""
    if session.get_bind().dialect.name != "sqlite":
        return
    driver_conn = session.connection().connection.driver_connection
    if not driver_conn.in_transaction:
        session.execute(text("BEGIN IMMEDIATE"))


def run_in_unit_of_work(
    func: Callable[[UnitOfWork], Any],
    *,
    actor_id: int | None = None,
    after_commit: Callable[[UnitOfWork], None] | None = None,
    attempts: int | None = None,
    backoff_base: float | None = None,
):
    """
    Execute func(uow) as one all-or-nothing database transaction.

    - Commits once, after func returns.
    - Any exception rolls back everything func wrote.
    - Lock/deadlock/optimistic-version conflicts are retried with exponential
      backoff; when attempts run out they surface as StorageError.
    - Other SQLAlchemy failures surface as StorageError immediately.
    - Ledger errors (validation, stock, state machine) propagate unchanged and
      are never retried.
    - after_commit(uow) runs only after a successful commit; it is advisory and
      its failures are logged, never raised.
    """
    attempts = attempts or int(_config("DB_RETRY_ATTEMPTS", 3))
    backoff_base = backoff_base if backoff_base is not None else float(
        _config("DB_RETRY_BACKOFF_SECONDS", 0.1)
    )
    session = db.session

    for attempt in range(attempts):
        uow = UnitOfWork(session, actor_id=actor_id)
        try:
            _begin_immediate(session)
            result = func(uow)
            session.commit()
        except RETRYABLE_ERRORS as exc:
            session.rollback()
            if attempt >= attempts - 1:
                logger.error("Unit of work failed after %d attempts: %s", attempts, exc)
                raise StorageError("Storage temporarily unavailable; nothing was committed") from exc
            logger.warning("Retrying unit of work (attempt %d/%d): %s", attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))
            continue
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Unit of work aborted by storage error: %s", exc)
            raise StorageError("Storage failure; nothing was committed") from exc
        except Exception:
            session.rollback()
            raise

        uow.result = result
        if after_commit is not None:
            try:
                after_commit(uow)
            except Exception:
                logger.exception("Post-commit hook failed; ledger change is already committed")
        return result
