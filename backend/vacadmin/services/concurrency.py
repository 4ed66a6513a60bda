# Overview: Transaction, locking and retry helpers shared by the state machines.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def begin_write():
    """
    Take the database write lock up front.

    SQLite has no row locks; BEGIN IMMEDIATE serializes writers for the
    whole transaction so read-check-then-write sequences cannot interleave.
    Other databases rely on lock_for_update() instead.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1, retry_on=()):
    """
    Execute one transactional operation.

    Any exception rolls the session back, so a failed transition never
    leaves partial writes. Only lock contention (OperationalError) and
    optimistic version conflicts (StaleDataError) are retried, and always
    from a clean rollback, so the retried attempt re-reads state and
    re-checks every precondition. Service errors are never retried.
    """
    if attempts is None:
        attempts = current_app.config.get("DB_RETRY_ATTEMPTS", 3)
    retryable = (OperationalError, StaleDataError) + tuple(retry_on)

    for attempt in range(attempts):
        try:
            return func()
        except retryable as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying transaction after %s (attempt %d/%d)",
                type(exc).__name__, attempt + 1, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
