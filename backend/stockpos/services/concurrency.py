# Overview: Transaction boundary, row locking and retry policy shared by every write service.

from __future__ import annotations

import logging
import time

from flask import current_app, has_app_context
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import TransientStoreError

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 3
DEFAULT_BACKOFF = 0.1


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() takes the
    database write lock up front there instead.
    """
    return query.with_for_update()


def begin_write(session) -> None:
    """
    Open the write transaction for one unit of work.

    On SQLite this is BEGIN IMMEDIATE so the check-then-write sequence of a
    concurrent writer waits for ours to commit or roll back.
    """
    if session.get_bind().dialect.name == "sqlite":
        session.execute(text("BEGIN IMMEDIATE"))


def _retry_policy() -> tuple[int, float]:
    if has_app_context():
        return (
            int(current_app.config.get("STORE_RETRY_ATTEMPTS", DEFAULT_ATTEMPTS)),
            float(current_app.config.get("STORE_RETRY_BACKOFF", DEFAULT_BACKOFF)),
        )
    return DEFAULT_ATTEMPTS, DEFAULT_BACKOFF


def run_in_transaction(session, func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Run func() as one all-or-nothing transaction on session.

    - begin, func(), commit
    - any error rolls back fully before it propagates
    - OperationalError (locks, deadlocks, lost connection), StaleDataError
      (optimistic version conflict) and TransientStoreError are retried with
      exponential backoff; exhaustion surfaces as TransientStoreError
    - domain errors are never retried
    """
    default_attempts, default_backoff = _retry_policy()
    attempts = attempts or default_attempts
    backoff_base = default_backoff if backoff_base is None else backoff_base

    for attempt in range(attempts):
        try:
            begin_write(session)
            result = func()
            session.commit()
            return result
        except (OperationalError, StaleDataError, TransientStoreError) as exc:
            session.rollback()
            if attempt >= attempts - 1:
                if isinstance(exc, TransientStoreError):
                    raise
                raise TransientStoreError(
                    "Store temporarily unavailable, retry the operation",
                    details={"attempts": attempts, "cause": type(exc).__name__},
                ) from exc
            logger.warning("Transient store failure (attempt %d/%d): %s", attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            session.rollback()
            raise
