# Overview: Transaction helpers shared by services that write orders and stock.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_in_transaction(func, *, attempts: int = 3, backoff_base: float = 0.05):
    """
    Run `func` and commit its work as one unit.

    - OperationalError (deadlock, lock timeout) and StaleDataError
      (version_id conflict) roll back and retry with exponential backoff.
    - Any other exception rolls back and propagates; nothing is committed.
    """
    for attempt in range(attempts):
        try:
            result = func()
            db.session.commit()
            return result
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning("Retrying transaction after concurrency conflict (attempt %s)", attempt + 1)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
