"""Expiry-based lock that limits how often the recovery sweep runs.

The lock is never released: whoever acquires it owns the current TTL window
and everybody else skips the sweep until the window ends.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.config import settings
from app.models.ids import utc_now
from app.models.resume_lock import ResumeLock
from app.observability import log_event, metrics_store
from app.services.ledger import Ledger

RESUME_LOCK_KEY = "orders-resume"


def try_acquire_resume_lock(
    ledger: Ledger,
    *,
    now: datetime | None = None,
    ttl_s: int | None = None,
    key: str = RESUME_LOCK_KEY,
) -> bool:
    """Return True at most once per TTL window across all callers."""
    now = now or utc_now()
    ttl_s = settings.resume_lock_ttl_s if ttl_s is None else ttl_s
    expires_at = now + timedelta(seconds=ttl_s)
    db = ledger.db

    try:
        with ledger.transaction():
            result = db.execute(
                update(ResumeLock)
                .where(ResumeLock.key == key, ResumeLock.expires_at <= now)
                .values(locked_at=now, expires_at=expires_at)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                return True

            held = db.scalar(select(ResumeLock.key).where(ResumeLock.key == key))
            if held is not None:
                return False

            db.add(ResumeLock(key=key, locked_at=now, expires_at=expires_at))
            db.flush()
        return True
    except IntegrityError:
        # Lost the race to create the first row: the winner holds the lock.
        return False
    except SQLAlchemyError:
        # Fail open.
        metrics_store.increment("resume_lock_error_total")
        log_event("resume_lock_failed_open", level=logging.WARNING, exc_info=True)
        return True
