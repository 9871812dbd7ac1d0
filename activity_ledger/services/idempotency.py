"""Locking primitive shared by the rollback and redo executors."""

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, literal, or_, select, update
from sqlalchemy.orm import Session

from ..db import insert_or_ignore
from ..models.activity import ActivityLog, ActivityOperation
from ..models.lock import IdempotencyLock

logger = logging.getLogger("activity_ledger.idempotency")

ROLLBACK_PREFIX = "rollback:"
REDO_PREFIX = "redo:"


def rollback_key(activity_id: str) -> str:
    return f"{ROLLBACK_PREFIX}{activity_id}"


def redo_key(rollback_id: str) -> str:
    return f"{REDO_PREFIX}{rollback_id}"


class IdempotencyGuard:
    def acquire(self, db: Session, key: str) -> None:
        """Hold a write lock on the key's row until the transaction ends.

        Concurrent callers with the same key block here, then see the
        winner's committed rollback or redo when they re-run the preview.
        """
        insert_or_ignore(db, IdempotencyLock.__table__, {"key": key, "acquired_count": 0})
        db.execute(
            update(IdempotencyLock)
            .where(IdempotencyLock.key == key)
            .values(
                acquired_count=IdempotencyLock.acquired_count + 1,
                last_acquired_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        logger.debug("Acquired idempotency lock %s", key)

    def prune_archived(self, db: Session) -> int:
        """Drop lock rows whose activity has been archived. Does not commit."""
        archived = ActivityLog.is_archived.is_(True)
        rollback_keys = select(literal(ROLLBACK_PREFIX) + ActivityLog.id).where(archived)
        redo_keys = select(literal(REDO_PREFIX) + ActivityLog.id).where(
            archived, ActivityLog.operation == ActivityOperation.ROLLBACK.value
        )
        result = db.execute(
            delete(IdempotencyLock)
            .where(or_(IdempotencyLock.key.in_(rollback_keys), IdempotencyLock.key.in_(redo_keys)))
            .execution_options(synchronize_session=False)
        )
        logger.info("Pruned %s idempotency locks of archived activities", result.rowcount)
        return result.rowcount
