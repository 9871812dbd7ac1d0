"""Interfaces the engine depends on, with SQLAlchemy-backed reference implementations.

Every method takes the SQLAlchemy session as its transaction handle, so reads
made during a rollback see the writes already made in the same transaction.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

from sqlalchemy.orm import Session

from ..core.config import settings
from ..models.resource import Resource
from ..models.user import User, UserRole

logger = logging.getLogger("activity_ledger.collaborators")


class ResourceRepository(Protocol):
    def read_current(self, db: Session, resource_type: str, resource_id: str) -> Optional[Dict[str, Any]]:
        ...

    def patch(self, db: Session, resource_type: str, resource_id: str, fields: Dict[str, Any]) -> None:
        ...


class PermissionChecker(Protocol):
    def can_edit(self, db: Session, user_id: str, resource_type: str, resource_id: str, context: str) -> bool:
        ...


class SubscriptionLookup(Protocol):
    def tier(self, db: Session, user_id: str) -> str:
        ...


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class SqlResourceRepository:
    """Resources stored as JSON field documents in the `resources` table."""

    def _row(self, db: Session, resource_type: str, resource_id: str) -> Optional[Resource]:
        return db.query(Resource).filter(
            Resource.resource_type == resource_type,
            Resource.resource_id == resource_id
        ).first()

    def read_current(self, db: Session, resource_type: str, resource_id: str) -> Optional[Dict[str, Any]]:
        row = self._row(db, resource_type, resource_id)
        if row is None:
            return None
        return dict(row.fields or {})

    def patch(self, db: Session, resource_type: str, resource_id: str, fields: Dict[str, Any]) -> None:
        """Partial update: only the given fields change. Creates the row if missing."""
        row = self._row(db, resource_type, resource_id)
        if row is None:
            row = Resource(resource_type=resource_type, resource_id=resource_id, fields={})
            db.add(row)
            logger.debug("Recreating %s %s during patch", resource_type, resource_id)
        merged = dict(row.fields or {})
        merged.update(fields)
        # Reassign so the JSON column is flagged dirty
        row.fields = merged
        db.flush()


class RolePermissionChecker:
    """ADMIN and EDITOR users may edit any resource; VIEWER and unknown users may not."""

    def can_edit(self, db: Session, user_id: str, resource_type: str, resource_id: str, context: str) -> bool:
        user = db.query(User).filter(User.id == user_id).first()
        if user is None:
            return False
        return user.role in (UserRole.ADMIN, UserRole.EDITOR)


class UserTierSubscriptionLookup:
    def tier(self, db: Session, user_id: str) -> str:
        user = db.query(User).filter(User.id == user_id).first()
        if user is None or not user.subscription_tier:
            return settings.default_tier
        return user.subscription_tier
