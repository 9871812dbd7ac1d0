"""ActivityLedger: the engine's inbound operations, wired to their collaborators."""

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Union

from sqlalchemy.orm import Session

from ..core.config import Settings, settings as default_settings
from ..core.hashchain import as_utc
from ..models.activity import ActivityLog
from ..schemas.activity import ActivityCreate, ChainVerificationResponse
from ..schemas.rollback import RollbackPreview, RollbackResult, RollbackToPointPreview, RollbackToPointResult
from .activity_store import ActivityLogStore
from .collaborators import (
    Clock,
    PermissionChecker,
    ResourceRepository,
    RolePermissionChecker,
    SqlResourceRepository,
    SubscriptionLookup,
    SystemClock,
    UserTierSubscriptionLookup,
)
from .idempotency import IdempotencyGuard
from .redo import RedoEngine
from .retention import RetentionPolicy
from .rollback_executor import RollbackExecutor
from .rollback_preview import RollbackPreviewEngine
from .rollback_to_point import RollbackToPointEngine

logger = logging.getLogger("activity_ledger.ledger")

Actor = Optional[Dict[str, Optional[str]]]


class ActivityLedger:
    def __init__(
        self,
        resources: Optional[ResourceRepository] = None,
        permissions: Optional[PermissionChecker] = None,
        subscriptions: Optional[SubscriptionLookup] = None,
        clock: Optional[Clock] = None,
        config: Optional[Settings] = None,
    ):
        config = config or default_settings
        self.clock = clock or SystemClock()
        self.resources = resources or SqlResourceRepository()
        self.permissions = permissions or RolePermissionChecker()
        self.subscriptions = subscriptions or UserTierSubscriptionLookup()

        self.store = ActivityLogStore(
            clock=self.clock,
            chain_seed=config.chain_seed,
            default_limit=config.history_default_limit,
            max_limit=config.history_max_limit,
        )
        self.retention = RetentionPolicy(
            self.subscriptions,
            clock=self.clock,
            days_by_tier=config.retention_days_by_tier,
            default_tier=config.default_tier,
        )
        self.guard = IdempotencyGuard()
        self.previews = RollbackPreviewEngine(self.store, self.resources, self.permissions, self.retention)
        self.executor = RollbackExecutor(self.store, self.previews, self.resources, self.guard)
        self.redo = RedoEngine(self.store, self.previews, self.resources, self.guard)
        self.point = RollbackToPointEngine(self.store, self.previews, self.executor, self.resources)

    # ---------- log ----------

    def record_activity(self, db: Session, entry: Union[ActivityCreate, Dict[str, Any]]) -> ActivityLog:
        return self.store.append(db, entry)

    def get_activity_by_id(self, db: Session, activity_id: str) -> Optional[ActivityLog]:
        return self.store.get_by_id(db, activity_id)

    def verify_chain(
        self, db: Session, from_id: Optional[str] = None, to_id: Optional[str] = None
    ) -> ChainVerificationResponse:
        return self.store.verify_chain(db, from_id=from_id, to_id=to_id)

    def get_user_retention_days(self, db: Session, user_id: str) -> int:
        return self.retention.get_user_retention_days(db, user_id)

    def _clamped_history(self, db: Session, user_id: str, start_date: Optional[datetime], **query: Any) -> Dict[str, Any]:
        end_date = query.get("end_date")
        limit, offset = self.store.validate_query(
            query.get("limit"), query.get("offset"), start_date, end_date, query.get("operation")
        )
        days = self.retention.get_user_retention_days(db, user_id)
        effective_start = self.retention.apply_retention(start_date, days)
        if effective_start and end_date and as_utc(effective_start) > as_utc(end_date):
            # The whole requested range is older than the retention window
            history = {"activities": [], "total": 0, "limit": limit, "offset": offset}
        else:
            history = self.store.query_scope_history(db, start_date=effective_start, **query)
        history["effective_start_date"] = effective_start
        history["retention_days"] = days
        return history

    def get_page_version_history(
        self, db: Session, page_id: str, user_id: str, start_date: Optional[datetime] = None, **options: Any
    ) -> Dict[str, Any]:
        """Page history newest first, limited to the user's retention window."""
        return self._clamped_history(db, user_id, start_date, page_id=page_id, **options)

    def get_drive_version_history(
        self, db: Session, drive_id: str, user_id: str, start_date: Optional[datetime] = None, **options: Any
    ) -> Dict[str, Any]:
        return self._clamped_history(db, user_id, start_date, drive_id=drive_id, **options)

    # ---------- rollback / redo ----------

    def preview_rollback(
        self, db: Session, activity_id: str, user_id: str, context: str, force: bool = False
    ) -> RollbackPreview:
        return self.previews.preview_rollback(db, activity_id, user_id, context, force=force)

    def execute_rollback(
        self, db: Session, activity_id: str, user_id: str, context: str, force: bool = False, actor: Actor = None
    ) -> RollbackResult:
        return self.executor.execute_rollback(db, activity_id, user_id, context, force=force, actor=actor)

    def preview_redo(
        self, db: Session, activity_id: str, user_id: str, context: str, force: bool = False
    ) -> RollbackPreview:
        return self.redo.preview_redo(db, activity_id, user_id, context, force=force)

    def execute_redo(
        self, db: Session, activity_id: str, user_id: str, context: str, force: bool = False, actor: Actor = None
    ) -> RollbackResult:
        return self.redo.execute_redo(db, activity_id, user_id, context, force=force, actor=actor)

    def preview_rollback_to_point(
        self, db: Session, activity_id: str, user_id: str, context: str, force: bool = False
    ) -> RollbackToPointPreview:
        return self.point.preview_rollback_to_point(db, activity_id, user_id, context, force=force)

    def execute_rollback_to_point(
        self,
        db: Session,
        activity_id: str,
        user_id: str,
        context: str,
        preview: Optional[RollbackToPointPreview] = None,
        force: bool = False,
        actor: Actor = None,
    ) -> RollbackToPointResult:
        return self.point.execute_rollback_to_point(
            db, activity_id, user_id, context, preview=preview, force=force, actor=actor
        )


ledger = ActivityLedger()


def get_ledger() -> ActivityLedger:
    """Dependency returning the process-wide ledger"""
    return ledger
