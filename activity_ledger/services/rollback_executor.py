"""Transactional, idempotent single-activity rollback."""

import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from ..core.values import FieldValues
from ..models.activity import ActivityLog, ActivityOperation
from ..schemas.activity import ActivityCreate
from ..schemas.rollback import RollbackPreview, RollbackResult
from .activity_store import ActivityLogStore
from .collaborators import ResourceRepository
from .idempotency import IdempotencyGuard, rollback_key
from .rollback_preview import REASON_CONFLICT, RollbackPreviewEngine

logger = logging.getLogger("activity_ledger.rollback_executor")


def failed_result(preview: RollbackPreview) -> RollbackResult:
    return RollbackResult(
        success=False,
        message=preview.reason or "Cannot execute",
        warnings=list(preview.warnings),
        requires_force=preview.requires_force or preview.reason_code == REASON_CONFLICT,
        reason_code=preview.reason_code,
    )


def reversal_entry(
    source: ActivityLog,
    operation: ActivityOperation,
    user_id: str,
    preview: RollbackPreview,
    actor: Optional[Dict[str, Optional[str]]] = None,
) -> ActivityCreate:
    """Activity recording a rollback or redo of source."""
    target: FieldValues = dict(preview.target_values or {})
    current = preview.current_values or {}
    actor = actor or {}
    return ActivityCreate(
        operation=operation,
        resource_type=source.resource_type,
        resource_id=source.resource_id,
        resource_title=source.resource_title,
        drive_id=source.drive_id,
        page_id=source.page_id,
        user_id=user_id,
        actor_email=actor.get("actor_email"),
        actor_display_name=actor.get("actor_display_name"),
        updated_fields=list(target.keys()),
        previous_values={field: current.get(field) for field in target},
        new_values=target,
        metadata={"forced": bool(preview.has_conflict), "conflict_fields": preview.conflict_fields},
        rollback_from_activity_id=source.id,
        rollback_source_operation=source.operation,
    )


class RollbackExecutor:
    def __init__(
        self,
        store: ActivityLogStore,
        preview_engine: RollbackPreviewEngine,
        resources: ResourceRepository,
        guard: IdempotencyGuard,
    ):
        self.store = store
        self.preview_engine = preview_engine
        self.resources = resources
        self.guard = guard

    def execute_rollback(
        self,
        db: Session,
        activity_id: str,
        user_id: str,
        context: str,
        force: bool = False,
        actor: Optional[Dict[str, Optional[str]]] = None,
    ) -> RollbackResult:
        """Revert one activity inside the caller's transaction. Never commits."""
        self.guard.acquire(db, rollback_key(activity_id))

        # Re-evaluated under the lock so a concurrent winner is seen as a no-op
        preview = self.preview_engine.preview_rollback(db, activity_id, user_id, context, force=force)
        if not preview.can_execute:
            return failed_result(preview)

        if preview.is_no_op:
            existing = self.store.get_by_id(db, preview.existing_activity_id)
            return RollbackResult(
                success=True,
                message="Already rolled back",
                is_no_op=True,
                rollback_activity_id=existing.id,
                restored_values=existing.new_values,
            )

        source = self.store.get_by_id(db, activity_id)
        target = preview.target_values or {}
        self.resources.patch(db, source.resource_type, source.resource_id, target)
        recorded = self.store.append(
            db, reversal_entry(source, ActivityOperation.ROLLBACK, user_id, preview, actor)
        )

        logger.info(
            "Rolled back activity %s (%s %s/%s) as %s",
            source.id, source.operation, source.resource_type, source.resource_id, recorded.id,
        )
        return RollbackResult(
            success=True,
            message="Change rolled back",
            warnings=list(preview.warnings),
            rollback_activity_id=recorded.id,
            restored_values=recorded.new_values,
        )
