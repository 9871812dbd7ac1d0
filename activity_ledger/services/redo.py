"""Redo: reverting a rollback."""

import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from ..models.activity import ActivityOperation
from ..schemas.rollback import RollbackPreview, RollbackResult
from .activity_store import ActivityLogStore
from .collaborators import ResourceRepository
from .idempotency import IdempotencyGuard, redo_key
from .rollback_executor import failed_result, reversal_entry
from .rollback_preview import RollbackPreviewEngine

logger = logging.getLogger("activity_ledger.redo")


class RedoEngine:
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

    def preview_redo(
        self, db: Session, activity_id: str, user_id: str, context: str, force: bool = False
    ) -> RollbackPreview:
        return self.preview_engine.preview_redo(db, activity_id, user_id, context, force=force)

    def execute_redo(
        self,
        db: Session,
        activity_id: str,
        user_id: str,
        context: str,
        force: bool = False,
        actor: Optional[Dict[str, Optional[str]]] = None,
    ) -> RollbackResult:
        """Re-apply what a rollback activity reverted. Never commits."""
        self.guard.acquire(db, redo_key(activity_id))

        preview = self.preview_engine.preview_redo(db, activity_id, user_id, context, force=force)
        if not preview.can_execute:
            return failed_result(preview)

        if preview.is_no_op:
            existing = self.store.get_by_id(db, preview.existing_activity_id)
            return RollbackResult(
                success=True,
                message="Already redone",
                is_no_op=True,
                rollback_activity_id=existing.id,
                restored_values=existing.new_values,
            )

        rollback = self.store.get_by_id(db, activity_id)
        self.resources.patch(db, rollback.resource_type, rollback.resource_id, preview.target_values or {})
        recorded = self.store.append(
            db, reversal_entry(rollback, ActivityOperation.REDO, user_id, preview, actor)
        )

        logger.info("Redid rollback %s on %s/%s as %s", rollback.id, rollback.resource_type, rollback.resource_id, recorded.id)
        return RollbackResult(
            success=True,
            message="Change redone",
            warnings=list(preview.warnings),
            rollback_activity_id=recorded.id,
            restored_values=recorded.new_values,
        )
