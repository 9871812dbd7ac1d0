"""Batch rollback of everything in a scope since a given activity."""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import LedgerError, TransactionError
from ..core.hashchain import as_utc
from ..models.activity import ActivityLog
from ..schemas.activity import ActivityResponse
from ..schemas.rollback import (
    ActivityAffected,
    RollbackPreview,
    RollbackToPointContext,
    RollbackToPointPreview,
    RollbackToPointResult,
)
from .activity_store import ActivityLogStore
from .collaborators import ResourceRepository
from .idempotency import rollback_key
from .restore_plan import is_rollbackable_operation
from .rollback_executor import RollbackExecutor
from .rollback_preview import REASON_INELIGIBLE, RollbackPreviewEngine

logger = logging.getLogger("activity_ledger.rollback_to_point")


class _SimulatedResources:
    """Overlay over a real repository; patches land in memory only."""

    def __init__(self, base: ResourceRepository):
        self.base = base
        self.overlay: Dict[Tuple[str, str], Dict[str, Any]] = {}

    def read_current(self, db: Session, resource_type: str, resource_id: str) -> Optional[Dict[str, Any]]:
        key = (resource_type, resource_id)
        if key in self.overlay:
            return dict(self.overlay[key])
        return self.base.read_current(db, resource_type, resource_id)

    def patch(self, db: Session, resource_type: str, resource_id: str, fields: Dict[str, Any]) -> None:
        merged = self.read_current(db, resource_type, resource_id) or {}
        merged.update(fields)
        self.overlay[(resource_type, resource_id)] = merged


class RollbackToPointEngine:
    def __init__(
        self,
        store: ActivityLogStore,
        preview_engine: RollbackPreviewEngine,
        executor: RollbackExecutor,
        resources: ResourceRepository,
    ):
        self.store = store
        self.preview_engine = preview_engine
        self.executor = executor
        self.resources = resources

    def _scope(self, activity: ActivityLog, user_id: str, context: str) -> Tuple[Optional[list], Optional[str]]:
        """Filter conditions for the batch, or the reason no batch can be built."""
        try:
            context = RollbackToPointContext(context)
        except ValueError:
            return None, "Unknown rollback context"
        if context == RollbackToPointContext.PAGE:
            if not activity.page_id:
                return None, "This change is not associated with a page"
            return [ActivityLog.page_id == activity.page_id], None
        if context == RollbackToPointContext.DRIVE:
            if not activity.drive_id:
                return None, "This change is not associated with a drive"
            return [ActivityLog.drive_id == activity.drive_id], None
        if activity.user_id != user_id:
            return None, "You can only rollback your own changes"
        return [ActivityLog.user_id == user_id], None

    def preview_rollback_to_point(
        self,
        db: Session,
        activity_id: str,
        user_id: str,
        context: str,
        force: bool = False,
    ) -> RollbackToPointPreview:
        """Evaluate reverting the target and everything after it, without mutating anything."""
        target = self.store.get_by_id(db, activity_id)
        if target is None:
            return RollbackToPointPreview(activity_id=activity_id, context=context, reason="Activity not found")

        conditions, reason = self._scope(target, user_id, context)
        result = RollbackToPointPreview(
            activity_id=target.id,
            context=context,
            page_id=target.page_id,
            drive_id=target.drive_id,
            timestamp=as_utc(target.timestamp),
        )
        if reason:
            result.reason = reason
            return result

        activities = self.store.activities_since(db, target, conditions)
        logger.debug("Rollback to %s covers %s activities in %s scope", target.id, len(activities), context)

        simulated = _SimulatedResources(self.resources)
        affected: List[ActivityAffected] = []
        skipped = 0
        blocked = 0
        forced = 0

        # Newest first, each evaluated against the state the newer reverts leave behind
        for activity in reversed(activities):
            if not is_rollbackable_operation(activity.operation):
                skipped += 1
                preview = RollbackPreview(
                    activity=ActivityResponse.model_validate(activity),
                    reason=f"'{activity.operation}' changes are not reverted",
                    reason_code=REASON_INELIGIBLE,
                )
                affected.append(self._affected(activity, preview, skipped=True))
                continue

            preview = self.preview_engine.evaluate_rollback(
                db, activity, user_id, context, force=force, resources=simulated
            )
            if not preview.can_execute:
                blocked += 1
            elif not preview.is_no_op:
                if preview.has_conflict:
                    forced += 1
                simulated.patch(db, activity.resource_type, activity.resource_id, preview.target_values or {})
            affected.append(self._affected(activity, preview))

        affected.reverse()
        result.activities_affected = affected

        revertible = len(activities) - skipped
        if blocked:
            result.warnings.append(f"{blocked} of {revertible} changes cannot be auto-reverted")
        if forced:
            result.warnings.append(f"{forced} changes conflict with later edits and will be overwritten")
        if skipped:
            result.warnings.append(f"{skipped} non-revertible records in this range will be skipped")
        return result

    def _affected(self, activity: ActivityLog, preview: RollbackPreview, skipped: bool = False) -> ActivityAffected:
        return ActivityAffected(
            id=activity.id,
            operation=activity.operation,
            resource_type=activity.resource_type,
            resource_id=activity.resource_id,
            resource_title=activity.resource_title,
            page_id=activity.page_id,
            drive_id=activity.drive_id,
            timestamp=as_utc(activity.timestamp),
            actor_email=activity.actor_email,
            actor_display_name=activity.actor_display_name,
            is_ai_generated=bool(activity.is_ai_generated),
            skipped=skipped,
            preview=preview,
        )

    def execute_rollback_to_point(
        self,
        db: Session,
        activity_id: str,
        user_id: str,
        context: str,
        preview: Optional[RollbackToPointPreview] = None,
        force: bool = False,
        actor: Optional[Dict[str, Optional[str]]] = None,
    ) -> RollbackToPointResult:
        """Revert the previewed set newest first. All or nothing: any failure rolls the session back."""
        if preview is None:
            preview = self.preview_rollback_to_point(db, activity_id, user_id, context, force=force)
        if preview.reason:
            return RollbackToPointResult(success=False, errors=[preview.reason])

        pending = [item for item in preview.activities_affected if not item.skipped]
        blocked = [item for item in pending if not item.preview.can_execute]
        if blocked:
            errors = [self._describe(item, item.preview.reason) for item in blocked]
            logger.info("Rollback to %s refused: %s blocked changes", activity_id, len(blocked))
            return RollbackToPointResult(success=False, errors=errors)

        # All keys in sorted order before the first append takes the chain tail
        try:
            for key in sorted(rollback_key(item.id) for item in pending):
                self.executor.guard.acquire(db, key)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Rollback to %s could not lock its changes: %s", activity_id, e)
            raise TransactionError(f"Rollback to point failed while locking {activity_id}") from e

        rolled_back_ids: List[str] = []
        for item in reversed(pending):
            try:
                result = self.executor.execute_rollback(db, item.id, user_id, context, force=force, actor=actor)
            except LedgerError as e:
                return self._abort(db, activity_id, self._describe(item, e.message))
            except SQLAlchemyError as e:
                db.rollback()
                logger.error("Rollback to %s failed in the database at %s: %s", activity_id, item.id, e)
                raise TransactionError(f"Rollback to point failed while reverting {item.id}") from e
            if not result.success:
                return self._abort(db, activity_id, self._describe(item, result.message))
            if not result.is_no_op:
                rolled_back_ids.append(result.rollback_activity_id)

        logger.info("Rolled back %s activities to point %s", len(rolled_back_ids), activity_id)
        return RollbackToPointResult(
            success=True,
            activities_rolled_back=len(rolled_back_ids),
            rollback_activity_ids=rolled_back_ids,
        )

    def _describe(self, item: ActivityAffected, message: Optional[str]) -> str:
        title = item.resource_title or item.resource_id
        return f"{item.operation} on {item.resource_type} '{title}': {message or 'cannot be reverted'}"

    def _abort(self, db: Session, activity_id: str, error: str) -> RollbackToPointResult:
        db.rollback()
        logger.warning("Rollback to %s aborted, nothing applied: %s", activity_id, error)
        return RollbackToPointResult(success=False, errors=[error])
