"""Read-only evaluation of whether an activity can be rolled back or redone."""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.values import FieldValues, drifted_fields, snapshot, summarize_changes
from ..models.activity import ActivityLog, ActivityOperation, ResourceType
from ..schemas.activity import ActivityResponse
from ..schemas.rollback import AffectedResource, RollbackPreview
from .access import check_rollback_access
from .activity_store import ActivityLogStore
from .collaborators import PermissionChecker, ResourceRepository
from .restore_plan import (
    ROLLBACKABLE_RESOURCE_TYPES,
    TRASHED_FIELD,
    RestoreAction,
    expected_values,
    is_rollbackable_operation,
    redo_target_values,
    resolve_action,
    target_values,
)
from .retention import RetentionPolicy

logger = logging.getLogger("activity_ledger.rollback_preview")

REASON_NOT_FOUND = "not_found"
REASON_UNAUTHORIZED = "unauthorized"
REASON_INELIGIBLE = "ineligible"
REASON_BLOCKED = "blocked"
REASON_CONFLICT = "conflict"

CONFLICT_REASON = "Resource has been modified since this change. Use force=true to override."
FORCE_WARNING = "This resource has been modified since this change. Recent changes will be overwritten."


class RollbackPreviewEngine:
    def __init__(
        self,
        store: ActivityLogStore,
        resources: ResourceRepository,
        permissions: PermissionChecker,
        retention: RetentionPolicy,
    ):
        self.store = store
        self.resources = resources
        self.permissions = permissions
        self.retention = retention

    # ---------- public ----------

    def preview_rollback(
        self,
        db: Session,
        activity_id: str,
        user_id: str,
        context: str,
        force: bool = False,
    ) -> RollbackPreview:
        logger.debug("Previewing rollback of %s for user %s (context=%s force=%s)", activity_id, user_id, context, force)
        activity = self.store.get_by_id(db, activity_id)
        if activity is None:
            return RollbackPreview(reason="Activity not found", reason_code=REASON_NOT_FOUND)
        return self.evaluate_rollback(db, activity, user_id, context, force)

    def preview_redo(
        self,
        db: Session,
        activity_id: str,
        user_id: str,
        context: str,
        force: bool = False,
    ) -> RollbackPreview:
        logger.debug("Previewing redo of %s for user %s (context=%s force=%s)", activity_id, user_id, context, force)
        rollback = self.store.get_by_id(db, activity_id)
        if rollback is None:
            return RollbackPreview(action="redo", reason="Activity not found", reason_code=REASON_NOT_FOUND)
        return self.evaluate_redo(db, rollback, user_id, context, force)

    # ---------- evaluation ----------

    def evaluate_rollback(
        self,
        db: Session,
        activity: ActivityLog,
        user_id: str,
        context: str,
        force: bool = False,
        resources: Optional[ResourceRepository] = None,
    ) -> RollbackPreview:
        """Evaluate rolling back a loaded activity against the given resource state."""
        resources = resources or self.resources
        loaded = ActivityResponse.model_validate(activity)

        def fail(reason: str, code: str, **extra: Any) -> RollbackPreview:
            logger.debug("Rollback of %s not executable: %s", activity.id, reason)
            return RollbackPreview(activity=loaded, reason=reason, reason_code=code, **extra)

        denied = check_rollback_access(db, self.permissions, activity, user_id, context)
        if denied:
            return fail(denied, REASON_UNAUTHORIZED)

        if activity.operation == ActivityOperation.ROLLBACK.value:
            return fail("Cannot rollback a rollback operation. Use redo instead.", REASON_INELIGIBLE)
        if not is_rollbackable_operation(activity.operation):
            return fail(f"Cannot rollback '{activity.operation}' operations", REASON_INELIGIBLE)
        action = resolve_action(activity.resource_type, activity.operation)
        if action is None:
            return fail(
                f"Cannot rollback '{activity.operation}' on {activity.resource_type} resources",
                REASON_INELIGIBLE,
            )
        if not self._within_retention(db, activity, user_id):
            return fail("This change is outside your history retention window", REASON_INELIGIBLE)
        target = target_values(action, activity)
        if target is None:
            return fail("No previous state available to restore", REASON_INELIGIBLE)

        existing = self.store.find_rollback_of(db, activity.id)
        if existing is not None:
            logger.debug("Activity %s already rolled back by %s", activity.id, existing.id)
            return RollbackPreview(
                activity=loaded,
                can_execute=True,
                is_no_op=True,
                existing_activity_id=existing.id,
                target_values=existing.new_values,
                affected_resources=[self._affected(activity)],
            )

        live = resources.read_current(db, activity.resource_type, activity.resource_id)
        blocked = self._blocked_by_state(db, resources, activity, action, live)
        if blocked:
            return fail(blocked, REASON_BLOCKED)

        return self._finish(
            loaded, activity, live or {}, target, expected_values(action, activity), force,
        )

    def evaluate_redo(
        self,
        db: Session,
        rollback: ActivityLog,
        user_id: str,
        context: str,
        force: bool = False,
        resources: Optional[ResourceRepository] = None,
    ) -> RollbackPreview:
        """Evaluate re-applying the change a rollback activity reverted."""
        resources = resources or self.resources
        loaded = ActivityResponse.model_validate(rollback)

        def fail(reason: str, code: str) -> RollbackPreview:
            logger.debug("Redo of %s not executable: %s", rollback.id, reason)
            return RollbackPreview(action="redo", activity=loaded, reason=reason, reason_code=code)

        denied = check_rollback_access(db, self.permissions, rollback, user_id, context)
        if denied:
            return fail(denied, REASON_UNAUTHORIZED)

        if rollback.operation != ActivityOperation.ROLLBACK.value:
            return fail("Only rollback operations can be redone", REASON_INELIGIBLE)
        if rollback.resource_type not in {rt.value for rt in ROLLBACKABLE_RESOURCE_TYPES}:
            return fail(f"Cannot redo changes on {rollback.resource_type} resources", REASON_INELIGIBLE)
        if not self._within_retention(db, rollback, user_id):
            return fail("This change is outside your history retention window", REASON_INELIGIBLE)
        target = redo_target_values(rollback)
        if target is None:
            return fail("No previous state available to restore", REASON_INELIGIBLE)

        existing = self.store.find_redo_of(db, rollback.id)
        if existing is not None:
            logger.debug("Rollback %s already redone by %s", rollback.id, existing.id)
            return RollbackPreview(
                action="redo",
                activity=loaded,
                can_execute=True,
                is_no_op=True,
                existing_activity_id=existing.id,
                target_values=existing.new_values,
                affected_resources=[self._affected(rollback)],
            )

        live = resources.read_current(db, rollback.resource_type, rollback.resource_id)
        if live is None:
            return fail("Resource no longer exists", REASON_BLOCKED)
        blocked = self._parent_drive_blocked(db, resources, rollback)
        if blocked:
            return fail(blocked, REASON_BLOCKED)

        preview = self._finish(loaded, rollback, live, target, rollback.new_values, force)
        preview.action = "redo"
        return preview

    # ---------- helpers ----------

    def _within_retention(self, db: Session, activity: ActivityLog, user_id: str) -> bool:
        days = self.retention.get_user_retention_days(db, user_id)
        return self.retention.is_within_retention(activity.timestamp, days)

    def _parent_drive_blocked(
        self, db: Session, resources: ResourceRepository, activity: ActivityLog
    ) -> Optional[str]:
        if activity.resource_type == ResourceType.DRIVE.value or not activity.drive_id:
            return None
        drive = resources.read_current(db, ResourceType.DRIVE.value, activity.drive_id)
        if drive is None:
            return "Parent drive has been deleted"
        if drive.get(TRASHED_FIELD):
            return "Parent drive is in trash. Restore the drive first."
        return None

    def _blocked_by_state(
        self,
        db: Session,
        resources: ResourceRepository,
        activity: ActivityLog,
        action: RestoreAction,
        live: Optional[Dict[str, Any]],
    ) -> Optional[str]:
        if action == RestoreAction.RECREATE:
            if live is not None and not live.get(TRASHED_FIELD):
                return "Resource has already been restored"
        elif live is None:
            return "Resource no longer exists"
        elif action == RestoreAction.TRASH and live.get(TRASHED_FIELD):
            return "Resource is already in trash"
        return self._parent_drive_blocked(db, resources, activity)

    def _affected(self, activity: ActivityLog) -> AffectedResource:
        return AffectedResource(
            type=activity.resource_type,
            id=activity.resource_id,
            title=activity.resource_title or "Untitled",
        )

    def _finish(
        self,
        loaded: ActivityResponse,
        activity: ActivityLog,
        live: Dict[str, Any],
        target: FieldValues,
        expected: Optional[FieldValues],
        force: bool,
    ) -> RollbackPreview:
        fields: List[str] = list(target.keys()) + [k for k in (expected or {}) if k not in target]
        current = snapshot(live, fields)
        conflicts = drifted_fields(expected, live)
        warnings: List[str] = []

        if conflicts:
            logger.debug("Conflict on %s fields %s (force=%s)", activity.id, conflicts, force)
            if not force:
                return RollbackPreview(
                    activity=loaded,
                    reason=CONFLICT_REASON,
                    reason_code=REASON_CONFLICT,
                    has_conflict=True,
                    conflict_fields=conflicts,
                    requires_force=True,
                    current_values=current,
                    target_values=target,
                    changes=summarize_changes(live, target),
                    affected_resources=[self._affected(activity)],
                )
            warnings.append(FORCE_WARNING)

        return RollbackPreview(
            activity=loaded,
            can_execute=True,
            warnings=warnings,
            has_conflict=bool(conflicts),
            conflict_fields=conflicts,
            current_values=current,
            target_values=target,
            changes=summarize_changes(live, target),
            affected_resources=[self._affected(activity)],
        )
