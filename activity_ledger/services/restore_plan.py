"""How each (resource type, operation) pair is reverted."""

from enum import Enum as PyEnum
from typing import Dict, Optional, Tuple

from ..core.values import FieldValues
from ..models.activity import ActivityLog, ActivityOperation as Op, ResourceType as RT

TRASHED_FIELD = "isTrashed"


class RestoreAction(str, PyEnum):
    # Write the recorded previous values back
    PATCH_FIELDS = "patch_fields"
    # Undo a creation by trashing what was created
    TRASH = "trash"
    # Undo a removal by bringing the recorded state back
    RECREATE = "recreate"


ROLLBACK_ELIGIBLE_OPERATIONS = frozenset({
    Op.CREATE, Op.UPDATE, Op.DELETE, Op.TRASH, Op.MOVE, Op.REORDER,
    Op.PERMISSION_GRANT, Op.PERMISSION_UPDATE, Op.PERMISSION_REVOKE,
    Op.AGENT_CONFIG_UPDATE,
    Op.MEMBER_ADD, Op.MEMBER_REMOVE, Op.MEMBER_ROLE_CHANGE,
    Op.ROLE_REORDER,
    Op.MESSAGE_UPDATE, Op.MESSAGE_DELETE,
    Op.OWNERSHIP_TRANSFER,
})

_PATCH = RestoreAction.PATCH_FIELDS
_TRASH = RestoreAction.TRASH
_RECREATE = RestoreAction.RECREATE

RESTORE_PLANS: Dict[Tuple[RT, Op], RestoreAction] = {
    (RT.PAGE, Op.CREATE): _TRASH,
    (RT.PAGE, Op.UPDATE): _PATCH,
    (RT.PAGE, Op.DELETE): _RECREATE,
    (RT.PAGE, Op.TRASH): _PATCH,
    (RT.PAGE, Op.MOVE): _PATCH,
    (RT.PAGE, Op.REORDER): _PATCH,

    (RT.DRIVE, Op.CREATE): _TRASH,
    (RT.DRIVE, Op.UPDATE): _PATCH,
    (RT.DRIVE, Op.DELETE): _RECREATE,
    (RT.DRIVE, Op.TRASH): _PATCH,
    (RT.DRIVE, Op.OWNERSHIP_TRANSFER): _PATCH,

    (RT.PERMISSION, Op.PERMISSION_GRANT): _TRASH,
    (RT.PERMISSION, Op.PERMISSION_UPDATE): _PATCH,
    (RT.PERMISSION, Op.PERMISSION_REVOKE): _RECREATE,

    (RT.AGENT, Op.CREATE): _TRASH,
    (RT.AGENT, Op.UPDATE): _PATCH,
    (RT.AGENT, Op.DELETE): _RECREATE,
    (RT.AGENT, Op.AGENT_CONFIG_UPDATE): _PATCH,

    (RT.MEMBER, Op.MEMBER_ADD): _TRASH,
    (RT.MEMBER, Op.MEMBER_REMOVE): _RECREATE,
    (RT.MEMBER, Op.MEMBER_ROLE_CHANGE): _PATCH,

    (RT.ROLE, Op.CREATE): _TRASH,
    (RT.ROLE, Op.UPDATE): _PATCH,
    (RT.ROLE, Op.DELETE): _RECREATE,
    (RT.ROLE, Op.ROLE_REORDER): _PATCH,

    (RT.MESSAGE, Op.MESSAGE_UPDATE): _PATCH,
    (RT.MESSAGE, Op.MESSAGE_DELETE): _PATCH,
}

ROLLBACKABLE_RESOURCE_TYPES = frozenset(rt for rt, _ in RESTORE_PLANS)


def is_rollbackable_operation(operation: str) -> bool:
    return operation in {op.value for op in ROLLBACK_ELIGIBLE_OPERATIONS}


def resolve_action(resource_type: str, operation: str) -> Optional[RestoreAction]:
    try:
        key = (RT(resource_type), Op(operation))
    except ValueError:
        return None
    return RESTORE_PLANS.get(key)


def target_values(action: RestoreAction, activity: ActivityLog) -> Optional[FieldValues]:
    """Values the resource should hold after reverting activity; None if nothing to restore."""
    previous = activity.previous_values or {}
    if action == RestoreAction.TRASH:
        return {TRASHED_FIELD: True}
    if action == RestoreAction.RECREATE:
        if not previous:
            return None
        target = dict(previous)
        target[TRASHED_FIELD] = False
        return target
    if not previous:
        return None
    fields = activity.updated_fields or list(previous.keys())
    target = {field: previous[field] for field in fields if field in previous}
    return target or None


def redo_target_values(rollback: ActivityLog) -> Optional[FieldValues]:
    """Values that re-apply what a rollback reverted; None if nothing to re-apply."""
    action = resolve_action(rollback.resource_type, rollback.rollback_source_operation or "")
    if action == RestoreAction.RECREATE:
        # The rollback brought a removed resource back, so redo removes it again
        return {TRASHED_FIELD: True}
    if action == RestoreAction.TRASH:
        return {TRASHED_FIELD: False}
    if not rollback.previous_values:
        return None
    return dict(rollback.previous_values)


def expected_values(action: RestoreAction, activity: ActivityLog) -> Optional[FieldValues]:
    """Recorded values the live resource must still hold for a clean revert."""
    if action != RestoreAction.PATCH_FIELDS:
        return None
    return activity.new_values
