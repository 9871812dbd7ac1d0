"""Who may revert which activity, and from where."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models.activity import ActivityLog
from ..schemas.rollback import RollbackContext
from .collaborators import PermissionChecker

logger = logging.getLogger("activity_ledger.access")


def check_rollback_access(
    db: Session,
    permissions: PermissionChecker,
    activity: ActivityLog,
    user_id: str,
    context: str,
) -> Optional[str]:
    """Return None when allowed, otherwise the reason access is denied."""
    try:
        context = RollbackContext(context)
    except ValueError:
        return "Unknown rollback context"

    if context == RollbackContext.PAGE and not activity.page_id:
        return "This change is not associated with a page"
    if context == RollbackContext.DRIVE and not activity.drive_id:
        return "This change is not associated with a drive"
    if context == RollbackContext.AI_TOOL:
        if not activity.is_ai_generated:
            return "Only AI-generated changes can be rolled back from the AI tool"
        if activity.user_id != user_id:
            return "You can only rollback your own changes"
    if context == RollbackContext.USER_DASHBOARD and activity.user_id != user_id:
        return "You can only rollback your own changes"

    if not permissions.can_edit(db, user_id, activity.resource_type, activity.resource_id, context.value):
        logger.debug("User %s lacks edit permission on %s %s", user_id, activity.resource_type, activity.resource_id)
        if context == RollbackContext.DRIVE:
            return "Only drive owners and admins can rollback drive changes"
        return "You need edit permission to rollback this change"
    return None
