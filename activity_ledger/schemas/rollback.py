from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime
from enum import Enum as PyEnum
from .activity import ActivityResponse


class RollbackContext(str, PyEnum):
    PAGE = "page"
    DRIVE = "drive"
    AI_TOOL = "ai_tool"
    USER_DASHBOARD = "user_dashboard"


class RollbackToPointContext(str, PyEnum):
    PAGE = "page"
    DRIVE = "drive"
    USER_DASHBOARD = "user_dashboard"


class RollbackRequest(BaseModel):
    context: str = RollbackContext.PAGE.value
    force: bool = False


class AffectedResource(BaseModel):
    type: str
    id: str
    title: str


class RollbackPreview(BaseModel):
    action: str = "rollback"
    activity: Optional[ActivityResponse] = None
    can_execute: bool = False
    reason: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    has_conflict: bool = False
    conflict_fields: List[str] = Field(default_factory=list)
    requires_force: bool = False
    is_no_op: bool = False
    existing_activity_id: Optional[str] = None
    current_values: Optional[Dict[str, Any]] = None
    target_values: Optional[Dict[str, Any]] = None
    changes: List[str] = Field(default_factory=list)
    affected_resources: List[AffectedResource] = Field(default_factory=list)
    reason_code: Optional[str] = None


class RollbackResult(BaseModel):
    success: bool
    message: str
    warnings: List[str] = Field(default_factory=list)
    rollback_activity_id: Optional[str] = None
    restored_values: Optional[Dict[str, Any]] = None
    is_no_op: bool = False
    # Carried so the HTTP layer can pick a status code for failures
    requires_force: bool = False
    reason_code: Optional[str] = None


class ActivityAffected(BaseModel):
    id: str
    operation: str
    resource_type: str
    resource_id: str
    resource_title: Optional[str] = None
    page_id: Optional[str] = None
    drive_id: Optional[str] = None
    timestamp: datetime
    actor_email: Optional[str] = None
    actor_display_name: Optional[str] = None
    is_ai_generated: bool = False
    skipped: bool = False
    preview: RollbackPreview


class RollbackToPointPreview(BaseModel):
    activity_id: str
    context: str
    page_id: Optional[str] = None
    drive_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    activities_affected: List[ActivityAffected] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    reason: Optional[str] = None


class RollbackToPointRequest(BaseModel):
    context: str = RollbackToPointContext.PAGE.value
    force: bool = False


class RollbackToPointResult(BaseModel):
    success: bool
    activities_rolled_back: int = 0
    errors: List[str] = Field(default_factory=list)
    rollback_activity_ids: List[str] = Field(default_factory=list)


class RetentionResponse(BaseModel):
    user_id: str
    retention_days: int
    unlimited: bool
    earliest_visible: Optional[datetime] = None
