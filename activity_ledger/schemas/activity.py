from pydantic import AliasChoices, BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime
from ..models.activity import ActivityOperation, ResourceType
from ..core.values import diff_values


class ActivityCreate(BaseModel):
    operation: ActivityOperation
    resource_type: ResourceType
    resource_id: str
    resource_title: Optional[str] = None
    drive_id: Optional[str] = None
    page_id: Optional[str] = None

    user_id: Optional[str] = None
    actor_email: Optional[str] = None
    actor_display_name: Optional[str] = None
    is_ai_generated: bool = False
    ai_provider: Optional[str] = None
    ai_model: Optional[str] = None
    ai_conversation_id: Optional[str] = None

    updated_fields: Optional[List[str]] = None
    previous_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None

    rollback_from_activity_id: Optional[str] = None
    rollback_source_operation: Optional[ActivityOperation] = None

    @classmethod
    def from_snapshots(
        cls,
        before: Optional[Dict[str, Any]],
        after: Optional[Dict[str, Any]],
        **kwargs: Any,
    ) -> "ActivityCreate":
        """Build an entry from full before/after snapshots, keeping only changed fields."""
        updated, previous, new = diff_values(before, after)
        return cls(
            updated_fields=updated,
            previous_values=previous if before is not None else None,
            new_values=new,
            **kwargs,
        )


class ActivityResponse(BaseModel):
    id: str
    seq: int
    timestamp: datetime
    user_id: Optional[str] = None
    actor_email: Optional[str] = None
    actor_display_name: Optional[str] = None
    is_ai_generated: bool
    ai_provider: Optional[str] = None
    ai_model: Optional[str] = None
    ai_conversation_id: Optional[str] = None
    operation: str
    resource_type: str
    resource_id: str
    resource_title: Optional[str] = None
    drive_id: Optional[str] = None
    page_id: Optional[str] = None
    updated_fields: Optional[List[str]] = None
    previous_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("activity_metadata", "metadata")
    )
    is_archived: bool
    previous_log_hash: Optional[str] = None
    log_hash: str
    chain_seed: Optional[str] = None
    rollback_from_activity_id: Optional[str] = None
    rollback_source_operation: Optional[str] = None

    class Config:
        from_attributes = True


class HistoryResponse(BaseModel):
    activities: List[ActivityResponse]
    total: int
    limit: int
    offset: int
    effective_start_date: Optional[datetime] = None
    retention_days: Optional[int] = None


class ChainVerificationResponse(BaseModel):
    chain_valid: bool
    entries_verified: int
    first_entry_id: Optional[str] = None
    last_entry_id: Optional[str] = None
    chain_seed: Optional[str] = None
    break_entry_id: Optional[str] = None
    break_position: Optional[int] = None
    detail: Optional[str] = None


class EntryVerificationResponse(BaseModel):
    id: str
    is_valid: bool
    stored_hash: Optional[str] = None
    computed_hash: str
    previous_hash_used: str


class ChainStatsResponse(BaseModel):
    total_entries: int
    archived_entries: int
    last_seq: int
    has_chain_seed: bool
    first_entry_timestamp: Optional[datetime] = None
    last_entry_timestamp: Optional[datetime] = None
