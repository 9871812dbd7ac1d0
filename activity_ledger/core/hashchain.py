import json
import hashlib
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Write-once columns covered by log_hash; is_archived and the hash columns are not
HASHED_FIELDS = (
    "id",
    "seq",
    "timestamp",
    "user_id",
    "actor_email",
    "actor_display_name",
    "operation",
    "resource_type",
    "resource_id",
    "resource_title",
    "drive_id",
    "page_id",
    "is_ai_generated",
    "ai_provider",
    "ai_model",
    "ai_conversation_id",
    "updated_fields",
    "previous_values",
    "new_values",
    "activity_metadata",
    "rollback_from_activity_id",
    "rollback_source_operation",
)


def as_utc(ts: Optional[datetime]) -> Optional[datetime]:
    """Force UTC tzinfo; SQLite hands back naive datetimes."""
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def canonical_entry(entry: Any) -> Dict[str, Any]:
    """Build the hashed view of an activity row (or any object with its attributes)."""
    data: Dict[str, Any] = {}
    for field in HASHED_FIELDS:
        value = getattr(entry, field, None)
        if field == "timestamp":
            value = as_utc(value).isoformat(timespec="microseconds") if value is not None else None
        elif hasattr(value, "value"):
            value = value.value
        data[field] = value
    return data


def canonical_json(entry_data: Dict[str, Any]) -> str:
    return json.dumps(entry_data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_entry_hash(entry_data: Dict[str, Any], prev_hash: str) -> str:
    """
    Compute hash for an activity entry using the hash chain
    log_hash = SHA256(canonical_json(entry_without_hashes) || prev_hash)
    """
    combined = canonical_json(entry_data) + (prev_hash or "")
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()


def new_chain_seed() -> str:
    return secrets.token_hex(32)
