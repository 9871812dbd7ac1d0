from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, JSON, Index
from enum import Enum as PyEnum
from ..db import Base


class ActivityOperation(str, PyEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    RESTORE = "restore"
    REORDER = "reorder"
    PERMISSION_GRANT = "permission_grant"
    PERMISSION_UPDATE = "permission_update"
    PERMISSION_REVOKE = "permission_revoke"
    TRASH = "trash"
    MOVE = "move"
    AGENT_CONFIG_UPDATE = "agent_config_update"
    MEMBER_ADD = "member_add"
    MEMBER_REMOVE = "member_remove"
    MEMBER_ROLE_CHANGE = "member_role_change"
    ROLE_REORDER = "role_reorder"
    OWNERSHIP_TRANSFER = "ownership_transfer"
    MESSAGE_UPDATE = "message_update"
    MESSAGE_DELETE = "message_delete"
    ROLLBACK = "rollback"
    REDO = "redo"
    LOGIN = "login"
    LOGOUT = "logout"
    SIGNUP = "signup"
    PASSWORD_CHANGE = "password_change"
    EMAIL_CHANGE = "email_change"
    TOKEN_CREATE = "token_create"
    TOKEN_REVOKE = "token_revoke"
    UPLOAD = "upload"
    CONVERT = "convert"
    ACCOUNT_DELETE = "account_delete"
    PROFILE_UPDATE = "profile_update"
    AVATAR_UPDATE = "avatar_update"
    CONVERSATION_UNDO = "conversation_undo"
    CONVERSATION_UNDO_WITH_CHANGES = "conversation_undo_with_changes"


class ResourceType(str, PyEnum):
    PAGE = "page"
    DRIVE = "drive"
    PERMISSION = "permission"
    AGENT = "agent"
    MEMBER = "member"
    ROLE = "role"
    MESSAGE = "message"
    FILE = "file"
    TOKEN = "token"
    CONVERSATION = "conversation"
    USER = "user"
    DEVICE = "device"


class ActivityLog(Base):
    """One immutable, hash-chained audit entry.

    Rows are write-once; only is_archived may change after insertion.
    """
    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("ix_activity_logs_resource_ts", "resource_id", "timestamp"),
        Index("ix_activity_logs_page_ts", "page_id", "timestamp"),
        Index("ix_activity_logs_drive_ts", "drive_id", "timestamp"),
    )

    id = Column(String(32), primary_key=True)
    # Global append order of the single hash chain
    seq = Column(Integer, unique=True, nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)

    user_id = Column(String(64), nullable=True, index=True)
    actor_email = Column(String(255), nullable=True)
    actor_display_name = Column(String(255), nullable=True)
    is_ai_generated = Column(Boolean, nullable=False, default=False)
    ai_provider = Column(String(100), nullable=True)
    ai_model = Column(String(100), nullable=True)
    ai_conversation_id = Column(String(64), nullable=True)

    operation = Column(String(40), nullable=False, index=True)
    resource_type = Column(String(40), nullable=False)
    resource_id = Column(String(64), nullable=False)
    resource_title = Column(String(500), nullable=True)
    drive_id = Column(String(64), nullable=True)
    page_id = Column(String(64), nullable=True)

    updated_fields = Column(JSON, nullable=True)
    previous_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    activity_metadata = Column("metadata", JSON, nullable=True)

    is_archived = Column(Boolean, nullable=False, default=False)

    previous_log_hash = Column(String(64), nullable=True)
    log_hash = Column(String(64), nullable=False)
    chain_seed = Column(String(64), nullable=True)

    rollback_from_activity_id = Column(String(32), nullable=True, index=True)
    rollback_source_operation = Column(String(40), nullable=True)


class ActivityChainState(Base):
    """Tail pointer of the hash chain. A single row, locked by every append."""
    __tablename__ = "activity_chain_state"

    id = Column(Integer, primary_key=True)
    last_seq = Column(Integer, nullable=False, default=0)
    last_hash = Column(Text, nullable=True)
    chain_seed = Column(String(64), nullable=True)
