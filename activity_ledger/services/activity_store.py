"""Append-only, hash-chained activity log."""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

import pydantic
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import ChainIntegrityError, ConflictError, NotFoundError, ValidationError
from ..core.hashchain import as_utc, canonical_entry, compute_entry_hash, new_chain_seed
from ..core.values import normalize_field_values
from ..db import insert_or_ignore
from ..models.activity import ActivityChainState, ActivityLog, ActivityOperation
from ..schemas.activity import (
    ActivityCreate,
    ChainStatsResponse,
    ChainVerificationResponse,
    EntryVerificationResponse,
)
from .collaborators import Clock, SystemClock

logger = logging.getLogger("activity_ledger.activity_store")

CHAIN_STATE_ID = 1
VALID_OPERATIONS = {op.value for op in ActivityOperation}


class ActivityLogStore:
    """Records and reads immutable activity entries on a single global hash chain."""

    def __init__(
        self,
        clock: Optional[Clock] = None,
        chain_seed: Optional[str] = None,
        default_limit: Optional[int] = None,
        max_limit: Optional[int] = None,
    ):
        self.clock = clock or SystemClock()
        self.chain_seed = chain_seed or settings.chain_seed
        self.default_limit = default_limit or settings.history_default_limit
        self.max_limit = max_limit or settings.history_max_limit

    # ---------- append ----------

    def _lock_tail(self, db: Session) -> ActivityChainState:
        """Take the write lock on the chain tail row and return it fresh."""
        insert_or_ignore(db, ActivityChainState.__table__, {"id": CHAIN_STATE_ID, "last_seq": 0})
        # A no-op UPDATE is enough to hold the row (Postgres) or database (SQLite) write lock
        db.execute(
            update(ActivityChainState)
            .where(ActivityChainState.id == CHAIN_STATE_ID)
            .values(last_seq=ActivityChainState.last_seq)
            .execution_options(synchronize_session=False)
        )
        return db.execute(
            select(ActivityChainState)
            .where(ActivityChainState.id == CHAIN_STATE_ID)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()

    def append(self, db: Session, entry: Union[ActivityCreate, Dict[str, Any]]) -> ActivityLog:
        """Chain a new entry onto the tail and insert it. Does not commit."""
        if not isinstance(entry, ActivityCreate):
            try:
                entry = ActivityCreate(**entry)
            except pydantic.ValidationError as e:
                raise ValidationError(f"Invalid activity entry: {e.errors()[0]['msg']}")

        previous_values = normalize_field_values(entry.previous_values)
        new_values = normalize_field_values(entry.new_values)
        metadata = normalize_field_values(entry.metadata)

        state = self._lock_tail(db)
        seq = state.last_seq + 1

        row = ActivityLog(
            id=uuid.uuid4().hex,
            seq=seq,
            timestamp=as_utc(self.clock.now()),
            user_id=entry.user_id,
            actor_email=entry.actor_email,
            actor_display_name=entry.actor_display_name,
            is_ai_generated=bool(entry.is_ai_generated),
            ai_provider=entry.ai_provider,
            ai_model=entry.ai_model,
            ai_conversation_id=entry.ai_conversation_id,
            operation=entry.operation.value,
            resource_type=entry.resource_type.value,
            resource_id=entry.resource_id,
            resource_title=entry.resource_title,
            drive_id=entry.drive_id,
            page_id=entry.page_id,
            updated_fields=list(entry.updated_fields) if entry.updated_fields is not None else None,
            previous_values=previous_values,
            new_values=new_values,
            activity_metadata=metadata,
            is_archived=False,
            rollback_from_activity_id=entry.rollback_from_activity_id,
            rollback_source_operation=(
                entry.rollback_source_operation.value if entry.rollback_source_operation else None
            ),
        )

        if state.last_hash:
            prev_hash = state.last_hash
            row.previous_log_hash = prev_hash
        else:
            # First entry of the chain: the seed stands in for the previous hash
            prev_hash = state.chain_seed or self.chain_seed or new_chain_seed()
            row.chain_seed = prev_hash
            state.chain_seed = prev_hash

        row.log_hash = compute_entry_hash(canonical_entry(row), prev_hash)
        state.last_seq = seq
        state.last_hash = row.log_hash

        db.add(row)
        try:
            db.flush()
        except IntegrityError as e:
            raise ConflictError("The activity chain advanced concurrently; retry the operation") from e
        logger.debug(
            "Appended activity %s seq=%s op=%s %s/%s",
            row.id, seq, row.operation, row.resource_type, row.resource_id,
        )
        return row

    # ---------- reads ----------

    def get_by_id(self, db: Session, activity_id: str) -> Optional[ActivityLog]:
        return db.query(ActivityLog).filter(ActivityLog.id == activity_id).first()

    def find_redo_of(self, db: Session, rollback_id: str) -> Optional[ActivityLog]:
        return db.query(ActivityLog).filter(
            ActivityLog.rollback_from_activity_id == rollback_id,
            ActivityLog.operation == ActivityOperation.REDO.value
        ).order_by(ActivityLog.seq.asc()).first()

    def find_rollback_of(self, db: Session, activity_id: str) -> Optional[ActivityLog]:
        """The live rollback of an activity: one that no redo has reverted yet."""
        rollbacks = db.query(ActivityLog).filter(
            ActivityLog.rollback_from_activity_id == activity_id,
            ActivityLog.operation == ActivityOperation.ROLLBACK.value
        ).order_by(ActivityLog.seq.desc()).all()
        for rollback in rollbacks:
            if self.find_redo_of(db, rollback.id) is None:
                return rollback
        return None

    def validate_query(
        self,
        limit: Optional[int],
        offset: Optional[int],
        start_date: Optional[datetime],
        end_date: Optional[datetime],
        operation: Optional[str],
    ) -> Tuple[int, int]:
        if limit is None:
            limit = self.default_limit
        if offset is None:
            offset = 0
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1 or limit > self.max_limit:
            raise ValidationError(f"limit must be between 1 and {self.max_limit}")
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise ValidationError("offset must be zero or greater")
        if start_date and end_date and as_utc(start_date) > as_utc(end_date):
            raise ValidationError("startDate must not be after endDate")
        if operation is not None and operation not in VALID_OPERATIONS:
            raise ValidationError(f"Unknown operation '{operation}'")
        return limit, offset

    def _history(
        self,
        db: Session,
        conditions: list,
        limit: Optional[int] = None,
        offset: Optional[int] = 0,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        actor_id: Optional[str] = None,
        operation: Optional[str] = None,
        include_ai_only: bool = False,
        include_archived: bool = False,
    ) -> Dict[str, Any]:
        limit, offset = self.validate_query(limit, offset, start_date, end_date, operation)

        if start_date:
            conditions.append(ActivityLog.timestamp >= as_utc(start_date))
        if end_date:
            conditions.append(ActivityLog.timestamp <= as_utc(end_date))
        if actor_id:
            conditions.append(ActivityLog.user_id == actor_id)
        if operation:
            conditions.append(ActivityLog.operation == operation)
        if include_ai_only:
            conditions.append(ActivityLog.is_ai_generated.is_(True))
        if not include_archived:
            conditions.append(ActivityLog.is_archived.is_(False))

        query = db.query(ActivityLog).filter(*conditions)
        total = query.count()
        activities = (
            query.order_by(ActivityLog.timestamp.desc(), ActivityLog.seq.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return {"activities": activities, "total": total, "limit": limit, "offset": offset}

    def query_history(self, db: Session, resource_id: str, **options: Any) -> Dict[str, Any]:
        """History of one resource, newest first, paginated."""
        return self._history(db, [ActivityLog.resource_id == resource_id], **options)

    def query_scope_history(
        self,
        db: Session,
        page_id: Optional[str] = None,
        drive_id: Optional[str] = None,
        resource_type: Optional[str] = None,
        **options: Any,
    ) -> Dict[str, Any]:
        """History of everything under a page or a drive, newest first, paginated."""
        if not page_id and not drive_id:
            raise ValidationError("A page or drive scope is required")
        conditions = []
        if page_id:
            conditions.append(ActivityLog.page_id == page_id)
        if drive_id:
            conditions.append(ActivityLog.drive_id == drive_id)
        if resource_type:
            conditions.append(ActivityLog.resource_type == resource_type)
        return self._history(db, conditions, **options)

    def activities_since(self, db: Session, target: ActivityLog, scope_conditions: list) -> List[ActivityLog]:
        """The target and every later activity in scope, oldest first."""
        return db.query(ActivityLog).filter(
            *scope_conditions,
            or_(
                ActivityLog.timestamp > target.timestamp,
                and_(ActivityLog.timestamp == target.timestamp, ActivityLog.seq >= target.seq),
            )
        ).order_by(ActivityLog.timestamp.asc(), ActivityLog.seq.asc()).all()

    # ---------- integrity ----------

    def verify_chain(
        self,
        db: Session,
        from_id: Optional[str] = None,
        to_id: Optional[str] = None,
    ) -> ChainVerificationResponse:
        """Recompute hashes over a seq-ordered range; raise at the first mismatch."""
        query = db.query(ActivityLog)
        expected_prev: Optional[str] = None

        if from_id:
            start = self.get_by_id(db, from_id)
            if start is None:
                raise NotFoundError(f"Activity {from_id} not found")
            query = query.filter(ActivityLog.seq >= start.seq)
            predecessor = db.query(ActivityLog).filter(
                ActivityLog.seq < start.seq
            ).order_by(ActivityLog.seq.desc()).first()
            if predecessor is not None:
                expected_prev = predecessor.log_hash
        if to_id:
            end = self.get_by_id(db, to_id)
            if end is None:
                raise NotFoundError(f"Activity {to_id} not found")
            query = query.filter(ActivityLog.seq <= end.seq)

        entries_verified = 0
        first_entry_id = None
        last_entry_id = None
        chain_seed = None

        for position, row in enumerate(query.order_by(ActivityLog.seq.asc()).yield_per(500)):
            if first_entry_id is None:
                first_entry_id = row.id

            if expected_prev is None:
                if not row.chain_seed:
                    self._raise_break(row, position, "First entry carries no chain seed")
                prev_used = row.chain_seed
                chain_seed = row.chain_seed
            else:
                if row.chain_seed or row.previous_log_hash != expected_prev:
                    self._raise_break(row, position, "Previous hash does not link to the preceding entry")
                prev_used = expected_prev

            computed = compute_entry_hash(canonical_entry(row), prev_used)
            if computed != row.log_hash:
                self._raise_break(row, position, "Hash mismatch - entry data may have been modified")

            expected_prev = row.log_hash
            last_entry_id = row.id
            entries_verified += 1

        logger.debug("Verified %s chained entries", entries_verified)
        return ChainVerificationResponse(
            chain_valid=True,
            entries_verified=entries_verified,
            first_entry_id=first_entry_id,
            last_entry_id=last_entry_id,
            chain_seed=chain_seed,
        )

    def _raise_break(self, row: ActivityLog, position: int, reason: str) -> None:
        message = (
            f"Hash chain break detected at position {position}. "
            f"Entry ID: {row.id}. Operation: {row.operation} on {row.resource_type}. "
            f"Reason: {reason}"
        )
        logger.warning(message)
        raise ChainIntegrityError(message, entry_id=row.id, position=position)

    def verify_entry(self, db: Session, activity_id: str) -> Optional[EntryVerificationResponse]:
        row = self.get_by_id(db, activity_id)
        if row is None:
            return None
        prev_used = row.chain_seed or row.previous_log_hash or ""
        computed = compute_entry_hash(canonical_entry(row), prev_used)
        return EntryVerificationResponse(
            id=row.id,
            is_valid=computed == row.log_hash,
            stored_hash=row.log_hash,
            computed_hash=computed,
            previous_hash_used=prev_used,
        )

    def chain_stats(self, db: Session) -> ChainStatsResponse:
        total = db.query(func.count(ActivityLog.id)).scalar() or 0
        archived = db.query(func.count(ActivityLog.id)).filter(ActivityLog.is_archived.is_(True)).scalar() or 0
        first = db.query(ActivityLog).order_by(ActivityLog.seq.asc()).first()
        last = db.query(ActivityLog).order_by(ActivityLog.seq.desc()).first()
        return ChainStatsResponse(
            total_entries=total,
            archived_entries=archived,
            last_seq=last.seq if last else 0,
            has_chain_seed=bool(first and first.chain_seed),
            first_entry_timestamp=as_utc(first.timestamp) if first else None,
            last_entry_timestamp=as_utc(last.timestamp) if last else None,
        )

    # ---------- housekeeping ----------

    def archive_older_than(self, db: Session, cutoff: datetime) -> int:
        """Flag entries older than cutoff as archived. Rows are never deleted or rehashed."""
        result = db.execute(
            update(ActivityLog)
            .where(ActivityLog.timestamp < as_utc(cutoff), ActivityLog.is_archived.is_(False))
            .values(is_archived=True)
            .execution_options(synchronize_session=False)
        )
        logger.info("Archived %s activities older than %s", result.rowcount, cutoff.isoformat())
        return result.rowcount
