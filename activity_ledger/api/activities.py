from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..core.exceptions import ChainIntegrityError, NotFoundError, UnauthorizedError
from ..db import get_db
from ..schemas.activity import (
    ActivityCreate,
    ActivityResponse,
    ChainStatsResponse,
    ChainVerificationResponse,
    EntryVerificationResponse,
    HistoryResponse,
)
from ..services.ledger import ActivityLedger, get_ledger
from .auth import get_current_user_id

router = APIRouter()


def _history_response(history: dict) -> HistoryResponse:
    return HistoryResponse(
        activities=[ActivityResponse.model_validate(a) for a in history["activities"]],
        total=history["total"],
        limit=history["limit"],
        offset=history["offset"],
        effective_start_date=history.get("effective_start_date"),
        retention_days=history.get("retention_days"),
    )


@router.post("", response_model=ActivityResponse, status_code=status.HTTP_201_CREATED)
def record_activity(
    entry: ActivityCreate,
    user_id: str = Depends(get_current_user_id),
    ledger: ActivityLedger = Depends(get_ledger),
    db: Session = Depends(get_db)
):
    """Append an activity to the chained log"""
    if entry.user_id is not None and entry.user_id != user_id:
        raise UnauthorizedError("Cannot record activities on behalf of another user")
    if entry.user_id is None:
        entry = entry.model_copy(update={"user_id": user_id})
    activity = ledger.record_activity(db, entry)
    db.commit()
    db.refresh(activity)
    return ActivityResponse.model_validate(activity)


@router.get("/chain/verify", response_model=ChainVerificationResponse)
def verify_chain(
    from_id: Optional[str] = None,
    to_id: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    ledger: ActivityLedger = Depends(get_ledger),
    db: Session = Depends(get_db)
):
    """Recompute the hash chain, optionally over a range of entries"""
    try:
        return ledger.verify_chain(db, from_id=from_id, to_id=to_id)
    except ChainIntegrityError as e:
        return ChainVerificationResponse(
            chain_valid=False,
            entries_verified=e.position or 0,
            break_entry_id=e.entry_id,
            break_position=e.position,
            detail=e.message,
        )


@router.get("/chain/stats", response_model=ChainStatsResponse)
def chain_stats(
    user_id: str = Depends(get_current_user_id),
    ledger: ActivityLedger = Depends(get_ledger),
    db: Session = Depends(get_db)
):
    return ledger.store.chain_stats(db)


@router.get("/pages/{page_id}/history", response_model=HistoryResponse)
def page_history(
    page_id: str,
    limit: Optional[int] = None,
    offset: int = 0,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    actor_id: Optional[str] = None,
    operation: Optional[str] = None,
    include_ai_only: bool = False,
    include_archived: bool = False,
    user_id: str = Depends(get_current_user_id),
    ledger: ActivityLedger = Depends(get_ledger),
    db: Session = Depends(get_db)
):
    """Page version history, newest first, clamped to the caller's retention window"""
    history = ledger.get_page_version_history(
        db, page_id, user_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
        actor_id=actor_id,
        operation=operation,
        include_ai_only=include_ai_only,
        include_archived=include_archived,
    )
    return _history_response(history)


@router.get("/drives/{drive_id}/history", response_model=HistoryResponse)
def drive_history(
    drive_id: str,
    limit: Optional[int] = None,
    offset: int = 0,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    actor_id: Optional[str] = None,
    operation: Optional[str] = None,
    resource_type: Optional[str] = None,
    include_ai_only: bool = False,
    include_archived: bool = False,
    user_id: str = Depends(get_current_user_id),
    ledger: ActivityLedger = Depends(get_ledger),
    db: Session = Depends(get_db)
):
    """Drive version history, newest first, clamped to the caller's retention window"""
    history = ledger.get_drive_version_history(
        db, drive_id, user_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
        actor_id=actor_id,
        operation=operation,
        resource_type=resource_type,
        include_ai_only=include_ai_only,
        include_archived=include_archived,
    )
    return _history_response(history)


@router.get("/{activity_id}", response_model=ActivityResponse)
def get_activity(
    activity_id: str,
    user_id: str = Depends(get_current_user_id),
    ledger: ActivityLedger = Depends(get_ledger),
    db: Session = Depends(get_db)
):
    activity = ledger.get_activity_by_id(db, activity_id)
    if activity is None:
        raise NotFoundError(f"Activity {activity_id} not found")
    return ActivityResponse.model_validate(activity)


@router.get("/{activity_id}/verify", response_model=EntryVerificationResponse)
def verify_activity(
    activity_id: str,
    user_id: str = Depends(get_current_user_id),
    ledger: ActivityLedger = Depends(get_ledger),
    db: Session = Depends(get_db)
):
    """Recompute a single entry's hash against its stored value"""
    result = ledger.store.verify_entry(db, activity_id)
    if result is None:
        raise NotFoundError(f"Activity {activity_id} not found")
    return result
