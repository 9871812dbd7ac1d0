from typing import Dict, Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas.rollback import (
    RetentionResponse,
    RollbackPreview,
    RollbackRequest,
    RollbackResult,
    RollbackToPointPreview,
    RollbackToPointRequest,
    RollbackToPointResult,
)
from ..services.ledger import ActivityLedger, get_ledger
from ..services.retention import UNLIMITED
from ..services.rollback_preview import REASON_NOT_FOUND, REASON_UNAUTHORIZED
from .auth import get_actor, get_current_user_id

router = APIRouter()


def _status_for(result: RollbackResult) -> int:
    if result.requires_force:
        return status.HTTP_409_CONFLICT
    if result.reason_code == REASON_NOT_FOUND:
        return status.HTTP_404_NOT_FOUND
    if result.reason_code == REASON_UNAUTHORIZED:
        return status.HTTP_403_FORBIDDEN
    return status.HTTP_400_BAD_REQUEST


def _finish(db: Session, result: RollbackResult):
    """Commit a successful result; roll back and map a failed one to an error status"""
    if result.success:
        db.commit()
        return result
    db.rollback()
    return JSONResponse(status_code=_status_for(result), content=result.model_dump(mode="json"))


@router.post("/rollback/{activity_id}/preview", response_model=RollbackPreview)
def preview_rollback(
    activity_id: str,
    request: Optional[RollbackRequest] = None,
    user_id: str = Depends(get_current_user_id),
    ledger: ActivityLedger = Depends(get_ledger),
    db: Session = Depends(get_db)
):
    """Show what rolling back an activity would do, without changing anything"""
    request = request or RollbackRequest()
    return ledger.preview_rollback(db, activity_id, user_id, request.context, force=request.force)


@router.post("/rollback/{activity_id}", response_model=RollbackResult)
def execute_rollback(
    activity_id: str,
    request: Optional[RollbackRequest] = None,
    user_id: str = Depends(get_current_user_id),
    actor: Dict[str, Optional[str]] = Depends(get_actor),
    ledger: ActivityLedger = Depends(get_ledger),
    db: Session = Depends(get_db)
):
    """Restore the values an activity replaced. Safe to retry."""
    request = request or RollbackRequest()
    result = ledger.execute_rollback(db, activity_id, user_id, request.context, force=request.force, actor=actor)
    return _finish(db, result)


@router.post("/redo/{activity_id}/preview", response_model=RollbackPreview)
def preview_redo(
    activity_id: str,
    request: Optional[RollbackRequest] = None,
    user_id: str = Depends(get_current_user_id),
    ledger: ActivityLedger = Depends(get_ledger),
    db: Session = Depends(get_db)
):
    request = request or RollbackRequest()
    return ledger.preview_redo(db, activity_id, user_id, request.context, force=request.force)


@router.post("/redo/{activity_id}", response_model=RollbackResult)
def execute_redo(
    activity_id: str,
    request: Optional[RollbackRequest] = None,
    user_id: str = Depends(get_current_user_id),
    actor: Dict[str, Optional[str]] = Depends(get_actor),
    ledger: ActivityLedger = Depends(get_ledger),
    db: Session = Depends(get_db)
):
    """Undo a rollback. Safe to retry."""
    request = request or RollbackRequest()
    result = ledger.execute_redo(db, activity_id, user_id, request.context, force=request.force, actor=actor)
    return _finish(db, result)


@router.post("/rollback-to-point/{activity_id}/preview", response_model=RollbackToPointPreview)
def preview_rollback_to_point(
    activity_id: str,
    request: Optional[RollbackToPointRequest] = None,
    user_id: str = Depends(get_current_user_id),
    ledger: ActivityLedger = Depends(get_ledger),
    db: Session = Depends(get_db)
):
    """List every change since an activity and whether each can be reverted"""
    request = request or RollbackToPointRequest()
    return ledger.preview_rollback_to_point(db, activity_id, user_id, request.context, force=request.force)


@router.post("/rollback-to-point/{activity_id}", response_model=RollbackToPointResult)
def execute_rollback_to_point(
    activity_id: str,
    request: Optional[RollbackToPointRequest] = None,
    user_id: str = Depends(get_current_user_id),
    actor: Dict[str, Optional[str]] = Depends(get_actor),
    ledger: ActivityLedger = Depends(get_ledger),
    db: Session = Depends(get_db)
):
    """Revert everything since an activity, all or nothing"""
    request = request or RollbackToPointRequest()
    preview = ledger.preview_rollback_to_point(db, activity_id, user_id, request.context, force=request.force)
    if preview.reason == "Activity not found":
        result = RollbackToPointResult(success=False, errors=[preview.reason])
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=result.model_dump(mode="json"))

    result = ledger.execute_rollback_to_point(
        db, activity_id, user_id, request.context, preview=preview, force=request.force, actor=actor
    )
    if not result.success:
        db.rollback()
        code = status.HTTP_400_BAD_REQUEST if preview.reason else status.HTTP_409_CONFLICT
        return JSONResponse(status_code=code, content=result.model_dump(mode="json"))
    db.commit()
    return result


@router.get("/retention", response_model=RetentionResponse)
def get_retention(
    user_id: str = Depends(get_current_user_id),
    ledger: ActivityLedger = Depends(get_ledger),
    db: Session = Depends(get_db)
):
    """How far back the caller can browse and revert"""
    days = ledger.get_user_retention_days(db, user_id)
    return RetentionResponse(
        user_id=user_id,
        retention_days=days,
        unlimited=days == UNLIMITED,
        earliest_visible=ledger.retention.window_start(days),
    )
