from uuid import UUID
from datetime import datetime
from sqlalchemy.orm import Session
from fastapi import APIRouter, Depends, HTTPException
from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas, audit

router = APIRouter(prefix="/api/activity", tags=["activity"])


def _target_user(user_id: UUID | None, current_user: models.User) -> UUID:
    if user_id is None or user_id == current_user.id:
        return current_user.id
    # other people's activity is for admins only
    if not current_user.is_admin:
        raise HTTPException(status_code=403, detail="Not authorized")
    return user_id


@router.get("", response_model=list[schemas.ActivityLogOut])
async def list_activity(
    user_id: UUID | None = None,
    controller: str | None = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    query = db.query(models.ActivityLog).filter(models.ActivityLog.user_id == _target_user(user_id, current_user))
    if controller:
        query = query.filter(models.ActivityLog.controller == controller)
    return query.order_by(models.ActivityLog.created_at.desc()).all()


@router.get("/report", response_model=list[schemas.ActivityReportItem])
async def activity_report(
    start: datetime,
    end: datetime,
    user_id: UUID | None = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return audit.generate_report(db, start, end, _target_user(user_id, current_user))
