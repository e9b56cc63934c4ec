from datetime import datetime, timezone
from uuid import UUID
from sqlalchemy.orm import Session
from sqlalchemy import func
from . import models


def log_action(
    db: Session,
    user_id: str | UUID | None,
    action: str,
    controller: str,
    target_type: str | None = None,
    target_id: str | UUID | None = None,
    details: dict | None = None,
):
    log = models.ActivityLog(
        user_id=UUID(str(user_id)) if user_id else None,
        action=action,
        controller=controller,
        target_type=target_type,
        target_id=UUID(str(target_id)) if target_id else None,
        details=details or {},
        created_at=datetime.now(timezone.utc),
    )
    db.add(log)
    db.commit()
    db.refresh(log)
    return log


def generate_report(
    db: Session,
    start: datetime,
    end: datetime,
    user_id: UUID | None = None,
):
    query = db.query(models.ActivityLog).filter(
        models.ActivityLog.created_at >= start,
        models.ActivityLog.created_at <= end,
    )
    if user_id:
        query = query.filter(models.ActivityLog.user_id == user_id)
    rows = (
        query.with_entities(models.ActivityLog.controller, models.ActivityLog.action, func.count(models.ActivityLog.id))
        .group_by(models.ActivityLog.controller, models.ActivityLog.action)
        .all()
    )
    return [{"controller": r[0], "action": r[1], "count": r[2]} for r in rows]
