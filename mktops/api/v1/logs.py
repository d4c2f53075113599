from datetime import timedelta

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from mktops.core.clock import utcnow
from mktops.core.security import require_permission
from mktops.db import models
from mktops.db.session import get_db

router = APIRouter(tags=["Logs"])


def serialize_log(log: models.LogEntry, names: dict[str, str]) -> dict:
    return {
        "id": log.id,
        "user_id": log.user_id,
        "user_name": names.get(log.user_id),
        "action": log.action,
        "table_name": log.table_name,
        "record_id": log.record_id,
        "details": log.details,
        "created_at": log.created_at,
    }


def _names(db: Session) -> dict[str, str]:
    return {profile_id: name for profile_id, name in db.query(models.Profile.id, models.Profile.name).all()}


@router.get("/logs")
def list_record_logs(
    record_id: str,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("demands", "view")),
):
    logs = (
        db.query(models.LogEntry)
        .filter(models.LogEntry.record_id == record_id)
        .order_by(models.LogEntry.created_at.desc())
        .all()
    )
    names = _names(db)
    return [serialize_log(log, names) for log in logs]


@router.get("/logs/recent")
def list_recent_logs(
    days: int = 30,
    table: str | None = None,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("activity_log", "view")),
):
    query = db.query(models.LogEntry).filter(models.LogEntry.created_at >= utcnow() - timedelta(days=days))
    if table:
        query = query.filter(models.LogEntry.table_name == table)
    names = _names(db)
    return [serialize_log(log, names) for log in query.order_by(models.LogEntry.created_at.desc()).all()]
