from datetime import date, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from mktops.api.v1.users import active_designers
from mktops.core.clock import local_today, utcnow
from mktops.core.security import require_permission
from mktops.db import models
from mktops.db.session import get_db
from mktops.services import analytics, classifier
from mktops.services.permissions import PermissionResolver, get_permission_resolver
from mktops.services.table_store import TableStore

router = APIRouter(tags=["Indicadores"])


@router.get("/analytics/dashboard")
def dashboard(
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("dashboard", "view")),
):
    now = utcnow()
    store = TableStore(db)
    logs = (
        db.query(models.LogEntry)
        .filter(
            models.LogEntry.table_name == "demands",
            models.LogEntry.created_at >= now - timedelta(days=days),
        )
        .order_by(models.LogEntry.created_at.desc())
        .all()
    )
    return analytics.dashboard_stats(
        store.list("demands"),
        logs,
        current.id,
        store.list("statuses", order="order", desc=False),
        now=now,
    )


@router.get("/analytics/executive")
def executive(
    start: date,
    end: date,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("dashboard", "view")),
):
    if start > end:
        raise HTTPException(status_code=400, detail="Periodo invalido")
    demands = (
        db.query(models.Demand)
        .filter(models.Demand.deadline >= start, models.Demand.deadline <= end)
        .all()
    )
    return analytics.executive_kpis(demands, start, end)


@router.get("/analytics/predictions")
def predictions(
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("demands", "view")),
):
    return analytics.deadline_predictions(TableStore(db).list("demands"))


@router.get("/analytics/designers")
def designer_report(
    date_preset: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    designer_id: str | None = None,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("dashboard", "view")),
    resolver: PermissionResolver = Depends(get_permission_resolver),
):
    try:
        period = classifier.date_range_for(date_preset, start=start_date, end=end_date)
    except classifier.InvalidFilter as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    # Sem acesso a equipe o relatorio mostra apenas o proprio usuario.
    if resolver.can(db, current, "team", "view"):
        designers = active_designers(db)
        if designer_id and designer_id != "all":
            designers = [d for d in designers if d.id == designer_id]
    else:
        designers = [current]
    return analytics.designer_report(TableStore(db).list("demands"), designers, period)


@router.get("/analytics/capacity")
def capacity(
    year: int | None = Query(None, ge=2000, le=2100),
    month: int | None = Query(None, ge=1, le=12),
    designer_id: str | None = None,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("dashboard", "view")),
):
    today = local_today()
    return analytics.capacity_calendar(
        TableStore(db).list("demands"),
        year or today.year,
        month or today.month,
        designer_id=None if designer_id in (None, "", "all") else designer_id,
        today=today,
    )
