import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from mktops.core.clock import utcnow
from mktops.core.errors import DemandValidationError, PersistenceError, RecordNotFound
from mktops.core.security import require_permission
from mktops.db import models
from mktops.db.session import get_db
from mktops.services import classifier
from mktops.services.status_kinds import is_delivered, is_production, status_kind
from mktops.services.table_store import TableStore
from mktops.services.timer import elapsed_for
from mktops.services.transitions import StatusTransitionController

logger = logging.getLogger("mktops.demands")

router = APIRouter(tags=["Demandas"])


class DemandCreate(BaseModel):
    title: str | None = None
    type_id: str | None = None
    deadline: date | None = None
    description: str | None = None
    caption: str | None = None
    reference_link: str | None = None
    drive_link: str | None = None
    priority: str = "Média"
    origin_id: str | None = None
    responsible_id: str | None = None
    status_id: str | None = None


class DemandUpdate(BaseModel):
    model_config = {"extra": "forbid"}

    title: str | None = None
    description: str | None = None
    caption: str | None = None
    reference_link: str | None = None
    drive_link: str | None = None
    priority: str | None = None
    type_id: str | None = None
    origin_id: str | None = None
    responsible_id: str | None = None
    deadline: date | None = None


class StatusChange(BaseModel):
    status_id: str = Field(..., min_length=1)
    from_status_id: str | None = None


class BulkSelection(BaseModel):
    ids: list[str] = Field(..., min_length=1)

    def unique_ids(self) -> list[str]:
        return list(dict.fromkeys(self.ids))


class BulkStatusChange(BulkSelection):
    status_id: str = Field(..., min_length=1)


class BulkAssign(BulkSelection):
    responsible_id: str | None = None


def _ref(obj, *fields) -> dict | None:
    if obj is None:
        return None
    return {field: getattr(obj, field) for field in fields}


def serialize_demand(demand: models.Demand, now=None, codes: dict[str, str] | None = None) -> dict:
    now = now or utcnow()
    status_ref = _ref(demand.status, "id", "name", "color", "order")
    if status_ref is not None:
        status_ref["kind"] = status_kind(demand.status)
    return {
        "id": demand.id,
        "sequence_code": (codes or {}).get(demand.id),
        "title": demand.title,
        "description": demand.description,
        "caption": demand.caption,
        "reference_link": demand.reference_link,
        "drive_link": demand.drive_link,
        "priority": demand.priority,
        "status_id": demand.status_id,
        "type_id": demand.type_id,
        "origin_id": demand.origin_id,
        "responsible_id": demand.responsible_id,
        "created_by": demand.created_by,
        "deadline": demand.deadline,
        "production_started_at": demand.production_started_at,
        "accumulated_time": demand.accumulated_time,
        "finished_at": demand.finished_at,
        "created_at": demand.created_at,
        "updated_at": demand.updated_at,
        "status": status_ref,
        "demand_type": _ref(demand.demand_type, "id", "name"),
        "origin": _ref(demand.origin, "id", "name"),
        "responsible": _ref(demand.responsible, "id", "name", "avatar_url"),
        "timer": elapsed_for(demand, now).as_dict(),
        "is_delayed": classifier.is_delayed(demand, now),
    }


def _check_priority(priority: str | None) -> None:
    if priority is not None and priority not in models.PRIORITIES:
        raise HTTPException(status_code=400, detail="Prioridade invalida")


def _blank_to_none(values: dict) -> dict:
    return {key: (None if value == "" else value) for key, value in values.items()}


@router.get("/demands")
def list_demands(
    tab: str | None = None,
    q: str | None = None,
    designer_id: str | None = None,
    date_preset: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    sort: str | None = None,
    direction: str | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("demands", "view")),
):
    now = utcnow()
    demands = TableStore(db).list("demands")
    codes = classifier.sequence_codes(demands)
    try:
        criteria = classifier.DemandFilter(
            tab=tab,
            search=q,
            designer_id=designer_id,
            date_range=classifier.date_range_for(date_preset, start=start_date, end=end_date),
        )
        filtered = classifier.filter_demands(demands, criteria, now=now, codes=codes)
        ordered = classifier.sort_demands(filtered, tab=tab, key=sort, direction=direction, now=now)
    except classifier.InvalidFilter as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    start = (page - 1) * page_size
    expiring = classifier.about_to_expire(demands)
    return {
        "items": [serialize_demand(d, now, codes) for d in ordered[start : start + page_size]],
        "total": len(ordered),
        "page": page,
        "page_size": page_size,
        "counters": classifier.tab_counters(demands, now),
        "about_to_expire": [{"id": d.id, "title": d.title, "deadline": d.deadline} for d in expiring],
    }


@router.post("/demands", status_code=status.HTTP_201_CREATED)
def create_demand(
    payload: DemandCreate,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("demands", "create")),
):
    missing = [
        name
        for name, value in (("title", payload.title), ("type_id", payload.type_id), ("deadline", payload.deadline))
        if not value or (isinstance(value, str) and not value.strip())
    ]
    if missing:
        raise DemandValidationError(missing)
    _check_priority(payload.priority)

    store = TableStore(db)
    status_id = payload.status_id
    if not status_id:
        default = classifier.default_status(store.list("statuses", order="order", desc=False))
        if default is None:
            raise HTTPException(
                status_code=400,
                detail="Status nao definido. Cadastre ao menos um status.",
            )
        status_id = default.id

    row = _blank_to_none(payload.model_dump(exclude={"status_id"}))
    row.update({"status_id": status_id, "created_by": current.id, "accumulated_time": 0})
    target = store.require("statuses", status_id)
    if is_production(target):
        row["production_started_at"] = utcnow()
    if is_delivered(target):
        row["finished_at"] = utcnow()
    demand = store.insert("demands", row, actor_id=current.id)
    logger.info("Demanda criada id=%s status=%s", demand.id, target.name)
    return serialize_demand(demand)


def _bulk_apply(ids: list[str], action) -> dict:
    """Aplica ``action`` demanda a demanda; falhas de uma nao interrompem as demais."""
    done, failed = [], []
    for demand_id in ids:
        try:
            done.append(action(demand_id))
        except RecordNotFound as exc:
            failed.append({"id": demand_id, "detail": str(exc)})
        except PersistenceError as exc:
            logger.warning("Falha em lote demand=%s code=%s", demand_id, exc.code)
            failed.append({"id": demand_id, "detail": exc.user_message})
    return {"updated": done, "failed": failed}


@router.post("/demands/bulk/status")
def bulk_change_status(
    payload: BulkStatusChange,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("demands", "edit")),
):
    store = TableStore(db)
    store.require("statuses", payload.status_id)
    controller = StatusTransitionController(store)

    def _transition(demand_id: str) -> dict:
        result = controller.transition(demand_id, payload.status_id, actor_id=current.id)
        return {"id": demand_id, "effect": result.effect, "reconciled": result.reconciled}

    result = _bulk_apply(payload.unique_ids(), _transition)
    logger.info(
        "Status em lote status=%s ok=%s falhas=%s",
        payload.status_id,
        len(result["updated"]),
        len(result["failed"]),
    )
    return result


@router.post("/demands/bulk/assign")
def bulk_assign(
    payload: BulkAssign,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("demands", "edit")),
):
    store = TableStore(db)
    responsible_id = payload.responsible_id or None
    if responsible_id:
        store.require("profiles", responsible_id)

    def _assign(demand_id: str) -> dict:
        store.update("demands", demand_id, {"responsible_id": responsible_id}, actor_id=current.id)
        return {"id": demand_id}

    return _bulk_apply(payload.unique_ids(), _assign)


@router.post("/demands/bulk/delete")
def bulk_delete(
    payload: BulkSelection,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("demands", "delete")),
):
    store = TableStore(db)

    def _delete(demand_id: str) -> dict:
        store.delete("demands", demand_id, actor_id=current.id)
        return {"id": demand_id}

    return _bulk_apply(payload.unique_ids(), _delete)


@router.get("/demands/{demand_id}")
def get_demand(
    demand_id: str,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("demands", "view")),
):
    store = TableStore(db)
    demand = store.require("demands", demand_id)
    codes = classifier.sequence_codes(store.list("demands"))
    return serialize_demand(demand, codes=codes)


@router.patch("/demands/{demand_id}")
def update_demand(
    demand_id: str,
    payload: DemandUpdate,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("demands", "edit")),
):
    updates = _blank_to_none(payload.model_dump(exclude_unset=True))
    if not updates:
        raise HTTPException(status_code=400, detail="Nenhum campo enviado")
    if "title" in updates and not updates["title"]:
        raise DemandValidationError(["title"])
    _check_priority(updates.get("priority"))
    demand = TableStore(db).update("demands", demand_id, updates, actor_id=current.id)
    return serialize_demand(demand)


@router.post("/demands/{demand_id}/status")
def change_status(
    demand_id: str,
    payload: StatusChange,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("demands", "edit")),
):
    controller = StatusTransitionController(TableStore(db))
    result = controller.transition(
        demand_id,
        payload.status_id,
        actor_id=current.id,
        from_status_id=payload.from_status_id,
    )
    return {
        "demand": serialize_demand(result.demand),
        "effect": result.effect,
        "message": result.message,
        "reconciled": result.reconciled,
    }


@router.get("/demands/{demand_id}/timer")
def get_timer(
    demand_id: str,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("demands", "view")),
):
    demand = TableStore(db).require("demands", demand_id)
    return elapsed_for(demand).as_dict()


@router.delete("/demands/{demand_id}")
def delete_demand(
    demand_id: str,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("demands", "delete")),
):
    TableStore(db).delete("demands", demand_id, actor_id=current.id)
    return {"success": True}
