from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from mktops.core.security import require_permission
from mktops.db import models
from mktops.db.session import get_db
from mktops.services.status_kinds import KINDS, infer_status_kind, status_kind
from mktops.services.table_store import TableStore, row_to_dict

router = APIRouter(tags=["Cadastros"])

REGISTER_TABLES = ("statuses", "origins", "demand_types", "job_titles")


class RegisterPayload(BaseModel):
    model_config = {"extra": "forbid"}

    name: str | None = Field(None, min_length=1)
    color: str | None = None
    order: int | None = None
    kind: str | None = None


def _check_table(table: str) -> None:
    if table not in REGISTER_TABLES:
        raise HTTPException(status_code=404, detail="Cadastro nao encontrado")


def _status_in_use(db: Session, record_id: str) -> bool:
    return db.query(models.Demand).filter(models.Demand.status_id == record_id).count() > 0


def _check_kind_change(db: Session, current: models.Status, values: dict) -> None:
    """Status com demandas nao pode mudar de tipo efetivo."""
    after = {
        "kind": values.get("kind", current.kind),
        "name": values.get("name", current.name),
    }
    if status_kind(after) != status_kind(current) and _status_in_use(db, current.id):
        raise HTTPException(status_code=400, detail="Tipo de status em uso por demandas nao pode mudar")


def _prepare(table: str, values: dict, creating: bool) -> dict:
    if table != "statuses":
        extra = {"color", "order", "kind"} & set(values)
        if extra:
            raise HTTPException(status_code=400, detail=f"Campos invalidos: {', '.join(sorted(extra))}")
        return values
    if values.get("kind") is not None and values["kind"] not in KINDS:
        raise HTTPException(status_code=400, detail="Tipo de status invalido")
    if creating and not values.get("kind"):
        values["kind"] = infer_status_kind(values.get("name"))
    if creating and values.get("order") is None:
        values["order"] = 0
    return values


@router.get("/statuses")
def list_statuses(
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("demands", "view")),
):
    return [row_to_dict(row) for row in TableStore(db).list("statuses", order="order", desc=False)]


@router.get("/registers/{table}")
def list_register(
    table: str,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("registers", "view")),
):
    _check_table(table)
    store = TableStore(db)
    if table == "statuses":
        rows = store.list(table, order="order", desc=False)
    else:
        rows = store.list(table, order="name", desc=False)
    return [row_to_dict(row) for row in rows]


@router.post("/registers/{table}", status_code=status.HTTP_201_CREATED)
def create_register(
    table: str,
    payload: RegisterPayload,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("registers", "create")),
):
    _check_table(table)
    values = payload.model_dump(exclude_unset=True)
    if not values.get("name"):
        raise HTTPException(status_code=400, detail="Nome obrigatorio")
    row = TableStore(db).insert(table, _prepare(table, values, creating=True), actor_id=current.id)
    return row_to_dict(row)


@router.put("/registers/{table}/{record_id}")
def update_register(
    table: str,
    record_id: str,
    payload: RegisterPayload,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("registers", "edit")),
):
    _check_table(table)
    values = _prepare(table, payload.model_dump(exclude_unset=True), creating=False)
    if not values:
        raise HTTPException(status_code=400, detail="Nenhum campo enviado")
    store = TableStore(db)
    if table == "statuses" and ({"kind", "name"} & set(values)):
        _check_kind_change(db, store.require(table, record_id), values)
    row = store.update(table, record_id, values, actor_id=current.id)
    return row_to_dict(row)


@router.delete("/registers/{table}/{record_id}")
def delete_register(
    table: str,
    record_id: str,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("registers", "delete")),
):
    _check_table(table)
    if table == "statuses":
        if _status_in_use(db, record_id):
            raise HTTPException(status_code=400, detail="Status em uso por demandas")
    TableStore(db).delete(table, record_id, actor_id=current.id)
    return {"success": True}
