from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from mktops.core.security import require_permission
from mktops.db import models
from mktops.db.session import get_db
from mktops.services.permissions import (
    ACTIONS,
    RESOURCES,
    ROLES,
    PermissionResolver,
    backfill_missing_permissions,
    flags_from_row,
    get_permission_resolver,
    is_admin_role,
    missing_permission_pairs,
    normalize_role,
    toggle_permission,
)
from mktops.services.table_store import TableStore

router = APIRouter(tags=["Permissoes"])


class TogglePayload(BaseModel):
    role: str
    resource: str
    action: str


@router.get("/permissions/matrix")
def permission_matrix(
    background: BackgroundTasks,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("config", "view")),
):
    missing = missing_permission_pairs(db)
    if missing:
        background.add_task(backfill_missing_permissions, missing)

    denied = {action: False for action in ACTIONS}
    matrix = {role: {resource: dict(denied) for resource in RESOURCES} for role in ROLES}
    for row in db.query(models.RolePermission).all():
        role = normalize_role(row.role)
        if role in matrix and row.resource in matrix[role]:
            matrix[role][row.resource] = flags_from_row(row)
    for role in ROLES:
        if is_admin_role(role):
            matrix[role] = {resource: {action: True for action in ACTIONS} for resource in RESOURCES}
    return {"roles": list(ROLES), "resources": list(RESOURCES), "matrix": matrix, "missing": len(missing)}


@router.post("/permissions/toggle")
def toggle(
    payload: TogglePayload,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("config", "edit")),
    resolver: PermissionResolver = Depends(get_permission_resolver),
):
    try:
        row = toggle_permission(TableStore(db), payload.role, payload.resource, payload.action, current.id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    resolver.invalidate(row.role)
    return {"role": row.role, "resource": row.resource, **flags_from_row(row)}
