from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.orm import Session

from mktops.core.security import get_current_profile, get_password_hash, require_admin, require_permission
from mktops.db import models
from mktops.db.session import get_db
from mktops.services.permissions import effective_role, legacy_permission_level, normalize_role
from mktops.services.table_store import TableStore

router = APIRouter(tags=["Usuarios"])


class UserCreate(BaseModel):
    name: str = Field(..., min_length=2)
    email: str
    password: str = Field(..., min_length=6)
    role: str = "designer"
    job_title_id: str | None = None
    origin: str | None = None


class UserUpdate(BaseModel):
    model_config = {"extra": "forbid"}

    name: str | None = None
    email: str | None = None
    password: str | None = None
    role: str | None = None
    job_title_id: str | None = None
    origin: str | None = None
    status: str | None = None


def serialize_profile(profile: models.Profile) -> dict:
    return {
        "id": profile.id,
        "name": profile.name,
        "email": profile.email,
        "role": effective_role(profile),
        "permission_level": profile.permission_level,
        "job_title_id": profile.job_title_id,
        "job_title_name": profile.job_title.name if profile.job_title else None,
        "origin": profile.origin,
        "status": profile.status,
        "avatar_url": profile.avatar_url,
        "created_at": profile.created_at,
    }


@router.get("/users")
def list_users(
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("team", "view")),
):
    profiles = db.query(models.Profile).order_by(models.Profile.name.asc()).all()
    return [serialize_profile(profile) for profile in profiles]


def active_designers(db: Session) -> list[models.Profile]:
    return (
        db.query(models.Profile)
        .join(models.JobTitle, models.JobTitle.id == models.Profile.job_title_id)
        .filter(models.Profile.status == "active", func.lower(models.JobTitle.name).contains("designer"))
        .order_by(models.Profile.name.asc())
        .all()
    )


@router.get("/users/designers")
def list_designers(
    db: Session = Depends(get_db),
    current: models.Profile = Depends(get_current_profile),
):
    return [serialize_profile(profile) for profile in active_designers(db)]


@router.post("/users", status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_admin),
):
    email = payload.email.strip().lower()
    if db.query(models.Profile).filter(func.lower(models.Profile.email) == email).first():
        raise HTTPException(status_code=400, detail="Email ja cadastrado")
    try:
        password_hash = get_password_hash(payload.password)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    role = normalize_role(payload.role)
    profile = TableStore(db).insert(
        "profiles",
        {
            "name": payload.name,
            "email": email,
            "password_hash": password_hash,
            "role": role,
            "permission_level": legacy_permission_level(role),
            "job_title_id": payload.job_title_id,
            "origin": payload.origin,
            "status": "active",
        },
        actor_id=current.id,
    )
    return serialize_profile(profile)


@router.put("/users/{user_id}")
def update_user(
    user_id: str,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_admin),
):
    updates = payload.model_dump(exclude_unset=True)
    password = updates.pop("password", None)
    if password:
        try:
            updates["password_hash"] = get_password_hash(password)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
    if "email" in updates and updates["email"]:
        updates["email"] = updates["email"].strip().lower()
    if "role" in updates and updates["role"]:
        updates["role"] = normalize_role(updates["role"])
        updates["permission_level"] = legacy_permission_level(updates["role"])
    if updates.get("status") not in (None, "active", "inactive"):
        raise HTTPException(status_code=400, detail="Status invalido")
    profile = TableStore(db).update("profiles", user_id, updates, actor_id=current.id)
    return serialize_profile(profile)


@router.delete("/users/{user_id}")
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_admin),
):
    if user_id == current.id:
        raise HTTPException(status_code=400, detail="Nao e possivel excluir a propria conta")
    TableStore(db).delete("profiles", user_id, actor_id=current.id)
    return {"success": True, "message": "Usuario excluido"}
