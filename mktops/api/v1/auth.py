from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from mktops.core.security import create_access_token, get_current_profile, verify_password
from mktops.db import models
from mktops.db.session import get_db
from mktops.services.permissions import PermissionResolver, effective_role, get_permission_resolver

router = APIRouter(tags=["Auth"])


class LoginRequest(BaseModel):
    usuario: str
    senha: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str
    role: str


def _authenticate(db: Session, username: str, password: str) -> models.Profile:
    normalized = username.strip().lower()
    profile = db.query(models.Profile).filter(func.lower(models.Profile.email) == normalized).first()
    if not profile or not verify_password(password, profile.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Usuario ou senha invalidos"
        )
    if profile.status != "active":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Usuario inativo")
    return profile


def _issue_token(profile: models.Profile, resolver: PermissionResolver) -> dict:
    role = effective_role(profile)
    resolver.invalidate(role)
    token = create_access_token({"sub": profile.id, "role": role, "email": profile.email})
    return {"access_token": token, "token_type": "bearer", "role": role}


@router.post("/auth/login", response_model=LoginResponse, summary="Login JSON (frontend)")
def login(
    payload: LoginRequest,
    db: Session = Depends(get_db),
    resolver: PermissionResolver = Depends(get_permission_resolver),
):
    """
    Uso tipico via frontend/script JSON:
    - POST /api/auth/login
    - body: {"usuario": "email@dominio", "senha": "..."}
    """
    profile = _authenticate(db, payload.usuario, payload.senha)
    return _issue_token(profile, resolver)


@router.post(
    "/auth/token",
    response_model=LoginResponse,
    summary="Login para Swagger (OAuth2PasswordBearer)",
)
def login_swagger(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
    resolver: PermissionResolver = Depends(get_permission_resolver),
):
    profile = _authenticate(db, form_data.username, form_data.password)
    return _issue_token(profile, resolver)


@router.post("/auth/logout")
def logout(
    profile: models.Profile = Depends(get_current_profile),
    resolver: PermissionResolver = Depends(get_permission_resolver),
):
    resolver.invalidate(effective_role(profile))
    return {"status": "ok"}
