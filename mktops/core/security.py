from datetime import datetime, timedelta
from typing import Any, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from mktops.core.config import settings
from mktops.db import models
from mktops.db.session import get_db
from mktops.services.permissions import (
    PermissionResolver,
    effective_role,
    get_permission_resolver,
    is_admin_role,
)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        return False


def get_password_hash(password: str) -> str:
    if not isinstance(password, str):
        raise ValueError("Senha invalida para hash: envie somente a senha em texto do usuario.")
    if len(password.encode("utf-8")) > 72:
        raise ValueError("Senha maior que 72 bytes em UTF-8.")
    return pwd_context.hash(password)


def create_access_token(data: dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(hours=settings.ACCESS_TOKEN_EXPIRE_HOURS))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def get_current_profile(
    token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> models.Profile:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Credenciais invalidas",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        profile_id: str | None = payload.get("sub")
        if profile_id is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    profile = db.query(models.Profile).filter(models.Profile.id == profile_id).first()
    if not profile:
        raise credentials_exception
    if profile.status != "active":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Usuario inativo")
    return profile


def require_permission(resource: str, action: str = "view"):
    def _dependency(
        profile: models.Profile = Depends(get_current_profile),
        db: Session = Depends(get_db),
        resolver: PermissionResolver = Depends(get_permission_resolver),
    ) -> models.Profile:
        if not resolver.can(db, profile, resource, action):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permissao negada")
        return profile

    return _dependency


def require_admin(profile: models.Profile = Depends(get_current_profile)) -> models.Profile:
    if not is_admin_role(effective_role(profile)):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Apenas administradores")
    return profile
