import time

from fastapi import APIRouter, Depends, File, UploadFile
from pydantic import BaseModel
from sqlalchemy.orm import Session

from mktops.core.config import settings
from mktops.core.security import get_current_profile, require_permission
from mktops.db import models
from mktops.db.session import get_db
from mktops.services.storage import StorageClient, extension_for
from mktops.services.table_store import TableStore

router = APIRouter(tags=["Configuracoes"])

PUBLIC_KEYS = ("app_name", "logo_url")


class SettingsUpdate(BaseModel):
    model_config = {"extra": "forbid"}

    app_name: str | None = None
    logo_url: str | None = None


def _read(db: Session) -> dict:
    values = {key: None for key in PUBLIC_KEYS}
    for row in db.query(models.AppSetting).filter(models.AppSetting.key.in_(PUBLIC_KEYS)).all():
        values[row.key] = row.value
    if not values["app_name"]:
        values["app_name"] = settings.APP_NAME
    return values


@router.get("/settings")
def read_settings(
    db: Session = Depends(get_db),
    current: models.Profile = Depends(get_current_profile),
):
    return _read(db)


@router.put("/settings")
def write_settings(
    payload: SettingsUpdate,
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("config", "edit")),
):
    store = TableStore(db)
    for key, value in payload.model_dump(exclude_unset=True).items():
        store.upsert("app_settings", {"key": key, "value": value}, conflict_keys=("key",), actor_id=current.id)
    return _read(db)


@router.post("/files/logo")
async def upload_logo(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current: models.Profile = Depends(require_permission("config", "edit")),
):
    ext = extension_for(file.content_type, file.filename)
    content = await file.read()
    url = StorageClient().upload(
        settings.ASSETS_BUCKET,
        f"logo-{int(time.time() * 1000)}.{ext}",
        content,
        file.content_type or "application/octet-stream",
    )
    TableStore(db).upsert(
        "app_settings", {"key": "logo_url", "value": url}, conflict_keys=("key",), actor_id=current.id
    )
    return {"logo_url": url}
