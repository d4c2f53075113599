import time

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from mktops.api.v1.users import serialize_profile
from mktops.core.config import settings
from mktops.core.security import get_current_profile
from mktops.db import models
from mktops.db.session import get_db
from mktops.services.permissions import PermissionResolver, get_permission_resolver
from mktops.services.storage import StorageClient, make_thumbnail
from mktops.services.table_store import TableStore

router = APIRouter(tags=["Usuario"])


@router.get("/me")
def get_me(
    profile: models.Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
    resolver: PermissionResolver = Depends(get_permission_resolver),
):
    return {
        "user": serialize_profile(profile),
        "permissions": resolver.permission_map(db, profile),
    }


@router.get("/me/permissions")
def get_my_permissions(
    profile: models.Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
    resolver: PermissionResolver = Depends(get_permission_resolver),
):
    return resolver.permission_map(db, profile)


@router.post("/me/avatar")
async def upload_avatar(
    file: UploadFile = File(...),
    profile: models.Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    content = await file.read()
    thumbnail = make_thumbnail(content)
    url = StorageClient().upload(
        settings.ASSETS_BUCKET,
        f"avatars/{profile.id}-{int(time.time() * 1000)}.png",
        thumbnail,
        "image/png",
    )
    updated = TableStore(db).update("profiles", profile.id, {"avatar_url": url}, actor_id=profile.id)
    return {"avatar_url": updated.avatar_url}
