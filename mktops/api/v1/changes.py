from fastapi import APIRouter, Depends, Query

from mktops.core.security import get_current_profile
from mktops.db import models
from mktops.services.changes import ChangeBus, get_change_bus

router = APIRouter(tags=["Mudancas"])


@router.get("/changes")
def changed_tables(
    since: int = Query(0, ge=0),
    bus: ChangeBus = Depends(get_change_bus),
    current: models.Profile = Depends(get_current_profile),
):
    """Tabelas alteradas depois da versao ``since``; o cliente recarrega cada uma."""
    return {"version": bus.version(), "tables": bus.changed_since(since)}
