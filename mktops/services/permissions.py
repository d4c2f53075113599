import logging
import threading
from typing import Any, Iterable

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mktops.core.config import settings
from mktops.core.errors import PermissionDenied
from mktops.db import models
from mktops.services.changes import ChangeBus, change_bus
from mktops.services.table_store import TableStore

logger = logging.getLogger("mktops.permissions")

ROLES = ("admin", "gerente", "designer", "visualizador")
RESOURCES = ("dashboard", "demands", "team", "goals", "activity_log", "registers", "config")
ACTIONS = ("view", "edit", "delete")
ACTION_ALIASES = {"create": "edit", "manage": "edit"}
ACTION_FLAGS = {"view": "can_view", "edit": "can_manage", "delete": "can_delete"}

ROLE_LEVELS = {"admin": 4, "gerente": 3, "designer": 2, "visualizador": 1}
MAX_PERMISSION_LEVEL = 4


def normalize_role(role: str | None) -> str:
    return (role or "").strip().lower()


def normalize_action(action: str) -> str:
    action = ACTION_ALIASES.get(action, action)
    if action not in ACTIONS:
        raise ValueError(f"Acao desconhecida: {action}")
    return action


def is_admin_role(role: str | None) -> bool:
    return normalize_role(role) in settings.ADMIN_ROLES


def legacy_permission_level(role: str | None) -> int:
    role = normalize_role(role)
    if is_admin_role(role):
        return MAX_PERMISSION_LEVEL
    return ROLE_LEVELS.get(role, 1)


def effective_role(profile: Any) -> str:
    """Papel usado nas checagens de acesso.

    Unico ponto que ainda le o ``permission_level`` legado: perfis antigos
    com o nivel maximo e sem papel administrativo contam como ``admin``.
    """
    role = normalize_role(getattr(profile, "role", None))
    if not is_admin_role(role) and (getattr(profile, "permission_level", 0) or 0) >= MAX_PERMISSION_LEVEL:
        return "admin"
    return role


def flags_from_row(row: Any) -> dict[str, bool]:
    return {action: bool(getattr(row, flag)) for action, flag in ACTION_FLAGS.items()}


def apply_toggle(flags: dict[str, bool], action: str) -> dict[str, bool]:
    """Inverte uma acao respeitando as dependencias entre ver, gerir e excluir."""
    action = normalize_action(action)
    result = {key: bool(flags.get(key, False)) for key in ACTIONS}
    enabled = not result[action]
    result[action] = enabled
    if action == "view" and not enabled:
        result["edit"] = False
        result["delete"] = False
    elif action == "edit":
        if enabled:
            result["view"] = True
        else:
            result["delete"] = False
    elif action == "delete" and enabled:
        result["view"] = True
        result["edit"] = True
    return result


class PermissionResolver:
    """Cache da matriz de permissoes por papel, compartilhado pelo processo.

    O cache de um papel e descartado no login/logout e em qualquer mudanca
    da tabela ``role_permissions``. Uma leitura que termina depois de uma
    invalidacao nao entra no cache.
    """

    def __init__(self, changes: ChangeBus | None = None) -> None:
        self._lock = threading.Lock()
        self._cache: dict[str, dict[str, dict[str, bool]]] = {}
        self._generation = 0
        self._unsubscribe = (changes or change_bus).subscribe(
            "role_permissions", lambda _table: self.invalidate()
        )

    def close(self) -> None:
        self._unsubscribe()

    def invalidate(self, role: str | None = None) -> None:
        with self._lock:
            self._generation += 1
            if role is None:
                self._cache.clear()
            else:
                self._cache.pop(normalize_role(role), None)

    def load(self, db: Session, role: str) -> dict[str, dict[str, bool]]:
        role = normalize_role(role)
        with self._lock:
            cached = self._cache.get(role)
            generation = self._generation
        if cached is not None:
            return cached
        rows = (
            db.query(models.RolePermission)
            .filter(func.lower(models.RolePermission.role) == role)
            .all()
        )
        matrix = {row.resource: flags_from_row(row) for row in rows}
        with self._lock:
            if self._generation == generation:
                self._cache[role] = matrix
        return matrix

    def can(self, db: Session, subject: Any, resource: str, action: str) -> bool:
        role = subject if isinstance(subject, str) else effective_role(subject)
        action = normalize_action(action)
        if is_admin_role(role):
            return True
        if not role:
            return False
        flags = self.load(db, role).get(resource)
        if flags is None:
            return False
        return flags.get(action, False)

    def permission_map(self, db: Session, subject: Any) -> dict[str, dict[str, bool]]:
        role = subject if isinstance(subject, str) else effective_role(subject)
        if is_admin_role(role):
            return {resource: {action: True for action in ACTIONS} for resource in RESOURCES}
        matrix = self.load(db, role) if role else {}
        return {
            resource: dict(matrix.get(resource, {action: False for action in ACTIONS}))
            for resource in RESOURCES
        }


def missing_permission_pairs(
    db: Session,
    roles: Iterable[str] = ROLES,
    resources: Iterable[str] = RESOURCES,
) -> list[tuple[str, str]]:
    existing = {
        (normalize_role(role), resource)
        for role, resource in db.query(models.RolePermission.role, models.RolePermission.resource).all()
    }
    return [
        (role, resource)
        for role in roles
        for resource in resources
        if (role, resource) not in existing
    ]


def backfill_missing_permissions(pairs: list[tuple[str, str]]) -> int:
    """Cria linhas sem acesso para os pares faltantes. Roda fora da requisicao."""
    from mktops.db import session as db_session

    created = 0
    db = db_session.SessionLocal()
    try:
        for role, resource in pairs:
            db.add(
                models.RolePermission(
                    role=role,
                    resource=resource,
                    can_view=False,
                    can_manage=False,
                    can_delete=False,
                )
            )
            try:
                db.commit()
                created += 1
            except IntegrityError:
                db.rollback()
                logger.debug("Permissao ja criada por outra carga role=%s resource=%s", role, resource)
    finally:
        db.close()
    if created:
        change_bus.publish("role_permissions")
        logger.info("Permissoes padrao criadas: %s", created)
    return created


def toggle_permission(
    store: TableStore,
    role: str,
    resource: str,
    action: str,
    actor_id: str | None = None,
) -> Any:
    role = normalize_role(role)
    if is_admin_role(role):
        raise PermissionDenied("Permissoes do administrador nao podem ser alteradas")
    if resource not in RESOURCES:
        raise ValueError(f"Modulo desconhecido: {resource}")
    current = store.list("role_permissions", filters={"role": role, "resource": resource}, order=None)
    flags = flags_from_row(current[0]) if current else {key: False for key in ACTIONS}
    updated = apply_toggle(flags, action)
    return store.upsert(
        "role_permissions",
        {
            "role": role,
            "resource": resource,
            "can_view": updated["view"],
            "can_manage": updated["edit"],
            "can_delete": updated["delete"],
        },
        conflict_keys=("role", "resource"),
        actor_id=actor_id,
    )


permission_resolver = PermissionResolver()


def get_permission_resolver() -> PermissionResolver:
    return permission_resolver
