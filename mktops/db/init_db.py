import logging

from sqlalchemy import inspect, text
from sqlalchemy.orm import Session

from mktops.core.config import settings
from mktops.core.security import get_password_hash
from mktops.db import models
from mktops.db.session import SessionLocal
from mktops.services.permissions import (
    MAX_PERMISSION_LEVEL,
    RESOURCES,
    ROLES,
    is_admin_role,
    legacy_permission_level,
    normalize_role,
)
from mktops.services.status_kinds import infer_status_kind

logger = logging.getLogger("mktops")

DEFAULT_STATUSES = [
    ("Backlog", "#71717a", 1, "backlog"),
    ("Em Produção", "#3b82f6", 2, "production"),
    ("Revisão", "#f59e0b", 3, "review"),
    ("Ap. Gerente", "#a855f7", 4, "approval"),
    ("Agendado", "#14b8a6", 5, "approval"),
    ("Concluído", "#22c55e", 6, "completed"),
]
DEFAULT_ORIGINS = ["Interno", "Comercial", "Marketing"]
DEFAULT_TYPES = ["Post", "Stories", "Reels", "Banner", "Apresentação"]
DEFAULT_JOB_TITLES = ["Designer", "Gerente de Marketing", "Social Media"]

DEFAULT_ROLE_GRANTS = {
    "gerente": {
        "dashboard": (True, True, False),
        "demands": (True, True, True),
        "team": (True, True, False),
        "goals": (True, True, False),
        "activity_log": (True, False, False),
        "registers": (True, True, False),
    },
    "designer": {
        "dashboard": (True, False, False),
        "demands": (True, True, False),
        "goals": (True, False, False),
    },
    "visualizador": {
        "dashboard": (True, False, False),
        "demands": (True, False, False),
    },
}


def _ensure_missing_columns(engine) -> None:
    if engine.dialect.name != "sqlite":
        return
    inspector = inspect(engine)
    preparer = engine.dialect.identifier_preparer
    existing_tables = set(inspector.get_table_names())
    for table_name, table in models.Base.metadata.tables.items():
        if table_name not in existing_tables:
            continue
        existing_columns = {col["name"] for col in inspector.get_columns(table_name)}
        for column in table.columns:
            if column.name in existing_columns:
                continue
            col_type = column.type.compile(dialect=engine.dialect)
            with engine.begin() as connection:
                connection.execute(
                    text(
                        f"ALTER TABLE {preparer.quote(table_name)} "
                        f"ADD COLUMN {preparer.quote(column.name)} {col_type}"
                    )
                )
            logger.info("Coluna adicionada %s.%s", table_name, column.name)


def ensure_schema(engine) -> None:
    models.Base.metadata.create_all(bind=engine)
    _ensure_missing_columns(engine)


def ensure_status_kinds(db: Session) -> int:
    """Preenche ``kind`` dos status antigos a partir do nome."""
    updated = 0
    for status in db.query(models.Status).filter(models.Status.kind.is_(None)).all():
        status.kind = infer_status_kind(status.name)
        updated += 1
        logger.info("Status %s classificado como %s", status.name, status.kind)
    if updated:
        db.commit()
    return updated


def migrate_legacy_roles(db: Session) -> int:
    """Converte o nivel numerico legado em papel e recalcula o nivel a partir do papel."""
    changed = 0
    for profile in db.query(models.Profile).all():
        role = normalize_role(profile.role)
        if (profile.permission_level or 0) >= MAX_PERMISSION_LEVEL and not is_admin_role(role):
            logger.warning("Perfil %s promovido a admin pelo nivel legado", profile.email)
            role = "admin"
        level = legacy_permission_level(role)
        if role != profile.role or level != profile.permission_level:
            profile.role = role
            profile.permission_level = level
            changed += 1
    if changed:
        db.commit()
    return changed


def ensure_permission_defaults(db: Session) -> int:
    existing = {
        (normalize_role(role), resource)
        for role, resource in db.query(models.RolePermission.role, models.RolePermission.resource).all()
    }
    created = 0
    for role in ROLES:
        grants = DEFAULT_ROLE_GRANTS.get(role, {})
        for resource in RESOURCES:
            if (role, resource) in existing:
                continue
            if is_admin_role(role):
                view, manage, delete = True, True, True
            else:
                view, manage, delete = grants.get(resource, (False, False, False))
            db.add(
                models.RolePermission(
                    role=role,
                    resource=resource,
                    can_view=view,
                    can_manage=manage,
                    can_delete=delete,
                )
            )
            created += 1
    if created:
        db.commit()
    return created


def _seed_named(db: Session, model, names: list[str]) -> None:
    if db.query(model).count():
        return
    db.add_all([model(name=name) for name in names])
    db.commit()


def seed_initial_data(db: Session | None = None) -> None:
    owns_session = db is None
    db = db or SessionLocal()
    try:
        if not db.query(models.Status).count():
            db.add_all(
                [
                    models.Status(name=name, color=color, order=order, kind=kind)
                    for name, color, order, kind in DEFAULT_STATUSES
                ]
            )
            db.commit()
        _seed_named(db, models.Origin, DEFAULT_ORIGINS)
        _seed_named(db, models.DemandType, DEFAULT_TYPES)
        _seed_named(db, models.JobTitle, DEFAULT_JOB_TITLES)

        admin_email = settings.SEED_ADMIN_EMAIL.strip().lower()
        admin = db.query(models.Profile).filter(models.Profile.email == admin_email).first()
        if not admin:
            db.add(
                models.Profile(
                    name="Administrador",
                    email=admin_email,
                    password_hash=get_password_hash(settings.SEED_ADMIN_PASSWORD),
                    role="admin",
                    permission_level=MAX_PERMISSION_LEVEL,
                    status="active",
                )
            )
            db.commit()
            logger.info("Admin inicial criado: %s", admin_email)

        ensure_status_kinds(db)
        migrate_legacy_roles(db)
        ensure_permission_defaults(db)
    finally:
        if owns_session:
            db.close()
