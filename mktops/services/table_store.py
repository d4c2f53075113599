import logging
from datetime import date, datetime
from typing import Any, Iterable

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mktops.core.clock import utcnow
from mktops.core.errors import PersistenceError, RecordNotFound, classify_db_error
from mktops.db import models
from mktops.services.changes import ChangeBus, change_bus

logger = logging.getLogger("mktops.store")

TABLES: dict[str, type] = {
    "demands": models.Demand,
    "statuses": models.Status,
    "origins": models.Origin,
    "demand_types": models.DemandType,
    "job_titles": models.JobTitle,
    "profiles": models.Profile,
    "comments": models.Comment,
    "logs": models.LogEntry,
    "role_permissions": models.RolePermission,
    "app_settings": models.AppSetting,
}


def text_delta(before: str, after: str) -> str | None:
    """Trecho novo de ``after`` depois de remover prefixo e sufixo em comum."""
    if not isinstance(before, str) or not isinstance(after, str):
        return None
    if before == after:
        return None
    limit = min(len(before), len(after))
    prefix = 0
    while prefix < limit and before[prefix] == after[prefix]:
        prefix += 1
    suffix = 0
    while suffix < limit - prefix and before[-1 - suffix] == after[-1 - suffix]:
        suffix += 1
    return after[prefix : len(after) - suffix]


SENSITIVE_FIELDS = {"password_hash"}


def _public(row: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in row.items() if key not in SENSITIVE_FIELDS}


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def build_update_details(current: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    patch = _public(patch)
    details = _jsonable(dict(patch))
    for key, after in patch.items():
        before = current.get(key)
        delta = text_delta(before, after)
        if not delta or not delta.strip():
            continue
        if key == "description":
            details["description_delta"] = delta
        else:
            details.setdefault("__diff", {})[key] = {"delta": delta}
    return details


def row_to_dict(row: Any) -> dict[str, Any]:
    mapper = inspect(row.__class__)
    return {column.key: getattr(row, column.key) for column in mapper.column_attrs}


class TableStore:
    """Leitura e escrita generica nas tabelas da aplicacao.

    Cada mutacao e um unico commit. Quando ``actor_id`` e informado, a
    entrada de auditoria vai no mesmo commit da escrita. Depois do commit a
    tabela e publicada no ``ChangeBus``.
    """

    def __init__(self, db: Session, changes: ChangeBus | None = None, clock=utcnow) -> None:
        self.db = db
        self.changes = changes or change_bus
        self.clock = clock

    def model_for(self, table: str):
        model = TABLES.get(table)
        if model is None:
            raise RecordNotFound("tabela", table)
        return model

    def _pk(self, model):
        return inspect(model).primary_key[0]

    def _query(self, table: str, filters: dict[str, Any] | None = None):
        model = self.model_for(table)
        query = self.db.query(model)
        for column, value in (filters or {}).items():
            attr = getattr(model, column)
            if value is None:
                query = query.filter(attr.is_(None))
            elif isinstance(value, (list, tuple, set)):
                query = query.filter(attr.in_(list(value)))
            else:
                query = query.filter(attr == value)
        return query

    def list(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order: str | None = "created_at",
        desc: bool = True,
        limit: int | None = None,
    ) -> list[Any]:
        model = self.model_for(table)
        query = self._query(table, filters)
        if order and hasattr(model, order):
            column = getattr(model, order)
            query = query.order_by(column.desc() if desc else column.asc())
        if limit:
            query = query.limit(limit)
        return query.all()

    def get(self, table: str, record_id: str) -> Any | None:
        model = self.model_for(table)
        return (
            self.db.query(model)
            .populate_existing()
            .filter(self._pk(model) == record_id)
            .first()
        )

    def require(self, table: str, record_id: str) -> Any:
        row = self.get(table, record_id)
        if row is None:
            raise RecordNotFound(table, record_id)
        return row

    def insert(self, table: str, row: dict[str, Any], actor_id: str | None = None) -> Any:
        model = self.model_for(table)
        instance = model(**row)
        self.db.add(instance)
        self._flush(table, "CREATE")
        if actor_id:
            self._log(actor_id, "CREATE", table, self._record_id(instance), _jsonable(_public(row)))
        self._commit(table, "CREATE")
        self.db.refresh(instance)
        return instance

    def update(
        self,
        table: str,
        record_id: str,
        patch: dict[str, Any],
        actor_id: str | None = None,
        log: bool = True,
    ) -> Any:
        instance = self.require(table, record_id)
        current = row_to_dict(instance)
        for key, value in patch.items():
            setattr(instance, key, value)
        if hasattr(instance, "updated_at"):
            instance.updated_at = self.clock()
        if actor_id and log:
            self._log(actor_id, "UPDATE", table, record_id, build_update_details(current, patch))
        self._commit(table, "UPDATE")
        self.db.refresh(instance)
        return instance

    def delete(self, table: str, record_id: str, actor_id: str | None = None) -> bool:
        instance = self.require(table, record_id)
        self.db.delete(instance)
        if actor_id:
            self._log(actor_id, "DELETE", table, record_id, None)
        self._commit(table, "DELETE")
        return True

    def upsert(
        self,
        table: str,
        row: dict[str, Any],
        conflict_keys: Iterable[str],
        actor_id: str | None = None,
    ) -> Any:
        keys = {key: row[key] for key in conflict_keys}
        instance = self._query(table, keys).first()
        if instance is None:
            instance = self.model_for(table)(**row)
            self.db.add(instance)
        else:
            for key, value in row.items():
                setattr(instance, key, value)
        self._flush(table, "UPSERT")
        if actor_id:
            self._log(actor_id, "UPSERT", table, self._record_id(instance), _jsonable(_public(row)))
        self._commit(table, "UPSERT")
        self.db.refresh(instance)
        return instance

    def _record_id(self, instance: Any) -> str | None:
        key = self._pk(instance.__class__).key
        value = getattr(instance, key, None)
        return str(value) if value is not None else None

    def _log(self, actor_id: str, action: str, table: str, record_id: str | None, details: Any) -> None:
        self.db.add(
            models.LogEntry(
                user_id=actor_id,
                action=action,
                table_name=table,
                record_id=record_id,
                details=details,
                created_at=self.clock(),
            )
        )

    def _flush(self, table: str, action: str) -> None:
        try:
            self.db.flush()
        except SQLAlchemyError as exc:
            self._fail(exc, table, action)

    def _commit(self, table: str, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self._fail(exc, table, action)
        self.changes.publish(table)

    def _fail(self, exc: SQLAlchemyError, table: str, action: str) -> None:
        self.db.rollback()
        code = classify_db_error(exc)
        logger.error("Falha ao gravar table=%s action=%s code=%s: %s", table, action, code, exc)
        raise PersistenceError(code, str(getattr(exc, "orig", None) or exc)) from exc
