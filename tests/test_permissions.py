import unittest
from types import SimpleNamespace

import pytest

from mktops.core.errors import PermissionDenied
from mktops.db import models
from mktops.services.changes import ChangeBus
from mktops.services.permissions import (
    PermissionResolver,
    apply_toggle,
    backfill_missing_permissions,
    effective_role,
    missing_permission_pairs,
    normalize_action,
    toggle_permission,
)
from mktops.services.table_store import TableStore


class ApplyToggleTests(unittest.TestCase):
    def test_enable_delete_enables_view_and_edit(self):
        flags = apply_toggle({"view": False, "edit": False, "delete": False}, "delete")
        self.assertEqual(flags, {"view": True, "edit": True, "delete": True})

    def test_disable_view_disables_everything(self):
        flags = apply_toggle({"view": True, "edit": True, "delete": True}, "view")
        self.assertEqual(flags, {"view": False, "edit": False, "delete": False})

    def test_enable_edit_enables_view(self):
        flags = apply_toggle({"view": False, "edit": False, "delete": False}, "edit")
        self.assertEqual(flags, {"view": True, "edit": True, "delete": False})

    def test_disable_edit_disables_delete(self):
        flags = apply_toggle({"view": True, "edit": True, "delete": True}, "edit")
        self.assertEqual(flags, {"view": True, "edit": False, "delete": False})

    def test_aliases_and_unknown_actions(self):
        self.assertEqual(normalize_action("create"), "edit")
        self.assertEqual(normalize_action("manage"), "edit")
        with self.assertRaises(ValueError):
            normalize_action("approve")


class EffectiveRoleTests(unittest.TestCase):
    def test_legacy_level_promotes_to_admin(self):
        profile = SimpleNamespace(role="designer", permission_level=4)
        self.assertEqual(effective_role(profile), "admin")

    def test_role_is_normalized(self):
        profile = SimpleNamespace(role=" Gerente ", permission_level=3)
        self.assertEqual(effective_role(profile), "gerente")


def test_resolver_reads_matrix(db_session, seeded):
    resolver = PermissionResolver(ChangeBus())
    designer = seeded["profiles"]["designer"]
    assert resolver.can(db_session, designer, "demands", "view")
    assert resolver.can(db_session, designer, "demands", "create")
    assert not resolver.can(db_session, designer, "demands", "delete")
    assert not resolver.can(db_session, designer, "config", "view")


def test_resolver_denies_unknown_roles_and_resources(db_session, seeded):
    resolver = PermissionResolver(ChangeBus())
    assert not resolver.can(db_session, "estagiario", "demands", "view")
    assert not resolver.can(db_session, "", "demands", "view")
    assert not resolver.can(db_session, "designer", "reports", "view")


def test_admin_is_always_allowed(db_session, seeded):
    resolver = PermissionResolver(ChangeBus())
    db_session.query(models.RolePermission).filter(models.RolePermission.role == "admin").delete()
    db_session.commit()
    admin = seeded["profiles"]["admin"]
    assert resolver.can(db_session, admin, "config", "delete")
    permission_map = resolver.permission_map(db_session, admin)
    assert all(all(flags.values()) for flags in permission_map.values())


def test_toggle_invalidates_cached_role(db_session, seeded):
    bus = ChangeBus()
    resolver = PermissionResolver(bus)
    store = TableStore(db_session, changes=bus)
    assert not resolver.can(db_session, "visualizador", "team", "view")

    row = toggle_permission(store, "visualizador", "team", "view", actor_id=seeded["profiles"]["admin"].id)

    assert row.can_view is True
    assert resolver.can(db_session, "visualizador", "team", "view")
    log = db_session.query(models.LogEntry).filter(models.LogEntry.table_name == "role_permissions").one()
    assert log.action == "UPSERT"


def test_toggle_rejects_admin_and_unknown_resource(db_session, seeded):
    store = TableStore(db_session, changes=ChangeBus())
    with pytest.raises(PermissionDenied):
        toggle_permission(store, "Admin", "demands", "view")
    with pytest.raises(ValueError):
        toggle_permission(store, "designer", "reports", "view")


def test_backfill_creates_missing_rows_once(db_session, seeded):
    db_session.query(models.RolePermission).filter(models.RolePermission.role == "designer").delete()
    db_session.commit()
    pairs = missing_permission_pairs(db_session)
    assert pairs
    assert all(role == "designer" for role, _ in pairs)

    created = backfill_missing_permissions(pairs + pairs)

    assert created == len(pairs)
    assert missing_permission_pairs(db_session) == []
    assert backfill_missing_permissions(pairs) == 0
    rows = db_session.query(models.RolePermission).filter(models.RolePermission.role == "designer").all()
    assert not any(row.can_view or row.can_manage or row.can_delete for row in rows)


def test_upsert_same_key_updates_single_row(db_session, seeded):
    store = TableStore(db_session, changes=ChangeBus())
    row = {"role": "designer", "resource": "team", "can_view": True, "can_manage": False, "can_delete": False}
    store.upsert("role_permissions", row, conflict_keys=("role", "resource"))
    store.upsert("role_permissions", {**row, "can_manage": True}, conflict_keys=("role", "resource"))

    rows = (
        db_session.query(models.RolePermission)
        .filter(models.RolePermission.role == "designer", models.RolePermission.resource == "team")
        .all()
    )
    assert len(rows) == 1
    assert rows[0].can_manage is True


class InvalidatingSession:
    """Sessao que invalida o cache no meio da primeira leitura."""

    def __init__(self, db, resolver):
        self.db = db
        self.resolver = resolver
        self.queries = 0

    def query(self, *entities):
        self.queries += 1
        if self.queries == 1:
            self.resolver.invalidate()
        return self.db.query(*entities)


def test_read_overtaken_by_invalidation_is_not_cached(db_session, seeded):
    resolver = PermissionResolver(ChangeBus())
    session = InvalidatingSession(db_session, resolver)

    assert resolver.load(session, "designer")["demands"]["view"] is True
    resolver.load(session, "designer")
    resolver.load(session, "designer")

    assert session.queries == 2


def test_closed_resolver_stops_listening(db_session, seeded):
    bus = ChangeBus()
    resolver = PermissionResolver(bus)
    assert not resolver.can(db_session, "visualizador", "team", "view")

    resolver.close()
    row = (
        db_session.query(models.RolePermission)
        .filter(models.RolePermission.role == "visualizador", models.RolePermission.resource == "team")
        .one()
    )
    row.can_view = True
    db_session.commit()
    bus.publish("role_permissions")

    assert not resolver.can(db_session, "visualizador", "team", "view")
    assert bus._subscribers["role_permissions"] == []
