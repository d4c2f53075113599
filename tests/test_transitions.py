from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from conftest import make_demand
from mktops.core.errors import RecordNotFound
from mktops.db import models
from mktops.services.changes import ChangeBus
from mktops.services.table_store import TableStore
from mktops.services.transitions import (
    MESSAGES,
    STARTED,
    STOPPED,
    UNCHANGED,
    StatusTransitionController,
    plan_transition,
)

NOW = datetime(2026, 3, 10, 15, 0, 0)


def _status(name, kind=None, status_id=None):
    return SimpleNamespace(id=status_id or name, name=name, kind=kind)


def test_plan_entering_production_starts_timer():
    plan = plan_transition(_status("Backlog"), _status("Em Produção"), None, 40, None, NOW)
    assert plan.effect == STARTED
    assert plan.updates == {"status_id": "Em Produção", "production_started_at": NOW}


def test_plan_leaving_production_folds_session():
    started = NOW - timedelta(seconds=125)
    plan = plan_transition(_status("Em Produção"), _status("Revisão"), started, 10, None, NOW)
    assert plan.effect == STOPPED
    assert plan.updates["accumulated_time"] == 135
    assert plan.updates["production_started_at"] is None
    assert "finished_at" not in plan.updates


def test_plan_between_stopped_statuses_keeps_timer_fields():
    plan = plan_transition(_status("Backlog"), _status("Revisão"), None, 50, None, NOW)
    assert plan.effect == UNCHANGED
    assert plan.updates == {"status_id": "Revisão"}


def test_plan_production_to_production_keeps_session():
    started = NOW - timedelta(minutes=5)
    plan = plan_transition(
        _status("Em Produção"), _status("Produzindo", kind="production"), started, 0, None, NOW
    )
    assert plan.effect == UNCHANGED
    assert "production_started_at" not in plan.updates


def test_plan_delivery_sets_and_clears_finished_at():
    delivered = plan_transition(_status("Revisão"), _status("Concluído"), None, 0, None, NOW)
    assert delivered.updates["finished_at"] == NOW

    reopened = plan_transition(_status("Concluído"), _status("Backlog"), None, 0, NOW, NOW)
    assert reopened.updates["finished_at"] is None


def test_plan_approval_counts_as_delivery():
    plan = plan_transition(_status("Em Produção"), _status("Ap. Gerente"), NOW, 0, None, NOW)
    assert plan.updates["finished_at"] == NOW


@pytest.fixture()
def controller(db_session):
    store = TableStore(db_session, changes=ChangeBus(), clock=lambda: NOW)
    return StatusTransitionController(store, clock=lambda: NOW)


def test_transition_round_trip(db_session, seeded, controller):
    statuses = seeded["statuses"]
    actor = seeded["profiles"]["designer"]
    demand = make_demand(db_session, statuses["backlog"], accumulated_time=40)

    started = controller.transition(demand.id, statuses["production"].id, actor_id=actor.id)
    assert started.effect == STARTED
    assert started.message == MESSAGES[STARTED]
    assert started.demand.production_started_at == NOW
    assert started.demand.accumulated_time == 40

    controller.clock = lambda: NOW + timedelta(seconds=125)
    stopped = controller.transition(demand.id, statuses["approval"].id, actor_id=actor.id)
    assert stopped.effect == STOPPED
    assert stopped.demand.status_id == statuses["approval"].id
    assert stopped.demand.accumulated_time == 165
    assert stopped.demand.production_started_at is None
    assert stopped.demand.finished_at == NOW + timedelta(seconds=125)
    assert stopped.reconciled is False


def test_transition_writes_one_log_per_change(db_session, seeded, controller):
    statuses = seeded["statuses"]
    actor = seeded["profiles"]["designer"]
    demand = make_demand(db_session, statuses["backlog"])

    controller.transition(demand.id, statuses["review"].id, actor_id=actor.id)

    logs = db_session.query(models.LogEntry).filter(models.LogEntry.record_id == demand.id).all()
    assert len(logs) == 1
    assert logs[0].action == "UPDATE"
    assert logs[0].details["status_id"] == statuses["review"].id


def test_transition_uses_persisted_status_as_origin(db_session, seeded, controller):
    statuses = seeded["statuses"]
    demand = make_demand(
        db_session,
        statuses["production"],
        production_started_at=NOW - timedelta(seconds=30),
    )

    result = controller.transition(
        demand.id, statuses["review"].id, from_status_id=statuses["backlog"].id
    )

    assert result.effect == STOPPED
    assert result.demand.accumulated_time == 30


def test_transition_to_unknown_status(db_session, seeded, controller):
    demand = make_demand(db_session, seeded["statuses"]["backlog"])
    with pytest.raises(RecordNotFound):
        controller.transition(demand.id, "missing-status")


class DroppingStatusStore(TableStore):
    """Simula um banco que ignora o status na primeira escrita."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = []

    def update(self, table, record_id, patch, actor_id=None, log=True):
        self.calls.append((dict(patch), log))
        if len(self.calls) == 1:
            patch = {key: value for key, value in patch.items() if key != "status_id"}
        return super().update(table, record_id, patch, actor_id=actor_id, log=log)


def test_transition_reconciles_drift(db_session, seeded):
    statuses = seeded["statuses"]
    demand = make_demand(db_session, statuses["backlog"])
    store = DroppingStatusStore(db_session, changes=ChangeBus(), clock=lambda: NOW)
    controller = StatusTransitionController(store, clock=lambda: NOW)

    result = controller.transition(demand.id, statuses["review"].id, actor_id=seeded["profiles"]["admin"].id)

    assert result.reconciled is True
    assert result.demand.status_id == statuses["review"].id
    assert store.calls[1] == ({"status_id": statuses["review"].id}, False)
    logs = db_session.query(models.LogEntry).filter(models.LogEntry.record_id == demand.id).count()
    assert logs == 1


def test_backlog_production_review_scenario(db_session, seeded):
    statuses = seeded["statuses"]
    clock = {"now": NOW}
    store = TableStore(db_session, changes=ChangeBus(), clock=lambda: clock["now"])
    controller = StatusTransitionController(store, clock=lambda: clock["now"])
    demand = make_demand(db_session, statuses["backlog"])
    assert demand.production_started_at is None
    assert demand.accumulated_time == 0

    started = controller.transition(demand.id, statuses["production"].id).demand
    assert started.production_started_at == NOW
    assert started.accumulated_time == 0

    clock["now"] = NOW + timedelta(seconds=125)
    reviewed = controller.transition(demand.id, statuses["review"].id).demand
    assert reviewed.accumulated_time == 125
    assert reviewed.production_started_at is None
