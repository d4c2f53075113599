import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from mktops.core.clock import utcnow
from mktops.core.errors import RecordNotFound
from mktops.services.status_kinds import is_delivered, is_production
from mktops.services.table_store import TableStore
from mktops.services.timer import session_seconds

logger = logging.getLogger("mktops.demands")

STARTED = "started"
STOPPED = "stopped"
UNCHANGED = "unchanged"

MESSAGES = {
    STARTED: "Cronômetro iniciado e status salvo",
    STOPPED: "Tempo contabilizado e status salvo",
    UNCHANGED: "Status atualizado com sucesso",
}
ERROR_MESSAGE = "Erro ao salvar status automático"


@dataclass
class TransitionPlan:
    updates: dict[str, Any] = field(default_factory=dict)
    effect: str = UNCHANGED


@dataclass
class TransitionResult:
    demand: Any
    effect: str
    reconciled: bool = False

    @property
    def message(self) -> str:
        return MESSAGES[self.effect]


def plan_transition(
    from_status: Any,
    to_status: Any,
    production_started_at: datetime | None,
    accumulated_time: int | None,
    finished_at: datetime | None,
    now: datetime,
    to_status_id: str | None = None,
) -> TransitionPlan:
    """Monta o patch completo de uma troca de status.

    Status e campos do cronometro saem juntos, para serem gravados numa
    unica escrita.
    """
    target_id = to_status_id or getattr(to_status, "id", None)
    plan = TransitionPlan(updates={"status_id": target_id})
    was_running = is_production(from_status)
    will_run = is_production(to_status)

    if will_run and not was_running:
        plan.updates["production_started_at"] = now
        plan.effect = STARTED
    elif was_running and not will_run:
        plan.updates["accumulated_time"] = int(accumulated_time or 0) + session_seconds(
            production_started_at, now
        )
        plan.updates["production_started_at"] = None
        plan.effect = STOPPED

    was_delivered = is_delivered(from_status)
    will_deliver = is_delivered(to_status)
    if will_deliver and not was_delivered:
        plan.updates["finished_at"] = now
    elif was_delivered and not will_deliver and finished_at is not None:
        plan.updates["finished_at"] = None
    return plan


class StatusTransitionController:
    def __init__(self, store: TableStore, clock=utcnow) -> None:
        self.store = store
        self.clock = clock

    def _statuses(self) -> dict[str, Any]:
        rows = self.store.list("statuses", order="order", desc=False)
        return {row.id: row for row in rows}

    def transition(
        self,
        demand_id: str,
        to_status_id: str,
        actor_id: str | None = None,
        from_status_id: str | None = None,
    ) -> TransitionResult:
        demand = self.store.require("demands", demand_id)
        statuses = self._statuses()
        target = statuses.get(to_status_id)
        if target is None:
            raise RecordNotFound("statuses", to_status_id)
        if from_status_id and from_status_id != demand.status_id:
            logger.info(
                "Status de origem desatualizado demand=%s informado=%s gravado=%s",
                demand_id,
                from_status_id,
                demand.status_id,
            )
        source = statuses.get(demand.status_id)

        plan = plan_transition(
            source,
            target,
            demand.production_started_at,
            demand.accumulated_time,
            demand.finished_at,
            self.clock(),
            to_status_id=to_status_id,
        )
        self.store.update("demands", demand_id, plan.updates, actor_id=actor_id)

        persisted = self.store.require("demands", demand_id)
        reconciled = False
        if str(persisted.status_id or "") != str(to_status_id):
            logger.warning(
                "Status divergente apos gravar demand=%s esperado=%s gravado=%s",
                demand_id,
                to_status_id,
                persisted.status_id,
            )
            persisted = self.store.update("demands", demand_id, {"status_id": to_status_id}, log=False)
            reconciled = True
        return TransitionResult(demand=persisted, effect=plan.effect, reconciled=reconciled)
