import logging
from datetime import datetime
from typing import Any

import httpx

from mktops.client.api import ClientError, MktopsClient
from mktops.client.autosave import FieldAutoSaver
from mktops.services.timer import ElapsedTime, compute_elapsed
from mktops.services.transitions import ERROR_MESSAGE

logger = logging.getLogger("mktops.client")


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00")).replace(tzinfo=None)


class DemandEditor:
    """Estado local de uma demanda aberta para edicao.

    Campos sao salvos pelo ``FieldAutoSaver``. A troca de status e
    otimista: o status local muda antes da resposta e depois e alinhado ao
    que o servidor gravou. ``close`` descarta gravacoes pendentes e
    respostas que chegarem depois.
    """

    def __init__(self, client: MktopsClient, demand: dict, statuses: list[dict] | None = None, delay=None) -> None:
        self.client = client
        self.demand = dict(demand)
        self.statuses = {status["id"]: status for status in (statuses or client.statuses())}
        self.last_message: str | None = None
        self.last_error: str | None = None
        self._closed = False
        self._status_generation = 0
        self.saver = FieldAutoSaver(self._save_field, delay=delay, on_saved=self._field_saved)

    @property
    def status(self) -> dict | None:
        return self.statuses.get(self.demand.get("status_id"))

    def _save_field(self, field: str, value: Any) -> dict:
        return self.client.update_demand(self.demand["id"], {field: value})

    def _field_saved(self, field: str, result: dict) -> None:
        if self._closed:
            return
        self.demand["updated_at"] = result.get("updated_at")
        self.last_message = self.saver.last_message

    def edit(self, field: str, value: Any) -> None:
        self.demand[field] = None if value == "" else value
        self.saver.edit(field, value)

    def change_status(self, status_id: str) -> dict | None:
        previous = self.demand.get("status_id")
        self.demand["status_id"] = status_id
        self._status_generation += 1
        generation = self._status_generation
        try:
            result = self.client.change_status(self.demand["id"], status_id, from_status_id=previous)
        except (ClientError, httpx.HTTPError) as exc:
            logger.warning("troca de status falhou demand=%s: %s", self.demand["id"], exc)
            self.last_error = ERROR_MESSAGE
            return None
        if self._closed or generation != self._status_generation:
            return result
        server = result["demand"]
        for key in ("status_id", "production_started_at", "accumulated_time", "finished_at", "updated_at"):
            self.demand[key] = server.get(key)
        self.last_message = result["message"]
        self.last_error = None
        return result

    def elapsed(self, now: datetime | None = None) -> ElapsedTime:
        return compute_elapsed(
            self.status,
            _parse_datetime(self.demand.get("production_started_at")),
            self.demand.get("accumulated_time"),
            now=now,
        )

    def refresh(self) -> dict:
        self.saver.flush()
        self.demand = dict(self.client.get_demand(self.demand["id"]))
        return self.demand

    def close(self) -> None:
        self._closed = True
        self.saver.close()
