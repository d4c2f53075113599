"""Classificacao de demandas em abas, contadores, busca, filtros e ordenacao.

Todas as funcoes sao puras sobre a lista ja carregada. Abas e contadores
usam os mesmos predicados, entao o numero exibido em cada contador e sempre
o tamanho da aba correspondente.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Iterable

from mktops.core.clock import end_of_day, local_today, to_local, utcnow
from mktops.services import status_kinds
from mktops.services.timer import elapsed_for

TAB_KINDS = {
    "backlog": status_kinds.BACKLOG,
    "approval": status_kinds.APPROVAL,
    "production": status_kinds.PRODUCTION,
    "stalled": status_kinds.REVIEW,
    "completed": status_kinds.COMPLETED,
}
TABS = ("all", *TAB_KINDS.keys(), "delayed")
RECENTLY_UPDATED_TABS = {"approval", "completed"}

MONTHS_PT = ("JAN", "FEV", "MAR", "ABR", "MAI", "JUN", "JUL", "AGO", "SET", "OUT", "NOV", "DEZ")


class InvalidFilter(ValueError):
    pass


def is_delayed(demand: Any, now: datetime | None = None) -> bool:
    if status_kinds.is_delivered(demand.status) or not demand.deadline:
        return False
    return end_of_day(demand.deadline) < (now or utcnow())


def matches_tab(demand: Any, tab: str | None, now: datetime | None = None) -> bool:
    if not tab or tab == "all":
        return True
    if tab == "delayed":
        return is_delayed(demand, now)
    kind = TAB_KINDS.get(tab)
    if kind is None:
        raise InvalidFilter(f"Aba desconhecida: {tab}")
    return status_kinds.status_kind(demand.status) == kind


def tab_counters(demands: Iterable[Any], now: datetime | None = None) -> dict[str, int]:
    now = now or utcnow()
    items = list(demands)
    counters = {tab: sum(1 for d in items if matches_tab(d, tab, now)) for tab in TABS}
    counters["total"] = len(items)
    counters["review"] = counters["stalled"]
    return counters


def sequence_codes(demands: Iterable[Any]) -> dict[str, str]:
    """Codigo ``AAAA_MES_NN`` por demanda, numerado pela ordem de criacao no mes."""
    ordered = sorted(
        (d for d in demands if d.created_at),
        key=lambda d: d.created_at,
    )
    counters: dict[str, int] = {}
    codes: dict[str, str] = {}
    for demand in ordered:
        local = to_local(demand.created_at)
        key = f"{local.year}_{MONTHS_PT[local.month - 1]}"
        counters[key] = counters.get(key, 0) + 1
        codes[demand.id] = f"{key}_{counters[key]:02d}"
    return codes


def matches_search(demand: Any, term: str | None, codes: dict[str, str] | None = None) -> bool:
    if not term:
        return True
    needle = term.strip().lower()
    if not needle:
        return True
    responsible = getattr(demand, "responsible", None)
    candidates = [
        demand.title or "",
        str(demand.id),
        (codes or {}).get(demand.id, ""),
        responsible.name if responsible is not None and responsible.name else "",
    ]
    return any(needle in value.lower() for value in candidates)


@dataclass(frozen=True)
class DateRange:
    start: date | None = None
    end: date | None = None

    @property
    def active(self) -> bool:
        return self.start is not None and self.end is not None

    def contains(self, day: date | None) -> bool:
        if not self.active:
            return True
        if day is None:
            return False
        return self.start <= day <= self.end


def date_range_for(
    preset: str | None,
    today: date | None = None,
    start: date | None = None,
    end: date | None = None,
) -> DateRange:
    preset = preset or "all"
    today = today or local_today()
    if preset == "all":
        return DateRange()
    if preset == "this_week":
        monday = today - timedelta(days=today.weekday())
        return DateRange(monday, monday + timedelta(days=6))
    if preset == "this_month":
        first = today.replace(day=1)
        next_month = (first + timedelta(days=32)).replace(day=1)
        return DateRange(first, next_month - timedelta(days=1))
    if preset == "last_month":
        last_day = today.replace(day=1) - timedelta(days=1)
        return DateRange(last_day.replace(day=1), last_day)
    if preset == "custom":
        if start is None or end is None:
            return DateRange()
        if start > end:
            raise InvalidFilter("Data inicial maior que a final")
        return DateRange(start, end)
    raise InvalidFilter(f"Periodo desconhecido: {preset}")


@dataclass
class DemandFilter:
    tab: str | None = None
    search: str | None = None
    designer_id: str | None = None
    date_range: DateRange = DateRange()


def filter_demands(
    demands: Iterable[Any],
    criteria: DemandFilter,
    now: datetime | None = None,
    codes: dict[str, str] | None = None,
) -> list[Any]:
    if criteria.tab and criteria.tab not in TABS:
        raise InvalidFilter(f"Aba desconhecida: {criteria.tab}")
    now = now or utcnow()
    items = list(demands)
    if codes is None:
        codes = sequence_codes(items)
    designer = criteria.designer_id if criteria.designer_id not in (None, "", "all") else None
    result = []
    for demand in items:
        if not matches_search(demand, criteria.search, codes):
            continue
        if designer and demand.responsible_id != designer:
            continue
        if not criteria.date_range.contains(demand.deadline):
            continue
        if not matches_tab(demand, criteria.tab, now):
            continue
        result.append(demand)
    return result


def _timestamp(value: datetime | None) -> float:
    return value.timestamp() if value else 0.0


def sort_demands(
    demands: Iterable[Any],
    tab: str | None = None,
    key: str | None = None,
    direction: str | None = None,
    now: datetime | None = None,
) -> list[Any]:
    items = list(demands)
    if not key or direction not in ("asc", "desc"):
        if tab in RECENTLY_UPDATED_TABS:
            return sorted(items, key=lambda d: _timestamp(d.updated_at or d.created_at), reverse=True)
        return sorted(items, key=lambda d: _timestamp(d.created_at), reverse=True)

    descending = direction == "desc"
    if key == "title":
        return sorted(items, key=lambda d: (d.title or "").lower(), reverse=descending)
    if key == "deadline":
        dated = sorted((d for d in items if d.deadline), key=lambda d: d.deadline, reverse=descending)
        return dated + [d for d in items if not d.deadline]
    if key == "time":
        now = now or utcnow()
        seconds = {d.id: elapsed_for(d, now).seconds for d in items}
        timed = sorted((d for d in items if seconds[d.id]), key=lambda d: seconds[d.id], reverse=descending)
        untimed = [d for d in items if not seconds[d.id]]
        return untimed + timed if not descending else timed + untimed
    raise InvalidFilter(f"Ordenacao desconhecida: {key}")


def default_status(statuses: Iterable[Any]) -> Any | None:
    """Status inicial de uma demanda nova: "backlog", senao ordem 1, senao o de menor ordem.

    Status de entrega nunca sao usados como inicial.
    """
    items = sorted(
        (s for s in statuses if not status_kinds.is_delivered(s)),
        key=lambda s: (s.order if s.order is not None else 0),
    )
    if not items:
        return None
    for status in items:
        if status_kinds.normalize_name(status.name) == "backlog":
            return status
    for status in items:
        if status.order == 1:
            return status
    return items[0]


def about_to_expire(demands: Iterable[Any], today: date | None = None, days: int = 2) -> list[Any]:
    today = today or local_today()
    result = []
    for demand in demands:
        if not demand.deadline or status_kinds.is_delivered(demand.status):
            continue
        remaining = (demand.deadline - today).days
        if 0 <= remaining <= days:
            result.append(demand)
    return result
