"""Indicadores derivados das demandas e dos logs ja carregados.

Nada aqui grava no banco. As funcoes recebem listas de ``Demand`` e
``LogEntry`` (ou objetos com os mesmos atributos) e devolvem dicts prontos
para o dashboard.
"""

import calendar
import math
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Callable, Iterable

from mktops.core.clock import end_of_day, local_today, to_local, utcnow
from mktops.services import status_kinds
from mktops.services.classifier import DateRange, is_delayed

WEEKDAYS_PT = ("Seg", "Ter", "Qua", "Qui", "Sex", "Sáb", "Dom")
LATE_COLOR = "#ef4444"
DEFAULT_COLOR = "#bcd200"
HIGH_PRIORITIES = {"alta", "urgente"}

DEFAULT_DELIVERY_DAYS = 5
DAILY_CAPACITY = 8
WARNING_LOAD = 6
BUSY_DAY_DEMANDS = 5


def _status_ids_of_kind(statuses: Iterable[Any], kinds: Iterable[str]) -> set[str]:
    wanted = set(kinds)
    return {status.id for status in statuses if status_kinds.status_kind(status) in wanted}


def completion_log(demand: Any, logs: Iterable[Any], delivered_ids: set[str]) -> Any | None:
    """Log de UPDATE mais recente que moveu a demanda para um status entregue."""
    found = None
    for log in logs:
        if log.record_id != demand.id or log.action != "UPDATE":
            continue
        details = log.details or {}
        if isinstance(details, dict) and details.get("status_id") in delivered_ids:
            if found is None or log.created_at > found.created_at:
                found = log
    return found


def lead_time_days(
    demand: Any,
    logs: Iterable[Any],
    delivered_ids: set[str],
    now: datetime | None = None,
) -> int | None:
    if not status_kinds.is_delivered(demand.status):
        return None
    log = completion_log(demand, logs, delivered_ids)
    end = log.created_at if log is not None else (demand.updated_at or now or utcnow())
    elapsed = abs((end - demand.created_at).total_seconds())
    return math.ceil(elapsed / 86400)


def is_sla_compliant(demand: Any, now: datetime | None = None) -> bool:
    return not is_delayed(demand, now)


def group_count(demands: Iterable[Any], key: Callable[[Any], str]) -> dict[str, int]:
    counts: dict[str, int] = defaultdict(int)
    for demand in demands:
        counts[key(demand)] += 1
    return dict(counts)


def average_lead_time_by(
    demands: Iterable[Any],
    logs: list[Any],
    delivered_ids: set[str],
    key: Callable[[Any], str],
    now: datetime | None = None,
) -> dict[str, float]:
    buckets: dict[str, list[int]] = defaultdict(list)
    for demand in demands:
        days = lead_time_days(demand, logs, delivered_ids, now)
        if days is not None:
            buckets[key(demand)].append(days)
    return {name: round(sum(values) / len(values), 1) for name, values in buckets.items()}


def type_name(demand: Any) -> str:
    return demand.demand_type.name if demand.demand_type is not None else "Outros"


def responsible_name(demand: Any) -> str:
    return demand.responsible.name if demand.responsible is not None else "Não atribuído"


def _average(values: list[int | float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _percent(part: int, total: int) -> int:
    return round(part / total * 100) if total else 0


def _efficiency_trend(demands: list[Any], now: datetime) -> int:
    current_start = now - timedelta(days=30)
    previous_start = now - timedelta(days=60)
    current = previous = 0
    for demand in demands:
        if not status_kinds.is_delivered(demand.status):
            continue
        moment = demand.finished_at or demand.updated_at
        if moment is None:
            continue
        if current_start <= moment <= now:
            current += 1
        elif previous_start <= moment < current_start:
            previous += 1
    if not previous:
        return 0
    return round((current - previous) / previous * 100)


def dashboard_stats(
    demands: Iterable[Any],
    logs: Iterable[Any],
    current_user_id: str | None,
    statuses: Iterable[Any],
    now: datetime | None = None,
) -> dict[str, Any]:
    now = now or utcnow()
    demands = list(demands)
    logs = list(logs)
    statuses = list(statuses)
    delivered_ids = _status_ids_of_kind(statuses, status_kinds.DELIVERED_KINDS)
    review_ids = _status_ids_of_kind(statuses, [status_kinds.REVIEW])

    lead_times = [
        days for days in (lead_time_days(d, logs, delivered_ids, now) for d in demands) if days is not None
    ]
    global_lead_time = _average(lead_times)
    global_sla = _percent(sum(1 for d in demands if is_sla_compliant(d, now)), len(demands))

    mine = [d for d in demands if current_user_id and d.responsible_id == current_user_id]
    my_completed = [d for d in mine if status_kinds.is_delivered(d.status)]
    my_lead_times = [
        days for days in (lead_time_days(d, logs, delivered_ids, now) for d in mine) if days is not None
    ]
    my_lead_time = _average(my_lead_times)
    my_distribution = sorted(
        ({"name": name, "value": value} for name, value in group_count(mine, type_name).items()),
        key=lambda item: item["value"],
        reverse=True,
    )
    week = [0] * 7
    for demand in mine:
        week[to_local(demand.created_at).weekday()] += 1
    my_ids = {d.id for d in mine}
    revisions = sum(
        1
        for log in logs
        if log.record_id in my_ids
        and log.action == "UPDATE"
        and isinstance(log.details, dict)
        and log.details.get("status_id") in review_ids
    )

    active = [d for d in demands if not status_kinds.is_delivered(d.status)]
    by_status = [
        {
            "name": name,
            "value": value,
            "color": LATE_COLOR if "atrasado" in name.lower() else DEFAULT_COLOR,
        }
        for name, value in group_count(
            active, lambda d: d.status.name if d.status is not None else "Sem Status"
        ).items()
    ]

    workload: dict[str, dict[str, Any]] = {}
    for demand in demands:
        if demand.responsible is None:
            continue
        entry = workload.setdefault(
            demand.responsible.name,
            {"tasks": 0, "completed": 0, "avatar": demand.responsible.avatar_url},
        )
        entry["tasks"] += 1
        if status_kinds.is_delivered(demand.status):
            entry["completed"] += 1
    team_workload = sorted(
        (
            {
                "name": name,
                "tasks": entry["tasks"],
                "completed": entry["completed"],
                "capacityPct": _percent(entry["completed"], entry["tasks"]),
                "avatar": entry["avatar"],
            }
            for name, entry in workload.items()
        ),
        key=lambda item: item["capacityPct"],
        reverse=True,
    )

    risk_limit = local_today(now) + timedelta(days=3)
    at_risk = sum(
        1
        for d in active
        if (d.priority or "").lower() in HIGH_PRIORITIES and d.deadline and d.deadline <= risk_limit
    )

    designer_insights = []
    if my_lead_time < global_lead_time:
        designer_insights.append("Seu lead time está abaixo da média do time. Ótimo trabalho!")
    else:
        designer_insights.append("Seu lead time está ligeiramente acima da média.")
    if my_distribution:
        designer_insights.append(f"{my_distribution[0]['name']} representam a maior parte do seu esforço.")

    manager_insights = []
    if my_distribution:
        manager_insights.append(f"{my_distribution[0]['name']} concentram a maior parte das demandas ativas.")
    if len(team_workload) > 1:
        top = team_workload[0]
        manager_insights.append(f"{top['name'].split(' ')[0]} está com {top['capacityPct']}% da carga provável.")
    if at_risk:
        manager_insights.append(f"{at_risk} demandas de alta prioridade estão próximas do prazo.")

    type_distribution = sorted(
        ({"name": name, "value": value} for name, value in group_count(demands, type_name).items()),
        key=lambda item: item["value"],
        reverse=True,
    )[:5]

    return {
        "designer": {
            "completedCount": len(my_completed),
            "slaCompliance": _percent(sum(1 for d in mine if is_sla_compliant(d, now)), len(mine)),
            "avgLeadTime": round(my_lead_time, 1),
            "activeCount": len(mine) - len(my_completed),
            "distribution": my_distribution,
            "productionTimeline": [
                {"name": name, "value": week[index]} for index, name in enumerate(WEEKDAYS_PT)
            ],
            "revisionsAvg": round(revisions / len(my_completed), 1) if my_completed else 0.0,
            "insights": designer_insights,
        },
        "manager": {
            "totalActive": len(active),
            "byStatus": by_status,
            "teamWorkload": team_workload,
            "atRiskCount": at_risk,
            "insights": manager_insights,
        },
        "executive": {
            "totalDemands": len(demands),
            "globalLeadTime": round(global_lead_time, 1),
            "globalSLA": global_sla,
            "efficiencyTrend": _efficiency_trend(demands, now),
            "typeDistribution": type_distribution,
            "leadTimeByType": average_lead_time_by(demands, logs, delivered_ids, type_name, now),
            "insights": [f"A eficiência operacional (SLA) está em {global_sla}%."],
        },
    }


def executive_kpis(
    demands: Iterable[Any],
    period_start: date,
    period_end: date,
    now: datetime | None = None,
) -> dict[str, Any]:
    """KPIs das demandas com prazo dentro do periodo.

    Tempos medios em minutos trabalhados, a partir do ``accumulated_time``.
    """
    now = now or utcnow()
    selected = [d for d in demands if d.deadline and period_start <= d.deadline <= period_end]
    deliveries = sla_ok = sla_nok = backlog = wip = 0
    by_type: dict[str, list[float]] = defaultdict(list)
    by_designer: dict[str, list[float]] = defaultdict(list)
    minutes: list[float] = []

    for demand in selected:
        kind = status_kinds.status_kind(demand.status)
        delivered = kind in status_kinds.DELIVERED_KINDS
        limit = end_of_day(demand.deadline)
        if delivered:
            deliveries += 1
            if demand.finished_at is None or demand.finished_at <= limit:
                sla_ok += 1
            else:
                sla_nok += 1
            worked = (demand.accumulated_time or 0) / 60
            minutes.append(worked)
            by_type[type_name(demand)].append(worked)
            by_designer[responsible_name(demand)].append(worked)
        elif now > limit:
            sla_nok += 1

        if kind == status_kinds.BACKLOG:
            backlog += 1
        elif kind in (status_kinds.PRODUCTION, status_kinds.REVIEW):
            wip += 1

    return {
        "total_demands": len(selected),
        "deliveries_count": deliveries,
        "sla_ok": sla_ok,
        "sla_nok": sla_nok,
        "globalSLA": _percent(sla_ok, sla_ok + sla_nok),
        "backlog_count": backlog,
        "wip_count": wip,
        "lead_time_avg_minutes": round(_average(minutes), 2),
        "lead_time_avg_by_type": [
            {"name": name, "avg_minutes": round(_average(values), 2), "deliveries": len(values)}
            for name, values in by_type.items()
        ],
        "lead_time_avg_by_designer": [
            {
                "name": name,
                "avg_minutes": round(_average(values), 2),
                "total_minutes": round(sum(values), 2),
                "deliveries": len(values),
            }
            for name, values in by_designer.items()
        ],
    }


def designer_velocity(demands: Iterable[Any]) -> dict[str, tuple[int, int]]:
    """Media de dias ate a entrega por responsavel, junto com o numero de entregas."""
    buckets: dict[str, list[int]] = defaultdict(list)
    for demand in demands:
        if not demand.responsible_id or not status_kinds.is_delivered(demand.status):
            continue
        end = demand.finished_at or demand.updated_at
        if end is None or demand.created_at is None:
            continue
        days = math.ceil((end - demand.created_at).total_seconds() / 86400)
        buckets[demand.responsible_id].append(max(1, days))
    return {
        responsible_id: (round(sum(values) / len(values)), len(values))
        for responsible_id, values in buckets.items()
    }


def _confidence(samples: int) -> str:
    if samples >= 10:
        return "high"
    if samples >= 5:
        return "medium"
    return "low"


def predict_delivery(
    demand: Any,
    velocity: dict[str, tuple[int, int]],
    global_days: int,
    now: datetime | None = None,
) -> dict[str, Any]:
    today = local_today(now)
    created = to_local(demand.created_at).date()
    known = velocity.get(demand.responsible_id) if demand.responsible_id else None
    estimated_days, samples = known if known is not None else (global_days, 0)

    on_track = True
    risk = "low"
    if demand.deadline:
        days_left = (demand.deadline - today).days
        remaining = max(0, estimated_days - (today - created).days)
        if days_left < 0:
            on_track = False
            risk = "critical"
        elif remaining > days_left:
            on_track = False
            excess = remaining - days_left
            risk = "critical" if excess > 3 else "high" if excess > 1 else "medium"
        elif days_left <= 2:
            risk = "medium"

    if known is not None:
        details = f"Baseado em {samples} entregas anteriores do designer (média: {estimated_days} dias)"
    else:
        details = f"Baseado na média global da equipe ({global_days} dias). Sem histórico específico do designer."

    return {
        "estimatedDays": estimated_days,
        "estimatedCompletion": created + timedelta(days=estimated_days),
        "confidence": _confidence(samples),
        "basedOn": samples,
        "isOnTrack": on_track,
        "risk": risk,
        "details": details,
    }


def deadline_predictions(demands: Iterable[Any], now: datetime | None = None) -> dict[str, Any]:
    """Previsao de entrega das demandas abertas a partir do historico de cada designer.

    Sem historico do responsavel usa a media global dos designers, e sem
    nenhuma entrega registrada usa ``DEFAULT_DELIVERY_DAYS``.
    """
    demands = list(demands)
    velocity = designer_velocity(demands)
    averages = [days for days, _ in velocity.values()]
    global_days = round(sum(averages) / len(averages)) if averages else DEFAULT_DELIVERY_DAYS
    predictions = {
        demand.id: predict_delivery(demand, velocity, global_days, now)
        for demand in demands
        if demand.created_at is not None and not status_kinds.is_delivered(demand.status)
    }
    return {
        "globalAverageDays": global_days,
        "designerVelocity": {key: days for key, (days, _) in velocity.items()},
        "predictions": predictions,
        "atRisk": [key for key, item in predictions.items() if item["risk"] in ("high", "critical")],
    }


def _delivered_on_time(demand: Any) -> bool:
    if not demand.deadline or demand.finished_at is None:
        return True
    return demand.finished_at <= end_of_day(demand.deadline)


def designer_report(
    demands: Iterable[Any],
    designers: Iterable[Any],
    period: DateRange | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Desempenho por designer nas demandas com prazo dentro do periodo."""
    now = now or utcnow()
    period = period or DateRange()
    stats: dict[str, dict[str, Any]] = {}
    for designer in designers:
        stats[designer.id] = {
            "id": designer.id,
            "name": designer.name,
            "avatar_url": designer.avatar_url,
            "completed": 0,
            "completedOnTime": 0,
            "completedLate": 0,
            "pending": 0,
            "overdue": 0,
            "inProduction": 0,
            "totalDeadlineThisPeriod": 0,
            "avgTimeMinutes": 0,
            "efficiency": 0,
        }
    worked: dict[str, list[float]] = defaultdict(list)

    for demand in demands:
        entry = stats.get(demand.responsible_id)
        if entry is None or not period.contains(demand.deadline):
            continue
        entry["totalDeadlineThisPeriod"] += 1
        if status_kinds.is_delivered(demand.status):
            entry["completed"] += 1
            if _delivered_on_time(demand):
                entry["completedOnTime"] += 1
            else:
                entry["completedLate"] += 1
            if demand.accumulated_time:
                worked[demand.responsible_id].append(demand.accumulated_time / 60)
            continue
        if status_kinds.is_production(demand.status):
            entry["inProduction"] += 1
        else:
            entry["pending"] += 1
        if is_delayed(demand, now):
            entry["overdue"] += 1

    for designer_id, entry in stats.items():
        if worked[designer_id]:
            entry["avgTimeMinutes"] = round(_average(worked[designer_id]))
        entry["efficiency"] = _percent(entry["completedOnTime"], entry["completedOnTime"] + entry["completedLate"])

    rows = sorted(stats.values(), key=lambda item: item["totalDeadlineThisPeriod"], reverse=True)
    totals = ("completed", "completedOnTime", "completedLate", "pending", "inProduction", "overdue")
    overall = {key: sum(row[key] for row in rows) for key in totals}
    overall["total"] = sum(row["totalDeadlineThisPeriod"] for row in rows)
    return {"designers": rows, "overall": overall}


def load_level(day_count: int, loads: dict[str, int]) -> str:
    if not day_count:
        return "empty"
    peak = max(loads.values(), default=0)
    if peak >= DAILY_CAPACITY:
        return "critical"
    if peak >= WARNING_LOAD:
        return "heavy"
    if day_count >= BUSY_DAY_DEMANDS:
        return "medium"
    return "light"


def capacity_calendar(
    demands: Iterable[Any],
    year: int,
    month: int,
    designer_id: str | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    """Carga diaria por designer no mes, contando as demandas pelo dia do prazo.

    ``designer_id`` filtra as demandas listadas em cada dia; a carga por
    designer sempre considera a equipe inteira.
    """
    today = today or local_today()
    demands = [d for d in demands if d.deadline]
    by_day: dict[date, list[Any]] = defaultdict(list)
    for demand in demands:
        if demand.deadline.year == year and demand.deadline.month == month:
            by_day[demand.deadline].append(demand)

    days = []
    for number in range(1, calendar.monthrange(year, month)[1] + 1):
        day = date(year, month, number)
        scheduled = by_day.get(day, [])
        visible = [d for d in scheduled if not designer_id or d.responsible_id == designer_id]
        loads = group_count((d for d in scheduled if d.responsible_id), lambda d: d.responsible_id)
        days.append(
            {
                "date": day,
                "isToday": day == today,
                "count": len(visible),
                "demands": [
                    {"id": d.id, "title": d.title, "responsible_id": d.responsible_id} for d in visible
                ],
                "designerLoads": loads,
                "level": load_level(len(visible), loads),
            }
        )

    week_start = today - timedelta(days=today.weekday())
    week_end = week_start + timedelta(days=6)
    busy = [day["count"] for day in days if day["count"]]
    return {
        "year": year,
        "month": month,
        "dailyCapacity": DAILY_CAPACITY,
        "days": days,
        "stats": {
            "weekTotal": sum(1 for d in demands if week_start <= d.deadline <= week_end),
            "monthTotal": sum(len(items) for items in by_day.values()),
            "overloadedDays": sum(
                1 for day in days if any(load >= DAILY_CAPACITY for load in day["designerLoads"].values())
            ),
            "avgDailyLoad": round(_average(busy), 1),
        },
    }
