from datetime import date, datetime, timedelta
from types import SimpleNamespace

from mktops.services import analytics

NOW = datetime(2026, 3, 10, 15, 0, 0)
TODAY = date(2026, 3, 10)

STATUSES = {
    "backlog": SimpleNamespace(id="s1", name="Backlog", kind="backlog"),
    "production": SimpleNamespace(id="s2", name="Em Produção", kind="production"),
    "review": SimpleNamespace(id="s3", name="Revisão", kind="review"),
    "approval": SimpleNamespace(id="s4", name="Ap. Gerente", kind="approval"),
    "completed": SimpleNamespace(id="s5", name="Concluído", kind="completed"),
}
POST = SimpleNamespace(id="t1", name="Post")
ANA = SimpleNamespace(id="u1", name="Ana Souza", avatar_url=None)
BETO = SimpleNamespace(id="u2", name="Beto Reis", avatar_url=None)


def _demand(demand_id, status, responsible=None, **fields):
    values = {
        "id": demand_id,
        "title": demand_id,
        "status": STATUSES[status],
        "status_id": STATUSES[status].id,
        "responsible": responsible,
        "responsible_id": responsible.id if responsible else None,
        "demand_type": POST,
        "priority": "Média",
        "deadline": None,
        "created_at": NOW - timedelta(days=1),
        "updated_at": None,
        "finished_at": None,
        "accumulated_time": 0,
    }
    values.update(fields)
    return SimpleNamespace(**values)


def _log(record_id, status_id, created_at):
    return SimpleNamespace(
        record_id=record_id, action="UPDATE", details={"status_id": status_id}, created_at=created_at
    )


def test_lead_time_uses_completion_log():
    demand = _demand("a", "completed", created_at=NOW - timedelta(days=5), updated_at=NOW)
    logs = [
        _log("a", "s2", NOW - timedelta(days=4)),
        _log("a", "s5", NOW - timedelta(days=2, hours=12)),
    ]
    assert analytics.lead_time_days(demand, logs, {"s4", "s5"}, NOW) == 3


def test_lead_time_falls_back_to_updated_at():
    demand = _demand("a", "approval", created_at=NOW - timedelta(days=2), updated_at=NOW - timedelta(hours=1))
    assert analytics.lead_time_days(demand, [], {"s4", "s5"}, NOW) == 2
    assert analytics.lead_time_days(_demand("b", "review"), [], {"s4", "s5"}, NOW) is None


def test_dashboard_stats_by_audience():
    demands = [
        _demand("a", "completed", ANA, created_at=NOW - timedelta(days=4), updated_at=NOW),
        _demand("b", "production", ANA, priority="Alta", deadline=TODAY + timedelta(days=1)),
        _demand("c", "review", BETO, deadline=TODAY - timedelta(days=2)),
    ]
    logs = [
        _log("a", "s3", NOW - timedelta(days=2)),
        _log("a", "s5", NOW - timedelta(days=1)),
    ]
    stats = analytics.dashboard_stats(demands, logs, ANA.id, STATUSES.values(), now=NOW)

    designer = stats["designer"]
    assert designer["completedCount"] == 1
    assert designer["activeCount"] == 1
    assert designer["avgLeadTime"] == 3.0
    assert designer["revisionsAvg"] == 1.0
    assert sum(day["value"] for day in designer["productionTimeline"]) == 2

    manager = stats["manager"]
    assert manager["totalActive"] == 2
    assert manager["atRiskCount"] == 1
    assert {item["name"] for item in manager["byStatus"]} == {"Em Produção", "Revisão"}

    executive = stats["executive"]
    assert executive["totalDemands"] == 3
    assert executive["globalSLA"] == 67
    assert executive["typeDistribution"] == [{"name": "Post", "value": 3}]
    assert executive["leadTimeByType"] == {"Post": 3.0}


def test_executive_kpis_for_period():
    demands = [
        _demand(
            "on-time",
            "completed",
            ANA,
            deadline=date(2026, 3, 5),
            finished_at=datetime(2026, 3, 5, 12, 0),
            accumulated_time=600,
        ),
        _demand(
            "late-delivery",
            "approval",
            BETO,
            deadline=date(2026, 3, 3),
            finished_at=datetime(2026, 3, 8, 12, 0),
            accumulated_time=1200,
        ),
        _demand("overdue", "backlog", deadline=date(2026, 3, 2)),
        _demand("wip", "production", ANA, deadline=date(2026, 3, 20)),
        _demand("next-month", "backlog", deadline=date(2026, 4, 2)),
    ]
    kpis = analytics.executive_kpis(demands, date(2026, 3, 1), date(2026, 3, 31), now=NOW)

    assert kpis["total_demands"] == 4
    assert kpis["deliveries_count"] == 2
    assert (kpis["sla_ok"], kpis["sla_nok"]) == (1, 2)
    assert kpis["globalSLA"] == 33
    assert kpis["backlog_count"] == 1
    assert kpis["wip_count"] == 1
    assert kpis["lead_time_avg_minutes"] == 15.0
    by_designer = {item["name"]: item for item in kpis["lead_time_avg_by_designer"]}
    assert by_designer["Ana Souza"]["total_minutes"] == 10.0
    assert by_designer["Beto Reis"]["deliveries"] == 1


def test_deadline_predictions_use_designer_velocity():
    demands = [
        _demand("ana-1", "completed", ANA, created_at=NOW - timedelta(days=4), finished_at=NOW - timedelta(days=1)),
        _demand("ana-2", "approval", ANA, created_at=NOW - timedelta(days=6), finished_at=NOW - timedelta(days=1)),
        _demand("ana-open", "production", ANA, deadline=TODAY + timedelta(days=1)),
        _demand("beto-open", "backlog", BETO, deadline=TODAY + timedelta(days=10)),
        _demand("late", "review", deadline=TODAY - timedelta(days=1)),
    ]

    result = analytics.deadline_predictions(demands, now=NOW)

    assert result["designerVelocity"] == {ANA.id: 4}
    assert result["globalAverageDays"] == 4
    assert set(result["predictions"]) == {"ana-open", "beto-open", "late"}

    ana = result["predictions"]["ana-open"]
    assert (ana["estimatedDays"], ana["basedOn"], ana["confidence"]) == (4, 2, "low")
    assert ana["isOnTrack"] is False
    assert ana["risk"] == "high"

    beto = result["predictions"]["beto-open"]
    assert beto["risk"] == "low"
    assert beto["basedOn"] == 0
    assert "média global" in beto["details"]

    assert result["predictions"]["late"]["risk"] == "critical"
    assert sorted(result["atRisk"]) == ["ana-open", "late"]


def test_predictions_without_history_use_default_days():
    result = analytics.deadline_predictions([_demand("a", "backlog", ANA)], now=NOW)
    assert result["globalAverageDays"] == analytics.DEFAULT_DELIVERY_DAYS
    assert result["predictions"]["a"]["estimatedDays"] == analytics.DEFAULT_DELIVERY_DAYS


def test_designer_report_for_period():
    demands = [
        _demand(
            "on-time",
            "completed",
            ANA,
            deadline=date(2026, 3, 5),
            finished_at=datetime(2026, 3, 5, 12, 0),
            accumulated_time=600,
        ),
        _demand(
            "late",
            "approval",
            ANA,
            deadline=date(2026, 3, 3),
            finished_at=datetime(2026, 3, 8, 12, 0),
            accumulated_time=1800,
        ),
        _demand("running", "production", ANA, deadline=date(2026, 3, 9)),
        _demand("queued", "backlog", BETO, deadline=date(2026, 3, 20)),
        _demand("april", "backlog", BETO, deadline=date(2026, 4, 2)),
        _demand("nobody", "backlog", deadline=date(2026, 3, 20)),
    ]
    period = analytics.DateRange(date(2026, 3, 1), date(2026, 3, 31))

    report = analytics.designer_report(demands, [BETO, ANA], period, now=NOW)

    ana, beto = report["designers"]
    assert ana["name"] == "Ana Souza"
    assert ana["totalDeadlineThisPeriod"] == 4
    assert (ana["completedOnTime"], ana["completedLate"]) == (1, 1)
    assert ana["efficiency"] == 50
    assert ana["avgTimeMinutes"] == 20
    assert (ana["inProduction"], ana["overdue"]) == (1, 1)
    assert (beto["pending"], beto["totalDeadlineThisPeriod"], beto["efficiency"]) == (1, 1, 0)
    assert report["overall"]["total"] == 5
    assert report["overall"]["completed"] == 2


def test_capacity_calendar_counts_load_per_day():
    demands = [_demand(f"ana-{n}", "backlog", ANA, deadline=date(2026, 3, 12)) for n in range(8)]
    demands += [
        _demand("beto-12", "production", BETO, deadline=date(2026, 3, 12)),
        _demand("beto-20a", "backlog", BETO, deadline=date(2026, 3, 20)),
        _demand("beto-20b", "review", BETO, deadline=date(2026, 3, 20)),
        _demand("april", "backlog", BETO, deadline=date(2026, 4, 1)),
        _demand("undated", "backlog", BETO),
    ]

    result = analytics.capacity_calendar(demands, 2026, 3, today=TODAY)

    days = {day["date"]: day for day in result["days"]}
    assert len(result["days"]) == 31
    assert days[date(2026, 3, 12)]["count"] == 9
    assert days[date(2026, 3, 12)]["designerLoads"] == {ANA.id: 8, BETO.id: 1}
    assert days[date(2026, 3, 12)]["level"] == "critical"
    assert days[date(2026, 3, 20)]["level"] == "light"
    assert days[date(2026, 3, 1)]["level"] == "empty"
    assert days[TODAY]["isToday"] is True
    assert result["stats"] == {"weekTotal": 9, "monthTotal": 11, "overloadedDays": 1, "avgDailyLoad": 5.5}

    only_beto = analytics.capacity_calendar(demands, 2026, 3, designer_id=BETO.id, today=TODAY)
    day = next(item for item in only_beto["days"] if item["date"] == date(2026, 3, 12))
    assert [item["id"] for item in day["demands"]] == ["beto-12"]
    assert day["designerLoads"][ANA.id] == 8
