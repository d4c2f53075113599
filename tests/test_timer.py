import asyncio
import unittest
from datetime import datetime, timedelta
from types import SimpleNamespace

from mktops.services.timer import compute_elapsed, elapsed_for, format_hms, watch_elapsed

NOW = datetime(2026, 3, 10, 15, 0, 0)


class FormatTests(unittest.TestCase):
    def test_format_hms(self):
        self.assertEqual(format_hms(0), "00:00:00")
        self.assertEqual(format_hms(125), "00:02:05")
        self.assertEqual(format_hms(3600 * 27 + 61), "27:01:01")

    def test_negative_is_clamped(self):
        self.assertEqual(format_hms(-5), "00:00:00")


class ComputeElapsedTests(unittest.TestCase):
    def test_running_adds_current_session(self):
        result = compute_elapsed("Em Produção", NOW - timedelta(seconds=125), 10, now=NOW)
        self.assertTrue(result.is_running)
        self.assertEqual(result.seconds, 135)
        self.assertEqual(result.formatted, "00:02:15")

    def test_stopped_shows_accumulated_only(self):
        result = compute_elapsed("Revisão", NOW - timedelta(hours=5), 90, now=NOW)
        self.assertFalse(result.is_running)
        self.assertEqual(result.seconds, 90)

    def test_production_without_start_uses_accumulated(self):
        result = compute_elapsed("Em Produção", None, None, now=NOW)
        self.assertTrue(result.is_running)
        self.assertEqual(result.seconds, 0)

    def test_future_start_never_goes_negative(self):
        result = compute_elapsed("Em Produção", NOW + timedelta(minutes=3), 40, now=NOW)
        self.assertEqual(result.seconds, 40)

    def test_kind_wins_over_name(self):
        status = SimpleNamespace(name="Fazendo", kind="production")
        result = compute_elapsed(status, NOW - timedelta(seconds=30), 0, now=NOW)
        self.assertTrue(result.is_running)
        self.assertEqual(result.seconds, 30)

    def test_same_input_same_output(self):
        first = compute_elapsed("Em Produção", NOW - timedelta(seconds=7), 3, now=NOW)
        second = compute_elapsed("Em Produção", NOW - timedelta(seconds=7), 3, now=NOW)
        self.assertEqual(first, second)

    def test_elapsed_for_reads_demand_fields(self):
        demand = SimpleNamespace(
            status=SimpleNamespace(name="Em Produção", kind=None),
            production_started_at=NOW - timedelta(minutes=1),
            accumulated_time=60,
        )
        self.assertEqual(elapsed_for(demand, NOW).as_dict(), {
            "seconds": 120,
            "formatted": "00:02:00",
            "is_running": True,
        })


class WatchElapsedTests(unittest.TestCase):
    def _collect(self, status, limit):
        moments = iter([NOW + timedelta(seconds=i) for i in range(10)])
        sleeps = []

        async def fake_sleep(interval):
            sleeps.append(interval)

        async def run():
            values = []
            ticker = watch_elapsed(status, NOW, 0, clock=lambda: next(moments), sleep=fake_sleep)
            async for value in ticker:
                values.append(value.seconds)
                if len(values) == limit:
                    await ticker.aclose()
                    break
            return values

        return asyncio.run(run()), sleeps

    def test_ticks_while_running(self):
        values, sleeps = self._collect("Em Produção", 3)
        self.assertEqual(values, [0, 1, 2])
        self.assertEqual(sleeps, [1.0, 1.0])

    def test_emits_once_when_stopped(self):
        values, sleeps = self._collect("Backlog", 5)
        self.assertEqual(values, [0])
        self.assertEqual(sleeps, [])


class MonotonicTests(unittest.TestCase):
    def test_running_time_never_decreases(self):
        started = NOW - timedelta(seconds=10)
        values = [
            compute_elapsed("Em Produção", started, 5, now=NOW + timedelta(seconds=step)).seconds
            for step in range(0, 50, 7)
        ]
        self.assertEqual(values, sorted(values))
