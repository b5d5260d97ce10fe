import threading
import unittest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

from sqlalchemy.exc import SQLAlchemyError

from api_clients.errors import ProbeResult
from orchestration.health_monitor import (
    HealthMonitor,
    HealthCheckResult,
    JobFreshness,
    aggregate_status,
    classify_staleness,
    format_uptime,
    scheduler_job_freshness,
    UP,
    DOWN,
    WARNING,
    UNKNOWN,
    HEALTHY,
    DEGRADED,
)
from orchestration.scheduler import Scheduler

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


def check(name, status):
    return HealthCheckResult(name=name, status=status)


class TestAggregation(unittest.TestCase):

    def test_all_up_is_healthy(self):
        self.assertEqual(aggregate_status([check("a", UP), check("b", UP)]), HEALTHY)

    def test_any_warning_is_degraded(self):
        self.assertEqual(aggregate_status([check("a", UP), check("b", WARNING)]), DEGRADED)

    def test_any_down_is_down(self):
        self.assertEqual(aggregate_status([check("a", WARNING), check("b", DOWN)]), DOWN)

    def test_unknown_does_not_degrade(self):
        self.assertEqual(aggregate_status([check("a", UP), check("b", UNKNOWN)]), HEALTHY)


class TestStaleness(unittest.TestCase):

    def _job(self, minutes_ago, interval=5, enabled=True):
        last = NOW - timedelta(minutes=minutes_ago) if minutes_ago is not None else None
        return JobFreshness(name="poolDataSync", interval_minutes=interval, enabled=enabled, last_success_at=last)

    def test_within_one_interval_is_up(self):
        self.assertEqual(classify_staleness(self._job(4), NOW).status, UP)

    def test_one_interval_boundary_is_warning(self):
        self.assertEqual(classify_staleness(self._job(5), NOW).status, WARNING)
        self.assertEqual(classify_staleness(self._job(9), NOW).status, WARNING)

    def test_two_intervals_is_down(self):
        self.assertEqual(classify_staleness(self._job(10), NOW).status, DOWN)
        self.assertEqual(classify_staleness(self._job(600), NOW).status, DOWN)

    def test_never_succeeded_is_unknown(self):
        self.assertEqual(classify_staleness(self._job(None), NOW).status, UNKNOWN)

    def test_disabled_job_is_unknown(self):
        result = classify_staleness(self._job(600, enabled=False), NOW)
        self.assertEqual(result.status, UNKNOWN)
        self.assertEqual(result.details["status"], "disabled")

    def test_last_data_write_is_reported(self):
        job = JobFreshness("morphoApiSync", 15, True, NOW - timedelta(minutes=1),
                           last_data_write=NOW - timedelta(minutes=3))
        result = classify_staleness(job, NOW)
        self.assertEqual(result.details["last_data_write"], (NOW - timedelta(minutes=3)).isoformat())
        self.assertIn("last_success", result.details)

        never = JobFreshness("morphoApiSync", 15, True, None, last_data_write=NOW)
        self.assertEqual(classify_staleness(never, NOW).details["last_data_write"], NOW.isoformat())

    def test_naive_timestamp_is_treated_as_utc(self):
        job = JobFreshness("poolDataSync", 5, True, (NOW - timedelta(minutes=1)).replace(tzinfo=None))
        self.assertEqual(classify_staleness(job, NOW).status, UP)


class TestHealthMonitor(unittest.TestCase):

    def test_refresh_runs_probes_database_and_jobs(self):
        jobs = [JobFreshness("poolDataSync", 5, True, datetime.now(timezone.utc) - timedelta(minutes=7))]
        monitor = HealthMonitor(
            probes={
                "defillama": lambda: ProbeResult(ok=True, response_time_ms=120.0),
                "moralis": lambda: ProbeResult(ok=False, response_time_ms=15.0, error="MORALIS_API_KEY is not configured"),
            },
            database_probe=lambda: 3.21,
            job_freshness=lambda: jobs,
        )

        self.assertTrue(monitor.refresh())
        health = monitor.get_system_health()

        self.assertEqual(health.check("defillama").status, UP)
        self.assertEqual(health.check("moralis").status, DOWN)
        self.assertEqual(health.check("moralis").error, "MORALIS_API_KEY is not configured")
        self.assertEqual(health.check("database").status, UP)
        self.assertEqual(health.check("database").response_time_ms, 3.2)
        self.assertEqual(health.check("poolDataSync").status, WARNING)
        self.assertEqual(health.overall, DOWN)

    def test_database_failure_is_down(self):
        def broken():
            raise SQLAlchemyError("connection refused")

        monitor = HealthMonitor(database_probe=broken)
        monitor.refresh()

        result = monitor.get_system_health().check("database")
        self.assertEqual(result.status, DOWN)
        self.assertIn("connection refused", result.error)

    def test_crashing_provider_check_is_down_and_refresh_continues(self):
        def crashing():
            raise KeyError("tokenBalances")

        jobs = [JobFreshness("poolDataSync", 5, True, datetime.now(timezone.utc))]
        monitor = HealthMonitor(probes={"alchemy": crashing}, database_probe=lambda: 1.0, job_freshness=lambda: jobs)

        self.assertTrue(monitor.refresh())
        health = monitor.get_system_health()

        self.assertEqual(health.check("alchemy").status, DOWN)
        self.assertIn("tokenBalances", health.check("alchemy").error)
        self.assertEqual(health.check("database").status, UP)
        self.assertEqual(health.check("poolDataSync").status, UP)

    def test_missing_check_is_unknown(self):
        monitor = HealthMonitor()
        self.assertEqual(monitor.get_system_health().check("alchemy").status, UNKNOWN)

    def test_snapshot_served_from_cache_within_ttl(self):
        clock = FakeClock()
        monitor = HealthMonitor(probes={"lido": lambda: ProbeResult(True, 50.0)}, ttl_seconds=30, clock=clock)
        monitor.refresh()
        first = monitor.get_system_health()

        clock.now = 29
        with patch.object(monitor, "refresh_in_background") as background:
            self.assertIs(monitor.get_system_health(), first)
            background.assert_not_called()

    def test_expired_snapshot_triggers_background_refresh(self):
        clock = FakeClock()
        monitor = HealthMonitor(probes={"lido": lambda: ProbeResult(True, 50.0)}, ttl_seconds=30, clock=clock)
        monitor.refresh()
        first = monitor.get_system_health()

        clock.now = 31
        with patch.object(monitor, "refresh_in_background") as background:
            health = monitor.get_system_health()
            background.assert_called_once_with()

        self.assertIsNot(health, first)
        self.assertEqual(health.check("lido").status, UP)

    def test_read_never_waits_for_a_slow_probe(self):
        entered = threading.Event()
        release = threading.Event()

        def slow_probe():
            entered.set()
            release.wait(timeout=5)
            return ProbeResult(True, 5000.0)

        monitor = HealthMonitor(probes={"etherscan": slow_probe})
        try:
            self.assertTrue(monitor.refresh_in_background())
            self.assertTrue(entered.wait(timeout=2))

            health = monitor.get_system_health()
            self.assertEqual(health.check("etherscan").status, UNKNOWN)
            self.assertFalse(monitor.refresh())
            self.assertFalse(monitor.refresh_in_background())
        finally:
            release.set()

    def test_uptime(self):
        clock = FakeClock(100.0)
        monitor = HealthMonitor(clock=clock)
        clock.now = 100.0 + 3 * 3600 + 125
        self.assertEqual(monitor.uptime_seconds(), 3 * 3600 + 125)
        self.assertEqual(monitor.get_system_health().uptime, "3h 2m")

    def test_format_uptime(self):
        self.assertEqual(format_uptime(59), "0m")
        self.assertEqual(format_uptime(86400 + 3600 + 60), "1d 1h 1m")


class TestSchedulerFreshness(unittest.TestCase):

    def test_falls_back_to_persisted_success(self):
        scheduler = Scheduler(timer_factory=MagicMock())
        scheduler.register("poolDataSync", MagicMock(), 5, run_immediately=False)
        persisted = datetime(2025, 6, 1, 11, 58)
        config_repo = MagicMock()
        config_repo.get_all.return_value = [SimpleNamespace(service_name="poolDataSync", last_success_at=persisted)]

        jobs = scheduler_job_freshness(scheduler, config_repo)()

        self.assertEqual(len(jobs), 1)
        self.assertEqual(jobs[0].interval_minutes, 5)
        self.assertTrue(jobs[0].enabled)
        self.assertEqual(jobs[0].last_success_at, persisted.replace(tzinfo=timezone.utc))

    def test_live_success_wins_when_newer(self):
        scheduler = Scheduler(timer_factory=MagicMock())
        scheduler.register("poolDataSync", MagicMock(), 5, run_immediately=False)
        scheduler.run_job("poolDataSync")
        config_repo = MagicMock()
        config_repo.get_all.return_value = [
            SimpleNamespace(service_name="poolDataSync", last_success_at=datetime(2020, 1, 1))
        ]

        jobs = scheduler_job_freshness(scheduler, config_repo)()

        self.assertEqual(jobs[0].last_success_at, scheduler.get_state("poolDataSync").last_success_at)

    def test_data_writes_are_attached_per_job(self):
        scheduler = Scheduler(timer_factory=MagicMock())
        scheduler.register("poolDataSync", MagicMock(), 5, run_immediately=False)
        scheduler.register("cleanup", MagicMock(), 1440, run_immediately=False)
        written = datetime(2025, 6, 1, 11, 59, tzinfo=timezone.utc)

        jobs = scheduler_job_freshness(scheduler, data_writes=lambda: {"poolDataSync": written})()

        by_name = {j.name: j for j in jobs}
        self.assertEqual(by_name["poolDataSync"].last_data_write, written)
        self.assertIsNone(by_name["cleanup"].last_data_write)


if __name__ == '__main__':
    unittest.main()
