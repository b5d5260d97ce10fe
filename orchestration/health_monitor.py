"""
System health monitoring.

Probes external providers and the database, and classifies every scheduled
job by how long ago it last succeeded. Results live in a HealthCache that a
background timer refreshes; reads are served from the cache and never wait
on a probe.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Any

from sqlalchemy.exc import SQLAlchemyError

from api_clients.errors import ProbeResult
from config import HEALTH_CACHE_TTL_SECONDS, HEALTH_REFRESH_SECONDS
from database.repositories.exceptions import RepositoryError
from database.timestamps import utcnow, as_utc

logger = logging.getLogger(__name__)

UP = "up"
DOWN = "down"
WARNING = "warning"
UNKNOWN = "unknown"

HEALTHY = "healthy"
DEGRADED = "degraded"


@dataclass
class HealthCheckResult:
    name: str
    status: str
    response_time_ms: Optional[float] = None
    last_check: Optional[datetime] = None
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SystemHealth:
    overall: str
    checks: List[HealthCheckResult]
    uptime_seconds: float
    uptime: str
    generated_at: datetime

    def check(self, name: str) -> HealthCheckResult:
        for result in self.checks:
            if result.name == name:
                return result
        return unknown_check(name)


@dataclass
class JobFreshness:
    """What the monitor needs to know about one scheduled job."""
    name: str
    interval_minutes: int
    enabled: bool
    last_success_at: Optional[datetime]
    last_data_write: Optional[datetime] = None


def unknown_check(name: str) -> HealthCheckResult:
    return HealthCheckResult(name=name, status=UNKNOWN, error="No data available")


def aggregate_status(checks: List[HealthCheckResult]) -> str:
    statuses = {c.status for c in checks}
    if DOWN in statuses:
        return DOWN
    if WARNING in statuses:
        return DEGRADED
    return HEALTHY


def classify_staleness(job: JobFreshness, now: Optional[datetime] = None) -> HealthCheckResult:
    """
    up when the last success is younger than one interval, warning below two
    intervals, down beyond that. Jobs that never succeeded, or are disabled,
    are unknown.
    """
    now = now or utcnow()
    details = {}
    if job.last_data_write is not None:
        details["last_data_write"] = as_utc(job.last_data_write).isoformat()
    if not job.enabled:
        return HealthCheckResult(name=job.name, status=UNKNOWN, last_check=now, details={"status": "disabled", **details})
    if job.last_success_at is None:
        return HealthCheckResult(name=job.name, status=UNKNOWN, last_check=now, error="Job has not succeeded yet",
                                 details=details)

    age = (now - as_utc(job.last_success_at)).total_seconds()
    interval = job.interval_minutes * 60
    details.update(last_success=as_utc(job.last_success_at).isoformat(), seconds_since_success=round(age))
    if age < interval:
        return HealthCheckResult(name=job.name, status=UP, last_check=now, details=details)
    if age < 2 * interval:
        return HealthCheckResult(name=job.name, status=WARNING, last_check=now, error="Sync overdue", details=details)
    return HealthCheckResult(name=job.name, status=DOWN, last_check=now, error="Sync severely overdue", details=details)


def format_uptime(seconds: float) -> str:
    seconds = int(seconds)
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes = seconds // 60
    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


class HealthCache:
    """Latest result per check plus the last aggregate snapshot."""

    def __init__(self):
        self._lock = threading.Lock()
        self._results: Dict[str, HealthCheckResult] = {}
        self._snapshot: Optional[SystemHealth] = None
        self._snapshot_at: Optional[float] = None

    def update(self, result: HealthCheckResult) -> None:
        with self._lock:
            self._results[result.name] = result

    def results(self) -> List[HealthCheckResult]:
        with self._lock:
            return list(self._results.values())

    def store_snapshot(self, snapshot: SystemHealth, at: float) -> None:
        with self._lock:
            self._snapshot = snapshot
            self._snapshot_at = at

    def snapshot(self, now: float, ttl: float) -> Optional[SystemHealth]:
        """The cached snapshot if it is younger than `ttl` seconds."""
        with self._lock:
            if self._snapshot is None or now - self._snapshot_at >= ttl:
                return None
            return self._snapshot


class HealthMonitor:
    def __init__(self,
                 probes: Optional[Dict[str, Callable[[], ProbeResult]]] = None,
                 database_probe: Optional[Callable[[], float]] = None,
                 job_freshness: Optional[Callable[[], List[JobFreshness]]] = None,
                 cache: Optional[HealthCache] = None,
                 ttl_seconds: float = HEALTH_CACHE_TTL_SECONDS,
                 refresh_seconds: float = HEALTH_REFRESH_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self.probes = probes or {}
        self.database_probe = database_probe
        self.job_freshness = job_freshness
        self.cache = cache or HealthCache()
        self.ttl_seconds = ttl_seconds
        self.refresh_seconds = refresh_seconds
        self._clock = clock
        self._started_at = clock()
        self._refresh_lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._stopped = threading.Event()

    # Background refresh

    def start(self) -> None:
        self._stopped.clear()
        self.refresh_in_background()
        self._schedule()
        logger.info(f"🩺 Health monitor started (refresh every {self.refresh_seconds}s)")

    def stop(self) -> None:
        self._stopped.set()
        if self._timer is not None:
            self._timer.cancel()

    def _schedule(self) -> None:
        if self._stopped.is_set():
            return
        self._timer = threading.Timer(self.refresh_seconds, self._tick)
        self._timer.daemon = True
        self._timer.start()

    def _tick(self) -> None:
        self._schedule()
        self.refresh()

    def refresh_in_background(self) -> bool:
        """Start a refresh thread unless one is already running."""
        if self._refresh_lock.locked():
            return False
        threading.Thread(target=self.refresh, name="health-refresh", daemon=True).start()
        return True

    def refresh(self) -> bool:
        """Run every check now. Returns False if another refresh was in progress."""
        if not self._refresh_lock.acquire(blocking=False):
            return False
        try:
            for name, probe in self.probes.items():
                self.cache.update(self._run_probe(name, probe))
            if self.database_probe is not None:
                self.cache.update(self._check_database())
            if self.job_freshness is not None:
                for result in self._check_jobs():
                    self.cache.update(result)
            self.cache.store_snapshot(self._build_snapshot(), self._clock())
            return True
        finally:
            self._refresh_lock.release()

    # Reads

    def get_system_health(self) -> SystemHealth:
        """
        Serve the cached snapshot while it is fresh. Otherwise kick off a
        background refresh and answer with the best results available now.
        """
        cached = self.cache.snapshot(self._clock(), self.ttl_seconds)
        if cached is not None:
            return cached
        self.refresh_in_background()
        return self._build_snapshot()

    def uptime_seconds(self) -> float:
        return self._clock() - self._started_at

    # Checks

    def _run_probe(self, name: str, probe: Callable[[], ProbeResult]) -> HealthCheckResult:
        try:
            result = probe()
        except Exception as e:
            logger.error(f"❌ Health probe for {name} crashed: {e}")
            return HealthCheckResult(name=name, status=DOWN, last_check=utcnow(), error=f"Probe error: {e}")
        return HealthCheckResult(
            name=name,
            status=UP if result.ok else DOWN,
            response_time_ms=result.response_time_ms,
            last_check=utcnow(),
            error=result.error,
        )

    def _check_database(self) -> HealthCheckResult:
        started = self._clock()
        try:
            latency = self.database_probe()
            return HealthCheckResult(name="database", status=UP, response_time_ms=round(latency, 1),
                                     last_check=utcnow(), details={"connection_status": "connected"})
        except (SQLAlchemyError, RepositoryError) as e:
            return HealthCheckResult(name="database", status=DOWN,
                                     response_time_ms=round((self._clock() - started) * 1000, 1),
                                     last_check=utcnow(), error=str(e).splitlines()[0])

    def _check_jobs(self) -> List[HealthCheckResult]:
        try:
            jobs = self.job_freshness()
        except (SQLAlchemyError, RepositoryError) as e:
            logger.warning(f"⚠️ Could not read job state for health checks: {e}")
            return []
        now = utcnow()
        return [classify_staleness(job, now) for job in jobs]

    def _build_snapshot(self) -> SystemHealth:
        checks = self.cache.results()
        uptime = self.uptime_seconds()
        return SystemHealth(
            overall=aggregate_status(checks),
            checks=checks,
            uptime_seconds=uptime,
            uptime=format_uptime(uptime),
            generated_at=utcnow(),
        )


def scheduler_job_freshness(scheduler, config_repo=None,
                            data_writes: Optional[Callable[[], Dict[str, Optional[datetime]]]] = None
                            ) -> Callable[[], List[JobFreshness]]:
    """
    Build a job_freshness source from the live scheduler, falling back to the
    persisted last success for jobs that have not succeeded since startup.
    `data_writes` maps job names to the newest row each job has written.
    """
    def _collect() -> List[JobFreshness]:
        persisted = {}
        if config_repo is not None:
            persisted = {c.service_name: c.last_success_at for c in config_repo.get_all()}
        writes = data_writes() if data_writes is not None else {}
        jobs = []
        for name, state in scheduler.get_states().items():
            candidates = [as_utc(t) for t in (state.last_success_at, persisted.get(name)) if t is not None]
            jobs.append(JobFreshness(
                name=name,
                interval_minutes=state.interval_minutes,
                enabled=state.enabled,
                last_success_at=max(candidates) if candidates else None,
                last_data_write=writes.get(name),
            ))
        return jobs
    return _collect
