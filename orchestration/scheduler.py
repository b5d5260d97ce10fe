import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Optional

from database.repositories.exceptions import RepositoryError
from database.timestamps import utcnow
from orchestration.errors import JobExecutionError

logger = logging.getLogger(__name__)


class JobStatus(Enum):
    IDLE = "idle"
    RUNNING = "running"
    FAILED = "failed"


@dataclass
class JobState:
    name: str
    interval_minutes: int
    enabled: bool = True
    status: JobStatus = JobStatus.IDLE
    last_started_at: Optional[datetime] = None
    last_finished_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_error: Optional[str] = None
    run_count: int = 0
    error_count: int = 0
    skipped_count: int = 0


class _Job:
    def __init__(self, func: Callable[[], object], state: JobState):
        self.func = func
        self.state = state
        self.run_lock = threading.Lock()
        self.timer: Optional[threading.Timer] = None
        self.generation = 0


# Called after every run with (job name, success, error message)
RunRecorder = Callable[[str, bool, Optional[str]], None]


class Scheduler:
    """
    Interval scheduler with one timer per enabled job.

    A job never runs concurrently with itself: a tick that fires while the
    previous run is still going is skipped and counted, not queued. Interval
    and enabled changes apply from the next tick on without a restart.
    """

    def __init__(self, run_recorder: Optional[RunRecorder] = None,
                 timer_factory: Callable[..., threading.Timer] = threading.Timer):
        self._jobs: Dict[str, _Job] = {}
        self._lock = threading.Lock()
        self._run_recorder = run_recorder
        self._timer_factory = timer_factory
        self._stopped = False

    # Registration and configuration

    def register(self, name: str, func: Callable[[], object], interval_minutes: int,
                 enabled: bool = True, run_immediately: bool = True) -> None:
        with self._lock:
            if name in self._jobs:
                raise ValueError(f"Job already registered: {name}")
            job = _Job(func, JobState(name=name, interval_minutes=interval_minutes, enabled=enabled))
            self._jobs[name] = job
            if enabled:
                self._schedule_next(name, job)

        if enabled:
            logger.info(f"⏰ Scheduled {name} every {interval_minutes} minutes")
            if run_immediately:
                self.trigger(name)
        else:
            logger.info(f"⏸️ Registered {name} (disabled)")

    def apply_config(self, name: str, interval_minutes: int, enabled: bool) -> None:
        """Reschedule a job with a new interval and enabled flag."""
        with self._lock:
            job = self._get(name)
            self._cancel(job)
            job.state.interval_minutes = interval_minutes
            job.state.enabled = enabled
            if enabled and not self._stopped:
                self._schedule_next(name, job)

        if enabled:
            logger.info(f"🔄 {name} rescheduled every {interval_minutes} minutes")
        else:
            logger.info(f"⏸️ {name} disabled")

    def stop(self) -> None:
        with self._lock:
            self._stopped = True
            for job in self._jobs.values():
                self._cancel(job)
        logger.info("🛑 Scheduler stopped")

    # Introspection

    def job_names(self):
        return list(self._jobs.keys())

    def get_state(self, name: str) -> JobState:
        return replace(self._get(name).state)

    def get_states(self) -> Dict[str, JobState]:
        return {name: replace(job.state) for name, job in self._jobs.items()}

    # Execution

    def trigger(self, name: str) -> threading.Thread:
        """Run a job once in the background, outside its schedule."""
        self._get(name)
        thread = threading.Thread(target=self.run_job, args=(name,), name=f"job-{name}", daemon=True)
        thread.start()
        return thread

    def run_job(self, name: str) -> bool:
        """
        Run a job in the calling thread. Returns False when the job was
        already running and this call was skipped.
        """
        job = self._get(name)
        state = job.state
        if not job.run_lock.acquire(blocking=False):
            state.skipped_count += 1
            logger.warning(f"⏭️ {name} is still running; skipping this tick")
            return False

        try:
            state.status = JobStatus.RUNNING
            state.last_started_at = utcnow()
            logger.info(f"🚀 Running {name}")
            try:
                job.func()
            except Exception as e:
                error = e if isinstance(e, JobExecutionError) else JobExecutionError(name, str(e))
                state.status = JobStatus.FAILED
                state.error_count += 1
                state.last_error = error.message
                logger.error(f"❌ {name} failed: {error.message}")
                self._record(name, False, error.message)
            else:
                state.last_success_at = utcnow()
                state.last_error = None
                logger.info(f"✅ {name} completed")
                self._record(name, True, None)
            finally:
                state.run_count += 1
                state.last_finished_at = utcnow()
                # A failed run goes back to idle; the next tick is the retry
                state.status = JobStatus.IDLE
            return True
        finally:
            job.run_lock.release()

    # Internals

    def _get(self, name: str) -> _Job:
        job = self._jobs.get(name)
        if job is None:
            raise KeyError(f"Unknown job: {name}")
        return job

    def _schedule_next(self, name: str, job: _Job) -> None:
        # Caller holds self._lock
        job.generation += 1
        timer = self._timer_factory(job.state.interval_minutes * 60, self._on_tick, args=(name, job.generation))
        timer.daemon = True
        job.timer = timer
        timer.start()

    def _cancel(self, job: _Job) -> None:
        job.generation += 1
        if job.timer is not None:
            job.timer.cancel()
            job.timer = None

    def _on_tick(self, name: str, generation: int) -> None:
        with self._lock:
            job = self._jobs.get(name)
            if job is None or self._stopped or generation != job.generation or not job.state.enabled:
                return
            self._schedule_next(name, job)
        self.run_job(name)

    def _record(self, name: str, success: bool, error: Optional[str]) -> None:
        if self._run_recorder is None:
            return
        try:
            self._run_recorder(name, success, error)
        except RepositoryError as e:
            logger.warning(f"⚠️ Could not record run statistics for {name}: {e}")
