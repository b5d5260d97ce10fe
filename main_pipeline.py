import logging
import signal
import sys
import threading
from datetime import datetime

# Configuration Loading
import config

from database.db_utils import apply_migrations, get_db_connection, init_schema, ping
from database.repositories.service_config_repository import ServiceConfigRepository
from orchestration.health_monitor import HealthMonitor, scheduler_job_freshness
from orchestration.jobs import build_jobs, build_probes, build_data_writes, register_jobs
from orchestration.scheduler import Scheduler
from orchestration.service_configuration import ServiceConfigurationService

# Setup logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s', force=True)
logger = logging.getLogger()


def build_services(engine, outlook_generator=None, run_immediately: bool = True):
    """Wire the scheduler, configuration service and health monitor around one engine."""
    config_repo = ServiceConfigRepository(engine=engine)
    config_service = ServiceConfigurationService(repo=config_repo)

    scheduler = Scheduler(run_recorder=config_service.update_run_stats)
    config_service.scheduler = scheduler

    config_service.initialize_configurations()
    jobs = build_jobs(engine=engine, outlook_generator=outlook_generator)
    registered = register_jobs(scheduler, config_service, jobs, run_immediately=run_immediately)
    logger.info(f"⏰ Registered {registered} scheduled jobs")

    monitor = HealthMonitor(
        probes=build_probes(),
        database_probe=lambda: ping(engine),
        job_freshness=scheduler_job_freshness(scheduler, config_repo, data_writes=build_data_writes(engine)),
    )
    return scheduler, config_service, monitor


def run_service(use_migrations: bool = True):
    """
    Start the long-running sync service: schema, configuration, scheduler and
    health monitor. Blocks until SIGINT or SIGTERM.
    """
    logger.info("Starting pool sync service...")
    start_time = datetime.now()

    engine = get_db_connection()
    if engine is None:
        logger.error("❌ Database is unavailable; cannot start the sync service")
        sys.exit(1)

    if use_migrations:
        logger.info("Applying database migrations...")
        apply_migrations(engine=engine)
    else:
        init_schema(engine)

    scheduler, _, monitor = build_services(engine)
    monitor.start()

    stop_event = threading.Event()

    def _shutdown(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    stop_event.wait()
    scheduler.stop()
    monitor.stop()

    logger.info("=" * 60)
    logger.info("📊 SYNC SERVICE SUMMARY")
    logger.info("=" * 60)
    for name, state in scheduler.get_states().items():
        logger.info(f"  {name}: {state.run_count} runs, {state.error_count} errors, {state.skipped_count} skipped ticks")
    logger.info(f"Pool sync service stopped after {datetime.now() - start_time}.")


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description="Run the pool sync service.")
    parser.add_argument("--no-migrations", action="store_true",
                        help="Create missing tables from the ORM models instead of applying SQL migrations")
    args = parser.parse_args()

    run_service(use_migrations=not args.no_migrations)
