#!/usr/bin/env python3
"""
Universal Job Runner
Runs a single sync job by name, synchronously and outside the scheduler.
"""

import sys
import logging
import json
from pathlib import Path

class JsonFormatter(logging.Formatter):
    def format(self, record):
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.getMessage(),
            "name": record.name
        }
        return json.dumps(log_record)


def configure_logging():
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    # Replace existing handlers to avoid duplicate lines
    root_logger = logging.getLogger()
    for h in root_logger.handlers[:]:
        root_logger.removeHandler(h)
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.INFO)


logger = logging.getLogger(__name__)

# Add project root to Python path
project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))


def run_apply_migrations():
    """Special handler for apply_migrations function."""
    from database.db_utils import apply_migrations
    apply_migrations()


def main(argv=None):
    """Main entry point for the job runner."""
    argv = sys.argv[1:] if argv is None else argv
    configure_logging()

    if len(argv) != 1:
        logger.error("Usage: python pipeline_runner.py <job_name>")
        return 1

    job_name = argv[0]
    logger.info(f"Starting job: {job_name}")

    from orchestration.errors import JobExecutionError
    from orchestration.jobs import run_job_once

    try:
        if job_name == "apply_migrations":
            logger.info("Running database migrations...")
            run_apply_migrations()
            logger.info("Database migrations completed successfully")
        else:
            result = run_job_once(job_name)
            logger.info(f"Job {job_name} completed successfully: {result}")
    except KeyError as e:
        logger.error(str(e).strip("'"))
        return 1
    except JobExecutionError as e:
        logger.error(f"Job {job_name} failed: {e.message}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
