import logging
from typing import Dict, Any, List, Optional

import yaml

from config import SERVICE_CONFIG_FILE
from database.models.service_configuration import ServiceConfiguration
from database.repositories.service_config_repository import ServiceConfigRepository
from database.repositories.exceptions import RepositoryError
from orchestration.errors import ConfigurationError

logger = logging.getLogger(__name__)

MIN_INTERVAL_MINUTES = 1
MAX_INTERVAL_MINUTES = 525600  # one year


def load_default_configs(file_path: str = SERVICE_CONFIG_FILE) -> Dict[str, Dict[str, Any]]:
    """Load the default job configuration from YAML."""
    try:
        with open(file_path, 'r') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load service defaults from {file_path}: {e}")

    services = data.get("services")
    if not isinstance(services, dict):
        raise ConfigurationError(f"{file_path} has no 'services' mapping")
    for name, values in services.items():
        if "interval_minutes" not in (values or {}):
            raise ConfigurationError(f"Service {name} has no interval_minutes")
    return services


def validate_interval(interval_minutes) -> int:
    if isinstance(interval_minutes, bool) or not isinstance(interval_minutes, int):
        raise ConfigurationError(f"Interval must be a whole number of minutes, got {interval_minutes!r}")
    if not (MIN_INTERVAL_MINUTES <= interval_minutes <= MAX_INTERVAL_MINUTES):
        raise ConfigurationError(
            f"Interval must be between {MIN_INTERVAL_MINUTES} and {MAX_INTERVAL_MINUTES} minutes, got {interval_minutes}"
        )
    return interval_minutes


class ServiceConfigurationService:
    """
    Owns the persisted job configuration and keeps the live scheduler in step with it.
    """

    def __init__(self, repo: Optional[ServiceConfigRepository] = None, scheduler=None):
        self.repo = repo or ServiceConfigRepository()
        self.scheduler = scheduler

    def initialize_configurations(self, defaults: Optional[Dict[str, Dict[str, Any]]] = None) -> Dict[str, int]:
        """Seed missing jobs and refresh descriptions while preserving admin settings."""
        logger.info("🔧 Initializing service configurations...")
        defaults = defaults if defaults is not None else load_default_configs()
        counts = self.repo.seed_defaults(defaults)
        logger.info(f"🔧 Service configurations initialized: {counts['added']} added, {counts['updated']} updated")
        return counts

    def list_configurations(self) -> List[ServiceConfiguration]:
        return self.repo.get_all()

    def get_configuration(self, service_name: str) -> Optional[ServiceConfiguration]:
        return self.repo.get(service_name)

    def update_configuration(self, service_name: str, interval_minutes: int, is_enabled: bool) -> ServiceConfiguration:
        """
        Validate, persist, then apply to the running scheduler. A rejected
        update leaves both the database and the scheduler untouched.
        """
        validate_interval(interval_minutes)
        if self.repo.get(service_name) is None:
            raise ConfigurationError(f"Unknown service: {service_name}")

        try:
            updated = self.repo.update_settings(service_name, interval_minutes, bool(is_enabled))
        except RepositoryError as e:
            raise ConfigurationError(f"Could not save configuration for {service_name}: {e}")

        if self.scheduler is not None and service_name in self.scheduler.job_names():
            self.scheduler.apply_config(service_name, interval_minutes, bool(is_enabled))

        logger.info(f"🔧 Updated service configuration: {service_name} - interval: {interval_minutes}min, enabled: {is_enabled}")
        return updated

    def update_run_stats(self, service_name: str, success: bool, error: Optional[str] = None) -> None:
        self.repo.record_run(service_name, success, error)
