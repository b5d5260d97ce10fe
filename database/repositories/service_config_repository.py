from datetime import datetime
from typing import List, Optional, Dict, Any

from sqlalchemy import select

from database.models.service_configuration import ServiceConfiguration
from database.repositories.base_repository import BaseRepository
from database.repositories.exceptions import EntityNotFoundError
from database.timestamps import utcnow

# Defaults may refresh these on existing rows; interval and enabled stay admin-controlled
DESCRIPTIVE_FIELDS = ("display_name", "description", "category", "priority")


class ServiceConfigRepository(BaseRepository[ServiceConfiguration]):
    """
    Repository for per-job runtime configuration and run statistics.
    """
    def __init__(self, engine=None):
        super().__init__(model_class=ServiceConfiguration, engine=engine)

    def get_all(self) -> List[ServiceConfiguration]:
        with self.session() as session:
            stmt = select(ServiceConfiguration).order_by(ServiceConfiguration.priority, ServiceConfiguration.service_name)
            return list(session.execute(stmt).scalars().all())

    def get(self, service_name: str) -> Optional[ServiceConfiguration]:
        return self.get_by_id(service_name)

    def seed_defaults(self, defaults: Dict[str, Dict[str, Any]]) -> Dict[str, int]:
        """
        Insert missing configurations; refresh descriptive fields of existing
        ones while preserving their interval and enabled settings.
        """
        added = updated = 0
        with self.session() as session:
            for service_name, values in defaults.items():
                existing = session.get(ServiceConfiguration, service_name)
                if existing is None:
                    session.add(ServiceConfiguration(
                        service_name=service_name,
                        display_name=values.get("display_name", service_name),
                        description=values.get("description"),
                        interval_minutes=int(values["interval_minutes"]),
                        is_enabled=bool(values.get("is_enabled", True)),
                        category=values.get("category"),
                        priority=values.get("priority", 2),
                        run_count=0,
                        error_count=0,
                    ))
                    added += 1
                else:
                    for field in DESCRIPTIVE_FIELDS:
                        if field in values:
                            setattr(existing, field, values[field])
                    updated += 1
        return {"added": added, "updated": updated}

    def update_settings(self, service_name: str, interval_minutes: int, is_enabled: bool) -> ServiceConfiguration:
        with self.session() as session:
            config = session.get(ServiceConfiguration, service_name)
            if config is None:
                raise EntityNotFoundError(f"Service configuration not found: {service_name}")
            config.interval_minutes = interval_minutes
            config.is_enabled = is_enabled
            return config

    def record_run(self, service_name: str, success: bool, error: Optional[str] = None,
                   finished_at: Optional[datetime] = None) -> None:
        """Update run statistics after a job execution. Unknown services are ignored."""
        finished_at = finished_at or utcnow()
        with self.session() as session:
            config = session.get(ServiceConfiguration, service_name)
            if config is None:
                return
            config.last_run = finished_at
            config.run_count = (config.run_count or 0) + 1
            if success:
                config.last_success_at = finished_at
                config.last_error = None
                config.last_error_at = None
            else:
                config.error_count = (config.error_count or 0) + 1
                config.last_error = error or "Unknown error"
                config.last_error_at = finished_at
