"""
Admin operations consumed by the external admin UI.

Visibility, categories and notes are admin-owned pool fields: these functions
are the only writers of them.
"""
import logging
from typing import List, Optional, Dict, Any

from database.repositories.pool_repository import PoolRepository
from orchestration.service_configuration import ServiceConfigurationService

logger = logging.getLogger(__name__)


def set_pool_visibility(pool_id: str, is_visible: bool, repo: Optional[PoolRepository] = None):
    repo = repo or PoolRepository()
    pool = repo.set_visibility(pool_id, bool(is_visible))
    logger.info(f"👁️ Pool {pool_id} visibility set to {pool.is_visible}")
    return pool


def set_pool_categories(pool_id: str, categories: List[str], repo: Optional[PoolRepository] = None):
    repo = repo or PoolRepository()
    cleaned = sorted({c.strip() for c in categories if c and c.strip()})
    return repo.set_categories(pool_id, cleaned)


def set_pool_notes(pool_id: str, notes: Optional[str], repo: Optional[PoolRepository] = None):
    repo = repo or PoolRepository()
    return repo.set_notes(pool_id, notes)


def list_service_configurations(service: ServiceConfigurationService) -> List[Dict[str, Any]]:
    return [
        {
            "service_name": c.service_name,
            "display_name": c.display_name,
            "description": c.description,
            "interval_minutes": c.interval_minutes,
            "is_enabled": c.is_enabled,
            "category": c.category,
            "priority": c.priority,
            "last_run": c.last_run,
            "last_success_at": c.last_success_at,
            "run_count": c.run_count,
            "error_count": c.error_count,
            "last_error": c.last_error,
        }
        for c in service.list_configurations()
    ]


def update_configuration(service: ServiceConfigurationService, service_name: str,
                         interval_minutes: int, is_enabled: bool):
    """Raises ConfigurationError when the update is rejected."""
    return service.update_configuration(service_name, interval_minutes, is_enabled)
