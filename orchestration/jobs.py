import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from api_clients import defillama_client, morpho_client, lido_client, etherscan_scraper, moralis_client, alchemy_client
from data_ingestion.sync_defillama_pools import sync_defillama_pools
from data_ingestion.sync_morpho_vaults import sync_morpho_vaults
from data_ingestion.sync_lido_staking import sync_lido_staking
from data_ingestion.sync_holder_counts import sync_holder_counts
from data_ingestion.sync_pool_holders import sync_all_pool_holders
from data_processing.normalizer import SOURCE_DEFILLAMA, SOURCE_MORPHO, SOURCE_LIDO
from data_processing.pool_outlooks import generate_pool_outlooks, cleanup_expired_outlooks, OutlookGenerator
from data_processing.reconciler import Reconciler
from database.repositories.pool_repository import PoolRepository
from database.repositories.holder_repository import HolderRepository
from database.repositories.outlook_repository import OutlookRepository

logger = logging.getLogger(__name__)


def _reconciler(engine) -> Reconciler:
    # One reconciler per run so platform/chain lookups are not cached across runs
    return Reconciler(pool_repo=PoolRepository(engine=engine))


def build_jobs(engine=None, outlook_generator: Optional[OutlookGenerator] = None) -> Dict[str, Callable[[], object]]:
    """Map each service name to a zero-argument callable that runs one sync pass."""
    return {
        "poolDataSync": lambda: sync_defillama_pools(_reconciler(engine)),
        "morphoApiSync": lambda: sync_morpho_vaults(_reconciler(engine)),
        "lidoStakingSync": lambda: sync_lido_staking(_reconciler(engine)),
        "etherscanScraper": lambda: sync_holder_counts(PoolRepository(engine=engine), HolderRepository(engine=engine)),
        "poolHoldersSync": lambda: sync_all_pool_holders(PoolRepository(engine=engine), HolderRepository(engine=engine)),
        "aiOutlookGeneration": lambda: generate_pool_outlooks(
            outlook_generator, PoolRepository(engine=engine), OutlookRepository(engine=engine)
        ),
        "cleanup": lambda: cleanup_expired_outlooks(OutlookRepository(engine=engine)),
    }


def build_data_writes(engine=None) -> Callable[[], Dict[str, Optional[datetime]]]:
    """Newest persisted row per data-writing job, for the health checks."""
    pool_repo = PoolRepository(engine=engine)
    holder_repo = HolderRepository(engine=engine)

    def _collect() -> Dict[str, Optional[datetime]]:
        return {
            "poolDataSync": pool_repo.latest_update(SOURCE_DEFILLAMA),
            "morphoApiSync": pool_repo.latest_update(SOURCE_MORPHO),
            "lidoStakingSync": pool_repo.latest_update(SOURCE_LIDO),
            "etherscanScraper": holder_repo.latest_history_timestamp(),
            "poolHoldersSync": holder_repo.latest_holder_update(),
        }
    return _collect


def build_probes() -> Dict[str, Callable]:
    return {
        "defillama": defillama_client.probe,
        "morpho": morpho_client.probe,
        "lido": lido_client.probe,
        "etherscan": etherscan_scraper.probe,
        "moralis": moralis_client.probe,
        "alchemy": alchemy_client.probe,
    }


def register_jobs(scheduler, config_service, jobs: Dict[str, Callable[[], object]], run_immediately: bool = True) -> int:
    """Register every configured service that has an implementation. Returns how many were registered."""
    registered = 0
    for config in config_service.list_configurations():
        func = jobs.get(config.service_name)
        if func is None:
            logger.warning(f"⚠️ No job implementation for configured service {config.service_name}")
            continue
        scheduler.register(config.service_name, func, config.interval_minutes,
                           enabled=config.is_enabled, run_immediately=run_immediately)
        registered += 1
    return registered


def run_job_once(job_name: str, engine=None, outlook_generator: Optional[OutlookGenerator] = None):
    """Run a single job synchronously, outside the scheduler."""
    jobs = build_jobs(engine=engine, outlook_generator=outlook_generator)
    if job_name not in jobs:
        raise KeyError(f"Unknown job: {job_name}. Available: {', '.join(sorted(jobs))}")
    return jobs[job_name]()
