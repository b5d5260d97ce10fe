import logging
from typing import Optional, Iterable, Callable

from api_clients import defillama_client
from data_processing.normalizer import SOURCE_DEFILLAMA
from data_processing.reconciler import Reconciler, BatchResult
from database.repositories.pool_repository import PoolRepository
from orchestration.errors import JobExecutionError

logger = logging.getLogger(__name__)

JOB_NAME = "poolDataSync"


def detect_and_mark_stale_pools(repo: PoolRepository, current_api_pool_ids: Iterable[str]) -> int:
    """
    Mark DeFiLlama pools that are no longer in the API response as inactive.
    Stale pools are never deleted and never reactivated by sync.
    """
    existing_pool_ids = set(repo.get_external_ids(SOURCE_DEFILLAMA, active_only=True))
    stale_pool_ids = existing_pool_ids - set(current_api_pool_ids)

    if not stale_pool_ids:
        logger.info("✅ No stale pools detected - all existing pools are still in the DeFiLlama API")
        return 0

    marked = repo.mark_pools_inactive(SOURCE_DEFILLAMA, sorted(stale_pool_ids))
    logger.info(f"🗑️ Marked {marked} pools as inactive (no longer in DeFiLlama API)")
    for pool_id in sorted(stale_pool_ids):
        logger.debug(f"   - Inactive pool: {pool_id}")
    return marked


def sync_defillama_pools(reconciler: Optional[Reconciler] = None,
                         fetch: Callable = defillama_client.fetch_pools) -> BatchResult:
    reconciler = reconciler or Reconciler()

    logger.info("🔄 Fetching DeFiLlama pools data...")
    fetched = fetch()
    if not fetched.ok:
        # Without a complete listing there is no basis for stale detection either
        raise JobExecutionError(JOB_NAME, f"DeFiLlama fetch failed ({fetched.error.kind}): {fetched.error.message}")

    result = reconciler.upsert_batch(SOURCE_DEFILLAMA, fetched.records)

    current_ids = [r.get("pool") for r in fetched.records if isinstance(r, dict) and r.get("pool")]
    detect_and_mark_stale_pools(reconciler.pool_repo, current_ids)
    return result
