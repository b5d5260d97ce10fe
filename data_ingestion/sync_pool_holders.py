import logging
from typing import Optional, Dict, Callable

from data_processing.holder_aggregator import sync_pool_holders, HolderSyncError
from database.repositories.pool_repository import PoolRepository
from database.repositories.holder_repository import HolderRepository
from database.repositories.exceptions import RepositoryError

logger = logging.getLogger(__name__)

JOB_NAME = "poolHoldersSync"


def sync_all_pool_holders(pool_repo: Optional[PoolRepository] = None,
                          holder_repo: Optional[HolderRepository] = None,
                          sync_one: Callable = sync_pool_holders) -> Dict[str, int]:
    """Refresh the holder snapshot of every active pool with a contract address."""
    pool_repo = pool_repo or PoolRepository()
    holder_repo = holder_repo or HolderRepository(engine=pool_repo._engine)

    logger.info("🔍 Starting pool holders sync...")
    stats = {"success": 0, "failed": 0}
    for pool in pool_repo.get_active_pools(with_address=True):
        try:
            sync_one(pool.id, pool_repo=pool_repo, holder_repo=holder_repo)
            stats["success"] += 1
        except (HolderSyncError, RepositoryError) as e:
            stats["failed"] += 1
            logger.error(f"❌ Failed to update holders for pool {pool.token_pair}: {e}")

    logger.info(f"🏁 Pool holders sync completed: {stats['success']} success, {stats['failed']} failed")
    return stats
