import logging
import time
from datetime import timedelta
from typing import Optional, Callable, Dict

from api_clients import etherscan_scraper
from api_clients.errors import Blocked
from config import (
    HOLDER_HISTORY_FRESHNESS_MINUTES,
    SCRAPER_REQUEST_DELAY_SECONDS,
    SCRAPER_BATCH_SIZE,
    SCRAPER_BATCH_DELAY_SECONDS,
)
from database.repositories.pool_repository import PoolRepository
from database.repositories.holder_repository import HolderRepository
from database.timestamps import utcnow

logger = logging.getLogger(__name__)

JOB_NAME = "etherscanScraper"


def sync_holder_counts(pool_repo: Optional[PoolRepository] = None,
                       holder_repo: Optional[HolderRepository] = None,
                       scrape: Callable = etherscan_scraper.scrape_holder_count,
                       sleep: Callable[[float], None] = time.sleep,
                       request_delay: float = SCRAPER_REQUEST_DELAY_SECONDS,
                       batch_size: int = SCRAPER_BATCH_SIZE,
                       batch_delay: float = SCRAPER_BATCH_DELAY_SECONDS,
                       freshness: timedelta = timedelta(minutes=HOLDER_HISTORY_FRESHNESS_MINUTES)) -> Dict[str, int]:
    """
    Scrape total holder counts for every active pool with a contract address
    and append them to the holder history.

    Requests are spaced out, with a longer pause after every batch. Tokens
    sampled within the freshness window are skipped. A Blocked page ends the
    run early, since every further request would be blocked as well.
    """
    pool_repo = pool_repo or PoolRepository()
    holder_repo = holder_repo or HolderRepository(engine=pool_repo._engine)

    stats = {"success": 0, "failed": 0, "skipped": 0, "blocked": 0}
    pools = pool_repo.get_active_pools(with_address=True)
    logger.info(f"🔍 Scraping holder counts for {len(pools)} pools "
                f"({request_delay}s between requests, {batch_size} per batch)")

    since = utcnow() - freshness
    request_count = 0
    for pool in pools:
        if holder_repo.has_history_since(pool.pool_address, since):
            stats["skipped"] += 1
            continue

        if request_count > 0:
            sleep(request_delay)
            if request_count % batch_size == 0:
                logger.info(f"⏸️ Batch complete. Pausing for {batch_delay} seconds...")
                sleep(batch_delay)

        chain_name = pool.chain.name if pool.chain else "ethereum"
        result = scrape(pool.pool_address, chain_name)
        request_count += 1

        if isinstance(result.error, Blocked):
            stats["blocked"] = 1
            logger.warning(f"🚫 Blocked by explorer at {pool.token_pair}; stopping holder count run")
            break
        if not result.ok or not result.records:
            stats["failed"] += 1
            continue

        holder_repo.add_history_point(pool.pool_address, result.records[0]["holders_count"])
        stats["success"] += 1

    logger.info(f"🏁 Holder count scraping completed: {stats['success']} success, "
                f"{stats['failed']} failed, {stats['skipped']} skipped")
    return stats
