import logging
from typing import Optional, Callable

from api_clients import lido_client
from data_processing.normalizer import SOURCE_LIDO
from data_processing.reconciler import Reconciler, BatchResult
from orchestration.errors import JobExecutionError

logger = logging.getLogger(__name__)

JOB_NAME = "lidoStakingSync"


def sync_lido_staking(reconciler: Optional[Reconciler] = None,
                      fetch: Callable = lido_client.fetch_steth_apr) -> BatchResult:
    reconciler = reconciler or Reconciler()

    logger.info("🔄 Starting Lido data synchronization...")
    fetched = fetch()
    if not fetched.ok:
        raise JobExecutionError(JOB_NAME, f"Lido fetch failed ({fetched.error.kind}): {fetched.error.message}")

    return reconciler.upsert_batch(SOURCE_LIDO, fetched.records)
