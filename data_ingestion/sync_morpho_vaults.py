import logging
from typing import Optional, Callable

from api_clients import morpho_client
from data_processing.normalizer import SOURCE_MORPHO
from data_processing.reconciler import Reconciler, BatchResult
from orchestration.errors import JobExecutionError

logger = logging.getLogger(__name__)

JOB_NAME = "morphoApiSync"


def sync_morpho_vaults(reconciler: Optional[Reconciler] = None,
                       fetch: Callable = morpho_client.fetch_vaults) -> BatchResult:
    """Fetch Morpho vaults for every configured chain in one pass and reconcile them."""
    reconciler = reconciler or Reconciler()

    logger.info("🔵 Fetching Morpho vaults...")
    fetched = fetch()
    if not fetched.ok:
        raise JobExecutionError(JOB_NAME, f"Morpho fetch failed ({fetched.error.kind}): {fetched.error.message}")

    return reconciler.upsert_batch(SOURCE_MORPHO, fetched.records)
