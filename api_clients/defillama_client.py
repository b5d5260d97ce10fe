import logging
from typing import Optional

from api_clients.errors import FetchError, FetchResult, MalformedResponse, ProbeResult
from api_clients.http_utils import get_json, send, timed_probe

logger = logging.getLogger(__name__)

SOURCE = "defillama"
POOLS_URL = "https://yields.llama.fi/pools"


def fetch_pools(timeout: Optional[float] = None) -> FetchResult:
    """
    Fetch the full DeFiLlama yields pool list.
    The endpoint is not paginated; records sit under the top-level 'data' key.
    """
    try:
        payload = get_json(POOLS_URL, SOURCE, timeout=timeout)
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise MalformedResponse(SOURCE, "response has no 'data' list")
        logger.info(f"📊 Fetched {len(data)} pools from DeFiLlama")
        return FetchResult.success(data)
    except FetchError as e:
        logger.error(f"❌ DeFiLlama pools request failed ({e.kind}): {e.message}")
        return FetchResult.failure(e)


def probe(timeout: float = 10) -> ProbeResult:
    return timed_probe(lambda: send("HEAD", POOLS_URL, SOURCE, timeout=timeout), SOURCE)
