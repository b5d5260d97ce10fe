import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Dict

from api_clients.errors import FetchError, FetchResult, MalformedResponse, ProbeResult
from api_clients.http_utils import get_json, timed_probe

logger = logging.getLogger(__name__)

SOURCE = "lido"
BASE_URL = "https://eth-api.lido.fi/v1"
SMA_APR_URL = f"{BASE_URL}/protocol/steth/apr/sma"
LAST_APR_URL = f"{BASE_URL}/protocol/steth/apr/last"


def _get_data(url: str, timeout: Optional[float]) -> Dict:
    body = get_json(url, SOURCE, timeout=timeout)
    data = body.get("data") if isinstance(body, dict) else None
    if not isinstance(data, dict):
        raise MalformedResponse(SOURCE, f"no 'data' object in response from {url}")
    return data


def fetch_steth_apr(timeout: Optional[float] = None) -> FetchResult:
    """
    Fetch the stETH 7-day SMA APR and the latest APR in parallel.
    Produces a single record combining both; either failing fails the fetch.
    """
    try:
        with ThreadPoolExecutor(max_workers=2) as executor:
            sma_future = executor.submit(_get_data, SMA_APR_URL, timeout)
            last_future = executor.submit(_get_data, LAST_APR_URL, timeout)
            sma = sma_future.result()
            last = last_future.result()

        if "smaApr" not in sma or "apr" not in last:
            raise MalformedResponse(SOURCE, "APR fields missing from Lido response")

        record = {
            "smaApr": sma["smaApr"],
            "smaTimeUnix": sma.get("timeUnix"),
            "lastApr": last["apr"],
            "lastTimeUnix": last.get("timeUnix"),
        }
        logger.info(f"📊 Lido stETH APR: SMA {record['smaApr']}%, last {record['lastApr']}%")
        return FetchResult.success([record])
    except FetchError as e:
        logger.error(f"❌ Lido APR request failed ({e.kind}): {e.message}")
        return FetchResult.failure(e)


def probe(timeout: float = 10) -> ProbeResult:
    return timed_probe(lambda: _get_data(SMA_APR_URL, timeout), SOURCE)
