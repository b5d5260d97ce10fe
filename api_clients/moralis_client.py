import logging
from typing import Optional

from api_clients.errors import FetchError, FetchResult, AuthFailure, MalformedResponse, ProbeResult
from api_clients.http_utils import get_json, timed_probe
from config import MORALIS_API_KEY, MAX_HOLDERS_PER_POOL

logger = logging.getLogger(__name__)

SOURCE = "moralis"
BASE_URL = "https://deep-index.moralis.io/api/v2.2"

# Moralis chain identifiers by network name
MORALIS_CHAINS = {"ethereum": "eth", "base": "base"}

# USDC on Ethereum, used as a cheap probe target
PROBE_TOKEN = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"


def _headers(api_key: str) -> dict:
    return {"X-API-Key": api_key, "Content-Type": "application/json"}


def fetch_token_owners(token_address: str, network: str, limit: int = MAX_HOLDERS_PER_POOL,
                       api_key: Optional[str] = None, timeout: Optional[float] = None) -> FetchResult:
    """
    Fetch the top holder addresses of an ERC-20 token.
    Records are lowercased owner addresses, at most `limit` of them.
    """
    api_key = api_key or MORALIS_API_KEY
    try:
        if not api_key:
            raise AuthFailure(SOURCE, "MORALIS_API_KEY is not configured")
        chain = MORALIS_CHAINS.get(network)
        if chain is None:
            raise MalformedResponse(SOURCE, f"unsupported network: {network}")

        body = get_json(
            f"{BASE_URL}/erc20/{token_address}/owners",
            SOURCE,
            params={"chain": chain, "limit": limit},
            headers=_headers(api_key),
            timeout=timeout,
        )
        result = body.get("result") if isinstance(body, dict) else None
        if not isinstance(result, list):
            raise MalformedResponse(SOURCE, "response has no 'result' list")

        owners = [h["owner_address"].lower() for h in result
                  if isinstance(h, dict) and isinstance(h.get("owner_address"), str) and h["owner_address"]]
        return FetchResult.success(owners[:limit])
    except FetchError as e:
        logger.error(f"❌ Moralis owners request failed for {token_address} ({e.kind}): {e.message}")
        return FetchResult.failure(e)


def probe(timeout: float = 10) -> ProbeResult:
    def _call():
        result = fetch_token_owners(PROBE_TOKEN, "ethereum", limit=1, timeout=timeout)
        if not result.ok:
            raise result.error
    return timed_probe(_call, SOURCE)
