import logging
from typing import Optional

from api_clients.errors import FetchError, FetchResult, AuthFailure, MalformedResponse, ProbeResult
from api_clients.http_utils import post_json, timed_probe
from config import ALCHEMY_API_KEY

logger = logging.getLogger(__name__)

SOURCE = "alchemy"
NETWORK_URLS = {
    "ethereum": "https://eth-mainnet.g.alchemy.com/v2",
    "base": "https://base-mainnet.g.alchemy.com/v2",
}


def _rpc(network: str, method: str, params: list, api_key: Optional[str], timeout: Optional[float], request_id: int = 1):
    api_key = api_key or ALCHEMY_API_KEY
    if not api_key:
        raise AuthFailure(SOURCE, "ALCHEMY_API_KEY is not configured")
    base_url = NETWORK_URLS.get(network)
    if base_url is None:
        raise MalformedResponse(SOURCE, f"unsupported network: {network}")

    body = post_json(
        f"{base_url}/{api_key}",
        SOURCE,
        {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params},
        timeout=timeout,
    )
    if not isinstance(body, dict):
        raise MalformedResponse(SOURCE, "JSON-RPC response is not an object")
    if body.get("error"):
        raise MalformedResponse(SOURCE, f"JSON-RPC error: {body['error']}")
    if "result" not in body:
        raise MalformedResponse(SOURCE, "JSON-RPC response has no 'result'")
    return body["result"]


def fetch_token_balance(holder_address: str, token_address: str, network: str,
                        api_key: Optional[str] = None, timeout: Optional[float] = None) -> FetchResult:
    """
    Fetch the raw ERC-20 balance (smallest unit) of one holder.
    The single record is an int; a missing balance entry counts as zero.
    """
    try:
        result = _rpc(network, "alchemy_getTokenBalances", [holder_address, [token_address]], api_key, timeout)
        balances = result.get("tokenBalances") if isinstance(result, dict) else None
        if not isinstance(balances, list):
            raise MalformedResponse(SOURCE, "result has no 'tokenBalances' list")
        first = balances[0] if balances else {}
        if not isinstance(first, dict):
            raise MalformedResponse(SOURCE, f"unexpected token balance entry: {first!r}")
        raw = first.get("tokenBalance") or "0x0"
        try:
            balance = int(raw, 16)
        except (TypeError, ValueError):
            raise MalformedResponse(SOURCE, f"invalid hex balance: {raw!r}")
        return FetchResult.success([balance])
    except FetchError as e:
        logger.error(f"❌ Alchemy balance request failed for {holder_address} ({e.kind}): {e.message}")
        return FetchResult.failure(e)


def probe(timeout: float = 10) -> ProbeResult:
    return timed_probe(lambda: _rpc("ethereum", "eth_blockNumber", [], None, timeout), SOURCE)
