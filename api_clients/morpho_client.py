import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Dict, List

from api_clients.errors import FetchError, FetchResult, MalformedResponse, ProbeResult
from api_clients.http_utils import post_json, timed_probe
from config import MORPHO_CHAIN_IDS, MORPHO_VAULT_PAGE_SIZE

logger = logging.getLogger(__name__)

SOURCE = "morpho"
GRAPHQL_URL = "https://blue-api.morpho.org/graphql"

VAULTS_QUERY = """
query GetVaults($chainIds: [Int!]!, $first: Int!) {
  vaults(first: $first, where: { chainId_in: $chainIds }) {
    items {
      address
      name
      symbol
      asset { address symbol decimals }
      chain { id network }
      state { apy netApy totalAssetsUsd }
    }
  }
}
"""

PROBE_QUERY = "query Probe { vaults(first: 1) { items { address } } }"


def _query(query: str, variables: Optional[Dict] = None, timeout: Optional[float] = None) -> Dict:
    body = post_json(
        GRAPHQL_URL,
        SOURCE,
        {"query": query, "variables": variables or {}},
        headers={"Content-Type": "application/json", "Accept": "application/json"},
        timeout=timeout,
    )
    if not isinstance(body, dict):
        raise MalformedResponse(SOURCE, "GraphQL response is not an object")
    if body.get("errors"):
        raise MalformedResponse(SOURCE, f"GraphQL errors: {body['errors']}")
    data = body.get("data")
    if not isinstance(data, dict):
        raise MalformedResponse(SOURCE, "GraphQL response has no 'data'")
    return data


def fetch_chain_vaults(chain_id: int, first: int = MORPHO_VAULT_PAGE_SIZE,
                       timeout: Optional[float] = None) -> List[Dict]:
    """Fetch up to `first` vaults for one chain. Raises FetchError."""
    data = _query(VAULTS_QUERY, {"chainIds": [chain_id], "first": first}, timeout=timeout)
    vaults = data.get("vaults")
    items = vaults.get("items") if isinstance(vaults, dict) else None
    if not isinstance(items, list):
        raise MalformedResponse(SOURCE, f"no vault items for chain {chain_id}")
    return items


def fetch_vaults(chain_ids: Optional[List[int]] = None, timeout: Optional[float] = None) -> FetchResult:
    """
    Fetch vaults for every configured chain in parallel and merge them,
    keyed by lowercased vault address. A chain that fails is logged and
    skipped; the result is an error only when every chain failed.
    """
    chain_ids = list(chain_ids or MORPHO_CHAIN_IDS.keys())
    merged: Dict[str, Dict] = {}
    errors: List[FetchError] = []

    with ThreadPoolExecutor(max_workers=len(chain_ids) or 1) as executor:
        futures = {chain_id: executor.submit(fetch_chain_vaults, chain_id, timeout=timeout) for chain_id in chain_ids}
        for chain_id, future in futures.items():
            try:
                vaults = future.result()
            except FetchError as e:
                logger.error(f"❌ Morpho vault fetch failed for chain {chain_id} ({e.kind}): {e.message}")
                errors.append(e)
                continue
            skipped = 0
            for vault in vaults:
                address = vault.get("address") if isinstance(vault, dict) else None
                if not isinstance(address, str) or not address:
                    skipped += 1
                    continue
                merged[address.lower()] = vault
            if skipped:
                logger.warning(f"⚠️ Ignored {skipped} Morpho vault items without an address on chain {chain_id}")
            logger.info(f"📊 Fetched {len(vaults)} Morpho vaults for chain {chain_id}")

    if errors and len(errors) == len(chain_ids):
        return FetchResult.failure(errors[0])
    return FetchResult.success(merged.values())


def probe(timeout: float = 10) -> ProbeResult:
    return timed_probe(lambda: _query(PROBE_QUERY, timeout=timeout), SOURCE)
