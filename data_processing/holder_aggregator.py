"""
Pool holder aggregation: addresses from Moralis, balances from Alchemy,
joined into a ranked snapshot that replaces the pool's previous holder set.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Tuple, Optional, Dict, Any, Callable

from api_clients import moralis_client, alchemy_client
from api_clients.errors import AuthFailure
from config import MAX_HOLDERS_PER_POOL
from database.repositories.pool_repository import PoolRepository
from database.repositories.holder_repository import HolderRepository

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_DECIMALS = 18

# Rough USD prices by token-pair keyword; pools matching none get no USD value
PLACEHOLDER_PRICES = (("usdc", Decimal("1")), ("usdt", Decimal("1")), ("dai", Decimal("1")), ("eth", Decimal("2500")))


class HolderSyncError(Exception):
    pass


def network_for_chain(chain_name: str) -> Optional[str]:
    name = (chain_name or "").lower()
    if "ethereum" in name or "mainnet" in name:
        return "ethereum"
    if "base" in name:
        return "base"
    return None


def price_for_token_pair(token_pair: str) -> Optional[Decimal]:
    pair = (token_pair or "").lower()
    for keyword, price in PLACEHOLDER_PRICES:
        if keyword in pair:
            return price
    return None


def rank_holders(balances: List[Tuple[str, int]], price_usd: Optional[Decimal] = None,
                 decimals: int = DEFAULT_TOKEN_DECIMALS) -> List[Dict[str, Any]]:
    """
    Sort holders by descending balance and attach rank, percentage and USD value.

    The percentage denominator is the sum of the listed holders' balances,
    computed as balance * 10000 // total / 100 (two decimals, truncated).
    """
    ordered = sorted(balances, key=lambda item: item[1], reverse=True)
    total = sum(balance for _, balance in ordered)
    unit = Decimal(10) ** decimals

    ranked = []
    for rank, (address, balance) in enumerate(ordered, start=1):
        percentage = None
        if total > 0 and balance > 0:
            percentage = Decimal(balance * 10000 // total) / Decimal(100)

        balance_usd = None
        if price_usd and balance > 0:
            balance_usd = (Decimal(balance) / unit * price_usd).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

        ranked.append({
            "address": address,
            "balance": balance,
            "balance_usd": balance_usd,
            "percentage": percentage,
            "rank": rank,
        })
    return ranked


def fetch_holder_balances(addresses: List[str], token_address: str, network: str,
                          fetch_balance: Callable = alchemy_client.fetch_token_balance) -> List[Tuple[str, int]]:
    """
    Look up each address sequentially. A failed lookup yields a zero balance;
    a missing credential zeroes every remaining address without further calls.
    """
    balances = []
    credential_missing = False
    for address in addresses:
        if credential_missing:
            balances.append((address, 0))
            continue
        result = fetch_balance(address, token_address, network)
        if result.ok:
            balances.append((address, result.records[0]))
        else:
            balances.append((address, 0))
            credential_missing = isinstance(result.error, AuthFailure)
    return balances


def sync_pool_holders(pool_id: str,
                      pool_repo: Optional[PoolRepository] = None,
                      holder_repo: Optional[HolderRepository] = None,
                      fetch_owners: Callable = moralis_client.fetch_token_owners,
                      fetch_balance: Callable = alchemy_client.fetch_token_balance,
                      max_holders: int = MAX_HOLDERS_PER_POOL) -> int:
    """
    Refresh the holder snapshot of one pool. Returns the number of holders stored.
    When the address listing cannot be fetched the previous snapshot is kept
    and 0 is returned.
    """
    pool_repo = pool_repo or PoolRepository()
    holder_repo = holder_repo or HolderRepository(engine=pool_repo._engine)

    pool = pool_repo.get_with_relations(pool_id)
    if pool is None or not pool.pool_address:
        raise HolderSyncError(f"Pool not found or missing address: {pool_id}")

    network = network_for_chain(pool.chain.name if pool.chain else "")
    if network is None:
        raise HolderSyncError(f"Unsupported network for pool {pool_id}: {pool.chain.name if pool.chain else None}")

    owners = fetch_owners(pool.pool_address, network, limit=max_holders)
    if not owners.ok:
        logger.warning(f"⚠️ No holder addresses for {pool.token_pair}: {owners.error.kind}")
        return 0

    addresses = owners.records[:max_holders]
    balances = fetch_holder_balances(addresses, pool.pool_address, network, fetch_balance=fetch_balance)
    ranked = rank_holders(balances, price_usd=price_for_token_pair(pool.token_pair))

    stored = holder_repo.replace_pool_holders(pool_id, ranked)
    logger.info(f"💾 Stored {stored} holders for pool {pool.token_pair}")
    return stored
