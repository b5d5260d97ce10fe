import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional, Callable, Dict, Any

from config import OUTLOOK_EXPIRY_HOURS, OUTLOOK_POOL_LIMIT
from database.repositories.pool_repository import PoolRepository
from database.repositories.outlook_repository import OutlookRepository

logger = logging.getLogger(__name__)


@dataclass
class OutlookRequest:
    """Canonical pool fields handed to the outlook generator."""
    pool_id: str
    token_pair: str
    apy: Optional[float]
    tvl: Optional[float]
    platform: str
    chain: str
    risk_level: str
    confidence: int
    raw_payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class OutlookResponse:
    outlook: str
    sentiment: str
    confidence: int


# Generator signature: OutlookRequest -> OutlookResponse (or None to skip the pool)
OutlookGenerator = Callable[[OutlookRequest], Optional[OutlookResponse]]


def _tier(value: float, tiers, default: int) -> int:
    for threshold, points in tiers:
        if value > threshold:
            return points
    return default


def calculate_confidence_score(apy, tvl, risk_level: Optional[str], raw_payload: Optional[Dict[str, Any]]) -> int:
    """
    Heuristic confidence (1-100) for a pool outlook, from TVL, volatility,
    APY stability, payload completeness, risk level, operating history and
    how plausible the APY is.
    """
    raw = raw_payload or {}
    score = 50.0
    tvl = float(tvl or 0)
    apy = float(apy or 0)

    score += _tier(tvl, ((100_000_000, 25), (10_000_000, 20), (1_000_000, 15), (100_000, 10)), 5)

    sigma = float(raw.get("sigma") or 0)
    if sigma < 0.05:
        score += 15
    elif sigma < 0.1:
        score += 10
    elif sigma < 0.2:
        score += 5
    elif sigma < 0.4:
        score -= 5
    else:
        score -= 15

    apy_30d = raw.get("apyMean30d")
    if apy_30d and apy > 0:
        drift = abs(apy - float(apy_30d)) / apy
        if drift < 0.1:
            score += 20
        elif drift < 0.2:
            score += 15
        elif drift < 0.4:
            score += 10
        elif drift < 0.6:
            score += 5
        else:
            score -= 5

    data_points = sum(1 for key in ("count", "apyMean30d", "sigma", "volumeUsd7d", "apyPct7D") if raw.get(key))
    score += data_points * 3

    score += {"low": 10, "medium": 5, "high": -5, "extreme": -10}.get((risk_level or "").lower(), 0)

    operating_days = float(raw.get("count") or 0)
    score += _tier(operating_days, ((365, 10), (180, 8), (90, 6), (30, 4)), 2)

    if apy > 0:
        if apy < 50:
            score += 5
        elif apy < 100:
            score += 2
        elif apy < 200:
            score -= 2
        else:
            score -= 5

    return max(1, min(100, round(score)))


def generate_pool_outlooks(generator: Optional[OutlookGenerator],
                           pool_repo: Optional[PoolRepository] = None,
                           outlook_repo: Optional[OutlookRepository] = None,
                           limit: int = OUTLOOK_POOL_LIMIT,
                           expiry: timedelta = timedelta(hours=OUTLOOK_EXPIRY_HOURS)) -> Dict[str, int]:
    """
    Generate outlooks for visible pools that have no unexpired outlook.
    Generator failures are counted per pool and never stop the run.
    """
    stats = {"generated": 0, "skipped": 0, "failed": 0}
    if generator is None:
        logger.info("ℹ️ No outlook generator configured; skipping outlook generation")
        return stats

    pool_repo = pool_repo or PoolRepository()
    outlook_repo = outlook_repo or OutlookRepository(engine=pool_repo._engine)

    for pool in pool_repo.get_visible_pools(limit=limit):
        if outlook_repo.get_valid_outlook(pool.id):
            stats["skipped"] += 1
            continue

        request = OutlookRequest(
            pool_id=pool.id,
            token_pair=pool.token_pair,
            apy=float(pool.apy) if pool.apy is not None else None,
            tvl=float(pool.tvl) if pool.tvl is not None else None,
            platform=pool.platform.display_name if pool.platform else "Unknown",
            chain=pool.chain.display_name if pool.chain else "Unknown",
            risk_level=pool.risk_level,
            confidence=calculate_confidence_score(pool.apy, pool.tvl, pool.risk_level, pool.raw_payload),
            raw_payload=pool.raw_payload or {},
        )
        try:
            response = generator(request)
        except Exception as e:
            stats["failed"] += 1
            logger.error(f"❌ Outlook generation failed for {pool.token_pair}: {e}")
            continue

        if response is None:
            stats["skipped"] += 1
            continue

        outlook_repo.save_outlook(pool.id, response.outlook, response.sentiment, response.confidence, expiry)
        stats["generated"] += 1

    logger.info(f"✅ Outlooks: {stats['generated']} generated, {stats['skipped']} skipped, {stats['failed']} failed")
    return stats


def cleanup_expired_outlooks(outlook_repo: Optional[OutlookRepository] = None) -> int:
    outlook_repo = outlook_repo or OutlookRepository()
    removed = outlook_repo.delete_expired()
    logger.info(f"🧹 Removed {removed} expired outlooks")
    return removed
