from datetime import datetime
from typing import List, Optional, Dict, Any

from sqlalchemy import select, delete, func

from database.models.holder import HolderRecord, HolderHistoryPoint
from database.repositories.base_repository import BaseRepository
from database.timestamps import utcnow


class HolderRepository(BaseRepository[HolderRecord]):
    """
    Repository for per-pool holder snapshots and the token holder-count history.
    """
    def __init__(self, engine=None):
        super().__init__(model_class=HolderRecord, engine=engine)

    def replace_pool_holders(self, pool_id: str, holders: List[Dict[str, Any]]) -> int:
        """
        Replace the whole holder set of a pool in one transaction.
        Ranks and percentages only make sense within a single snapshot, so
        rows are never merged with a previous set.
        """
        now = utcnow()
        with self.session() as session:
            session.execute(delete(HolderRecord).where(HolderRecord.pool_id == pool_id))
            for h in holders:
                session.add(HolderRecord(
                    pool_id=pool_id,
                    address=h["address"],
                    balance=str(h["balance"]),
                    balance_usd=h.get("balance_usd"),
                    percentage=h.get("percentage"),
                    rank=h["rank"],
                    tx_count=h.get("tx_count"),
                    first_seen=h.get("first_seen"),
                    last_updated=now,
                ))
        return len(holders)

    def get_pool_holders(self, pool_id: str, limit: int = 15) -> List[HolderRecord]:
        with self.session() as session:
            stmt = (
                select(HolderRecord)
                .where(HolderRecord.pool_id == pool_id)
                .order_by(HolderRecord.rank)
                .limit(limit)
            )
            return list(session.execute(stmt).scalars().all())

    def latest_holder_update(self) -> Optional[datetime]:
        with self.session() as session:
            return session.execute(select(func.max(HolderRecord.last_updated))).scalar()

    # Holder-count history (append-only)

    def add_history_point(self, token_address: str, holders_count: int,
                          price_usd=None, market_cap_usd=None,
                          timestamp: Optional[datetime] = None) -> HolderHistoryPoint:
        point = HolderHistoryPoint(
            token_address=token_address.lower(),
            holders_count=holders_count,
            price_usd=price_usd,
            market_cap_usd=market_cap_usd,
            timestamp=timestamp or utcnow(),
        )
        return self.create(point)

    def has_history_since(self, token_address: str, since: datetime) -> bool:
        """Check if a holder-count sample exists for the token at or after `since`."""
        with self.session() as session:
            stmt = select(func.count()).select_from(HolderHistoryPoint).where(
                HolderHistoryPoint.token_address == token_address.lower(),
                HolderHistoryPoint.timestamp >= since,
            )
            return session.execute(stmt).scalar() > 0

    def latest_history_timestamp(self) -> Optional[datetime]:
        with self.session() as session:
            return session.execute(select(func.max(HolderHistoryPoint.timestamp))).scalar()
