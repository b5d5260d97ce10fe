from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, delete

from database.models.outlook import PoolOutlook
from database.repositories.base_repository import BaseRepository
from database.timestamps import utcnow


class OutlookRepository(BaseRepository[PoolOutlook]):
    """
    Repository for generated pool outlooks. Each outlook carries a fixed expiry.
    """
    def __init__(self, engine=None):
        super().__init__(model_class=PoolOutlook, engine=engine)

    def get_valid_outlook(self, pool_id: str, now: Optional[datetime] = None) -> Optional[PoolOutlook]:
        now = now or utcnow()
        with self.session() as session:
            stmt = (
                select(PoolOutlook)
                .where(PoolOutlook.pool_id == pool_id, PoolOutlook.expires_at > now)
                .order_by(PoolOutlook.generated_at.desc())
                .limit(1)
            )
            return session.execute(stmt).scalar_one_or_none()

    def save_outlook(self, pool_id: str, outlook: str, sentiment: str, confidence: int,
                     expiry: timedelta, generated_at: Optional[datetime] = None) -> PoolOutlook:
        generated_at = generated_at or utcnow()
        return self.create(PoolOutlook(
            pool_id=pool_id,
            outlook=outlook,
            sentiment=sentiment,
            confidence=confidence,
            generated_at=generated_at,
            expires_at=generated_at + expiry,
        ))

    def delete_expired(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        with self.session() as session:
            stmt = delete(PoolOutlook).where(PoolOutlook.expires_at <= now).execution_options(synchronize_session=False)
            return session.execute(stmt).rowcount
