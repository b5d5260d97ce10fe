import uuid
from datetime import datetime
from typing import List, Optional, Dict, Any, Iterable

from sqlalchemy import select, update, func
from sqlalchemy.orm import Session, joinedload

from database.models.pool import Pool
from database.repositories.base_repository import BaseRepository
from database.repositories.exceptions import EntityNotFoundError
from database.timestamps import utcnow

# Columns a sync write is allowed to touch on an existing pool
SYNC_OWNED_FIELDS = ("apy", "tvl", "raw_payload", "risk_level", "last_updated")

# Columns a sync write may fill in only while they are still empty
SYNC_BACKFILL_FIELDS = ("token_pair", "pool_address")


class PoolRepository(BaseRepository[Pool]):
    """
    Repository for Pool entity operations.
    """
    def __init__(self, engine=None):
        super().__init__(model_class=Pool, engine=engine)

    # Reconciliation primitives; these run inside a caller-owned session so the
    # lookup and the write share one transaction.

    def find_for_update(self, session: Session, source: str, external_id: str) -> Optional[Pool]:
        """Look up a pool by its external identifier and lock the row."""
        stmt = (
            select(Pool)
            .where(Pool.source == source, Pool.external_id == external_id)
            .with_for_update()
        )
        return session.execute(stmt).scalar_one_or_none()

    def insert_synced_pool(self, session: Session, values: Dict[str, Any]) -> Pool:
        """Insert a first-seen pool. New pools are always hidden and active."""
        pool = Pool(
            id=str(uuid.uuid4()),
            source=values["source"],
            external_id=values["external_id"],
            platform_id=values["platform_id"],
            chain_id=values["chain_id"],
            token_pair=values.get("token_pair") or "Unknown",
            apy=values.get("apy"),
            tvl=values.get("tvl"),
            risk_level=values.get("risk_level") or "medium",
            pool_address=values.get("pool_address"),
            raw_payload=values.get("raw_payload"),
            is_visible=False,
            is_active=True,
            last_updated=values.get("last_updated") or utcnow(),
        )
        session.add(pool)
        session.flush()
        return pool

    def apply_sync_update(self, session: Session, existing: Pool, values: Dict[str, Any]) -> None:
        """
        Write sync-owned fields onto an existing pool. Anything outside the
        allow-list is dropped, and is_visible is re-asserted from the locked row.
        """
        fields = {k: v for k, v in values.items() if k in SYNC_OWNED_FIELDS}
        for key in SYNC_BACKFILL_FIELDS:
            if values.get(key) and not getattr(existing, key):
                fields[key] = values[key]
        fields.setdefault("last_updated", utcnow())
        fields["is_visible"] = existing.is_visible

        session.execute(
            update(Pool)
            .where(Pool.id == existing.id)
            .values(**fields)
            .execution_options(synchronize_session="fetch")
        )

    # Queries

    def get_by_external_id(self, source: str, external_id: str) -> Optional[Pool]:
        with self.session() as session:
            stmt = select(Pool).where(Pool.source == source, Pool.external_id == external_id)
            return session.execute(stmt).scalar_one_or_none()

    def get_active_pools(self, source: Optional[str] = None, with_address: bool = False) -> List[Pool]:
        """Get all active, non-deleted pools, optionally for one source."""
        with self.session() as session:
            stmt = (
                select(Pool)
                .options(joinedload(Pool.chain))
                .where(Pool.is_active.is_(True), Pool.deleted_at.is_(None))
            )
            if source:
                stmt = stmt.where(Pool.source == source)
            if with_address:
                stmt = stmt.where(Pool.pool_address.is_not(None))
            return list(session.execute(stmt).scalars().all())

    def get_visible_pools(self, limit: int = 50) -> List[Pool]:
        """Visible, active pools ordered by TVL, with platform and chain loaded."""
        with self.session() as session:
            stmt = (
                select(Pool)
                .options(joinedload(Pool.platform), joinedload(Pool.chain))
                .where(Pool.is_visible.is_(True), Pool.is_active.is_(True), Pool.deleted_at.is_(None))
                .order_by(Pool.tvl.desc())
                .limit(limit)
            )
            return list(session.execute(stmt).scalars().unique().all())

    def get_with_relations(self, pool_id: str) -> Optional[Pool]:
        with self.session() as session:
            stmt = (
                select(Pool)
                .options(joinedload(Pool.platform), joinedload(Pool.chain))
                .where(Pool.id == pool_id)
            )
            return session.execute(stmt).scalar_one_or_none()

    def get_external_ids(self, source: str, active_only: bool = True) -> List[str]:
        with self.session() as session:
            stmt = select(Pool.external_id).where(Pool.source == source)
            if active_only:
                stmt = stmt.where(Pool.is_active.is_(True))
            return list(session.execute(stmt).scalars().all())

    def latest_update(self, source: Optional[str] = None) -> Optional[datetime]:
        """Most recent last_updated timestamp, optionally for one source."""
        with self.session() as session:
            stmt = select(func.max(Pool.last_updated))
            if source:
                stmt = stmt.where(Pool.source == source)
            return session.execute(stmt).scalar()

    def mark_pools_inactive(self, source: str, external_ids: Iterable[str]) -> int:
        """Mark pools of one source as inactive. Returns the number of rows touched."""
        external_ids = list(external_ids)
        if not external_ids:
            return 0
        with self.session() as session:
            stmt = (
                update(Pool)
                .where(Pool.source == source, Pool.external_id.in_(external_ids), Pool.is_active.is_(True))
                .values(is_active=False)
                .execution_options(synchronize_session=False)
            )
            return session.execute(stmt).rowcount

    # Admin-owned fields

    def _set_admin_field(self, pool_id: str, **values) -> Pool:
        with self.session() as session:
            pool = session.get(Pool, pool_id)
            if pool is None:
                raise EntityNotFoundError(f"Pool not found: {pool_id}")
            for key, value in values.items():
                setattr(pool, key, value)
            return pool

    def set_visibility(self, pool_id: str, is_visible: bool) -> Pool:
        return self._set_admin_field(pool_id, is_visible=is_visible)

    def set_categories(self, pool_id: str, categories: List[str]) -> Pool:
        return self._set_admin_field(pool_id, categories=list(categories))

    def set_notes(self, pool_id: str, notes: Optional[str]) -> Pool:
        return self._set_admin_field(pool_id, notes=notes)

    def soft_delete(self, pool_id: str) -> Pool:
        return self._set_admin_field(pool_id, deleted_at=utcnow(), is_active=False)
