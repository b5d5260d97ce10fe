import logging
import re
import uuid
from typing import Optional

from sqlalchemy import select

from database.models.reference import Platform, Chain
from database.repositories.base_repository import BaseRepository
from database.repositories.exceptions import DuplicateEntityError

logger = logging.getLogger(__name__)


def normalize_name(name: str) -> str:
    """Dictionary key for platforms and chains: lowercase, dash-separated."""
    return re.sub(r"\s+", "-", (name or "").strip().lower())


class ReferenceRepository(BaseRepository[Platform]):
    """
    Repository for the Platform and Chain lookup dictionaries.
    Entries are created lazily and never removed by sync.
    """
    def __init__(self, engine=None):
        super().__init__(model_class=Platform, engine=engine)

    def get_platform(self, name: str) -> Optional[Platform]:
        with self.session() as session:
            stmt = select(Platform).where(Platform.name == normalize_name(name))
            return session.execute(stmt).scalar_one_or_none()

    def get_chain(self, name: str) -> Optional[Chain]:
        with self.session() as session:
            stmt = select(Chain).where(Chain.name == normalize_name(name))
            return session.execute(stmt).scalar_one_or_none()

    def get_or_create_platform(self, name: str, display_name: Optional[str] = None, **extra) -> Platform:
        key = normalize_name(name)
        existing = self.get_platform(key)
        if existing:
            return existing
        platform = Platform(
            id=str(uuid.uuid4()),
            name=key,
            display_name=display_name or name,
            slug=key,
            logo_url=extra.get("logo_url"),
            website=extra.get("website"),
            is_active=True,
        )
        return self._create_or_reload(platform, lambda: self.get_platform(key))

    def get_or_create_chain(self, name: str, display_name: Optional[str] = None, color: Optional[str] = None) -> Chain:
        key = normalize_name(name)
        existing = self.get_chain(key)
        if existing:
            return existing
        chain = Chain(
            id=str(uuid.uuid4()),
            name=key,
            display_name=display_name or name.title(),
            color=color or "#3B82F6",
            is_active=True,
        )
        return self._create_or_reload(chain, lambda: self.get_chain(key))

    def _create_or_reload(self, entity, reload):
        try:
            return self.create(entity)
        except DuplicateEntityError:
            # Another sync inserted the same name first; use its row
            logger.info(f"🔁 {type(entity).__name__} '{entity.name}' created concurrently, reusing existing entry")
            winner = reload()
            if winner is None:
                raise
            return winner
