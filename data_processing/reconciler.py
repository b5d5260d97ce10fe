import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, List, Tuple, Iterable, Any, Callable

from data_processing.change_detector import detect_change, ChangeDecision, ChangeThresholds, DEFAULT_THRESHOLDS
from data_processing.normalizer import CanonicalPoolData, NormalizationError, NORMALIZERS
from database.repositories.pool_repository import PoolRepository
from database.repositories.reference_repository import ReferenceRepository
from database.repositories.exceptions import RepositoryError
from database.timestamps import utcnow

logger = logging.getLogger(__name__)


class ReconciliationError(Exception):
    """A single record could not be written; the rest of its batch is unaffected."""
    def __init__(self, external_id: str, message: str):
        super().__init__(f"{external_id}: {message}")
        self.external_id = external_id


class UpsertAction(Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"


@dataclass
class UpsertOutcome:
    action: UpsertAction
    pool_id: Optional[str] = None


@dataclass
class BatchResult:
    source: str
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    filtered: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return self.inserted + self.updated + self.unchanged + self.skipped

    def record(self, outcome: UpsertOutcome) -> None:
        setattr(self, outcome.action.value, getattr(self, outcome.action.value) + 1)

    def summary(self) -> str:
        return (f"{self.source}: {self.inserted} inserted, {self.updated} updated, "
                f"{self.unchanged} unchanged, {self.skipped} skipped, "
                f"{self.filtered} filtered, {self.failed} failed")


class Reconciler:
    """
    Upsert engine for synced pools.

    New pools are inserted hidden. Existing pools only receive sync-owned
    fields, and only when the change detector reports a meaningful change.
    Admin-owned fields (visibility, categories, notes) are never written here.
    """

    def __init__(self, pool_repo: Optional[PoolRepository] = None,
                 reference_repo: Optional[ReferenceRepository] = None,
                 thresholds: ChangeThresholds = DEFAULT_THRESHOLDS):
        self.pool_repo = pool_repo or PoolRepository()
        self.reference_repo = reference_repo or ReferenceRepository(engine=self.pool_repo._engine)
        self.thresholds = thresholds
        self._platform_ids: Dict[str, str] = {}
        self._chain_ids: Dict[str, str] = {}

    def resolve_references(self, data: CanonicalPoolData) -> Tuple[str, str]:
        """Get-or-create the platform and chain a record points at. Returns their ids."""
        try:
            platform_id = self._platform_ids.get(data.platform_name)
            if platform_id is None:
                platform = self.reference_repo.get_or_create_platform(data.platform_name, data.platform_display_name)
                platform_id = self._platform_ids[data.platform_name] = platform.id

            chain_id = self._chain_ids.get(data.chain_name)
            if chain_id is None:
                chain = self.reference_repo.get_or_create_chain(data.chain_name, data.chain_display_name, data.chain_color)
                chain_id = self._chain_ids[data.chain_name] = chain.id
        except RepositoryError as e:
            raise ReconciliationError(data.external_id, f"platform/chain mapping unavailable: {e}")
        return platform_id, chain_id

    def upsert(self, source: str, external_id: str, data: CanonicalPoolData) -> UpsertOutcome:
        platform_id, chain_id = self.resolve_references(data)
        values = data.sync_values()
        values.update(source=source, external_id=external_id, platform_id=platform_id,
                      chain_id=chain_id, last_updated=utcnow())

        try:
            with self.pool_repo.session() as session:
                existing = self.pool_repo.find_for_update(session, source, external_id)
                if existing is None:
                    pool = self.pool_repo.insert_synced_pool(session, values)
                    logger.debug(f"➕ Inserted {source} pool {external_id} (hidden)")
                    return UpsertOutcome(UpsertAction.INSERTED, pool.id)

                if not existing.is_active or existing.deleted_at is not None:
                    return UpsertOutcome(UpsertAction.SKIPPED, existing.id)

                if detect_change(existing, data, self.thresholds) is ChangeDecision.UNCHANGED:
                    return UpsertOutcome(UpsertAction.UNCHANGED, existing.id)

                self.pool_repo.apply_sync_update(session, existing, values)
                logger.debug(f"🔄 Updated {source} pool {external_id}: APY {data.apy}, TVL {data.tvl}")
                return UpsertOutcome(UpsertAction.UPDATED, existing.id)
        except RepositoryError as e:
            raise ReconciliationError(external_id, str(e))

    def upsert_batch(self, source: str, records: Iterable[Any],
                     normalize: Optional[Callable[[Any], Optional[CanonicalPoolData]]] = None) -> BatchResult:
        """
        Normalize and upsert every provider record of one fetch. A record that
        fails is logged and counted; it never stops the others.
        """
        normalize = normalize or NORMALIZERS[source]
        result = BatchResult(source=source)

        for index, record in enumerate(records):
            try:
                data = normalize(record)
                if data is None:
                    result.filtered += 1
                    continue
                result.record(self.upsert(source, data.external_id, data))
            except (NormalizationError, ReconciliationError) as e:
                result.failed += 1
                result.errors.append(f"record {index}: {e}")
                logger.warning(f"⚠️ Skipping {source} record {index}: {e}")

        logger.info(f"📊 Reconciled {result.summary()}")
        return result
