import unittest
from datetime import timedelta
from unittest.mock import MagicMock

from data_processing.pool_outlooks import (
    calculate_confidence_score,
    generate_pool_outlooks,
    cleanup_expired_outlooks,
    OutlookResponse,
)
from data_processing.reconciler import Reconciler
from database.repositories.pool_repository import PoolRepository
from database.repositories.outlook_repository import OutlookRepository
from database.repositories.service_config_repository import ServiceConfigRepository
from database.repositories.exceptions import EntityNotFoundError
from database.timestamps import utcnow
from orchestration import admin_actions
from orchestration.errors import ConfigurationError
from orchestration.service_configuration import ServiceConfigurationService
from tests.db_helpers import memory_engine, canonical_pool


class PoolFixtureMixin:

    def setUp(self):
        self.engine = memory_engine()
        self.pool_repo = PoolRepository(engine=self.engine)
        self.reconciler = Reconciler(pool_repo=self.pool_repo)

    def add_pool(self, **overrides):
        data = canonical_pool(**overrides)
        return self.reconciler.upsert(data.source, data.external_id, data).pool_id


class TestAdminActions(PoolFixtureMixin, unittest.TestCase):

    def test_visibility_toggle(self):
        pool_id = self.add_pool()

        pool = admin_actions.set_pool_visibility(pool_id, True, repo=self.pool_repo)

        self.assertTrue(pool.is_visible)
        self.assertTrue(self.pool_repo.get_by_id(pool_id).is_visible)

    def test_unknown_pool_raises(self):
        with self.assertRaises(EntityNotFoundError):
            admin_actions.set_pool_visibility("missing", True, repo=self.pool_repo)

    def test_categories_are_cleaned(self):
        pool_id = self.add_pool()

        admin_actions.set_pool_categories(pool_id, [" stable ", "stable", "", "blue-chip"], repo=self.pool_repo)

        self.assertEqual(self.pool_repo.get_by_id(pool_id).categories, ["blue-chip", "stable"])

    def test_notes(self):
        pool_id = self.add_pool()
        admin_actions.set_pool_notes(pool_id, "Curated by Steakhouse", repo=self.pool_repo)
        self.assertEqual(self.pool_repo.get_by_id(pool_id).notes, "Curated by Steakhouse")

    def test_service_configuration_listing_and_update(self):
        service = ServiceConfigurationService(repo=ServiceConfigRepository(engine=self.engine))
        service.initialize_configurations({"poolDataSync": {"display_name": "Pool Data Sync", "interval_minutes": 5}})

        listed = admin_actions.list_service_configurations(service)
        self.assertEqual(listed[0]["service_name"], "poolDataSync")
        self.assertEqual(listed[0]["interval_minutes"], 5)
        self.assertEqual(listed[0]["run_count"], 0)

        admin_actions.update_configuration(service, "poolDataSync", 10, False)
        self.assertEqual(service.get_configuration("poolDataSync").interval_minutes, 10)

        with self.assertRaises(ConfigurationError):
            admin_actions.update_configuration(service, "poolDataSync", -1, True)


class TestConfidenceScore(unittest.TestCase):

    def test_sparse_pool(self):
        self.assertEqual(calculate_confidence_score(None, None, None, None), 72)

    def test_strong_pool_is_capped(self):
        raw = {"sigma": 0.01, "apyMean30d": 5.0, "count": 400}
        self.assertEqual(calculate_confidence_score(5.0, 200_000_000, "low", raw), 100)

    def test_volatile_pool(self):
        self.assertEqual(calculate_confidence_score(500.0, 0, "extreme", {"sigma": 1.0}), 30)


class TestOutlookGeneration(PoolFixtureMixin, unittest.TestCase):

    def setUp(self):
        super().setUp()
        self.outlook_repo = OutlookRepository(engine=self.engine)
        self.good = self.add_pool(external_id="good", token_pair="steakUSDC")
        self.bad = self.add_pool(external_id="bad", token_pair="gtWETH")
        self.hidden = self.add_pool(external_id="hidden", token_pair="reUSD")
        self.pool_repo.set_visibility(self.good, True)
        self.pool_repo.set_visibility(self.bad, True)

    @staticmethod
    def _generator(request):
        if request.token_pair == "gtWETH":
            raise RuntimeError("model unavailable")
        return OutlookResponse(outlook=f"{request.token_pair} looks steady", sentiment="neutral",
                               confidence=request.confidence)

    def test_no_generator_is_a_no_op(self):
        stats = generate_pool_outlooks(None, self.pool_repo, self.outlook_repo)
        self.assertEqual(stats, {"generated": 0, "skipped": 0, "failed": 0})

    def test_generates_for_visible_pools_only(self):
        generator = MagicMock(side_effect=self._generator)

        stats = generate_pool_outlooks(generator, self.pool_repo, self.outlook_repo)

        self.assertEqual(stats, {"generated": 1, "skipped": 0, "failed": 1})
        requested = sorted(call.args[0].token_pair for call in generator.call_args_list)
        self.assertEqual(requested, ["gtWETH", "steakUSDC"])
        outlook = self.outlook_repo.get_valid_outlook(self.good)
        self.assertEqual(outlook.outlook, "steakUSDC looks steady")
        self.assertIsNone(self.outlook_repo.get_valid_outlook(self.hidden))

    def test_unexpired_outlooks_are_not_regenerated(self):
        generate_pool_outlooks(self._generator, self.pool_repo, self.outlook_repo)

        stats = generate_pool_outlooks(self._generator, self.pool_repo, self.outlook_repo)

        self.assertEqual(stats, {"generated": 0, "skipped": 1, "failed": 1})

    def test_request_carries_canonical_fields(self):
        generator = MagicMock(return_value=None)
        generate_pool_outlooks(generator, self.pool_repo, self.outlook_repo)

        request = next(c.args[0] for c in generator.call_args_list if c.args[0].pool_id == self.good)
        self.assertEqual(request.platform, "Morpho")
        self.assertEqual(request.chain, "Ethereum")
        self.assertEqual(request.risk_level, "low")
        self.assertAlmostEqual(request.apy, 4.5)
        self.assertTrue(1 <= request.confidence <= 100)

    def test_cleanup_removes_only_expired(self):
        self.outlook_repo.save_outlook(self.good, "old", "neutral", 50, timedelta(hours=2),
                                       generated_at=utcnow() - timedelta(hours=3))
        self.outlook_repo.save_outlook(self.good, "fresh", "bullish", 60, timedelta(hours=2))

        self.assertEqual(cleanup_expired_outlooks(self.outlook_repo), 1)
        self.assertEqual(self.outlook_repo.get_valid_outlook(self.good).outlook, "fresh")


if __name__ == '__main__':
    unittest.main()
