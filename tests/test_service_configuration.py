import os
import tempfile
import unittest
from unittest.mock import MagicMock

from database.repositories.service_config_repository import ServiceConfigRepository
from orchestration.errors import ConfigurationError
from orchestration.service_configuration import (
    ServiceConfigurationService,
    load_default_configs,
    validate_interval,
)
from tests.db_helpers import memory_engine

DEFAULTS = {
    "poolDataSync": {
        "display_name": "Pool Data Sync",
        "description": "Synchronizes APY and TVL data from DeFiLlama",
        "interval_minutes": 5,
        "is_enabled": True,
        "category": "sync",
        "priority": 1,
    },
    "cleanup": {
        "display_name": "Database Cleanup",
        "interval_minutes": 86400,
        "is_enabled": False,
        "category": "cleanup",
        "priority": 3,
    },
}


class TestDefaultConfigFile(unittest.TestCase):

    def test_bundled_defaults_load(self):
        services = load_default_configs()

        for name in ("poolDataSync", "morphoApiSync", "lidoStakingSync", "etherscanScraper", "poolHoldersSync"):
            self.assertIn(name, services)
        self.assertEqual(services["poolDataSync"]["interval_minutes"], 5)
        self.assertEqual(services["morphoApiSync"]["interval_minutes"], 3)
        for values in services.values():
            validate_interval(values["interval_minutes"])

    def _write(self, content):
        handle = tempfile.NamedTemporaryFile("w", suffix=".yaml", delete=False)
        handle.write(content)
        handle.close()
        self.addCleanup(os.remove, handle.name)
        return handle.name

    def test_missing_services_mapping_is_rejected(self):
        with self.assertRaises(ConfigurationError):
            load_default_configs(self._write("jobs: []\n"))

    def test_service_without_interval_is_rejected(self):
        with self.assertRaises(ConfigurationError):
            load_default_configs(self._write("services:\n  poolDataSync:\n    is_enabled: true\n"))

    def test_missing_file_is_rejected(self):
        with self.assertRaises(ConfigurationError):
            load_default_configs("/nonexistent/service_configs.yaml")


class TestIntervalValidation(unittest.TestCase):

    def test_accepts_bounds(self):
        self.assertEqual(validate_interval(1), 1)
        self.assertEqual(validate_interval(525600), 525600)

    def test_rejects_out_of_range_and_non_integers(self):
        for bad in (0, -5, 525601, 1.5, "5", None, True):
            with self.subTest(value=bad):
                with self.assertRaises(ConfigurationError):
                    validate_interval(bad)


class TestServiceConfigurationService(unittest.TestCase):

    def setUp(self):
        self.repo = ServiceConfigRepository(engine=memory_engine())
        self.scheduler = MagicMock()
        self.scheduler.job_names.return_value = ["poolDataSync", "cleanup"]
        self.service = ServiceConfigurationService(repo=self.repo, scheduler=self.scheduler)
        self.service.initialize_configurations(DEFAULTS)

    def test_seeding_creates_missing_jobs(self):
        configs = self.service.list_configurations()

        self.assertEqual([c.service_name for c in configs], ["poolDataSync", "cleanup"])
        self.assertEqual(configs[0].interval_minutes, 5)
        self.assertFalse(configs[1].is_enabled)
        self.assertEqual(configs[0].run_count, 0)

    def test_reseeding_preserves_admin_settings(self):
        self.service.update_configuration("poolDataSync", 15, False)
        refreshed = dict(DEFAULTS)
        refreshed["poolDataSync"] = dict(DEFAULTS["poolDataSync"], description="New description")

        counts = self.service.initialize_configurations(refreshed)

        self.assertEqual(counts, {"added": 0, "updated": 2})
        config = self.service.get_configuration("poolDataSync")
        self.assertEqual(config.interval_minutes, 15)
        self.assertFalse(config.is_enabled)
        self.assertEqual(config.description, "New description")

    def test_update_is_persisted_and_applied_live(self):
        updated = self.service.update_configuration("poolDataSync", 10, True)

        self.assertEqual(updated.interval_minutes, 10)
        self.assertEqual(self.repo.get("poolDataSync").interval_minutes, 10)
        self.scheduler.apply_config.assert_called_once_with("poolDataSync", 10, True)

    def test_invalid_interval_changes_nothing(self):
        with self.assertRaises(ConfigurationError):
            self.service.update_configuration("poolDataSync", 0, True)

        self.assertEqual(self.repo.get("poolDataSync").interval_minutes, 5)
        self.scheduler.apply_config.assert_not_called()

    def test_unknown_service_is_rejected(self):
        with self.assertRaises(ConfigurationError):
            self.service.update_configuration("tokenPriceSync", 10, True)
        self.scheduler.apply_config.assert_not_called()

    def test_configured_but_unregistered_job_is_only_persisted(self):
        self.scheduler.job_names.return_value = []
        self.service.update_configuration("cleanup", 1440, True)

        self.assertTrue(self.repo.get("cleanup").is_enabled)
        self.scheduler.apply_config.assert_not_called()

    def test_run_statistics(self):
        self.service.update_run_stats("poolDataSync", True)
        self.service.update_run_stats("poolDataSync", False, "DeFiLlama fetch failed")

        config = self.repo.get("poolDataSync")
        self.assertEqual(config.run_count, 2)
        self.assertEqual(config.error_count, 1)
        self.assertEqual(config.last_error, "DeFiLlama fetch failed")
        self.assertIsNotNone(config.last_success_at)
        self.assertIsNotNone(config.last_error_at)

        self.service.update_run_stats("poolDataSync", True)
        config = self.repo.get("poolDataSync")
        self.assertIsNone(config.last_error)
        self.assertEqual(config.run_count, 3)

    def test_run_statistics_for_unknown_service_are_ignored(self):
        self.service.update_run_stats("notConfigured", True)
        self.assertIsNone(self.repo.get("notConfigured"))


if __name__ == '__main__':
    unittest.main()
