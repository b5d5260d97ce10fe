import unittest
from decimal import Decimal
from types import SimpleNamespace

from data_processing.change_detector import detect_change, ChangeDecision, ChangeThresholds
from tests.db_helpers import canonical_pool


def snapshot(apy, tvl):
    return SimpleNamespace(apy=apy, tvl=tvl)


class TestChangeDetector(unittest.TestCase):

    def test_missing_previous_is_changed(self):
        self.assertEqual(detect_change(None, snapshot(5.0, 1_000_000)), ChangeDecision.CHANGED)

    def test_apy_epsilon_boundary(self):
        previous = snapshot(5.000, 1_000_000)
        self.assertEqual(detect_change(previous, snapshot(5.0005, 1_000_000)), ChangeDecision.UNCHANGED)
        self.assertEqual(detect_change(previous, snapshot(5.002, 1_000_000)), ChangeDecision.CHANGED)

    def test_tvl_epsilon_boundary(self):
        previous = snapshot(5.0, 1_000_000)
        self.assertEqual(detect_change(previous, snapshot(5.0, 1_000_500)), ChangeDecision.UNCHANGED)
        self.assertEqual(detect_change(previous, snapshot(5.0, 1_002_000)), ChangeDecision.CHANGED)

    def test_value_appearing_or_disappearing_is_changed(self):
        self.assertEqual(detect_change(snapshot(None, 1_000_000), snapshot(5.0, 1_000_000)), ChangeDecision.CHANGED)
        self.assertEqual(detect_change(snapshot(5.0, 1_000_000), snapshot(5.0, None)), ChangeDecision.CHANGED)
        self.assertEqual(detect_change(snapshot(5.0, None), snapshot(5.0, None)), ChangeDecision.UNCHANGED)

    def test_persisted_decimals_compare_against_floats(self):
        previous = snapshot(Decimal("4.5000"), Decimal("1000000.00"))
        self.assertEqual(detect_change(previous, snapshot(4.5, 1_000_000.0)), ChangeDecision.UNCHANGED)

    def test_payload_differences_are_ignored(self):
        previous = canonical_pool(raw_payload={"a": 1})
        current = canonical_pool(raw_payload={"a": 2, "b": 3})
        self.assertEqual(detect_change(previous, current), ChangeDecision.UNCHANGED)

    def test_custom_thresholds(self):
        thresholds = ChangeThresholds(apy_epsilon=0.5, tvl_epsilon=10)
        previous = snapshot(5.0, 100)
        self.assertEqual(detect_change(previous, snapshot(5.4, 105), thresholds), ChangeDecision.UNCHANGED)
        self.assertEqual(detect_change(previous, snapshot(5.0, 120), thresholds), ChangeDecision.CHANGED)


if __name__ == '__main__':
    unittest.main()
