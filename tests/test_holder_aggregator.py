import unittest
from decimal import Decimal
from unittest.mock import MagicMock

from api_clients.errors import FetchResult, AuthFailure, Unreachable
from data_processing.holder_aggregator import (
    rank_holders,
    fetch_holder_balances,
    sync_pool_holders,
    network_for_chain,
    price_for_token_pair,
    HolderSyncError,
)
from data_processing.reconciler import Reconciler
from database.repositories.pool_repository import PoolRepository
from database.repositories.holder_repository import HolderRepository
from tests.db_helpers import memory_engine, canonical_pool


class TestRanking(unittest.TestCase):

    def test_ranks_and_percentages(self):
        ranked = rank_holders([("A", 300), ("B", 500), ("C", 200)])

        self.assertEqual([h["address"] for h in ranked], ["B", "A", "C"])
        self.assertEqual([h["rank"] for h in ranked], [1, 2, 3])
        self.assertEqual([h["percentage"] for h in ranked], [Decimal("50"), Decimal("30"), Decimal("20")])

    def test_percentage_is_truncated_to_two_decimals(self):
        ranked = rank_holders([("A", 1), ("B", 2)])
        self.assertEqual(ranked[0]["percentage"], Decimal("66.66"))
        self.assertEqual(ranked[1]["percentage"], Decimal("33.33"))

    def test_zero_balances_have_no_percentage(self):
        ranked = rank_holders([("A", 0), ("B", 0)])
        self.assertTrue(all(h["percentage"] is None for h in ranked))
        self.assertEqual([h["rank"] for h in ranked], [1, 2])

    def test_usd_value_uses_token_decimals(self):
        ranked = rank_holders([("A", 2_500_000)], price_usd=Decimal("1"), decimals=6)
        self.assertEqual(ranked[0]["balance_usd"], Decimal("2.50"))

    def test_no_price_means_no_usd_value(self):
        self.assertIsNone(rank_holders([("A", 10 ** 18)])[0]["balance_usd"])

    def test_uint256_balances_keep_precision(self):
        huge = 2 ** 200
        ranked = rank_holders([("A", huge), ("B", huge)])
        self.assertEqual(ranked[0]["balance"], huge)
        self.assertEqual(ranked[0]["percentage"], Decimal("50"))


class TestLookups(unittest.TestCase):

    def test_network_for_chain(self):
        self.assertEqual(network_for_chain("ethereum"), "ethereum")
        self.assertEqual(network_for_chain("Base"), "base")
        self.assertIsNone(network_for_chain("arbitrum"))

    def test_price_for_token_pair(self):
        self.assertEqual(price_for_token_pair("steakUSDC"), Decimal("1"))
        self.assertEqual(price_for_token_pair("stETH"), Decimal("2500"))
        self.assertIsNone(price_for_token_pair("CRV-CVX"))


class TestBalanceFetching(unittest.TestCase):

    def test_failed_lookup_counts_as_zero(self):
        def fetch(address, token, network):
            if address == "b":
                return FetchResult.failure(Unreachable("alchemy", "timed out"))
            return FetchResult.success([100])

        balances = fetch_holder_balances(["a", "b", "c"], "0xtoken", "ethereum", fetch_balance=fetch)

        self.assertEqual(balances, [("a", 100), ("b", 0), ("c", 100)])

    def test_missing_credential_zeroes_the_rest_without_calls(self):
        fetch = MagicMock(return_value=FetchResult.failure(AuthFailure("alchemy", "ALCHEMY_API_KEY is not configured")))

        balances = fetch_holder_balances(["a", "b", "c"], "0xtoken", "ethereum", fetch_balance=fetch)

        self.assertEqual(balances, [("a", 0), ("b", 0), ("c", 0)])
        fetch.assert_called_once()


class TestSyncPoolHolders(unittest.TestCase):

    def setUp(self):
        engine = memory_engine()
        self.pool_repo = PoolRepository(engine=engine)
        self.holder_repo = HolderRepository(engine=engine)
        reconciler = Reconciler(pool_repo=self.pool_repo)
        data = canonical_pool()
        self.pool_id = reconciler.upsert(data.source, data.external_id, data).pool_id
        arbitrum = canonical_pool(external_id="arb-vault", chain_name="arbitrum")
        self.arbitrum_pool_id = reconciler.upsert(arbitrum.source, arbitrum.external_id, arbitrum).pool_id

        self.balances = {"0xa": 300, "0xb": 500, "0xc": 200}
        self.owners = MagicMock(return_value=FetchResult.success(["0xa", "0xb", "0xc"]))

    def _fetch_balance(self, address, token, network):
        return FetchResult.success([self.balances[address]])

    def _sync(self, **kwargs):
        kwargs.setdefault("fetch_owners", self.owners)
        kwargs.setdefault("fetch_balance", self._fetch_balance)
        return sync_pool_holders(self.pool_id, pool_repo=self.pool_repo, holder_repo=self.holder_repo, **kwargs)

    def test_stores_ranked_snapshot(self):
        stored = self._sync()

        self.assertEqual(stored, 3)
        self.owners.assert_called_once_with("0xbeef01735c132ada46aa9aa4c54623caa92a64cb", "ethereum", limit=15)
        holders = self.holder_repo.get_pool_holders(self.pool_id)
        self.assertEqual([(h.address, h.rank) for h in holders], [("0xb", 1), ("0xa", 2), ("0xc", 3)])
        self.assertEqual([float(h.percentage) for h in holders], [50.0, 30.0, 20.0])
        self.assertEqual(holders[0].balance, "500")

    def test_new_snapshot_replaces_the_old_one(self):
        self._sync()
        self.owners.return_value = FetchResult.success(["0xa"])

        self._sync()

        holders = self.holder_repo.get_pool_holders(self.pool_id)
        self.assertEqual([(h.address, h.rank) for h in holders], [("0xa", 1)])

    def test_failed_owner_listing_keeps_previous_snapshot(self):
        self._sync()
        failing = MagicMock(return_value=FetchResult.failure(AuthFailure("moralis", "MORALIS_API_KEY is not configured")))

        self.assertEqual(self._sync(fetch_owners=failing), 0)
        self.assertEqual(len(self.holder_repo.get_pool_holders(self.pool_id)), 3)

    def test_holder_limit(self):
        self.owners.return_value = FetchResult.success(["0xa", "0xb", "0xc"])
        self.assertEqual(self._sync(max_holders=2), 2)

    def test_unsupported_network_raises(self):
        with self.assertRaises(HolderSyncError):
            sync_pool_holders(self.arbitrum_pool_id, pool_repo=self.pool_repo, holder_repo=self.holder_repo,
                              fetch_owners=self.owners, fetch_balance=self._fetch_balance)
        self.owners.assert_not_called()

    def test_unknown_pool_raises(self):
        with self.assertRaises(HolderSyncError):
            sync_pool_holders("missing", pool_repo=self.pool_repo, holder_repo=self.holder_repo,
                              fetch_owners=self.owners, fetch_balance=self._fetch_balance)


if __name__ == '__main__':
    unittest.main()
