import unittest
from datetime import timedelta

from parameterized import parameterized

from auric.positions import Position
from auric.protocol import QuoteRequest
from auric.rates.sustainable import QuoteService, SustainableRateModel, projected_earnings, step_bonus
from auric.utils.misc import utcnow
from tests.helpers import InMemoryPoolStore, InMemoryPositionStore, make_pool


class TestSustainableRateModel(unittest.TestCase):
    def setUp(self) -> None:
        self.model = SustainableRateModel()

    def test_base_apy_interpolates_band(self) -> None:
        self.assertAlmostEqual(self.model.base_apy(0.85, "USDC"), 7.1)
        self.assertAlmostEqual(self.model.base_apy(0.0, "XAUT"), 3.0)
        self.assertAlmostEqual(self.model.base_apy(1.0, "AURU"), 15.0)

    def test_unknown_asset_uses_default_band(self) -> None:
        self.assertAlmostEqual(self.model.base_apy(0.5, "WBTC"), 5.0)

    def test_base_apy_clamps_utilization(self) -> None:
        self.assertAlmostEqual(self.model.base_apy(1.7, "USDC"), 8.0)

    @parameterized.expand(
        [
            (0.95, 1.0),
            (0.71, 1.0),
            (0.7, 0.5),
            (0.6, 0.5),
            (0.5, 0.0),
            (0.0, 0.0),
        ]
    )
    def test_utilization_bonus(self, utilization, expected) -> None:
        self.assertEqual(self.model.utilization_bonus(utilization), expected)

    @parameterized.expand(
        [
            (250_000, 1.5),
            (100_001, 1.5),
            (100_000, 1.0),
            (60_000, 1.0),
            (50_000, 0.5),
            (10_001, 0.5),
            (10_000, 0.0),
            (0, 0.0),
        ]
    )
    def test_demand_bonus(self, volume, expected) -> None:
        self.assertEqual(self.model.demand_bonus(volume), expected)

    def test_governance_bonus(self) -> None:
        self.assertEqual(self.model.governance_bonus(True), 0.2)
        self.assertEqual(self.model.governance_bonus(False), 0.0)

    @parameterized.expand(
        [
            ("base", 0.5, 5.0, 0.018),
            ("high_utilization", 0.85, 7.1, 0.023),
            ("high_apy", 0.5, 12.0, 0.020),
            ("both", 0.9, 14.0, 0.025),
        ]
    )
    def test_platform_fee(self, _name, utilization, base_apy, expected) -> None:
        self.assertAlmostEqual(self.model.platform_fee_rate(utilization, base_apy), expected)

    def test_platform_fee_clamped(self) -> None:
        self.assertAlmostEqual(SustainableRateModel(base_fee=0.05).platform_fee_rate(0.9, 14.0), 0.025)
        self.assertAlmostEqual(SustainableRateModel(base_fee=0.001).platform_fee_rate(0.1, 1.0), 0.01)

    def test_quote_high_utilization(self) -> None:
        quote = self.model.quote(make_pool(utilization=0.85), 0, False, "USDC")

        self.assertAlmostEqual(quote.base_apy, 7.1)
        self.assertEqual(quote.utilization_bonus, 1.0)
        self.assertEqual(quote.demand_bonus, 0.0)
        self.assertAlmostEqual(quote.gross_apy, 8.1)
        self.assertAlmostEqual(quote.platform_fee_rate, 0.023)
        self.assertAlmostEqual(quote.platform_fee_apy, 8.1 * 0.023)
        self.assertAlmostEqual(quote.net_apy, 8.1 * 0.977)
        self.assertFalse(quote.is_fallback)
        self.assertIsNone(quote.projected_earnings)

    def test_bonuses_are_additive(self) -> None:
        quote = self.model.quote(make_pool(utilization=0.6), 60_000, True, "USDC")

        self.assertAlmostEqual(
            quote.gross_apy, quote.base_apy + quote.utilization_bonus + quote.demand_bonus + quote.governance_bonus
        )
        self.assertAlmostEqual(quote.gross_apy, 5.6 + 0.5 + 1.0 + 0.2)
        self.assertLessEqual(quote.net_apy, quote.gross_apy)
        self.assertAlmostEqual(quote.net_apy, quote.gross_apy - quote.platform_fee_apy)

    def test_fallback_quote(self) -> None:
        quote = self.model.quote(None, 0, False, "USDC")

        self.assertTrue(quote.is_fallback)
        self.assertEqual(quote.gross_apy, 3.5)
        self.assertAlmostEqual(quote.platform_fee_apy, 0.063)
        self.assertAlmostEqual(quote.net_apy, 3.437)

    def test_fallback_unknown_asset(self) -> None:
        self.assertEqual(self.model.fallback_quote("WBTC").base_apy, 3.5)
        self.assertEqual(self.model.fallback_quote("AURU").base_apy, 8.0)

    def test_projection(self) -> None:
        yearly = self.model.quote(make_pool(utilization=0.85), 0, False, "USDC", principal=10_000)
        monthly = self.model.quote(make_pool(utilization=0.85), 0, False, "USDC", principal=10_000, term_days=30)

        self.assertAlmostEqual(yearly.projected_earnings, 10_000 * yearly.net_apy / 100)
        self.assertAlmostEqual(monthly.projected_earnings, 10_000 * (monthly.net_apy / 100) / 365 * 30)

    def test_helpers(self) -> None:
        self.assertEqual(step_bonus(5, ((10, 1.0),)), 0.0)
        self.assertEqual(projected_earnings(1000, 10, 0), 0.0)


class RaisingModel(SustainableRateModel):
    def quote(self, *args, **kwargs):  # noqa: ANN201, ANN002
        raise ZeroDivisionError("bad pool data")


class TestQuoteService(unittest.TestCase):
    def setUp(self) -> None:
        self.positions = InMemoryPositionStore()
        self.pool_store = InMemoryPoolStore(self.positions, [make_pool(utilization=0.85)])
        self.service = QuoteService(self.positions, self.pool_store)

    def add_supply(self, position_id: str, owner_id: str, asset: str, amount: float) -> None:
        now = utcnow()
        self.positions.positions[position_id] = Position(
            id=position_id,
            owner_id=owner_id,
            asset=asset,
            chain="ethereum",
            kind="supply",
            current_amount=amount,
            last_update=now,
            created_at=now - timedelta(days=1),
        )

    def test_quote_from_pool(self) -> None:
        quote = self.service.quote(QuoteRequest(asset="USDC", chain="ethereum"))

        self.assertFalse(quote.is_fallback)
        self.assertAlmostEqual(quote.gross_apy, 8.1)

    def test_recent_volume_and_governance(self) -> None:
        self.add_supply("p1", "alice", "USDC", 60_000)
        self.add_supply("p2", "alice", "AURU", 10)

        quote = self.service.quote(QuoteRequest(asset="USDC", chain="ethereum", owner_id="alice"))

        self.assertEqual(quote.demand_bonus, 1.0)
        self.assertEqual(quote.governance_bonus, 0.2)

    def test_no_governance_bonus_for_anonymous_caller(self) -> None:
        self.add_supply("p2", "alice", "AURU", 10)

        quote = self.service.quote(QuoteRequest(asset="USDC", chain="ethereum"))

        self.assertEqual(quote.governance_bonus, 0.0)

    def test_missing_pool_falls_back(self) -> None:
        quote = self.service.quote(QuoteRequest(asset="DAI", chain="ethereum", principal=1000))

        self.assertTrue(quote.is_fallback)
        self.assertEqual(quote.base_apy, 4.0)
        self.assertIsNotNone(quote.projected_earnings)

    def test_unreachable_pool_store_falls_back(self) -> None:
        self.pool_store.unreachable = True

        quote = self.service.quote(QuoteRequest(asset="USDC", chain="ethereum"))

        self.assertTrue(quote.is_fallback)
        self.assertEqual(quote.gross_apy, 3.5)

    def test_unreachable_position_store_drops_bonuses(self) -> None:
        self.add_supply("p1", "alice", "USDC", 60_000)
        self.positions.unreachable = True

        quote = self.service.quote(QuoteRequest(asset="USDC", chain="ethereum", owner_id="alice"))

        self.assertFalse(quote.is_fallback)
        self.assertEqual(quote.demand_bonus, 0.0)
        self.assertEqual(quote.governance_bonus, 0.0)

    def test_model_failure_falls_back(self) -> None:
        service = QuoteService(self.positions, self.pool_store, model=RaisingModel())

        quote = service.quote(QuoteRequest(asset="USDC", chain="ethereum"))

        self.assertTrue(quote.is_fallback)

    def test_net_rate_is_decimal(self) -> None:
        self.assertAlmostEqual(self.service.net_rate("USDC", "ethereum"), 8.1 * 0.977 / 100)


if __name__ == "__main__":
    unittest.main()
