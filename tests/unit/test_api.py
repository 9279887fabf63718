import unittest

from fastapi.testclient import TestClient

from auric.accrual.aggregator import PoolAggregator
from auric.accrual.locks import LockAccrualJob
from auric.accrual.positions import PositionAccrualJob
from auric.api import create_app
from auric.rates.sustainable import QuoteService
from tests.helpers import InMemoryPoolStore, InMemoryPositionStore, make_lock, make_pool, make_position


class TestAPI(unittest.TestCase):
    def setUp(self) -> None:
        self.positions = InMemoryPositionStore(
            [make_position("p1"), make_position("b1", kind="borrow", amount=200)],
            locks=[make_lock()],
        )
        self.pool_store = InMemoryPoolStore(self.positions, [make_pool(utilization=0.85)])
        aggregator = PoolAggregator(self.pool_store)
        app = create_app(
            PositionAccrualJob(self.positions, self.pool_store, aggregator),
            LockAccrualJob(self.positions, aggregator),
            QuoteService(self.positions, self.pool_store),
            self.pool_store,
        )
        self.client = TestClient(app)

    def test_position_accrual(self) -> None:
        response = self.client.post("/accrual/positions")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["processedCount"], 2)
        self.assertEqual(body["outcomes"], {"skipped": 0, "errors": 0, "conflicts": 0})
        result = next(r for r in body["results"] if r["kind"] == "supply")
        self.assertEqual(result["ownerId"], "alice")
        self.assertEqual(result["oldAmount"], 1000.0)
        self.assertGreater(result["newAmount"], result["oldAmount"])
        self.assertIn("processedAt", body)

    def test_position_accrual_store_down(self) -> None:
        self.positions.unreachable = True

        response = self.client.post("/accrual/positions")

        self.assertEqual(response.status_code, 500)
        body = response.json()
        self.assertFalse(body["success"])
        self.assertIn("store unreachable", body["error"])

    def test_lock_accrual(self) -> None:
        response = self.client.post("/accrual/locks")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["processedCount"], 1)
        self.assertEqual(body["results"][0]["kind"], "lock")

    def test_scheduled_operations(self) -> None:
        response = self.client.post("/accrual/scheduled")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(set(body["results"]), {"position_accrual", "lock_accrual"})
        self.assertEqual(body["errors"], [])
        self.assertEqual(body["summary"], {"operationsCompleted": 2, "errorsCount": 0, "successful": True})
        self.assertGreaterEqual(body["executionTimeMs"], 0)

    def test_scheduled_operations_report_failures(self) -> None:
        self.positions.unreachable = True

        body = self.client.post("/accrual/scheduled").json()

        self.assertTrue(body["success"])
        self.assertIsNone(body["results"]["position_accrual"])
        self.assertEqual(len(body["errors"]), 2)
        self.assertEqual(body["summary"]["operationsCompleted"], 0)
        self.assertFalse(body["summary"]["successful"])

    def test_quote(self) -> None:
        response = self.client.get("/quote", params={"asset": "USDC", "chain": "ethereum", "principal": 1000})

        self.assertEqual(response.status_code, 200)
        breakdown = response.json()["breakdown"]
        self.assertAlmostEqual(breakdown["grossApy"], 8.1)
        self.assertFalse(breakdown["isFallback"])
        self.assertAlmostEqual(breakdown["projectedEarnings"], 1000 * breakdown["netApy"] / 100)
        display = response.json()["displayData"]
        self.assertEqual(display["gross_apy"], "8.10%")
        self.assertIn("+1.00% Utilization Bonus", display["bonuses"])

    def test_quote_fallback(self) -> None:
        breakdown = self.client.get("/quote", params={"asset": "XAUT", "chain": "ethereum"}).json()["breakdown"]

        self.assertTrue(breakdown["isFallback"])
        self.assertEqual(breakdown["grossApy"], 5.0)

    def test_quote_rejects_negative_principal(self) -> None:
        response = self.client.get("/quote", params={"asset": "USDC", "chain": "ethereum", "principal": -5})

        self.assertEqual(response.status_code, 422)

    def test_get_pool(self) -> None:
        response = self.client.get("/pools/USDC/ethereum")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["utilization"], 0.85)

    def test_get_missing_pool(self) -> None:
        self.assertEqual(self.client.get("/pools/DAI/ethereum").status_code, 404)


if __name__ == "__main__":
    unittest.main()
