# tests/test_registry.py

"""Tests for coordinator wiring from the service registry."""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from shop_aggregator.adapters.serpapi_adapter import SerpApiAdapter
from shop_aggregator.config.settings import Settings
from shop_aggregator.services.registry import (
    build_coordinator,
    load_adapter_class,
    policy_for,
)


class TestLoadAdapterClass(unittest.TestCase):

    def test_resolves_dotted_path(self) -> None:
        cls = load_adapter_class(
            "shop_aggregator.adapters.serpapi_adapter.SerpApiAdapter"
        )
        self.assertIs(cls, SerpApiAdapter)

    def test_missing_module(self) -> None:
        with self.assertRaises(ModuleNotFoundError):
            load_adapter_class("shop_aggregator.adapters.nope.Nope")


class TestPolicyFor(unittest.TestCase):

    def test_per_service_monthly_limit(self) -> None:
        self.assertEqual(
            policy_for({"id": "walmart", "monthly_limit": "2500"})
            .monthly_limit,
            2500,
        )

    def test_default_monthly_limit(self) -> None:
        self.assertEqual(
            policy_for({"id": "ebay"}).monthly_limit, Settings.MONTHLY_LIMIT,
        )


@patch("shop_aggregator.adapters.base_adapter.curl_requests.Session")
class TestBuildCoordinator(unittest.TestCase):
    """build_coordinator over a temporary state file."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.db_path = Path(self._tmp.name) / "state.db"

    def test_registers_every_service(self, _mock_session: object) -> None:
        coordinator = build_coordinator(db_path=self.db_path)
        self.assertEqual(
            coordinator.registered_services(),
            [s["id"] for s in Settings.AVAILABLE_SERVICES],
        )
        self.assertEqual(
            coordinator.ledger.policy_for("walmart").monthly_limit, 2500,
        )
        self.assertTrue(self.db_path.exists())

    def test_custom_service_list(self, _mock_session: object) -> None:
        coordinator = build_coordinator(
            services=[{
                "id": "ebay_uk",
                "label": "eBay UK",
                "adapter": (
                    "shop_aggregator.adapters.serpapi_adapter.SerpApiAdapter"
                ),
                "engine": "ebay",
            }],
            db_path=self.db_path,
        )
        self.assertEqual(coordinator.registered_services(), ["ebay_uk"])
        report = coordinator.usage_report()
        self.assertEqual(report["ebay_uk"].monthly_used, 0)


if __name__ == "__main__":
    unittest.main()
