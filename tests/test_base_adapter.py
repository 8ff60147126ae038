# tests/test_base_adapter.py

"""Tests for the BaseAdapter HTTP helper and related-products default."""

import unittest
from typing import Any
from unittest.mock import MagicMock, patch

from shop_aggregator.adapters.base_adapter import BaseAdapter
from shop_aggregator.errors import (
    AuthenticationFailedError,
    DecodeError,
    NetworkError,
    NotFoundError,
    RateLimitedError,
    UpstreamError,
)
from shop_aggregator.models.product import Product


def _p(source_id: str, name: str = "Studio Monitor Headphones") -> Product:
    return Product(source_id=source_id, name=name, service_id="stub")


class _StubAdapter(BaseAdapter):
    """Concrete adapter with canned catalog data."""

    def __init__(self, catalog: list[Product] | None = None) -> None:
        super().__init__("stub")
        self.catalog = catalog or []
        self.queries: list[str] = []

    def search_products(self, query: str) -> list[Product]:
        self.queries.append(query)
        return list(self.catalog)

    def get_product_details(self, product_id: str) -> Product:
        for product in self.catalog:
            if product.source_id == product_id:
                return product
        raise NotFoundError(self.service_id, product_id)

    def get_json(
        self, url: str, params: dict[str, str],
    ) -> dict[str, Any]:
        """Public wrapper for _get_json."""
        return self._get_json(url, params)


def _response(status: int, text: str = "") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    return resp


@patch("shop_aggregator.adapters.base_adapter.curl_requests.Session")
class TestGetJson(unittest.TestCase):
    """HTTP status and payload classification."""

    def _adapter(
        self, mock_session_cls: MagicMock, resp: Any,
    ) -> tuple[_StubAdapter, MagicMock]:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        if isinstance(resp, Exception):
            mock_session.get.side_effect = resp
        else:
            mock_session.get.return_value = resp
        return _StubAdapter(), mock_session

    def test_ok_returns_dict(self, mock_session_cls: MagicMock) -> None:
        adapter, session = self._adapter(
            mock_session_cls, _response(200, '{"ok": true}'),
        )
        data = adapter.get_json("https://api.example.com", {"q": "tv"})
        self.assertEqual(data, {"ok": True})
        _, kwargs = session.get.call_args
        self.assertEqual(kwargs["params"], {"q": "tv"})
        self.assertEqual(kwargs["timeout"], adapter.settings.REQUEST_TIMEOUT)
        self.assertEqual(kwargs["headers"]["Accept"], "application/json")

    def test_401_and_403_are_auth_failures(
        self, mock_session_cls: MagicMock,
    ) -> None:
        for status in (401, 403):
            with self.subTest(status=status):
                adapter, _ = self._adapter(
                    mock_session_cls, _response(status),
                )
                with self.assertRaises(AuthenticationFailedError) as ctx:
                    adapter.get_json("https://api.example.com", {})
                self.assertEqual(ctx.exception.status_code, status)

    def test_429_is_rate_limited(self, mock_session_cls: MagicMock) -> None:
        adapter, _ = self._adapter(mock_session_cls, _response(429))
        with self.assertRaises(RateLimitedError):
            adapter.get_json("https://api.example.com", {})

    def test_other_status_is_upstream_error(
        self, mock_session_cls: MagicMock,
    ) -> None:
        adapter, _ = self._adapter(
            mock_session_cls, _response(503, "maintenance"),
        )
        with self.assertRaises(UpstreamError) as ctx:
            adapter.get_json("https://api.example.com", {})
        self.assertEqual(ctx.exception.status_code, 503)
        self.assertIn("maintenance", ctx.exception.message)

    def test_transport_exception_is_network_error(
        self, mock_session_cls: MagicMock,
    ) -> None:
        adapter, _ = self._adapter(
            mock_session_cls, ConnectionError("connection reset"),
        )
        with self.assertRaises(NetworkError) as ctx:
            adapter.get_json("https://api.example.com", {})
        self.assertIn("connection reset", ctx.exception.message)

    def test_invalid_json_is_decode_error(
        self, mock_session_cls: MagicMock,
    ) -> None:
        adapter, _ = self._adapter(
            mock_session_cls, _response(200, "<html>" + "x" * 1000),
        )
        with self.assertRaises(DecodeError) as ctx:
            adapter.get_json("https://api.example.com", {})
        self.assertTrue(ctx.exception.raw_payload.startswith("<html>"))
        self.assertEqual(len(ctx.exception.raw_payload), 500)

    def test_non_object_json_is_decode_error(
        self, mock_session_cls: MagicMock,
    ) -> None:
        adapter, _ = self._adapter(mock_session_cls, _response(200, "[1, 2]"))
        with self.assertRaises(DecodeError):
            adapter.get_json("https://api.example.com", {})


@patch("shop_aggregator.adapters.base_adapter.curl_requests.Session")
class TestRelatedProducts(unittest.TestCase):
    """Default related-products strategy."""

    def test_excludes_base_and_caps(
        self, _mock_session_cls: MagicMock,
    ) -> None:
        catalog = [_p(str(i)) for i in range(8)]
        adapter = _StubAdapter(catalog)
        related = adapter.get_related_products("0")
        self.assertNotIn("0", [p.source_id for p in related])
        self.assertEqual(
            len(related), adapter.settings.RELATED_PRODUCTS_LIMIT
        )
        self.assertEqual(adapter.queries, ["Studio Monitor Headphones"])

    def test_related_query_from_name_terms(
        self, _mock_session_cls: MagicMock,
    ) -> None:
        adapter = _StubAdapter()
        product = _p("1", "Apple AirPods Pro with MagSafe Case")
        self.assertEqual(adapter.related_query(product), "Apple AirPods MagSafe")

    def test_related_query_falls_back_to_name(
        self, _mock_session_cls: MagicMock,
    ) -> None:
        adapter = _StubAdapter()
        self.assertEqual(adapter.related_query(_p("1", "TV 4K")), "TV 4K")

    def test_unknown_base_raises_not_found(
        self, _mock_session_cls: MagicMock,
    ) -> None:
        adapter = _StubAdapter([_p("1")])
        with self.assertRaises(NotFoundError):
            adapter.get_related_products("missing")


if __name__ == "__main__":
    unittest.main()
