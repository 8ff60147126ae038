# shop_aggregator/adapters/base_adapter.py

"""Abstract base class for all retailer adapters.

An adapter is a pure translation layer: it builds the native request,
performs one HTTP call and maps the native payload into ``Product``.
Caching, quota checks and retries belong to ``RateGatedAdapter``.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

from curl_cffi import requests as curl_requests

from shop_aggregator.adapters.catalog import extract_search_terms
from shop_aggregator.config.settings import Settings
from shop_aggregator.errors import (
    AuthenticationFailedError,
    DecodeError,
    NetworkError,
    RateLimitedError,
    UpstreamError,
)
from shop_aggregator.models.product import Product


class BaseAdapter(ABC):
    """Capability contract shared by every upstream service."""

    def __init__(self, service_id: str) -> None:
        self.service_id = service_id
        self.logger = logging.getLogger(
            f"shop_aggregator.adapters.{service_id}"
        )
        self.settings = Settings()
        self.session = curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )
        self._request_timeout: int = self.settings.REQUEST_TIMEOUT

    # ── HTTP ─────────────────────────────────────────────

    def _get_json(
        self,
        url: str,
        params: dict[str, str],
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """GET ``url`` once and decode a JSON object.

        Raises a typed ``AdapterError`` for every failure class.
        """
        try:
            resp = self.session.get(
                url,
                params=params,
                headers={**self.settings.DEFAULT_HEADERS, **(headers or {})},
                timeout=self._request_timeout,
            )
        except Exception as exc:
            raise NetworkError(self.service_id, str(exc)) from exc

        status = resp.status_code
        self.logger.debug(
            "[%s] HTTP %d from %s", self.service_id, status, url,
        )
        if status in (401, 403):
            raise AuthenticationFailedError(self.service_id, status)
        if status == 429:
            raise RateLimitedError(self.service_id)
        if status != 200:
            raise UpstreamError(
                self.service_id, status, resp.text[:200],
            )

        try:
            data = json.loads(resp.text)
        except json.JSONDecodeError as exc:
            raise DecodeError(
                self.service_id, str(exc), resp.text,
            ) from exc
        if not isinstance(data, dict):
            raise DecodeError(
                self.service_id,
                f"expected a JSON object, got {type(data).__name__}",
                resp.text,
            )
        return data

    # ── Related products ─────────────────────────────────

    def related_query(self, product: Product) -> str:
        """Secondary search used to approximate related products."""
        return extract_search_terms(product.name) or product.name

    def get_related_products(self, product_id: str) -> list[Product]:
        """Best-effort related items via a secondary search."""
        base = self.get_product_details(product_id)
        results = self.search_products(self.related_query(base))
        related = [p for p in results if p.source_id != product_id]
        return related[: self.settings.RELATED_PRODUCTS_LIMIT]

    # ── Contract ─────────────────────────────────────────

    @abstractmethod
    def search_products(self, query: str) -> list[Product]:
        """Search the upstream catalog and return common products."""
        ...

    @abstractmethod
    def get_product_details(self, product_id: str) -> Product:
        """Return one product; raise ``NotFoundError`` if unknown."""
        ...
