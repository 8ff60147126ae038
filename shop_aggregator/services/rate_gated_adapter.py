# shop_aggregator/services/rate_gated_adapter.py

"""Quota-, cache- and retry-aware wrapper around one retailer adapter.

Every call follows the same gate: cache probe, quota admission,
adapter call with bounded retries, then usage record and cache write
on success.  Adapter exceptions never escape; they become failure
``AdapterOutcome`` values.
"""

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from shop_aggregator.adapters.base_adapter import BaseAdapter
from shop_aggregator.config.settings import Settings
from shop_aggregator.errors import (
    AdapterError,
    CircuitOpenError,
    NetworkError,
    NotFoundError,
    QuotaExceededError,
    RateLimitedError,
)
from shop_aggregator.filters.query_fallback import QueryFallbackChain
from shop_aggregator.models.outcome import AdapterOutcome, FailureKind
from shop_aggregator.models.search import normalize_query
from shop_aggregator.services.circuit_breaker import CircuitBreaker
from shop_aggregator.storage.quota_ledger import ServiceQuota, UsageStatistics
from shop_aggregator.storage.result_cache import ResultCache

logger = logging.getLogger("shop_aggregator.gate")

T = TypeVar("T")


def search_key(service_id: str, query: str) -> str:
    return f"search:{service_id}:{normalize_query(query)}"


def product_key(service_id: str, product_id: str) -> str:
    return f"product:{service_id}:{product_id}"


class RateGatedAdapter:
    """One service's adapter behind its quota and the shared cache."""

    def __init__(
        self,
        adapter: BaseAdapter,
        quota: ServiceQuota,
        cache: ResultCache,
        fallback_chain: QueryFallbackChain | None = None,
        breaker: CircuitBreaker | None = None,
    ) -> None:
        self.adapter = adapter
        self.quota = quota
        self.cache = cache
        self.fallback_chain = fallback_chain or QueryFallbackChain()
        self.breaker = breaker or CircuitBreaker(quota.service_id)
        self.settings = Settings()

    @property
    def service_id(self) -> str:
        return self.quota.service_id

    # ── Public operations ────────────────────────────────

    def search(self, query: str) -> AdapterOutcome:
        """Search through the fallback chain of query variants.

        Stops at the first variant with products.  When none has any,
        the first (empty) success wins; a failure ends the chain and is
        returned only if no variant succeeded.  A variant that follows
        an upstream call waits out the service's minimum request
        interval.
        """
        started = time.perf_counter()
        variants = self.fallback_chain.variants(query) or [query]
        first_empty: AdapterOutcome | None = None
        went_upstream = False

        for variant in variants:
            if went_upstream:
                self._wait_for_interval()
            outcome = self._search_once(variant)
            went_upstream = not outcome.from_cache
            if outcome.ok and outcome.products:
                if variant != variants[0]:
                    logger.info(
                        "[%s] Fallback variant '%s' matched for '%s'",
                        self.service_id,
                        variant,
                        query,
                    )
                return self._timed(outcome, started)
            if not outcome.ok:
                # Failures are not query-specific; later variants
                # would only burn quota
                return self._timed(first_empty or outcome, started)
            first_empty = first_empty or outcome

        assert first_empty is not None
        return self._timed(first_empty, started)

    def get_product_details(self, product_id: str) -> AdapterOutcome:
        """Single product lookup; the outcome holds at most one item."""
        started = time.perf_counter()
        key = product_key(self.service_id, product_id)
        cached = self.cache.get(key)
        if cached is not None:
            return self._timed(
                AdapterOutcome.success(
                    self.service_id, [cached], from_cache=True,
                ),
                started,
            )

        outcome = self._gated(
            lambda: self.adapter.get_product_details(product_id),
            f"details '{product_id}'",
        )
        if isinstance(outcome, AdapterOutcome):
            return self._timed(outcome, started)
        self.cache.set(key, outcome, self.settings.PRODUCT_CACHE_TTL)
        return self._timed(
            AdapterOutcome.success(self.service_id, [outcome]), started,
        )

    def get_related_products(self, product_id: str) -> AdapterOutcome:
        """Gated detail lookup followed by a gated secondary search."""
        started = time.perf_counter()
        details = self.get_product_details(product_id)
        if not details.ok:
            return self._timed(details, started)

        base = details.products[0]
        if not details.from_cache:
            self._wait_for_interval()
        found = self._search_once(self.adapter.related_query(base))
        if not found.ok:
            return self._timed(found, started)

        related = [p for p in found.products if p.source_id != product_id]
        return self._timed(
            AdapterOutcome.success(
                self.service_id,
                related[: self.settings.RELATED_PRODUCTS_LIMIT],
                from_cache=details.from_cache and found.from_cache,
            ),
            started,
        )

    def usage(self) -> UsageStatistics:
        return self.quota.get_usage_statistics()

    # ── Gate ─────────────────────────────────────────────

    def _search_once(self, query: str) -> AdapterOutcome:
        key = search_key(self.service_id, query)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("[%s] Cache hit for '%s'", self.service_id, query)
            return AdapterOutcome.success(
                self.service_id, cached, from_cache=True,
            )

        result = self._gated(
            lambda: self.adapter.search_products(query),
            f"search '{query}'",
        )
        if isinstance(result, AdapterOutcome):
            return result

        self.cache.set(key, result, self.settings.SEARCH_CACHE_TTL)
        for product in result:
            self.cache.set(
                product_key(self.service_id, product.source_id),
                product,
                self.settings.PRODUCT_CACHE_TTL,
            )
        return AdapterOutcome.success(self.service_id, result)

    def _gated(
        self, call: Callable[[], T], label: str,
    ) -> T | AdapterOutcome:
        """Admit, invoke and account for one upstream call.

        Returns the adapter's result, or a failure outcome.  An open
        circuit fails fast before the quota is touched.
        """
        if not self.breaker.allow_request():
            retry_after = self.breaker.retry_after()
            logger.info(
                "[%s] %s skipped: circuit open (retry in %.0fs)",
                self.service_id,
                label,
                retry_after,
            )
            return AdapterOutcome.from_error(
                self.service_id,
                CircuitOpenError(self.service_id, retry_after),
            )

        if not self.quota.acquire():
            reason = self.quota.denial_reason() or ""
            logger.info(
                "[%s] %s skipped: quota denied (%s)",
                self.service_id,
                label,
                reason or "limit reached",
            )
            return AdapterOutcome.from_error(
                self.service_id, QuotaExceededError(self.service_id, reason),
            )

        try:
            result = self._call_with_retries(call)
        except NotFoundError as exc:
            # Upstream answered; an unknown id says nothing about health
            self.quota.release()
            self.breaker.record_success()
            logger.info("[%s] %s: %s", self.service_id, label, exc)
            return AdapterOutcome.from_error(self.service_id, exc)
        except AdapterError as exc:
            self.quota.release()
            self.breaker.record_failure()
            logger.warning("[%s] %s failed: %s", self.service_id, label, exc)
            return AdapterOutcome.from_error(self.service_id, exc)
        except Exception as exc:
            self.quota.release()
            self.breaker.record_failure()
            logger.error(
                "[%s] %s raised unexpectedly: %s",
                self.service_id,
                label,
                exc,
                exc_info=True,
            )
            return AdapterOutcome.failed(
                self.service_id, FailureKind.UPSTREAM_ERROR, str(exc),
            )

        self.quota.record_request()
        self.breaker.record_success()
        return result

    def _call_with_retries(self, call: Callable[[], T]) -> T:
        """Retry network errors with growing delays and one 429 wait."""
        network_retries = 0
        waited_for_rate_limit = False
        while True:
            try:
                return call()
            except NetworkError as exc:
                if network_retries >= self.settings.NETWORK_RETRIES:
                    raise
                network_retries += 1
                delay = self.settings.RETRY_BACKOFF_BASE * network_retries
                logger.warning(
                    "[%s] Network error (%s), retry %d/%d in %.1fs",
                    self.service_id,
                    exc.details.get("reason", exc.message),
                    network_retries,
                    self.settings.NETWORK_RETRIES,
                    delay,
                )
                time.sleep(delay)
            except RateLimitedError:
                if waited_for_rate_limit:
                    raise
                waited_for_rate_limit = True
                logger.warning(
                    "[%s] Rate limited upstream, waiting %.1fs once",
                    self.service_id,
                    self.settings.RATE_LIMIT_WAIT,
                )
                time.sleep(self.settings.RATE_LIMIT_WAIT)

    def _wait_for_interval(self) -> None:
        """Sleep until the ledger's minimum interval has elapsed."""
        delay = self.quota.get_retry_delay()
        if delay > 0:
            logger.debug(
                "[%s] Waiting %.1fs before next upstream call",
                self.service_id,
                delay,
            )
            time.sleep(delay)

    def _timed(
        self, outcome: AdapterOutcome, started: float,
    ) -> AdapterOutcome:
        outcome.elapsed_ms = (time.perf_counter() - started) * 1000
        return outcome

