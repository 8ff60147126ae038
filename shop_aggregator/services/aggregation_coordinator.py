# shop_aggregator/services/aggregation_coordinator.py

"""Fans a query out to registered services and merges the results."""

import asyncio
import logging
import threading

from shop_aggregator.adapters.base_adapter import BaseAdapter
from shop_aggregator.config.settings import Settings
from shop_aggregator.errors import AllServicesFailedError
from shop_aggregator.filters.deduplicator import ProductDeduplicator
from shop_aggregator.filters.product_validator import ProductValidator
from shop_aggregator.filters.query_fallback import QueryFallbackChain
from shop_aggregator.filters.ranking import ProductRanker
from shop_aggregator.models.outcome import AdapterOutcome, FailureKind
from shop_aggregator.models.product import Product
from shop_aggregator.models.search import (
    SearchOptions,
    SearchResponse,
    normalize_query,
)
from shop_aggregator.services.rate_gated_adapter import RateGatedAdapter
from shop_aggregator.storage.quota_ledger import QuotaLedger, UsageStatistics
from shop_aggregator.storage.result_cache import ResultCache

logger = logging.getLogger("shop_aggregator.coordinator")


def composite_key(
    query: str, services: list[str], options: SearchOptions,
) -> str:
    """Cache key suffix for one aggregated search."""
    return (
        f"{normalize_query(query)}|{','.join(sorted(services))}"
        f"|{options.sort_order.value}|{options.max_results}"
    )


class AggregationCoordinator:
    """Registry of gated adapters plus the concurrent search fan-out."""

    def __init__(
        self,
        cache: ResultCache,
        ledger: QuotaLedger,
        fallback_chain: QueryFallbackChain | None = None,
    ) -> None:
        self.cache = cache
        self.ledger = ledger
        self.fallback_chain = fallback_chain or QueryFallbackChain()
        self.settings = Settings()
        # Insertion order is registration order
        self._services: dict[str, RateGatedAdapter] = {}
        self._registry_lock = threading.Lock()
        self._in_flight: dict[str, asyncio.Task[SearchResponse]] = {}

    # ── Registry ─────────────────────────────────────────

    def register_service(
        self, adapter: BaseAdapter, service_id: str,
    ) -> RateGatedAdapter:
        """Register or replace the adapter behind ``service_id``."""
        gated = RateGatedAdapter(
            adapter,
            self.ledger.for_service(service_id),
            self.cache,
            self.fallback_chain,
        )
        with self._registry_lock:
            replaced = service_id in self._services
            self._services[service_id] = gated
        logger.info(
            "%s service '%s'",
            "Replaced" if replaced else "Registered",
            service_id,
        )
        return gated

    def unregister_service(self, service_id: str) -> bool:
        with self._registry_lock:
            removed = self._services.pop(service_id, None) is not None
        if removed:
            logger.info("Unregistered service '%s'", service_id)
        return removed

    def registered_services(self) -> list[str]:
        """Service ids in registration order."""
        with self._registry_lock:
            return list(self._services)

    def _gated(self, service_id: str) -> RateGatedAdapter | None:
        with self._registry_lock:
            return self._services.get(service_id)

    def _resolve_services(
        self, services: list[str] | None, options: SearchOptions,
    ) -> list[str]:
        """Requested ids: known ones in registration order, then unknown."""
        if services is None and options.services is not None:
            services = sorted(options.services)
        registered = self.registered_services()
        if services is None:
            return registered
        wanted = list(dict.fromkeys(services))
        known = [sid for sid in registered if sid in wanted]
        unknown = [sid for sid in wanted if sid not in registered]
        return known + unknown

    # ── Search ───────────────────────────────────────────

    async def search(
        self,
        query: str,
        services: list[str] | None = None,
        options: SearchOptions | None = None,
    ) -> SearchResponse:
        """Search the requested services concurrently and merge.

        Partial failure is a normal response.  Raises
        ``AllServicesFailedError`` only when every requested service
        failed and no last-known-good result is cached.
        """
        options = options or SearchOptions()
        if not query.strip():
            logger.debug("Empty query ignored")
            return SearchResponse(query=query)

        requested = self._resolve_services(services, options)
        key = composite_key(query, requested, options)

        cached = self.cache.get(f"search:agg:{key}")
        if cached is not None:
            logger.info("Aggregated cache hit for '%s'", query)
            return SearchResponse(
                query=query,
                products=cached,
                from_cache=True,
                total_before_dedup=len(cached),
            )

        loop = asyncio.get_running_loop()
        task = self._in_flight.get(key)
        if task is None or task.get_loop() is not loop:
            task = loop.create_task(
                self._search_uncached(query, requested, options, key)
            )
            self._in_flight[key] = task
            task.add_done_callback(
                lambda t, k=key: self._forget(k, t)
            )
        else:
            logger.debug("Joining in-flight search for '%s'", query)
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task[SearchResponse]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    async def _search_uncached(
        self,
        query: str,
        requested: list[str],
        options: SearchOptions,
        key: str,
    ) -> SearchResponse:
        logger.info(
            "Searching '%s' across %s", query, ", ".join(requested) or "-",
        )
        outcomes = list(
            await asyncio.gather(
                *(self._invoke(sid, query) for sid in requested)
            )
        )
        response = self._merge(query, outcomes, options)

        if not requested:
            return response

        if response.succeeded:
            self.cache.set(
                f"search:agg:{key}",
                response.products,
                self.settings.AGGREGATE_CACHE_TTL,
            )
            if response.products:
                self.cache.set(
                    f"fallback:{key}",
                    response.products,
                    self.settings.FALLBACK_CACHE_TTL,
                )
            logger.info(
                "'%s': %d products, %s",
                query,
                len(response.products),
                response.summary,
            )
            return response

        fallback = self.cache.get(f"fallback:{key}")
        if fallback is None:
            logger.error(
                "All %d services failed for '%s'", len(outcomes), query,
            )
            raise AllServicesFailedError(query, outcomes)

        logger.warning(
            "All services failed for '%s'; serving %d last-known-good "
            "products",
            query,
            len(fallback),
        )
        response.products = fallback
        response.from_fallback = True
        return response

    async def _invoke(self, service_id: str, query: str) -> AdapterOutcome:
        """Run one gated search in a worker thread under a timeout."""
        gated = self._gated(service_id)
        if gated is None:
            logger.warning("Unknown service '%s' requested", service_id)
            return AdapterOutcome.failed(
                service_id,
                FailureKind.UNKNOWN_SERVICE,
                f"No adapter registered for '{service_id}'",
            )

        timeout = self.settings.ADAPTER_CALL_TIMEOUT
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(gated.search, query), timeout=timeout,
            )
        except asyncio.TimeoutError:
            # The worker thread keeps running; its result still lands
            # in the cache when it finishes
            logger.warning(
                "[%s] No response within %.1fs for '%s'",
                service_id,
                timeout,
                query,
            )
            return AdapterOutcome.failed(
                service_id,
                FailureKind.TIMEOUT,
                f"No response within {timeout:.1f}s",
            )

    def _merge(
        self,
        query: str,
        outcomes: list[AdapterOutcome],
        options: SearchOptions,
    ) -> SearchResponse:
        """Validate, deduplicate, rank and truncate successful outcomes."""
        response = SearchResponse(query=query, outcomes=outcomes)
        groups: list[list[Product]] = []
        for outcome in outcomes:
            if not outcome.ok:
                continue
            valid, dropped = ProductValidator.validate(outcome.products)
            response.invalid_count += dropped
            groups.append(valid)

        response.total_before_dedup = sum(len(g) for g in groups)
        groups, response.deduplicated_count = (
            ProductDeduplicator.deduplicate_groups(groups)
        )
        ranked = ProductRanker.rank(groups, options.sort_order)
        response.products = ranked[: options.max_results]
        return response

    # ── Single-service lookups ───────────────────────────

    async def get_product_details(
        self, service_id: str, product_id: str,
    ) -> Product | None:
        """One product from one service, ``None`` when unavailable."""
        gated = self._gated(service_id)
        if gated is None:
            logger.warning("Unknown service '%s' requested", service_id)
            return None
        outcome = await asyncio.to_thread(
            gated.get_product_details, product_id,
        )
        if not outcome.ok or not outcome.products:
            logger.info(
                "[%s] No details for '%s': %s",
                service_id,
                product_id,
                outcome.message or outcome.failure,
            )
            return None
        return outcome.products[0]

    async def get_related_products(
        self, service_id: str, product_id: str,
    ) -> list[Product]:
        """Items related to one product, empty when unavailable."""
        gated = self._gated(service_id)
        if gated is None:
            logger.warning("Unknown service '%s' requested", service_id)
            return []
        outcome = await asyncio.to_thread(
            gated.get_related_products, product_id,
        )
        if not outcome.ok:
            logger.info(
                "[%s] No related products for '%s': %s",
                service_id,
                product_id,
                outcome.message,
            )
            return []
        return outcome.products

    # ── Reporting ────────────────────────────────────────

    def usage_report(self) -> dict[str, UsageStatistics]:
        """Quota usage for every registered service."""
        return {
            sid: self.ledger.get_usage_statistics(sid)
            for sid in self.registered_services()
        }
