# shop_aggregator/services/registry.py

"""Wire a coordinator from ``Settings.AVAILABLE_SERVICES``."""

import importlib
import logging
from pathlib import Path
from typing import Any

from shop_aggregator.config.settings import Settings
from shop_aggregator.services.aggregation_coordinator import (
    AggregationCoordinator,
)
from shop_aggregator.storage.cache_db import SqliteCacheStore
from shop_aggregator.storage.quota_ledger import QuotaLedger, QuotaPolicy
from shop_aggregator.storage.quota_store import SqliteQuotaStore
from shop_aggregator.storage.result_cache import ResultCache

logger = logging.getLogger("shop_aggregator.registry")


def load_adapter_class(dotted_path: str) -> type[Any]:
    """Dynamically import an adapter class from its dotted module path."""
    module_path, class_name = dotted_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    cls: type[Any] = getattr(module, class_name)
    return cls


def policy_for(service: dict[str, str]) -> QuotaPolicy:
    """Quota policy for one service entry (per-service monthly limit)."""
    return QuotaPolicy(
        monthly_limit=int(
            service.get("monthly_limit", Settings.MONTHLY_LIMIT)
        ),
    )


def build_coordinator(
    services: list[dict[str, str]] | None = None,
    db_path: Path | None = None,
) -> AggregationCoordinator:
    """Coordinator backed by the shared SQLite state file."""
    path = db_path or Settings.STATE_DB_PATH
    ledger = QuotaLedger(store=SqliteQuotaStore(path))
    cache = ResultCache(store=SqliteCacheStore(path))
    coordinator = AggregationCoordinator(cache, ledger)

    for service in services or Settings.AVAILABLE_SERVICES:
        service_id = service["id"]
        ledger.configure(service_id, policy_for(service))
        adapter_cls = load_adapter_class(service["adapter"])
        adapter = adapter_cls(service_id, service["engine"])
        coordinator.register_service(adapter, service_id)

    logger.info(
        "Coordinator ready with %s (state: %s)",
        ", ".join(coordinator.registered_services()),
        path,
    )
    return coordinator
