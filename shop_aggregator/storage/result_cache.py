# shop_aggregator/storage/result_cache.py

"""Two-tier TTL cache shielding upstream APIs from redundant calls.

Keys are namespaced as ``<sub-cache>:<rest>`` (``search:...``,
``product:...``, ``fallback:...``).  Each sub-cache is capped at
``max_entries``; on overflow the oldest entries by creation time go
first.  Expired entries are removed lazily when read.

The durable tier (SQLite) is consulted before the in-process tier, and
a durable hit is promoted into memory.  Writes go to both tiers.
Durable-tier failures are logged and never fail a cache operation.
"""

import json
import logging
import sqlite3
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from shop_aggregator.config.settings import Settings
from shop_aggregator.models.product import Product
from shop_aggregator.storage.cache_db import SqliteCacheStore

logger = logging.getLogger("shop_aggregator.cache")

_PRODUCT_TAG = "__product__"


@dataclass
class CacheEntry:
    """A cached value with its creation time and time-to-live."""

    value: Any
    timestamp: float
    ttl: float

    def is_expired_at(self, now: float) -> bool:
        return now - self.timestamp > self.ttl

    @property
    def is_expired(self) -> bool:
        return self.is_expired_at(time.time())


def encode_value(value: Any) -> Any:
    """Convert products (and containers of them) to JSON-safe data."""
    if isinstance(value, Product):
        return {_PRODUCT_TAG: value.to_dict()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    if isinstance(value, dict):
        return {str(k): encode_value(v) for k, v in value.items()}
    return value


def decode_value(data: Any) -> Any:
    """Inverse of :func:`encode_value`."""
    if isinstance(data, list):
        return [decode_value(v) for v in data]
    if isinstance(data, dict):
        if set(data) == {_PRODUCT_TAG}:
            return Product.from_dict(data[_PRODUCT_TAG])
        return {k: decode_value(v) for k, v in data.items()}
    return data


def namespace_of(key: str) -> str:
    """Sub-cache name for a key (text before the first colon)."""
    head, sep, _ = key.partition(":")
    return head if sep else "default"


class ResultCache:
    """Shared get/set/remove cache with ephemeral and durable tiers."""

    def __init__(
        self,
        store: SqliteCacheStore | None = None,
        max_entries: int = Settings.CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._max_entries = max_entries
        self._clock = clock
        self._memory: dict[str, dict[str, CacheEntry]] = {}
        self._lock = threading.RLock()

    # ── Public API ───────────────────────────────────────

    def get(self, key: str) -> Any | None:
        """Return the live value for ``key`` or ``None`` on a miss."""
        now = self._clock()
        with self._lock:
            if self._store is not None:
                entry = self._durable_get(key, now)
                if entry is not None:
                    self._memory_put(key, entry)
                    self._enforce_limit(namespace_of(key))
                    logger.debug("Cache hit (durable) for '%s'", key)
                    return _copy(entry.value)

            bucket = self._memory.get(namespace_of(key), {})
            entry = bucket.get(key)
            if entry is None:
                return None
            if entry.is_expired_at(now):
                del bucket[key]
                logger.debug("Expired cache entry dropped: '%s'", key)
                return None
            logger.debug("Cache hit (memory) for '%s'", key)
            return _copy(entry.value)

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store or overwrite ``key`` in both tiers."""
        entry = CacheEntry(
            value=_copy(value), timestamp=self._clock(), ttl=ttl,
        )
        with self._lock:
            self._memory_put(key, entry)
            self._enforce_limit(namespace_of(key))
            if self._store is not None:
                self._durable_put(key, entry)
        logger.debug("Cached '%s' (ttl=%.0fs)", key, ttl)

    def remove(self, key: str) -> bool:
        """Invalidate one key. Returns True if any tier held it."""
        with self._lock:
            removed = (
                self._memory.get(namespace_of(key), {}).pop(key, None)
                is not None
            )
            if self._store is not None:
                try:
                    removed = self._store.delete(key) or removed
                except sqlite3.Error as exc:
                    logger.error(
                        "Durable cache delete failed for '%s': %s",
                        key,
                        exc,
                    )
        return removed

    def clear(self) -> int:
        """Purge every entry from both tiers.

        Returns the number of in-memory entries that were removed.
        """
        with self._lock:
            count = sum(len(b) for b in self._memory.values())
            self._memory.clear()
            if self._store is not None:
                try:
                    self._store.clear()
                except sqlite3.Error as exc:
                    logger.error("Durable cache clear failed: %s", exc)
        logger.info("Cache manually purged (%d entries removed)", count)
        return count

    def purge_expired(self) -> int:
        """Drop expired entries from both tiers. Returns the count."""
        now = self._clock()
        removed = 0
        with self._lock:
            for bucket in self._memory.values():
                stale = [
                    k for k, e in bucket.items() if e.is_expired_at(now)
                ]
                for k in stale:
                    del bucket[k]
                removed += len(stale)
            if self._store is not None:
                try:
                    removed += self._store.purge_expired(now)
                except sqlite3.Error as exc:
                    logger.error("Durable cache purge failed: %s", exc)
        if removed:
            logger.debug("Evicted %d expired cache entries", removed)
        return removed

    def stats(self) -> dict[str, int]:
        """In-memory entry counts per sub-cache."""
        with self._lock:
            return {ns: len(b) for ns, b in self._memory.items()}

    # ── Tier helpers (caller holds the lock) ─────────────

    def _memory_put(self, key: str, entry: CacheEntry) -> None:
        self._memory.setdefault(namespace_of(key), {})[key] = entry

    def _enforce_limit(self, namespace: str) -> None:
        bucket = self._memory.get(namespace, {})
        if len(bucket) <= self._max_entries:
            return
        now = self._clock()
        for k in [k for k, e in bucket.items() if e.is_expired_at(now)]:
            del bucket[k]
        overflow = len(bucket) - self._max_entries
        if overflow <= 0:
            return
        oldest = sorted(bucket.items(), key=lambda kv: kv[1].timestamp)
        for k, _ in oldest[:overflow]:
            del bucket[k]
        logger.debug(
            "Evicted %d oldest '%s' cache entries", overflow, namespace,
        )

    def _durable_get(self, key: str, now: float) -> CacheEntry | None:
        assert self._store is not None
        try:
            row = self._store.fetch(key)
            if row is None:
                return None
            payload, created_at, ttl = row
            if now - created_at > ttl:
                self._store.delete(key)
                return None
            value = decode_value(json.loads(payload))
        except (sqlite3.Error, ValueError, TypeError) as exc:
            logger.error(
                "Durable cache read failed for '%s': %s", key, exc,
            )
            return None
        return CacheEntry(value=value, timestamp=created_at, ttl=ttl)

    def _durable_put(self, key: str, entry: CacheEntry) -> None:
        assert self._store is not None
        namespace = namespace_of(key)
        try:
            payload = json.dumps(encode_value(entry.value))
            self._store.upsert(
                key, namespace, payload, entry.timestamp, entry.ttl,
            )
            self._store.evict_oldest(namespace, self._max_entries)
        except (sqlite3.Error, TypeError, ValueError) as exc:
            logger.error(
                "Durable cache write failed for '%s': %s", key, exc,
            )


def _copy(value: Any) -> Any:
    """Shallow-copy mutable containers so callers cannot corrupt entries."""
    if isinstance(value, list):
        return list(value)
    if isinstance(value, dict):
        return dict(value)
    return value
