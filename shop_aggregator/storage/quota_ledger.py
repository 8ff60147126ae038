# shop_aggregator/storage/quota_ledger.py

"""Per-service quota ledger: monthly, minimum-interval and burst limits.

Every service gets its own lock; all reads and mutations of that
service's counters happen under it, so two concurrent searches can
never both squeeze through the last slot of a quota.  ``acquire()``
reserves an in-flight slot at admission time and ``record_request()``
turns the reservation into a counted request once the upstream call
succeeds.  ``release()`` hands back an unused reservation.

Denial is an ordinary return value, not an exception.  Persistence is
best-effort: a failed write is logged and the in-memory counters stay
authoritative for the life of the process.
"""

import logging
import sqlite3
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from shop_aggregator.config.settings import Settings
from shop_aggregator.storage.quota_store import QuotaState, SqliteQuotaStore

logger = logging.getLogger("shop_aggregator.quota")

_DAY = 86400.0


@dataclass(frozen=True)
class QuotaPolicy:
    """Limits applied to one upstream service."""

    monthly_limit: int = Settings.MONTHLY_LIMIT
    min_interval: float = Settings.MIN_REQUEST_INTERVAL
    burst_limit: int = Settings.BURST_LIMIT
    burst_window: float = Settings.BURST_WINDOW


@dataclass(frozen=True)
class UsageStatistics:
    """Read-only view of one service's quota consumption."""

    monthly_used: int
    monthly_limit: int
    remaining: int
    last_24h: int
    last_7d: int
    reset_date: datetime
    avg_per_day: float

    @property
    def utilization_percentage(self) -> float:
        if self.monthly_limit <= 0:
            return 100.0
        return self.monthly_used / self.monthly_limit * 100

    @property
    def is_near_limit(self) -> bool:
        return self.utilization_percentage > 80


@dataclass(frozen=True)
class BurstStatus:
    """Requests inside the trailing burst window."""

    requests_in_window: int
    window_limit: int

    @property
    def is_near_burst(self) -> bool:
        return self.requests_in_window >= self.window_limit - 1

    @property
    def is_burst_protected(self) -> bool:
        return self.requests_in_window >= self.window_limit


class _ServiceSlot:
    """In-memory state plus the lock that serialises it."""

    def __init__(self, state: QuotaState, policy: QuotaPolicy) -> None:
        self.state = state
        self.policy = policy
        self.lock = threading.Lock()
        self.in_flight = 0
        self.last_admitted_at: float | None = None


def period_of(timestamp: float) -> str:
    """Calendar month ("YYYY-MM") containing ``timestamp``."""
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m")


def next_reset_date(period: str) -> datetime:
    """First instant of the month following ``period``."""
    year, month = (int(p) for p in period.split("-"))
    if month == 12:
        return datetime(year + 1, 1, 1)
    return datetime(year, month + 1, 1)


class QuotaLedger:
    """Tracks and enforces request quotas for every upstream service."""

    def __init__(
        self,
        store: SqliteQuotaStore | None = None,
        default_policy: QuotaPolicy | None = None,
        retention_days: int = Settings.QUOTA_HISTORY_RETENTION_DAYS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._default_policy = default_policy or QuotaPolicy()
        self._retention = retention_days * _DAY
        self._clock = clock
        self._policies: dict[str, QuotaPolicy] = {}
        self._slots: dict[str, _ServiceSlot] = {}
        self._slots_lock = threading.Lock()

    # ── Configuration ────────────────────────────────────

    def configure(self, service_id: str, policy: QuotaPolicy) -> None:
        """Set the limits for one service (applies immediately)."""
        with self._slots_lock:
            self._policies[service_id] = policy
            slot = self._slots.get(service_id)
            if slot is not None:
                slot.policy = policy

    def policy_for(self, service_id: str) -> QuotaPolicy:
        return self._policies.get(service_id, self._default_policy)

    def for_service(self, service_id: str) -> "ServiceQuota":
        """Handle bound to one service's ledger entry."""
        return ServiceQuota(self, service_id)

    # ── Admission ────────────────────────────────────────

    def can_make_request(self, service_id: str) -> bool:
        """True when a request to ``service_id`` would be admitted now."""
        return self.denial_reason(service_id) is None

    def denial_reason(self, service_id: str) -> str | None:
        """Which limit currently blocks ``service_id`` (``None`` if none)."""
        slot = self._slot(service_id)
        with slot.lock:
            now = self._clock()
            self._roll_period(slot, now)
            return self._evaluate(slot, now)

    def acquire(self, service_id: str) -> bool:
        """Atomically check admission and reserve an in-flight slot."""
        slot = self._slot(service_id)
        with slot.lock:
            now = self._clock()
            self._roll_period(slot, now)
            reason = self._evaluate(slot, now)
            if reason is not None:
                logger.info(
                    "Quota denied for %s: %s (%d/%d this month)",
                    service_id,
                    reason,
                    slot.state.request_count,
                    slot.policy.monthly_limit,
                )
                return False
            slot.in_flight += 1
            slot.last_admitted_at = now
            return True

    def release(self, service_id: str) -> None:
        """Return a reservation whose upstream call did not succeed."""
        slot = self._slot(service_id)
        with slot.lock:
            if slot.in_flight > 0:
                slot.in_flight -= 1

    def record_request(self, service_id: str) -> None:
        """Count one completed upstream request and persist."""
        slot = self._slot(service_id)
        with slot.lock:
            now = self._clock()
            self._roll_period(slot, now)
            state = slot.state
            state.request_count += 1
            state.last_request_at = now
            state.history.append(now)
            if slot.in_flight > 0:
                slot.in_flight -= 1
            self._trim_history(state, now)
            self._persist(state)
            used, limit = state.request_count, slot.policy.monthly_limit
        logger.info(
            "%s request %d/%d (%d remaining)",
            service_id,
            used,
            limit,
            max(0, limit - used),
        )

    # ── Reporting ────────────────────────────────────────

    def get_usage_statistics(self, service_id: str) -> UsageStatistics:
        """Derived usage counters for diagnostics and cache decisions."""
        slot = self._slot(service_id)
        with slot.lock:
            now = self._clock()
            self._roll_period(slot, now)
            self._trim_history(slot.state, now)
            state = slot.state
            limit = slot.policy.monthly_limit
            last_24h = sum(1 for t in state.history if now - t <= _DAY)
            last_7d = sum(
                1 for t in state.history if now - t <= 7 * _DAY
            )
            return UsageStatistics(
                monthly_used=state.request_count,
                monthly_limit=limit,
                remaining=max(0, limit - state.request_count),
                last_24h=last_24h,
                last_7d=last_7d,
                reset_date=next_reset_date(state.period),
                avg_per_day=last_7d / 7.0,
            )

    def get_remaining_quota(self, service_id: str) -> int:
        return self.get_usage_statistics(service_id).remaining

    def get_burst_status(self, service_id: str) -> BurstStatus:
        slot = self._slot(service_id)
        with slot.lock:
            now = self._clock()
            return BurstStatus(
                requests_in_window=self._in_burst_window(slot, now),
                window_limit=slot.policy.burst_limit,
            )

    def get_retry_delay(self, service_id: str) -> float:
        """Seconds until the minimum interval has elapsed."""
        slot = self._slot(service_id)
        with slot.lock:
            last = self._last_activity(slot)
            if last is None:
                return 0.0
            wait = slot.policy.min_interval - (self._clock() - last)
            return max(0.0, wait)

    def force_reset(self, service_id: str) -> None:
        """Zero every counter for a service (administrative)."""
        slot = self._slot(service_id)
        with slot.lock:
            now = self._clock()
            slot.state = QuotaState(
                service_id=service_id, period=period_of(now),
            )
            slot.in_flight = 0
            slot.last_admitted_at = None
            self._persist(slot.state)
        logger.info("%s quota force-reset", service_id)

    def known_services(self) -> list[str]:
        """Services seen by this ledger or present in the store."""
        with self._slots_lock:
            ids = set(self._slots) | set(self._policies)
        if self._store is not None:
            try:
                ids.update(self._store.service_ids())
            except sqlite3.Error as exc:
                logger.error("Could not list quota state: %s", exc)
        return sorted(ids)

    # ── Internals ────────────────────────────────────────

    def _slot(self, service_id: str) -> _ServiceSlot:
        with self._slots_lock:
            slot = self._slots.get(service_id)
            if slot is None:
                slot = _ServiceSlot(
                    self._load(service_id), self.policy_for(service_id),
                )
                self._slots[service_id] = slot
            return slot

    def _load(self, service_id: str) -> QuotaState:
        if self._store is not None:
            try:
                state = self._store.load(service_id)
            except (sqlite3.Error, ValueError) as exc:
                logger.error(
                    "Could not load quota state for %s: %s",
                    service_id,
                    exc,
                )
                state = None
            if state is not None:
                logger.debug(
                    "Loaded %s quota state: %d used in %s",
                    service_id,
                    state.request_count,
                    state.period,
                )
                return state
        return QuotaState(
            service_id=service_id, period=period_of(self._clock()),
        )

    def _roll_period(self, slot: _ServiceSlot, now: float) -> None:
        current = period_of(now)
        if slot.state.period == current:
            return
        old_count, old_period = slot.state.request_count, slot.state.period
        slot.state.request_count = 0
        slot.state.period = current
        self._trim_history(slot.state, now)
        self._persist(slot.state)
        logger.info(
            "%s monthly quota reset (%s had %d requests)",
            slot.state.service_id,
            old_period,
            old_count,
        )

    def _evaluate(self, slot: _ServiceSlot, now: float) -> str | None:
        policy = slot.policy
        last = self._last_activity(slot)
        if last is not None and now - last < policy.min_interval:
            return "min_interval"
        committed = slot.state.request_count + slot.in_flight
        if committed >= policy.monthly_limit:
            return "monthly_limit"
        in_window = self._in_burst_window(slot, now) + slot.in_flight
        if in_window >= policy.burst_limit:
            return "burst_limit"
        return None

    @staticmethod
    def _last_activity(slot: _ServiceSlot) -> float | None:
        stamps = [
            t
            for t in (slot.state.last_request_at, slot.last_admitted_at)
            if t is not None
        ]
        return max(stamps) if stamps else None

    @staticmethod
    def _in_burst_window(slot: _ServiceSlot, now: float) -> int:
        window = slot.policy.burst_window
        return sum(1 for t in slot.state.history if now - t <= window)

    def _trim_history(self, state: QuotaState, now: float) -> None:
        before = len(state.history)
        state.history = [
            t for t in state.history if now - t <= self._retention
        ]
        dropped = before - len(state.history)
        if dropped:
            logger.debug(
                "%s: dropped %d old history entries",
                state.service_id,
                dropped,
            )

    def _persist(self, state: QuotaState) -> None:
        if self._store is None:
            return
        try:
            self._store.save(state)
        except sqlite3.Error as exc:
            logger.error(
                "Could not persist quota state for %s: %s",
                state.service_id,
                exc,
            )


class ServiceQuota:
    """One service's view of the shared ledger."""

    def __init__(self, ledger: QuotaLedger, service_id: str) -> None:
        self.ledger = ledger
        self.service_id = service_id

    def can_make_request(self) -> bool:
        return self.ledger.can_make_request(self.service_id)

    def denial_reason(self) -> str | None:
        return self.ledger.denial_reason(self.service_id)

    def acquire(self) -> bool:
        return self.ledger.acquire(self.service_id)

    def release(self) -> None:
        self.ledger.release(self.service_id)

    def record_request(self) -> None:
        self.ledger.record_request(self.service_id)

    def get_usage_statistics(self) -> UsageStatistics:
        return self.ledger.get_usage_statistics(self.service_id)

    def get_retry_delay(self) -> float:
        return self.ledger.get_retry_delay(self.service_id)
