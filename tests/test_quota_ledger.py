# tests/test_quota_ledger.py

"""Tests for the per-service quota ledger."""

import sqlite3
import tempfile
import threading
import unittest
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock

from shop_aggregator.storage.quota_ledger import (
    BurstStatus,
    QuotaLedger,
    QuotaPolicy,
    UsageStatistics,
    next_reset_date,
    period_of,
)
from shop_aggregator.storage.quota_store import QuotaState, SqliteQuotaStore


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime) -> None:
        self.now = start.timestamp()

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _open_policy(**overrides: float) -> QuotaPolicy:
    """Policy that only enforces what the test overrides."""
    values: dict[str, float] = {
        "monthly_limit": 5000,
        "min_interval": 0.0,
        "burst_limit": 1000,
        "burst_window": 300.0,
    }
    values.update(overrides)
    return QuotaPolicy(
        monthly_limit=int(values["monthly_limit"]),
        min_interval=values["min_interval"],
        burst_limit=int(values["burst_limit"]),
        burst_window=values["burst_window"],
    )


class TestQuotaAdmission(unittest.TestCase):
    """Monthly, interval and burst limits."""

    def setUp(self) -> None:
        self.clock = FakeClock(datetime(2026, 3, 15, 12, 0, 0))

    def _ledger(self, policy: QuotaPolicy) -> QuotaLedger:
        return QuotaLedger(default_policy=policy, clock=self.clock)

    def test_fresh_service_is_admitted(self) -> None:
        ledger = self._ledger(_open_policy())
        self.assertTrue(ledger.can_make_request("ebay"))
        self.assertIsNone(ledger.denial_reason("ebay"))

    def test_monthly_counter_is_monotonic(self) -> None:
        """N admitted requests → used == N, denied at the limit."""
        ledger = self._ledger(_open_policy(monthly_limit=3))
        for expected in range(1, 4):
            self.assertTrue(ledger.acquire("ebay"))
            ledger.record_request("ebay")
            self.clock.advance(1)
            stats = ledger.get_usage_statistics("ebay")
            self.assertEqual(stats.monthly_used, expected)
        self.assertFalse(ledger.can_make_request("ebay"))
        self.assertEqual(ledger.denial_reason("ebay"), "monthly_limit")
        self.assertEqual(ledger.get_remaining_quota("ebay"), 0)

    def test_burst_protection_denies_sixth(self) -> None:
        """6 requests in 5 minutes with a burst limit of 5."""
        ledger = self._ledger(
            _open_policy(burst_limit=5, burst_window=300.0)
        )
        for _ in range(5):
            self.assertTrue(ledger.can_make_request("walmart"))
            ledger.record_request("walmart")
            self.clock.advance(10)
        self.assertFalse(ledger.can_make_request("walmart"))
        self.assertEqual(ledger.denial_reason("walmart"), "burst_limit")
        self.assertGreater(
            ledger.get_usage_statistics("walmart").remaining, 4000
        )

    def test_burst_window_slides(self) -> None:
        ledger = self._ledger(
            _open_policy(burst_limit=2, burst_window=300.0)
        )
        ledger.record_request("walmart")
        ledger.record_request("walmart")
        self.assertFalse(ledger.can_make_request("walmart"))
        self.clock.advance(301)
        self.assertTrue(ledger.can_make_request("walmart"))

    def test_min_interval(self) -> None:
        ledger = self._ledger(_open_policy(min_interval=2.0))
        ledger.record_request("google_shopping")
        self.clock.advance(0.5)
        self.assertEqual(
            ledger.denial_reason("google_shopping"), "min_interval"
        )
        self.assertAlmostEqual(
            ledger.get_retry_delay("google_shopping"), 1.5
        )
        self.clock.advance(1.6)
        self.assertTrue(ledger.can_make_request("google_shopping"))
        self.assertEqual(ledger.get_retry_delay("google_shopping"), 0.0)

    def test_retry_delay_zero_for_unused_service(self) -> None:
        ledger = self._ledger(_open_policy(min_interval=2.0))
        self.assertEqual(ledger.get_retry_delay("ebay"), 0.0)

    def test_services_are_independent(self) -> None:
        ledger = self._ledger(_open_policy(monthly_limit=1))
        ledger.record_request("ebay")
        self.assertFalse(ledger.can_make_request("ebay"))
        self.assertTrue(ledger.can_make_request("walmart"))

    def test_configure_per_service_policy(self) -> None:
        ledger = self._ledger(_open_policy())
        ledger.configure("walmart", _open_policy(monthly_limit=1))
        ledger.record_request("walmart")
        ledger.record_request("ebay")
        self.assertFalse(ledger.can_make_request("walmart"))
        self.assertTrue(ledger.can_make_request("ebay"))
        self.assertEqual(ledger.policy_for("walmart").monthly_limit, 1)


class TestQuotaReservations(unittest.TestCase):
    """acquire() / release() bookkeeping."""

    def setUp(self) -> None:
        self.clock = FakeClock(datetime(2026, 3, 15, 12, 0, 0))
        self.ledger = QuotaLedger(
            default_policy=_open_policy(monthly_limit=1),
            clock=self.clock,
        )

    def test_reservation_counts_against_limit(self) -> None:
        self.assertTrue(self.ledger.acquire("ebay"))
        self.assertFalse(self.ledger.acquire("ebay"))

    def test_release_returns_slot(self) -> None:
        self.assertTrue(self.ledger.acquire("ebay"))
        self.ledger.release("ebay")
        self.assertTrue(self.ledger.acquire("ebay"))
        self.assertEqual(
            self.ledger.get_usage_statistics("ebay").monthly_used, 0
        )

    def test_record_consumes_reservation(self) -> None:
        self.assertTrue(self.ledger.acquire("ebay"))
        self.ledger.record_request("ebay")
        self.ledger.release("ebay")  # nothing left to release
        self.assertEqual(
            self.ledger.get_usage_statistics("ebay").monthly_used, 1
        )
        self.assertFalse(self.ledger.acquire("ebay"))

    def test_acquire_sets_min_interval(self) -> None:
        ledger = QuotaLedger(
            default_policy=_open_policy(min_interval=2.0),
            clock=self.clock,
        )
        self.assertTrue(ledger.acquire("ebay"))
        ledger.release("ebay")
        self.assertEqual(ledger.denial_reason("ebay"), "min_interval")

    def test_concurrent_acquire_never_overshoots(self) -> None:
        """20 threads race for 5 slots."""
        ledger = QuotaLedger(
            default_policy=_open_policy(monthly_limit=5),
            clock=self.clock,
        )
        admitted: list[bool] = []
        lock = threading.Lock()
        barrier = threading.Barrier(20)

        def worker() -> None:
            barrier.wait()
            ok = ledger.acquire("ebay")
            if ok:
                ledger.record_request("ebay")
            with lock:
                admitted.append(ok)

        threads = [threading.Thread(target=worker) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(sum(admitted), 5)
        self.assertEqual(
            ledger.get_usage_statistics("ebay").monthly_used, 5
        )


class TestQuotaReporting(unittest.TestCase):
    """Usage statistics, burst status, period rollover."""

    def setUp(self) -> None:
        self.clock = FakeClock(datetime(2026, 3, 15, 12, 0, 0))
        self.ledger = QuotaLedger(
            default_policy=_open_policy(monthly_limit=10, burst_limit=5),
            clock=self.clock,
        )

    def test_usage_statistics_windows(self) -> None:
        self.ledger.record_request("ebay")
        self.clock.advance(3 * 86400)
        self.ledger.record_request("ebay")
        self.ledger.record_request("ebay")
        stats = self.ledger.get_usage_statistics("ebay")
        self.assertIsInstance(stats, UsageStatistics)
        self.assertEqual(stats.monthly_used, 3)
        self.assertEqual(stats.remaining, 7)
        self.assertEqual(stats.last_24h, 2)
        self.assertEqual(stats.last_7d, 3)
        self.assertAlmostEqual(stats.avg_per_day, 3 / 7)
        self.assertEqual(stats.reset_date, datetime(2026, 4, 1))
        self.assertAlmostEqual(stats.utilization_percentage, 30.0)
        self.assertFalse(stats.is_near_limit)

    def test_near_limit_above_eighty_percent(self) -> None:
        for _ in range(9):
            self.ledger.record_request("ebay")
        self.assertTrue(self.ledger.get_usage_statistics("ebay").is_near_limit)

    def test_burst_status(self) -> None:
        for _ in range(4):
            self.ledger.record_request("ebay")
        status = self.ledger.get_burst_status("ebay")
        self.assertEqual(status, BurstStatus(4, 5))
        self.assertTrue(status.is_near_burst)
        self.assertFalse(status.is_burst_protected)

    def test_month_rollover_resets_once(self) -> None:
        for _ in range(3):
            self.ledger.record_request("ebay")
        self.clock.now = datetime(2026, 4, 1, 0, 0, 5).timestamp()
        stats = self.ledger.get_usage_statistics("ebay")
        self.assertEqual(stats.monthly_used, 0)
        self.assertEqual(stats.reset_date, datetime(2026, 5, 1))
        self.ledger.record_request("ebay")
        self.assertEqual(
            self.ledger.get_usage_statistics("ebay").monthly_used, 1
        )

    def test_force_reset(self) -> None:
        for _ in range(5):
            self.ledger.record_request("ebay")
        self.ledger.force_reset("ebay")
        stats = self.ledger.get_usage_statistics("ebay")
        self.assertEqual(stats.monthly_used, 0)
        self.assertEqual(stats.last_24h, 0)
        self.assertTrue(self.ledger.can_make_request("ebay"))

    def test_history_trimmed_past_retention(self) -> None:
        ledger = QuotaLedger(
            default_policy=_open_policy(),
            retention_days=1,
            clock=self.clock,
        )
        ledger.record_request("ebay")
        self.clock.advance(2 * 86400)
        ledger.record_request("ebay")
        stats = ledger.get_usage_statistics("ebay")
        self.assertEqual(stats.last_7d, 1)
        self.assertEqual(stats.monthly_used, 2)

    def test_service_quota_handle(self) -> None:
        handle = self.ledger.for_service("walmart")
        self.assertTrue(handle.acquire())
        handle.record_request()
        self.assertEqual(handle.get_usage_statistics().monthly_used, 1)
        self.assertTrue(handle.can_make_request())
        self.assertIsNone(handle.denial_reason())
        self.assertIn("walmart", self.ledger.known_services())


class TestPeriodHelpers(unittest.TestCase):

    def test_period_of(self) -> None:
        ts = datetime(2026, 7, 4, 9, 30).timestamp()
        self.assertEqual(period_of(ts), "2026-07")

    def test_next_reset_date_wraps_year(self) -> None:
        self.assertEqual(next_reset_date("2026-12"), datetime(2027, 1, 1))
        self.assertEqual(next_reset_date("2026-02"), datetime(2026, 3, 1))


class TestQuotaPersistence(unittest.TestCase):
    """Counters survive a new ledger over the same SQLite file."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.db_path = Path(self._tmp.name) / "state.db"
        self.clock = FakeClock(datetime(2026, 3, 15, 12, 0, 0))

    def _ledger(self) -> tuple[QuotaLedger, SqliteQuotaStore]:
        store = SqliteQuotaStore(self.db_path)
        self.addCleanup(store.close)
        ledger = QuotaLedger(
            store=store,
            default_policy=_open_policy(monthly_limit=10),
            clock=self.clock,
        )
        return ledger, store

    def test_state_survives_restart(self) -> None:
        first, _ = self._ledger()
        first.record_request("ebay")
        first.record_request("ebay")

        second, _ = self._ledger()
        stats = second.get_usage_statistics("ebay")
        self.assertEqual(stats.monthly_used, 2)
        self.assertEqual(stats.last_24h, 2)
        self.assertIn("ebay", second.known_services())

    def test_stale_period_resets_after_restart(self) -> None:
        first, _ = self._ledger()
        first.record_request("ebay")
        self.clock.now = datetime(2026, 4, 2).timestamp()

        second, store = self._ledger()
        self.assertEqual(
            second.get_usage_statistics("ebay").monthly_used, 0
        )
        state = store.load("ebay")
        assert state is not None
        self.assertEqual(state.period, "2026-04")

    def test_store_round_trip(self) -> None:
        _, store = self._ledger()
        store.save(
            QuotaState(
                service_id="walmart",
                period="2026-03",
                request_count=7,
                last_request_at=123.5,
                history=[100.0, 123.5],
            )
        )
        state = store.load("walmart")
        assert state is not None
        self.assertEqual(state.request_count, 7)
        self.assertEqual(state.history, [100.0, 123.5])
        self.assertIsNone(store.load("missing"))
        self.assertEqual(store.service_ids(), ["walmart"])

    def test_persistence_failure_is_not_fatal(self) -> None:
        """A failing store never blocks recording or admission."""
        store = MagicMock(spec=SqliteQuotaStore)
        store.load.return_value = None
        store.save.side_effect = sqlite3.OperationalError("disk full")
        ledger = QuotaLedger(
            store=store,
            default_policy=_open_policy(),
            clock=self.clock,
        )
        self.assertTrue(ledger.acquire("ebay"))
        ledger.record_request("ebay")
        self.assertEqual(
            ledger.get_usage_statistics("ebay").monthly_used, 1
        )
        store.save.assert_called()


if __name__ == "__main__":
    unittest.main()
