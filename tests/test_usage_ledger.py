"""
Tests for daily usage accounting.
"""
import json
import logging
from datetime import date

import pytest

from conftest import FailingStore
from quota_guard.config.loader import QuotaConfig
from quota_guard.core.identity import DEVICE_IDENTITY, TrackingIdentity, TrackingMode
from quota_guard.core.usage_ledger import UsageLedger
from quota_guard.storage.models import UsageSnapshot
from quota_guard.storage.repository import InMemorySnapshotStore

ONE_DAY = 24 * 3600


def user(key: str) -> TrackingIdentity:
    return TrackingIdentity(mode=TrackingMode.USER, key=key)


class TestRecordUsage:
    """Test recording and reading usage."""

    def test_fresh_ledger_reports_zero(self, store, clock):
        ledger = UsageLedger(store, clock=clock)
        stats = ledger.get_usage_stats()

        assert stats.chars_used == 0
        assert stats.chars_remaining == 45000
        assert stats.request_count == 0
        assert stats.day == date(2024, 1, 15)
        # Reads never persist a fresh snapshot
        assert store.keys() == []

    def test_two_recordings_scenario(self, store, clock):
        ledger = UsageLedger(store, clock=clock)
        ledger.record_usage(20000)
        ledger.record_usage(20000)

        stats = ledger.get_usage_stats()
        assert stats.chars_used == 40000
        assert stats.chars_remaining == 5000
        assert stats.request_count == 2
        assert stats.percent_used == pytest.approx(88.89, abs=0.01)
        assert stats.is_near_limit is True
        assert stats.is_critical is False

    def test_record_persists_snapshot(self, store, clock):
        ledger = UsageLedger(store, clock=clock)
        ledger.record_usage(120)

        raw = store.get("translation_usage")
        snapshot = UsageSnapshot.from_json(raw)
        assert snapshot.day == date(2024, 1, 15)
        assert snapshot.chars_used == 120
        assert snapshot.request_count == 1
        assert snapshot.last_updated == clock.time()

    def test_negative_char_count_rejected(self, store, clock):
        ledger = UsageLedger(store, clock=clock)
        with pytest.raises(ValueError):
            ledger.record_usage(-1)
        with pytest.raises(ValueError):
            ledger.can_use_chars(-5)

    def test_can_use_chars_boundary(self, store, clock):
        ledger = UsageLedger(store, clock=clock)
        ledger.record_usage(44000)
        assert ledger.can_use_chars(1000) is True
        assert ledger.can_use_chars(1001) is False
        # Pure read
        assert ledger.get_usage_stats().request_count == 1

    def test_percent_used_capped_at_100(self, store, clock):
        ledger = UsageLedger(store, clock=clock)
        ledger.record_usage(50000)
        stats = ledger.get_usage_stats()
        assert stats.percent_used == 100.0
        assert stats.chars_remaining == 0
        assert stats.is_critical is True


class TestThresholds:
    """Test near-limit and critical flags at the boundaries."""

    @pytest.mark.parametrize("used,near,critical", [
        (35999, False, False),
        (36000, True, False),
        (42749, True, False),
        (42750, True, True),
    ])
    def test_flags(self, store, clock, used, near, critical):
        ledger = UsageLedger(store, clock=clock)
        ledger.record_usage(used)
        stats = ledger.get_usage_stats()
        assert stats.is_near_limit is near
        assert stats.is_critical is critical

    def test_custom_limit(self, store, clock):
        ledger = UsageLedger(store, clock=clock, config=QuotaConfig(daily_limit=1000))
        ledger.record_usage(800)
        stats = ledger.get_usage_stats()
        assert stats.daily_limit == 1000
        assert stats.is_near_limit is True


class TestDayRollover:
    """Test that usage resets at UTC midnight."""

    def test_yesterdays_usage_is_ignored(self, store, clock):
        ledger = UsageLedger(store, clock=clock)
        ledger.record_usage(44999)

        clock.advance(ONE_DAY)
        stats = ledger.get_usage_stats()

        assert stats.chars_used == 0
        assert stats.request_count == 0
        assert stats.day == date(2024, 1, 16)
        assert ledger.can_use_chars(45000) is True

    def test_stale_snapshot_not_mutated_on_read(self, store, clock):
        ledger = UsageLedger(store, clock=clock)
        ledger.record_usage(500)
        before = store.get("translation_usage")

        clock.advance(ONE_DAY)
        ledger.get_usage_stats()

        assert store.get("translation_usage") == before

    def test_new_day_write_starts_from_scratch(self, store, clock):
        ledger = UsageLedger(store, clock=clock)
        ledger.record_usage(30000)

        clock.advance(ONE_DAY)
        ledger.record_usage(10)

        snapshot = UsageSnapshot.from_json(store.get("translation_usage"))
        assert snapshot.day == date(2024, 1, 16)
        assert snapshot.chars_used == 10
        assert snapshot.request_count == 1

    def test_rollover_uses_utc_midnight(self, store, clock):
        ledger = UsageLedger(store, clock=clock)
        ledger.record_usage(100)

        # 12:00 UTC + 11h59m stays on the same day
        clock.advance(11 * 3600 + 59 * 60)
        assert ledger.get_usage_stats().chars_used == 100

        clock.advance(60)
        assert ledger.get_usage_stats().chars_used == 0


class TestIdentity:
    """Test identity-scoped keys."""

    def test_identities_are_isolated(self, store, clock):
        ledger_a = UsageLedger(store, identity=user("a"), clock=clock)
        ledger_b = UsageLedger(store, identity=user("b"), clock=clock)

        ledger_a.record_usage(1000)

        assert ledger_a.get_usage_stats().chars_used == 1000
        assert ledger_b.get_usage_stats().chars_used == 0

    def test_set_identity_switches_without_migration(self, store, clock):
        ledger = UsageLedger(store, clock=clock)
        ledger.record_usage(700)

        ledger.set_identity(user("abc"))
        assert ledger.storage_key == "translation_usage_abc"
        assert ledger.get_usage_stats().chars_used == 0
        ledger.record_usage(5)

        ledger.set_identity(DEVICE_IDENTITY)
        assert ledger.get_usage_stats().chars_used == 700

    def test_snapshot_records_identity(self, store, clock):
        ledger = UsageLedger(store, identity=user("abc"), clock=clock)
        ledger.record_usage(1)
        stats = ledger.get_usage_stats()
        assert stats.identity == "abc"
        assert stats.tracking_mode is TrackingMode.USER

    def test_tracking_info(self, store, clock):
        ledger = UsageLedger(store, identity=TrackingIdentity(TrackingMode.USER, "k", degraded=True), clock=clock)
        info = ledger.tracking_info()
        assert info.mode is TrackingMode.USER
        assert info.identity == "k"
        assert info.degraded is True
        assert "Per-user" in info.description


class TestStoreFailures:
    """Storage problems are logged, never raised."""

    def test_read_failure_falls_back_to_zero(self, clock, caplog):
        ledger = UsageLedger(FailingStore(fail_get=True, fail_set=False), clock=clock)
        with caplog.at_level(logging.ERROR):
            stats = ledger.get_usage_stats()
        assert stats.chars_used == 0
        assert "Failed to load usage data" in caplog.text

    def test_write_failure_is_swallowed(self, clock, caplog):
        ledger = UsageLedger(FailingStore(fail_get=False, fail_set=True), clock=clock)
        with caplog.at_level(logging.ERROR):
            ledger.record_usage(100)
        assert "Failed to save usage data" in caplog.text
        assert ledger.get_usage_stats().chars_used == 0

    def test_refused_write_is_logged(self, clock, caplog):
        ledger = UsageLedger(FailingStore(fail_get=False, fail_set=False, refuse_set=True), clock=clock)
        with caplog.at_level(logging.ERROR):
            ledger.record_usage(100)
        assert "refused" in caplog.text

    def test_unexpected_store_exception_is_swallowed(self, clock, caplog):
        class DiskFailureStore:
            def get(self, key):
                raise OSError("disk unavailable")

            def set(self, key, value):
                raise OSError("disk unavailable")

        ledger = UsageLedger(DiskFailureStore(), clock=clock)
        with caplog.at_level(logging.ERROR):
            ledger.record_usage(10)
            stats = ledger.get_usage_stats()

        assert stats.chars_used == 0
        assert ledger.can_use_chars(45000) is True
        assert "Failed to save usage data" in caplog.text
        assert "Failed to load usage data" in caplog.text

    @pytest.mark.parametrize("raw", [
        "not json",
        "[]",
        json.dumps({"day": "2024-01-15"}),
        json.dumps({"day": "yesterday", "chars_used": 1, "request_count": 1, "last_updated": 0}),
        json.dumps({"day": "2024-01-15", "chars_used": -4, "request_count": 1, "last_updated": 0}),
        json.dumps({"day": "2024-01-15", "chars_used": "12", "request_count": 1, "last_updated": 0}),
    ])
    def test_malformed_snapshot_treated_as_absent(self, clock, raw):
        store = InMemorySnapshotStore({"translation_usage": raw})
        ledger = UsageLedger(store, clock=clock)

        assert ledger.get_usage_stats().chars_used == 0
        ledger.record_usage(10)
        assert ledger.get_usage_stats().chars_used == 10


class TestReset:
    def test_reset_writes_zero_snapshot(self, store, clock):
        ledger = UsageLedger(store, clock=clock)
        ledger.record_usage(9000)
        ledger.reset()

        snapshot = UsageSnapshot.from_json(store.get("translation_usage"))
        assert snapshot.chars_used == 0
        assert snapshot.request_count == 0
        assert snapshot.day == date(2024, 1, 15)
