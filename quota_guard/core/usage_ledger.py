"""
Daily character usage accounting.

Tracks characters sent to the translation service per UTC day under the
active tracking identity. Accounting is best effort: storage problems are
logged and never block the caller.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from .clock import Clock, SystemClock, utc_date
from .identity import DEVICE_IDENTITY, TrackingIdentity, TrackingMode
from quota_guard.config.loader import DEFAULT_CONFIG, QuotaConfig
from quota_guard.storage.models import UsageSnapshot
from quota_guard.storage.repository import SnapshotStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageStats:
    """Today's usage under one tracking identity."""
    chars_used: int
    chars_remaining: int
    percent_used: float
    request_count: int
    daily_limit: int
    is_near_limit: bool
    is_critical: bool
    day: date
    tracking_mode: TrackingMode
    identity: Optional[str] = None


@dataclass(frozen=True)
class TrackingInfo:
    """Which identity usage is being tracked under."""
    mode: TrackingMode
    identity: str
    description: str
    degraded: bool


def percent_of(chars: int, limit: int) -> float:
    """Percentage of limit, computed so round thresholds stay exact."""
    return chars * 100 / limit


class UsageLedger:
    """Persisted per-day character usage for the active tracking identity.

    The store is the source of truth; each operation re-reads it. Any
    exception raised by the store is logged and treated as a missing read
    or a dropped write. Only one
    writer per tracking key is supported: concurrent writers race and the
    last write wins.
    """

    def __init__(
        self,
        store: SnapshotStore,
        identity: TrackingIdentity = DEVICE_IDENTITY,
        clock: Optional[Clock] = None,
        config: QuotaConfig = DEFAULT_CONFIG,
    ):
        self.store = store
        self.config = config
        self._clock = clock or SystemClock()
        self._identity = identity

    @property
    def identity(self) -> TrackingIdentity:
        return self._identity

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def daily_limit(self) -> int:
        return self.config.daily_limit

    def set_identity(self, identity: TrackingIdentity) -> None:
        """Switch the active identity. Usage is not carried over."""
        if identity != self._identity:
            logger.debug("Switching usage tracking from %s to %s", self._identity.mode.value, identity.mode.value)
        self._identity = identity

    @property
    def storage_key(self) -> str:
        prefix = self.config.storage_key_prefix
        if self._identity.mode is TrackingMode.DEVICE:
            return prefix
        return f"{prefix}_{self._identity.key}"

    def _load(self, today: date, now: float) -> UsageSnapshot:
        """Today's snapshot, or a fresh zero one if none is usable."""
        key = self.storage_key
        try:
            raw = self.store.get(key)
        except Exception:
            logger.exception("Failed to load usage data for %s", key)
            raw = None

        if raw is not None:
            try:
                snapshot = UsageSnapshot.from_json(raw)
            except ValueError as e:
                logger.warning("Discarding malformed usage data for %s: %s", key, e)
            else:
                if snapshot.day == today:
                    return snapshot

        return UsageSnapshot.fresh(today, now, self._identity.key)

    def _save(self, snapshot: UsageSnapshot) -> None:
        key = self.storage_key
        try:
            if not self.store.set(key, snapshot.to_json()):
                logger.error("Store refused usage data write for %s", key)
        except Exception:
            logger.exception("Failed to save usage data for %s", key)

    def _snapshot(self) -> UsageSnapshot:
        now = self._clock.time()
        return self._load(utc_date(now), now)

    def record_usage(self, char_count: int) -> None:
        """Add char_count characters and one request to today's usage.

        Raises:
            ValueError: If char_count is negative
        """
        if char_count < 0:
            raise ValueError("char_count must be >= 0")
        now = self._clock.time()
        snapshot = self._load(utc_date(now), now)
        self._save(snapshot.with_usage(char_count, now))

    def can_use_chars(self, char_count: int) -> bool:
        """Check if char_count more characters fit in today's quota."""
        if char_count < 0:
            raise ValueError("char_count must be >= 0")
        return self.chars_used() + char_count <= self.config.daily_limit

    def chars_used(self) -> int:
        return self._snapshot().chars_used

    def get_usage_stats(self) -> UsageStats:
        snapshot = self._snapshot()
        limit = self.config.daily_limit
        percent_used = percent_of(snapshot.chars_used, limit)

        return UsageStats(
            chars_used=snapshot.chars_used,
            chars_remaining=max(0, limit - snapshot.chars_used),
            percent_used=min(100.0, percent_used),
            request_count=snapshot.request_count,
            daily_limit=limit,
            is_near_limit=percent_used >= self.config.warning_percent,
            is_critical=percent_used >= self.config.critical_percent,
            day=snapshot.day,
            tracking_mode=self._identity.mode,
            identity=snapshot.identity,
        )

    def tracking_info(self) -> TrackingInfo:
        return TrackingInfo(
            mode=self._identity.mode,
            identity=self._identity.key,
            description=self._identity.description,
            degraded=self._identity.degraded,
        )

    def reset(self) -> None:
        """Overwrite today's usage with zero. For tests and admin use."""
        now = self._clock.time()
        self._save(UsageSnapshot.fresh(utc_date(now), now, self._identity.key))
