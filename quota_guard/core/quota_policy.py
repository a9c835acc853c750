"""
Quota admission policy.

Turns ledger state into batch admission decisions and user-facing
classifications. Never writes to the ledger.

Decision Order:
1. Hard limit - reject the whole batch if it does not fit today's quota
2. Classification - admitted batches carry the level of the projected usage
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Sequence

from .clock import Clock, seconds_until_utc_midnight
from .usage_ledger import UsageLedger, percent_of


class QuotaLevel(Enum):
    """Usage classification in order of severity."""
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


class Admission(Enum):
    """Outcome of a batch admission check."""
    ADMIT = "admit"
    REJECT = "reject"


@dataclass(frozen=True)
class BatchDecision:
    """Structured result of validate_batch.

    A rejection is an expected outcome, not an error; callers render the
    message however they like.
    """
    admission: Admission
    total_chars: int
    item_count: int
    level: QuotaLevel
    projected_percent: float
    chars_remaining_after: int
    message: str

    @property
    def can_proceed(self) -> bool:
        return self.admission is Admission.ADMIT


@dataclass(frozen=True)
class UsageMessage:
    """Human readable summary of today's usage."""
    text: str
    level: QuotaLevel


@dataclass(frozen=True)
class ResetCountdown:
    """Time remaining until the daily quota resets at UTC midnight."""
    seconds: float
    hours: int
    minutes: int
    message: str


def calculate_char_count(texts: Iterable[str]) -> int:
    """Total characters billed for texts, ignoring surrounding whitespace."""
    return sum(len(text.strip()) for text in texts)


class QuotaPolicy:
    """Admission and classification rules on top of a UsageLedger."""

    def __init__(self, ledger: UsageLedger, clock: Optional[Clock] = None):
        self.ledger = ledger
        self.config = ledger.config
        self._clock = clock or ledger.clock

    def classify(self, percent_used: float) -> QuotaLevel:
        """Classify a usage percentage (0-100) against the fixed thresholds."""
        if percent_used >= self.config.critical_percent:
            return QuotaLevel.CRITICAL
        if percent_used >= self.config.warning_percent:
            return QuotaLevel.WARNING
        return QuotaLevel.NORMAL

    def validate_batch(self, character_counts: Sequence[int]) -> BatchDecision:
        """Decide whether a whole batch may be sent.

        The ledger is read once. A batch either fits entirely or is
        rejected entirely; nothing is recorded either way.

        Args:
            character_counts: Character count of each item in the batch

        Returns:
            BatchDecision with the admission and its classification

        Raises:
            ValueError: If any count is negative
        """
        counts = list(character_counts)
        if any(count < 0 for count in counts):
            raise ValueError("character counts must be >= 0")

        total = sum(counts)
        limit = self.config.daily_limit
        used = self.ledger.chars_used()
        remaining = max(0, limit - used)

        if used + total > limit:
            return BatchDecision(
                admission=Admission.REJECT,
                total_chars=total,
                item_count=len(counts),
                level=QuotaLevel.CRITICAL,
                projected_percent=percent_of(used + total, limit),
                chars_remaining_after=remaining,
                message=(
                    f"Cannot translate: this batch requires {total:,} chars but only "
                    f"{remaining:,} remaining today. Try again tomorrow or reduce the selection."
                ),
            )

        projected = percent_of(used + total, limit)
        level = self.classify(projected)
        remaining_after = limit - used - total

        if level is QuotaLevel.CRITICAL:
            message = (
                f"This translation will use {total:,} chars, leaving only "
                f"{remaining_after:,} remaining today."
            )
        elif level is QuotaLevel.WARNING:
            message = f"This translation will use {total:,} chars. {remaining_after:,} will remain today."
        else:
            message = f"Ready to translate {len(counts)} element(s) using ~{total:,} chars."

        return BatchDecision(
            admission=Admission.ADMIT,
            total_chars=total,
            item_count=len(counts),
            level=level,
            projected_percent=projected,
            chars_remaining_after=remaining_after,
            message=message,
        )

    def validate_texts(self, texts: Sequence[str]) -> BatchDecision:
        """validate_batch for raw texts, sized by calculate_char_count."""
        return self.validate_batch([calculate_char_count([text]) for text in texts])

    def usage_message(self) -> UsageMessage:
        stats = self.ledger.get_usage_stats()

        if stats.is_critical:
            return UsageMessage(
                text=(
                    f"Critical: {stats.percent_used:.0f}% of daily limit used "
                    f"({stats.chars_remaining:,} chars remaining)"
                ),
                level=QuotaLevel.CRITICAL,
            )

        if stats.is_near_limit:
            return UsageMessage(
                text=(
                    f"Warning: {stats.percent_used:.0f}% of daily limit used "
                    f"({stats.chars_remaining:,} chars remaining)"
                ),
                level=QuotaLevel.WARNING,
            )

        return UsageMessage(
            text=(
                f"Daily usage: {stats.chars_used:,}/{stats.daily_limit:,} chars "
                f"({stats.chars_remaining:,} remaining)"
            ),
            level=QuotaLevel.NORMAL,
        )

    def time_until_reset(self) -> ResetCountdown:
        """Time until the next UTC midnight. Independent of ledger state."""
        seconds = seconds_until_utc_midnight(self._clock.time())
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return ResetCountdown(
            seconds=seconds,
            hours=hours,
            minutes=minutes,
            message=f"Limit resets in {hours}h {minutes}m",
        )
