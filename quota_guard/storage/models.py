"""
Data models for storage layer.

Defines the persisted per-day usage snapshot and its wire format.
"""

import json
from dataclasses import dataclass, replace
from datetime import date
from typing import Optional


@dataclass(frozen=True)
class UsageSnapshot:
    """Cumulative character usage for one tracking key on one UTC day.

    A snapshot is only meaningful for its own day. Readers on a different
    day must treat it as absent and start a fresh one.
    """
    day: date
    chars_used: int
    request_count: int
    last_updated: float
    identity: Optional[str] = None

    @classmethod
    def fresh(cls, day: date, now: float, identity: Optional[str] = None) -> "UsageSnapshot":
        """Zero usage for the given day."""
        return cls(day=day, chars_used=0, request_count=0, last_updated=now, identity=identity)

    def with_usage(self, char_count: int, now: float) -> "UsageSnapshot":
        """Copy with one more request of char_count characters."""
        return replace(
            self,
            chars_used=self.chars_used + char_count,
            request_count=self.request_count + 1,
            last_updated=now,
        )

    def to_json(self) -> str:
        return json.dumps({
            "day": self.day.isoformat(),
            "chars_used": self.chars_used,
            "request_count": self.request_count,
            "last_updated": self.last_updated,
            "identity": self.identity,
        }, sort_keys=True)

    @classmethod
    def from_json(cls, raw: str) -> "UsageSnapshot":
        """Parse a stored snapshot.

        Raises:
            ValueError: If the payload is not a well-formed snapshot
        """
        try:
            data = json.loads(raw)
        except (TypeError, json.JSONDecodeError) as e:
            raise ValueError(f"Snapshot is not valid JSON: {e}")

        if not isinstance(data, dict):
            raise ValueError("Snapshot must be a JSON object")

        missing = {"day", "chars_used", "request_count", "last_updated"} - set(data.keys())
        if missing:
            raise ValueError(f"Snapshot missing fields: {missing}")

        day_raw = data["day"]
        if not isinstance(day_raw, str):
            raise ValueError("'day' must be an ISO date string")
        day = date.fromisoformat(day_raw)

        chars_used = data["chars_used"]
        request_count = data["request_count"]
        for name, value in (("chars_used", chars_used), ("request_count", request_count)):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"'{name}' must be a non-negative integer")

        last_updated = data["last_updated"]
        if isinstance(last_updated, bool) or not isinstance(last_updated, (int, float)):
            raise ValueError("'last_updated' must be a timestamp")

        identity = data.get("identity")
        if identity is not None and not isinstance(identity, str):
            raise ValueError("'identity' must be a string")

        return cls(
            day=day,
            chars_used=chars_used,
            request_count=request_count,
            last_updated=float(last_updated),
            identity=identity,
        )
