"""
Tracking identity resolution.

Chooses the key under which daily usage is accounted: a pseudonymous key
derived from a caller-supplied token when one is available, otherwise a
fixed device-scoped key.
"""

import hashlib
import inspect
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)


class TrackingMode(Enum):
    """How a tracking identity was obtained."""
    DEVICE = "device"  # Per-install, not shared across devices
    USER = "user"      # Derived from the caller's identity token


DEVICE_KEY = "device"

TRACKING_DESCRIPTIONS = {
    TrackingMode.DEVICE: "Per-device tracking (not synced across devices)",
    TrackingMode.USER: "Per-user tracking (shared by every device presenting the same identity token)",
}


@dataclass(frozen=True)
class TrackingIdentity:
    """Opaque key selecting which usage snapshot a ledger reads and writes."""
    mode: TrackingMode
    key: str
    degraded: bool = False  # Derived with a non-cryptographic transform

    @property
    def description(self) -> str:
        return TRACKING_DESCRIPTIONS[self.mode]


DEVICE_IDENTITY = TrackingIdentity(mode=TrackingMode.DEVICE, key=DEVICE_KEY)


class IdentityTransform(Protocol):
    """One-way, deterministic mapping from a token to a tracking key."""
    name: str
    degraded: bool

    def derive(self, token: str) -> str:
        ...


class Sha256Transform:
    """SHA-256 hex digest of the token."""
    name = "sha256"
    degraded = False

    def derive(self, token: str) -> str:
        return hashlib.sha256(token.encode("utf-8")).hexdigest()


class SimpleHashTransform:
    """32-bit rolling string hash.

    Not cryptographic: collisions are easy to construct and short tokens
    can be brute forced. Only used when no secure digest is available, and
    identities derived with it are flagged as degraded.
    """
    name = "simple"
    degraded = True

    def derive(self, token: str) -> str:
        h = 0
        for ch in token:
            h = (h * 31 + ord(ch)) & 0xFFFFFFFF
        if h & 0x80000000:
            h -= 0x100000000
        return format(abs(h), "x")


def select_transform() -> IdentityTransform:
    """Pick the strongest transform this interpreter supports."""
    if "sha256" in hashlib.algorithms_available:
        return Sha256Transform()
    logger.warning("sha256 unavailable; falling back to non-cryptographic identity hashing")
    return SimpleHashTransform()


class StaticTokenSource:
    """Identity source returning a fixed token (or None)."""

    def __init__(self, token: Optional[str]):
        self.token = token

    def try_get_token(self) -> Optional[str]:
        return self.token


class EnvTokenSource:
    """Identity source reading the token from an environment variable."""

    def __init__(self, var_name: str = "QUOTA_GUARD_USER_TOKEN"):
        self.var_name = var_name

    def try_get_token(self) -> Optional[str]:
        return os.environ.get(self.var_name) or None


class IdentityResolver:
    """Resolve the tracking identity for a consumer session.

    Call resolve() once per session, for example on startup, and hand the
    result to the usage ledger.
    """

    def __init__(self, source: Optional[Any] = None, transform: Optional[IdentityTransform] = None):
        """
        Args:
            source: Object with try_get_token() returning a token, None, or
                an awaitable of either. None means no identity is available.
            transform: One-way transform, defaults to select_transform()
        """
        self.source = source
        self.transform = transform or select_transform()

    async def resolve(self) -> TrackingIdentity:
        """Return a user identity, or the device identity as a fallback."""
        if self.source is None:
            return DEVICE_IDENTITY

        try:
            token = self.source.try_get_token()
            if inspect.isawaitable(token):
                token = await token
        except Exception:
            logger.info("Identity source failed; using device tracking", exc_info=True)
            return DEVICE_IDENTITY

        if not token:
            logger.info("No identity token available; using device tracking")
            return DEVICE_IDENTITY

        try:
            key = self.transform.derive(token)
        except Exception:
            logger.warning("Identity transform %s failed; using device tracking",
                           self.transform.name, exc_info=True)
            return DEVICE_IDENTITY

        if not key:
            return DEVICE_IDENTITY

        if self.transform.degraded:
            logger.warning("User identity derived with weak %s transform", self.transform.name)

        return TrackingIdentity(mode=TrackingMode.USER, key=key, degraded=self.transform.degraded)
