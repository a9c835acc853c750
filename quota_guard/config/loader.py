"""
Configuration management and loading.

Holds the fixed quota and rate limit settings and the YAML loader used at
deployment time.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

import yaml

# Provider allows 50k chars/day for registered senders; keep a buffer
DAILY_LIMIT_CHARS = 45000
WARNING_THRESHOLD = 80.0   # percent of daily limit
CRITICAL_THRESHOLD = 95.0  # percent of daily limit

# ~100 requests/minute observed upstream; 2/s sustained stays under it
BUCKET_CAPACITY = 10
BUCKET_REFILL_RATE = 2.0

STORAGE_KEY_PREFIX = "translation_usage"
DEFAULT_DB_PATH = ".quota-guard.db"


@dataclass(frozen=True)
class RateLimitConfig:
    """Token bucket settings for outgoing calls."""
    capacity: float = BUCKET_CAPACITY
    refill_rate: float = BUCKET_REFILL_RATE

    def __post_init__(self):
        """Validate bucket values are positive."""
        if self.capacity <= 0:
            raise ValueError("capacity must be > 0")
        if self.refill_rate <= 0:
            raise ValueError("refill_rate must be > 0")


@dataclass(frozen=True)
class QuotaConfig:
    """Daily character quota settings."""
    daily_limit: int = DAILY_LIMIT_CHARS
    warning_percent: float = WARNING_THRESHOLD
    critical_percent: float = CRITICAL_THRESHOLD
    storage_key_prefix: str = STORAGE_KEY_PREFIX
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)

    def __post_init__(self):
        """Validate limits and threshold ordering."""
        if self.daily_limit <= 0:
            raise ValueError("daily_limit must be > 0")
        if not 0 < self.warning_percent <= 100:
            raise ValueError("warning_percent must be in (0, 100]")
        if not 0 < self.critical_percent <= 100:
            raise ValueError("critical_percent must be in (0, 100]")
        if self.warning_percent > self.critical_percent:
            raise ValueError("warning_percent must not exceed critical_percent")
        if not self.storage_key_prefix or not self.storage_key_prefix.strip():
            raise ValueError("storage_key_prefix is required and cannot be empty")


DEFAULT_CONFIG = QuotaConfig()


def load_quota_config(path: str) -> QuotaConfig:
    """Load and validate quota configuration from a YAML file.

    Every key is optional and falls back to the built-in constant, but
    unknown keys and wrongly typed values are rejected so a typo cannot
    silently loosen the quota.

    Example::

        quota:
          daily_limit: 45000
          warning_percent: 80
          critical_percent: 95
        rate_limit:
          capacity: 10
          refill_rate: 2

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated QuotaConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Quota config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration root must be a dictionary")

    allowed_top_keys = {'quota', 'rate_limit', 'storage_key_prefix'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    quota_data = _section(raw_config, 'quota', {'daily_limit', 'warning_percent', 'critical_percent'})
    rate_data = _section(raw_config, 'rate_limit', {'capacity', 'refill_rate'})

    rate_limit = RateLimitConfig(
        capacity=_number(rate_data, 'capacity', BUCKET_CAPACITY, 'rate_limit'),
        refill_rate=_number(rate_data, 'refill_rate', BUCKET_REFILL_RATE, 'rate_limit'),
    )

    daily_limit = quota_data.get('daily_limit', DAILY_LIMIT_CHARS)
    if isinstance(daily_limit, bool) or not isinstance(daily_limit, int):
        raise ValueError("'daily_limit' in quota must be an integer")

    prefix = raw_config.get('storage_key_prefix', STORAGE_KEY_PREFIX)
    if not isinstance(prefix, str):
        raise ValueError("'storage_key_prefix' must be a string")

    return QuotaConfig(
        daily_limit=daily_limit,
        warning_percent=_number(quota_data, 'warning_percent', WARNING_THRESHOLD, 'quota'),
        critical_percent=_number(quota_data, 'critical_percent', CRITICAL_THRESHOLD, 'quota'),
        storage_key_prefix=prefix,
        rate_limit=rate_limit,
    )


def _section(raw_config: Dict[str, Any], name: str, allowed_keys: set) -> Dict[str, Any]:
    """Return a validated sub-section, or an empty dict if absent."""
    data = raw_config.get(name) or {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {name}: {unknown_keys}")
    return data


def _number(data: Dict[str, Any], key: str, default: float, path: str) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{key}' in {path} must be a number")
    return float(value)
