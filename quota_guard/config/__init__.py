"""
Configuration for Quota Guard.
"""

from .loader import DEFAULT_CONFIG, QuotaConfig, RateLimitConfig, load_quota_config

__all__ = ["DEFAULT_CONFIG", "QuotaConfig", "RateLimitConfig", "load_quota_config"]
