"""
Core modules for Quota Guard.

This package contains the burst rate limiter, the daily usage ledger,
the quota admission policy and tracking identity resolution.
"""
