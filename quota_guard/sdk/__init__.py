"""
SDK for Quota Guard.

Wires the rate limiter, usage ledger and quota policy around a caller's
translation function.
"""

from .guarded_batch import BatchRunResult, GuardedBatchRunner, create_runner

__all__ = ["BatchRunResult", "GuardedBatchRunner", "create_runner"]
