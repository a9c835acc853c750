"""
Quota Guard.

Client-side admission control for a shared, rate limited translation service.
"""

__version__ = "0.1.0"
