"""
Utility modules for connectors.
"""

from .rate_limit import (HIGH_WATER_MARK, LOW_WATER_MARK, RateLimitGovernor,
                         RateLimitState)
from .retry import retry_with_backoff

__all__ = [
    "HIGH_WATER_MARK",
    "LOW_WATER_MARK",
    "RateLimitGovernor",
    "RateLimitState",
    "retry_with_backoff",
]
