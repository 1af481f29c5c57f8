"""
Rate-limit governance for the GitHub connector.

Each check returns a new immutable :class:`RateLimitState`; callers thread
the latest state through instead of mutating shared counters.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from connectors.exceptions import RateLimitCritical

logger = logging.getLogger(__name__)

HIGH_WATER_MARK = 4000
LOW_WATER_MARK = 3000


@dataclass(frozen=True)
class RateLimitState:
    remaining: Optional[int]
    checked_at: datetime
    exhausted: bool = False


class RateLimitGovernor:
    """
    Compares the remaining API quota against high/low water marks.

    The quota is always re-read from ``quota_source``; nothing is counted
    locally.
    """

    def __init__(
        self,
        quota_source: Callable[[], int],
        high_water: int = HIGH_WATER_MARK,
        low_water: int = LOW_WATER_MARK,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        """
        :param quota_source: Callable returning the remaining core quota.
        :param high_water: Minimum quota required at the start of a run.
        :param low_water: Quota at or below which the governor reports exhaustion.
        :param clock: Returns the current time (swapped out in tests).
        """
        if low_water > high_water:
            raise ValueError("low_water must not exceed high_water")
        self.quota_source = quota_source
        self.high_water = high_water
        self.low_water = low_water
        self.clock = clock

    def check(self, previous: Optional[RateLimitState] = None) -> RateLimitState:
        """
        Query the remaining quota and return the resulting state.

        :param previous: State returned by the prior check, or None for the
                         first check of the run.
        :return: New RateLimitState.
        :raises RateLimitCritical: On the first check, if the quota is below
                                   the high-water mark.
        """
        first = previous is None
        try:
            remaining = int(self.quota_source())
        except Exception as e:
            logger.warning(f"Could not check rate limit: {e}")
            if previous is not None:
                return previous
            return RateLimitState(remaining=None, checked_at=self.clock())

        logger.info(f"GitHub API rate limit: {remaining} requests remaining")

        if first and remaining < self.high_water:
            logger.error(
                f"Rate limit too low to start ({remaining} remaining). "
                f"Need at least {self.high_water}."
            )
            raise RateLimitCritical(remaining, self.high_water)

        exhausted = remaining <= self.low_water
        if exhausted:
            logger.warning(
                f"Rate limit reached threshold ({remaining} remaining, "
                f"low-water mark {self.low_water})"
            )

        return RateLimitState(
            remaining=remaining,
            checked_at=self.clock(),
            exhausted=exhausted,
        )
