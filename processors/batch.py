import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

from connectors.github import GitHubConnector
from connectors.models import DateWindow
from connectors.utils import RateLimitState
from processors.attribution import AttributedPullRequest, AttributionEngine
from utils import iter_day_windows

DEFAULT_POLL_INTERVAL = 600.0


class BatchScheduler:
    """
    Walks a date range one UTC day at a time.

    Each window's PRs are fetched and attributed strictly in order. When the
    rate-limit governor reports exhaustion after a window and another window
    follows, the scheduler waits ``poll_interval`` seconds and re-checks
    until quota recovers.
    """

    def __init__(
        self,
        connector: GitHubConnector,
        engine: AttributionEngine,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        delay: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        :param connector: Source of merged PRs; its governor is re-checked while waiting.
        :param engine: Attribution engine applied to each processed PR.
        :param poll_interval: Seconds between quota re-checks while exhausted.
        :param delay: Awaitable sleep function.
        """
        self.connector = connector
        self.engine = engine
        self.poll_interval = poll_interval
        self.delay = delay

    async def _wait_for_quota(self, state: Optional[RateLimitState]) -> Optional[RateLimitState]:
        loop = asyncio.get_running_loop()
        while state is not None and state.exhausted:
            logging.warning(
                f"Rate limit low ({state.remaining} remaining); "
                f"waiting {self.poll_interval:.0f}s before re-checking"
            )
            await self.delay(self.poll_interval)
            state = await loop.run_in_executor(None, self.connector.governor.check, state)
        return state

    async def run(
        self, start: datetime, end: datetime, base_branch: str
    ) -> List[AttributedPullRequest]:
        """
        Fetch and attribute every PR merged into ``base_branch`` in ``[start, end)``.

        :raises RateLimitCritical: If quota is too low when the run starts.
        """
        loop = asyncio.get_running_loop()
        results: List[AttributedPullRequest] = []
        rate_limit: Optional[RateLimitState] = None

        windows = iter_day_windows(start, end)
        for index, (window_start, window_end) in enumerate(windows):
            window = DateWindow(window_start, window_end)
            fetch = await loop.run_in_executor(
                None,
                self.connector.fetch_merged_prs,
                window,
                base_branch,
                rate_limit,
            )
            rate_limit = fetch.rate_limit

            processed = 0
            for pr in fetch.pull_requests:
                if not self.engine.should_process(pr):
                    logging.info(f"Skipping rollup PR #{pr.number}: {pr.title}")
                    continue
                attributed = await loop.run_in_executor(None, self.engine.attribute, pr)
                results.append(attributed)
                processed += 1

            logging.info(
                f"{window_start:%Y-%m-%d}: {processed} PRs attributed "
                f"({len(fetch.pull_requests) - processed} rollups skipped)"
            )
            if index < len(windows) - 1:
                rate_limit = await self._wait_for_quota(rate_limit)

        logging.info(f"Attributed {len(results)} PRs between {start:%Y-%m-%d} and {end:%Y-%m-%d}")
        return results
