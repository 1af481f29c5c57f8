"""
Data models returned by the GitHub connector.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from connectors.utils.rate_limit import RateLimitState


@dataclass(frozen=True)
class DateWindow:
    """Half-open UTC interval ``[start, end)``."""

    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


@dataclass
class RawPullRequest:
    number: int
    title: str
    author: str
    merged_at: datetime
    body: str = ""
    merge_commit_sha: Optional[str] = None
    head_sha: Optional[str] = None
    base_sha: Optional[str] = None
    is_rollup: bool = False


@dataclass
class PullRequestFile:
    """A changed file as reported by the PR files endpoint."""

    file_name: str
    status: str
    additions: int = 0
    deletions: int = 0
    changes: int = 0


@dataclass
class WindowFetch:
    """PRs merged in one window plus the last rate-limit state observed."""

    pull_requests: List[RawPullRequest] = field(default_factory=list)
    rate_limit: Optional[RateLimitState] = None

    @property
    def exhausted(self) -> bool:
        return bool(self.rate_limit and self.rate_limit.exhausted)
