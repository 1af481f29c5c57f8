"""
GitHub connector for retrieving merged pull requests.

This package provides a production-grade connector for GitHub
with rollup detection, rate-limit governance, and error handling.
"""

from .exceptions import (APIException, AuthenticationException,
                         ConnectorException, NotFoundException,
                         RateLimitCritical, RateLimitException,
                         TransientApiError)
from .github import GitHubConnector, build_merged_search_query, is_rollup
from .models import DateWindow, PullRequestFile, RawPullRequest, WindowFetch
from .utils import RateLimitGovernor, RateLimitState

__all__ = [
    # Connectors
    "GitHubConnector",
    "build_merged_search_query",
    "is_rollup",
    # Rate limiting
    "RateLimitGovernor",
    "RateLimitState",
    # Models
    "DateWindow",
    "RawPullRequest",
    "PullRequestFile",
    "WindowFetch",
    # Exceptions
    "ConnectorException",
    "RateLimitException",
    "RateLimitCritical",
    "AuthenticationException",
    "NotFoundException",
    "APIException",
    "TransientApiError",
]
