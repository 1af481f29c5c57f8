"""
GitHub connector using PyGithub.

This connector retrieves merged pull requests for a single repository,
flags rollup PRs, and keeps API usage within the rate-limit budget.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from urllib.parse import urlparse

from github import Github, GithubException, RateLimitExceededException

from connectors.exceptions import (
    APIException,
    AuthenticationException,
    NotFoundException,
    RateLimitException,
)
from connectors.models import DateWindow, PullRequestFile, RawPullRequest, WindowFetch
from connectors.utils import RateLimitGovernor, RateLimitState, retry_with_backoff

logger = logging.getLogger(__name__)

DEFAULT_WEB_HOST = "github.com"
DETAIL_CHECK_INTERVAL = 50
ROLLUP_TITLE_MARKER = "release"
ROLLUP_MIN_REFERENCES = 2
# Other files-endpoint statuses (copied, changed, unchanged) count as modified.
FILE_STATUSES = frozenset({"added", "removed", "modified", "renamed"})


def _to_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _format_search_timestamp(dt: datetime) -> str:
    return _to_utc(dt).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_merged_search_query(
    owner: str, repo: str, window: DateWindow, base_branch: str
) -> str:
    """
    Build the issue-search query for PRs merged into ``base_branch`` in ``window``.

    GitHub ranges are inclusive, so the upper bound is one second before
    ``window.end``.

    :param owner: Repository owner.
    :param repo: Repository name.
    :param window: Half-open UTC window.
    :param base_branch: Target branch of the PRs.
    :return: Search query string.
    """
    start = _format_search_timestamp(window.start)
    end = _format_search_timestamp(window.end - timedelta(seconds=1))
    return (
        f"repo:{owner}/{repo} is:pr is:merged base:{base_branch} "
        f"merged:{start}..{end}"
    )


def referenced_pr_numbers(body: Optional[str], owner: str, repo: str, host: str) -> set:
    """Return the PR numbers linked from ``body`` as ``https://<host>/<owner>/<repo>/pull/<n>``."""
    if not body:
        return set()
    pattern = re.compile(
        rf"https://{re.escape(host)}/{re.escape(owner)}/{re.escape(repo)}/pull/(\d+)",
        re.IGNORECASE,
    )
    return {int(m) for m in pattern.findall(body)}


def is_rollup(
    title: Optional[str],
    body: Optional[str],
    owner: str,
    repo: str,
    number: Optional[int] = None,
    host: str = DEFAULT_WEB_HOST,
) -> bool:
    """
    Decide whether a PR bundles other already-merged PRs.

    A PR is a rollup when its title mentions "release" (any case), or when
    its body links to at least two distinct other PRs of the same repository.

    :param title: PR title.
    :param body: PR body.
    :param owner: Repository owner.
    :param repo: Repository name.
    :param number: The PR's own number, excluded from the references.
    :param host: Web host used in PR links.
    :return: True if the PR is a rollup.
    """
    if title and ROLLUP_TITLE_MARKER in title.lower():
        return True
    refs = referenced_pr_numbers(body, owner, repo, host)
    refs.discard(number)
    return len(refs) >= ROLLUP_MIN_REFERENCES


class GitHubConnector:
    """
    GitHub connector scoped to one repository.

    Provides merged-PR retrieval with rollup detection and rate-limit
    governance on top of PyGithub.
    """

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        base_url: Optional[str] = None,
        per_page: int = 100,
        governor: Optional[RateLimitGovernor] = None,
        detail_check_interval: int = DETAIL_CHECK_INTERVAL,
        github: Optional[Github] = None,
    ):
        """
        Initialize GitHub connector.

        :param token: GitHub personal access token.
        :param owner: Repository owner.
        :param repo: Repository name.
        :param base_url: Optional base URL for GitHub Enterprise.
        :param per_page: Number of items per page for pagination.
        :param governor: Optional rate-limit governor; defaults to one that
                         queries this connector's core quota.
        :param detail_check_interval: Re-check the quota after this many
                                      PR detail fetches.
        :param github: Optional pre-built PyGithub client (used in tests).
        """
        self.token = token
        self.owner = owner
        self.repo = repo
        self.per_page = per_page
        self.detail_check_interval = detail_check_interval

        if github is not None:
            self.github = github
        elif base_url:
            self.github = Github(base_url=base_url, login_or_token=token, per_page=per_page)
        else:
            self.github = Github(login_or_token=token, per_page=per_page)

        self.web_host = DEFAULT_WEB_HOST
        if base_url:
            self.web_host = urlparse(base_url).hostname or DEFAULT_WEB_HOST

        self.governor = governor or RateLimitGovernor(self.remaining_quota)
        self._gh_repo = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def _handle_github_exception(self, e: Exception) -> None:
        """
        Handle GitHub API exceptions and convert to connector exceptions.

        :param e: Exception from GitHub API.
        :raises: Appropriate connector exception.
        """
        if isinstance(e, RateLimitExceededException):
            raise RateLimitException(f"GitHub rate limit exceeded: {e}") from e
        elif isinstance(e, GithubException):
            if e.status == 401:
                raise AuthenticationException(f"GitHub authentication failed: {e}") from e
            elif e.status == 404:
                raise NotFoundException(f"GitHub resource not found: {e}") from e
            else:
                raise APIException(f"GitHub API error: {e}") from e
        else:
            raise APIException(f"Unexpected error: {e}") from e

    def _repository(self):
        if self._gh_repo is None:
            self._gh_repo = self.github.get_repo(self.full_name)
        return self._gh_repo

    def get_rate_limit(self) -> dict:
        """
        Get current rate limit status.

        :return: Dictionary with rate limit information.
        """
        try:
            rate_limit = self.github.get_rate_limit()
            # Newer PyGithub releases nest the buckets under ``resources``.
            core = getattr(rate_limit, "core", None) or rate_limit.resources.core

            return {
                "limit": core.limit,
                "remaining": core.remaining,
                "reset": core.reset,
            }
        except Exception as e:
            self._handle_github_exception(e)

    def remaining_quota(self) -> int:
        return int(self.get_rate_limit()["remaining"])

    @retry_with_backoff(
        max_retries=3,
        initial_delay=1.0,
        exceptions=(RateLimitException, APIException),
    )
    def search_merged_pr_numbers(
        self, window: DateWindow, base_branch: str
    ) -> Dict[int, object]:
        """
        Search PRs merged into ``base_branch`` during ``window``.

        Search can return the same item more than once; results are
        deduplicated by number, keeping first-seen order.

        :param window: Half-open UTC window.
        :param base_branch: Target branch.
        :return: Mapping of PR number to search item.
        """
        query = build_merged_search_query(self.owner, self.repo, window, base_branch)
        logger.debug(f"Searching issues: {query}")
        try:
            items: Dict[int, object] = {}
            for issue in self.github.search_issues(query):
                if issue.number not in items:
                    items[issue.number] = issue
            return items
        except Exception as e:
            self._handle_github_exception(e)

    @retry_with_backoff(
        max_retries=3,
        initial_delay=1.0,
        exceptions=(RateLimitException, APIException),
    )
    def get_pull_request(self, number: int) -> RawPullRequest:
        """
        Get full details for a single pull request.

        :param number: PR number.
        :return: RawPullRequest with rollup detection applied.
        """
        try:
            gh_pr = self._repository().get_pull(number)

            title = gh_pr.title or ""
            body = gh_pr.body or ""
            author = gh_pr.user.login if gh_pr.user else "Unknown"
            head = getattr(gh_pr, "head", None)
            base = getattr(gh_pr, "base", None)

            return RawPullRequest(
                number=gh_pr.number,
                title=title,
                author=author,
                merged_at=_to_utc(gh_pr.merged_at),
                body=body,
                merge_commit_sha=gh_pr.merge_commit_sha,
                head_sha=getattr(head, "sha", None),
                base_sha=getattr(base, "sha", None),
                is_rollup=is_rollup(
                    title, body, self.owner, self.repo, gh_pr.number, self.web_host
                ),
            )
        except Exception as e:
            self._handle_github_exception(e)

    @retry_with_backoff(
        max_retries=3,
        initial_delay=1.0,
        exceptions=(RateLimitException, APIException),
    )
    def get_pull_request_files(self, number: int) -> List[PullRequestFile]:
        """
        Get the changed files for a pull request from the files endpoint.

        :param number: PR number.
        :return: List of PullRequestFile objects.
        """
        try:
            files = []
            for f in self._repository().get_pull(number).get_files():
                additions = f.additions or 0
                deletions = f.deletions or 0
                files.append(
                    PullRequestFile(
                        file_name=f.filename,
                        status=f.status if f.status in FILE_STATUSES else "modified",
                        additions=additions,
                        deletions=deletions,
                        changes=additions + deletions,
                    )
                )
            logger.debug(f"Retrieved {len(files)} files for PR #{number}")
            return files
        except Exception as e:
            self._handle_github_exception(e)

    def _raw_from_search_item(self, issue) -> Optional[RawPullRequest]:
        """Build a degraded RawPullRequest from a search item when detail fetch fails."""
        pr_ref = getattr(issue, "pull_request", None)
        merged_at = getattr(pr_ref, "merged_at", None) or getattr(issue, "closed_at", None)
        if merged_at is None:
            return None
        title = issue.title or ""
        body = issue.body or ""
        return RawPullRequest(
            number=issue.number,
            title=title,
            author=issue.user.login if issue.user else "Unknown",
            merged_at=_to_utc(merged_at),
            body=body,
            is_rollup=is_rollup(
                title, body, self.owner, self.repo, issue.number, self.web_host
            ),
        )

    def fetch_merged_prs(
        self,
        window: DateWindow,
        base_branch: str,
        rate_limit: Optional[RateLimitState] = None,
    ) -> WindowFetch:
        """
        Retrieve all PRs merged into ``base_branch`` during ``window``.

        The quota is checked before the first outbound request of the run,
        after every ``detail_check_interval`` detail fetches, and once more
        at the end of the window.

        :param window: Half-open UTC window.
        :param base_branch: Target branch.
        :param rate_limit: State returned by the previous check, or None at
                           the start of a run.
        :return: WindowFetch with PRs sorted by merge time.
        :raises RateLimitCritical: If the run starts below the high-water mark.
        """
        if rate_limit is None:
            rate_limit = self.governor.check(None)

        logger.info(
            f"Fetching PRs merged into {base_branch} between "
            f"{window.start:%Y-%m-%d %H:%M:%S} and {window.end:%Y-%m-%d %H:%M:%S} UTC"
        )
        items = self.search_merged_pr_numbers(window, base_branch)
        logger.info(f"Found {len(items)} merged PRs in window")

        pull_requests: List[RawPullRequest] = []
        fetched = 0
        for number, issue in items.items():
            try:
                pr = self.get_pull_request(number)
            except (APIException, NotFoundException, RateLimitException) as e:
                logger.warning(f"Failed to fetch details for PR #{number}: {e}")
                pr = self._raw_from_search_item(issue)
                if pr is None:
                    continue
            fetched += 1

            if not window.contains(pr.merged_at):
                logger.debug(
                    f"Skipping PR #{pr.number}: merged at {pr.merged_at} outside window"
                )
            else:
                pull_requests.append(pr)
                if pr.is_rollup:
                    logger.info(f"PR #{pr.number} flagged as rollup: {pr.title}")

            if fetched % self.detail_check_interval == 0:
                rate_limit = self.governor.check(rate_limit)
                if rate_limit.exhausted:
                    logger.warning(
                        f"Rate limit exhausted mid-window after {fetched} PRs; "
                        "finishing window before pausing"
                    )

        rate_limit = self.governor.check(rate_limit)

        pull_requests.sort(key=lambda p: (p.merged_at, p.number))
        return WindowFetch(pull_requests=pull_requests, rate_limit=rate_limit)

    def close(self) -> None:
        """Close the connector and cleanup resources."""
        if hasattr(self.github, "close"):
            self.github.close()
