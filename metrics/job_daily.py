from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from connectors.github import GitHubConnector
from metrics.compute import (
    build_team_matrix,
    compute_daily_stats_deltas,
    compute_project_group_stats,
)
from metrics.schemas import (
    AnalysisRunRecord,
    ProjectGroupStats,
    StatsDeltas,
    TeamProjectMatrix,
)
from processors.attribution import AttributedPullRequest, AttributionEngine
from processors.batch import DEFAULT_POLL_INTERVAL, BatchScheduler
from processors.local import RepositoryHistoryAdapter
from processors.projects import DEFAULT_MANIFEST_PATTERN, ProjectClassifier
from providers.project_groups import load_project_groups
from providers.teams import TeamResolver, load_team_resolver
from storage import PersistenceGateway
from utils import DEFAULT_BASE_BRANCH, DEFAULT_START_DATE, _normalize_datetime

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    start: datetime
    end: datetime
    pull_requests: List[AttributedPullRequest]
    deltas: StatsDeltas
    group_stats: Dict[str, ProjectGroupStats]
    matrix: TeamProjectMatrix
    run_id: Optional[int] = None


async def resolve_date_range(
    gateway: Optional[PersistenceGateway],
    owner: str,
    repo: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Tuple[datetime, datetime]:
    """
    Pick the ``[start, end)`` range to analyse.

    Explicit bounds win; a missing end means one day after start. Without a
    start, continue from the previous run's end date (when a database is
    available) or from the default start date.
    """
    if start is None:
        start = DEFAULT_START_DATE
        if gateway is not None:
            last = await gateway.latest_run(owner, repo)
            if last is not None:
                start = _normalize_datetime(last.end_date)
                logger.info(f"Continuing from previous run {last.id} ending {start:%Y-%m-%d}")
    start = _normalize_datetime(start)
    end = _normalize_datetime(end) if end is not None else start + timedelta(days=1)
    if end <= start:
        raise ValueError(f"End date {end:%Y-%m-%d} must be after start date {start:%Y-%m-%d}")
    return start, end


def format_team_matrix(matrix: TeamProjectMatrix) -> str:
    header = ["Project Group"] + list(matrix.teams)
    lines = ["\t".join(header)]
    for project_group, row in matrix.rows():
        lines.append("\t".join([project_group] + [str(row[team]) for team in matrix.teams]))
    return "\n".join(lines)


def _log_report(result: AnalysisResult) -> None:
    logger.info(f"Project group stats for {len(result.pull_requests)} PRs:")
    for group in sorted(result.group_stats):
        s = result.group_stats[group]
        logger.info(
            f"  {group}: prs={s.pr_count} lines={s.total_lines_changed} "
            f"modified={s.files_modified} added={s.files_added}"
        )
    logger.info("Team x project group matrix:\n" + format_team_matrix(result.matrix))


async def _run_pipeline(
    gateway: Optional[PersistenceGateway],
    *,
    owner: str,
    repo: str,
    repo_path: str,
    token: str,
    project_groups: List[str],
    team_resolver: TeamResolver,
    start: Optional[datetime],
    end: Optional[datetime],
    base_branch: str,
    manifest_pattern: str,
    base_url: Optional[str],
    poll_interval: float,
    delay: Callable[[float], Awaitable[None]],
    connector: Optional[GitHubConnector],
) -> AnalysisResult:
    start, end = await resolve_date_range(gateway, owner, repo, start, end)
    logger.info(
        f"Analysing {owner}/{repo} PRs merged into {base_branch} "
        f"from {start:%Y-%m-%d} to {end:%Y-%m-%d}"
    )

    classifier = ProjectClassifier(repo_path, project_groups, manifest_pattern)
    classifier.build_directory_index()

    owns_connector = connector is None
    if connector is None:
        connector = GitHubConnector(token=token, owner=owner, repo=repo, base_url=base_url)
    engine = AttributionEngine(
        classifier=classifier,
        history=RepositoryHistoryAdapter(repo_path),
        teams=team_resolver,
        connector=connector,
    )
    scheduler = BatchScheduler(connector, engine, poll_interval=poll_interval, delay=delay)
    try:
        prs = await scheduler.run(start, end, base_branch)
    finally:
        if owns_connector:
            connector.close()

    all_groups = classifier.all_project_groups()
    deltas = compute_daily_stats_deltas(prs)
    result = AnalysisResult(
        start=start,
        end=end,
        pull_requests=prs,
        deltas=deltas,
        group_stats=compute_project_group_stats(prs, all_groups),
        matrix=build_team_matrix(prs, all_groups, team_resolver.team_names()),
    )

    if gateway is None:
        _log_report(result)
        return result

    run = AnalysisRunRecord(
        owner=owner,
        repo=repo,
        start_date=start,
        end_date=end,
        base_branch=base_branch,
        run_date=datetime.now(timezone.utc),
        pr_count=len(prs),
    )
    result.run_id = await gateway.commit(run, prs, deltas)
    return result


async def run_analysis_job(
    *,
    owner: str,
    repo: str,
    repo_path: str,
    token: str,
    project_groups_path: str,
    teams_path: str,
    db_url: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    base_branch: str = DEFAULT_BASE_BRANCH,
    manifest_pattern: str = DEFAULT_MANIFEST_PATTERN,
    base_url: Optional[str] = None,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    delay: Callable[[float], Awaitable[None]] = asyncio.sleep,
    connector: Optional[GitHubConnector] = None,
) -> AnalysisResult:
    """
    Run the pipeline once: fetch, attribute, aggregate and persist.

    Without ``db_url`` nothing is written; the group stats and team matrix
    are logged instead.

    :raises ConfigurationError: If the project-group or team file is invalid.
    :raises RateLimitCritical: If API quota is too low to start.
    :raises TransactionFailure: If persisting the run fails.
    """
    project_groups = load_project_groups(project_groups_path)
    team_resolver = load_team_resolver(teams_path)

    kwargs = dict(
        owner=owner,
        repo=repo,
        repo_path=repo_path,
        token=token,
        project_groups=project_groups,
        team_resolver=team_resolver,
        start=start,
        end=end,
        base_branch=base_branch,
        manifest_pattern=manifest_pattern,
        base_url=base_url,
        poll_interval=poll_interval,
        delay=delay,
        connector=connector,
    )
    if not db_url:
        return await _run_pipeline(None, **kwargs)
    async with PersistenceGateway(db_url) as gateway:
        return await _run_pipeline(gateway, **kwargs)
