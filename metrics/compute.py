from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from metrics.schemas import (
    DailyProjectStatsDelta,
    DailyTeamProjectStatsDelta,
    ProjectGroupStats,
    StatsDeltas,
    TeamProjectMatrix,
)
from processors.attribution import AttributedFile, AttributedPullRequest
from utils import UNASSIGNED_TEAM

STATUS_ADDED = "added"
MODIFIED_STATUSES = frozenset({"modified", "removed", "renamed"})


def _to_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _merged_day(pr: AttributedPullRequest) -> date:
    return _to_utc(pr.merged_at).date()


def _tally_file(target, f: AttributedFile) -> None:
    target.total_lines_changed += f.changes
    if f.status == STATUS_ADDED:
        target.files_added += 1
    elif f.status in MODIFIED_STATUSES:
        target.files_modified += 1


def compute_daily_stats_deltas(
    prs: Iterable[AttributedPullRequest],
    group_of: Optional[Callable[[str], str]] = None,
) -> StatsDeltas:
    """
    Derive per-day/project and per-day/project/team increments.

    Pure: no I/O. The day is the UTC date of ``merged_at``.

    - ``pr_count`` goes up once per PR for every (day, project) and every
      (day, project, team) it touches, independent of how many files it
      has there or their order.
    - ``total_lines_changed`` sums each file's ``changes``.
    - ``files_added`` counts ``added`` files; ``files_modified`` counts
      ``modified``, ``removed`` and ``renamed`` ones.

    :param prs: Attributed PRs of the run.
    :param group_of: Optional project-name to group mapping; defaults to the
                     group recorded on each file.
    """
    deltas = StatsDeltas()

    for pr in prs:
        day = _merged_day(pr)
        touched = set()
        for f in pr.files:
            project_group = group_of(f.project_name) if group_of else f.project_group
            key = (day, f.project_name)
            project_delta = deltas.projects.get(key)
            if project_delta is None:
                project_delta = DailyProjectStatsDelta(
                    day=day, project_name=f.project_name, project_group=project_group
                )
                deltas.projects[key] = project_delta
            _tally_file(project_delta, f)

            if f.project_name in touched:
                continue
            touched.add(f.project_name)
            project_delta.pr_count += 1

            team_key = (day, f.project_name, pr.team)
            team_delta = deltas.team_projects.get(team_key)
            if team_delta is None:
                team_delta = DailyTeamProjectStatsDelta(
                    day=day,
                    project_name=f.project_name,
                    project_group=project_group,
                    team_name=pr.team,
                )
                deltas.team_projects[team_key] = team_delta
            team_delta.pr_count += 1

    return deltas


def compute_project_group_stats(
    prs: Iterable[AttributedPullRequest],
    all_groups: Sequence[str] = (),
) -> Dict[str, ProjectGroupStats]:
    """
    Totals per project group over the whole run.

    Every group in ``all_groups`` is present, with zeros if untouched.
    """
    stats: Dict[str, ProjectGroupStats] = {
        group: ProjectGroupStats(project_group=group) for group in all_groups
    }
    for pr in prs:
        touched = set()
        for f in pr.files:
            group_stats = stats.setdefault(
                f.project_group, ProjectGroupStats(project_group=f.project_group)
            )
            _tally_file(group_stats, f)
            if f.project_group not in touched:
                touched.add(f.project_group)
                group_stats.pr_count += 1
    return stats


def build_team_matrix(
    prs: Iterable[AttributedPullRequest],
    groups: Sequence[str],
    teams: Sequence[str],
) -> TeamProjectMatrix:
    """
    Count PRs per (project group, team).

    A PR counts once for each project group it touches. Groups and teams not
    listed up front are appended as they are seen.
    """
    team_names: List[str] = list(teams)
    if UNASSIGNED_TEAM not in team_names:
        team_names.append(UNASSIGNED_TEAM)
    matrix = TeamProjectMatrix(project_groups=list(groups), teams=team_names)
    for pr in prs:
        for project_group in sorted({f.project_group for f in pr.files}):
            matrix.increment(project_group, pr.team)
    return matrix
