from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterator, List, Tuple

ProjectKey = Tuple[date, str]
TeamProjectKey = Tuple[date, str, str]


@dataclass(frozen=True)
class AnalysisRunRecord:
    owner: str
    repo: str
    start_date: datetime
    end_date: datetime
    base_branch: str
    run_date: datetime
    pr_count: int


@dataclass
class DailyProjectStatsDelta:
    day: date
    project_name: str
    project_group: str
    pr_count: int = 0
    total_lines_changed: int = 0
    files_modified: int = 0
    files_added: int = 0


@dataclass
class DailyTeamProjectStatsDelta:
    day: date
    project_name: str
    project_group: str
    team_name: str
    pr_count: int = 0


@dataclass
class StatsDeltas:
    """Increments to add to persisted daily stats, not yet merged with them."""

    projects: Dict[ProjectKey, DailyProjectStatsDelta] = field(default_factory=dict)
    team_projects: Dict[TeamProjectKey, DailyTeamProjectStatsDelta] = field(
        default_factory=dict
    )

    def is_empty(self) -> bool:
        return not self.projects and not self.team_projects


@dataclass
class ProjectGroupStats:
    project_group: str
    pr_count: int = 0
    total_lines_changed: int = 0
    files_modified: int = 0
    files_added: int = 0


@dataclass
class TeamProjectMatrix:
    """
    PR counts keyed by ``(project_group, team)``.

    Missing keys read as zero. ``project_groups`` and ``teams`` keep the
    row/column order for reporting.
    """

    project_groups: List[str] = field(default_factory=list)
    teams: List[str] = field(default_factory=list)
    counts: Dict[Tuple[str, str], int] = field(default_factory=dict)

    def __getitem__(self, key: Tuple[str, str]) -> int:
        return self.counts.get(key, 0)

    def get(self, project_group: str, team: str) -> int:
        return self.counts.get((project_group, team), 0)

    def increment(self, project_group: str, team: str, amount: int = 1) -> None:
        if project_group not in self.project_groups:
            self.project_groups.append(project_group)
        if team not in self.teams:
            self.teams.append(team)
        key = (project_group, team)
        self.counts[key] = self.counts.get(key, 0) + amount

    def row(self, project_group: str) -> Dict[str, int]:
        return {team: self.get(project_group, team) for team in self.teams}

    def rows(self) -> Iterator[Tuple[str, Dict[str, int]]]:
        for project_group in self.project_groups:
            yield project_group, self.row(project_group)
