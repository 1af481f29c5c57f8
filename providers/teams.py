from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from providers.exceptions import ConfigurationError
from providers.project_groups import _read_json
from utils import UNASSIGNED_TEAM


@dataclass(frozen=True)
class Team:
    name: str
    authors: List[str] = field(default_factory=list)


def _get_ci(entry: dict, *keys: str):
    lowered = {str(k).lower(): v for k, v in entry.items()}
    for key in keys:
        if key.lower() in lowered:
            return lowered[key.lower()]
    return None


def _parse_team(entry) -> Team:
    if not isinstance(entry, dict):
        raise ConfigurationError(f"Invalid team entry: {entry!r}")
    name = _get_ci(entry, "name", "teamName")
    authors = _get_ci(entry, "authors")
    if not isinstance(name, str) or not name.strip():
        raise ConfigurationError(f"Team entry is missing a name: {entry!r}")
    if not isinstance(authors, list) or not all(isinstance(a, str) for a in authors):
        raise ConfigurationError(f"Team '{name}' must list authors as strings")

    # Keep first spelling, drop case-insensitive repeats within the team.
    seen = set()
    unique: List[str] = []
    for author in authors:
        key = author.strip().lower()
        if key and key not in seen:
            seen.add(key)
            unique.append(author.strip())
    return Team(name=name.strip(), authors=unique)


def validate_teams(teams: Iterable[Team]) -> List[Team]:
    """Reject rosters with a repeated team name or an author in more than one team."""
    teams = list(teams)
    seen_names: Dict[str, str] = {}
    for team in teams:
        key = team.name.lower()
        if key in seen_names:
            raise ConfigurationError(f"Duplicate team name: {team.name}")
        seen_names[key] = team.name

    owner: Dict[str, int] = {}
    duplicates: List[str] = []
    for index, team in enumerate(teams):
        for author in team.authors:
            key = author.lower()
            if key in owner and owner[key] != index:
                duplicates.append(author)
            owner.setdefault(key, index)
    if duplicates:
        raise ConfigurationError(
            f"Duplicate authors found across teams: {', '.join(sorted(set(duplicates)))}"
        )
    return teams


def load_teams(path: Union[str, Path]) -> List[Team]:
    """
    Load the team roster from a JSON list of ``{"name": ..., "authors": [...]}``.

    ``TeamName``/``Authors`` keys are accepted as well.
    """
    data = _read_json(path, "Teams")
    if not isinstance(data, list) or not data:
        raise ConfigurationError("Teams file is empty or invalid")
    teams = validate_teams(_parse_team(entry) for entry in data)
    logging.info(f"Loaded {len(teams)} teams from {path}")
    return teams


class TeamResolver:
    """Maps an author login to its team, case-insensitively."""

    def __init__(self, teams: Iterable[Team]):
        self.teams = validate_teams(teams)
        self._by_author: Dict[str, str] = {
            author.lower(): team.name for team in self.teams for author in team.authors
        }

    def resolve(self, author: Optional[str]) -> str:
        if not author:
            return UNASSIGNED_TEAM
        return self._by_author.get(author.lower(), UNASSIGNED_TEAM)

    def team_names(self) -> List[str]:
        """All team names plus the synthetic unassigned team, sorted."""
        names = {team.name for team in self.teams}
        names.add(UNASSIGNED_TEAM)
        return sorted(names)


def load_team_resolver(path: Union[str, Path]) -> TeamResolver:
    return TeamResolver(load_teams(path))
