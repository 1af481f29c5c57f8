"""Loaders for the project-group list and the team roster."""

from .exceptions import ConfigurationError
from .project_groups import load_project_groups
from .teams import Team, TeamResolver, load_team_resolver, load_teams

__all__ = [
    "ConfigurationError",
    "Team",
    "TeamResolver",
    "load_project_groups",
    "load_team_resolver",
    "load_teams",
]
