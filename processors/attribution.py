import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from git.exc import GitError

from connectors.exceptions import ConnectorException
from connectors.github import GitHubConnector
from connectors.models import PullRequestFile, RawPullRequest
from processors.local import CommitNotFound, RepositoryHistoryAdapter
from processors.projects import ProjectClassifier
from providers.teams import TeamResolver


@dataclass
class AttributedFile:
    file_name: str
    status: str
    additions: int
    deletions: int
    changes: int
    project_name: str
    project_group: str


@dataclass
class AttributedPullRequest:
    number: int
    title: str
    author: str
    team: str
    merged_at: datetime
    files: List[AttributedFile] = field(default_factory=list)
    file_count_by_project_name: Dict[str, int] = field(default_factory=dict)
    merge_commit_sha: Optional[str] = None
    is_rollup: bool = False


class AttributionEngine:
    """
    Turns a RawPullRequest into an AttributedPullRequest.

    Files come from the local clone (head/base diff, then merge-commit
    diff) or, when no SHAs are known, from the PR files endpoint. A PR whose
    files cannot be retrieved is still attributed with an empty file list.
    """

    def __init__(
        self,
        classifier: ProjectClassifier,
        history: RepositoryHistoryAdapter,
        teams: TeamResolver,
        connector: Optional[GitHubConnector] = None,
    ):
        self.classifier = classifier
        self.history = history
        self.teams = teams
        self.connector = connector

    @staticmethod
    def should_process(pr: RawPullRequest) -> bool:
        return not pr.is_rollup

    def _collect_files(self, pr: RawPullRequest) -> List[PullRequestFile]:
        try:
            if pr.head_sha and pr.base_sha:
                return self.history.diff_head_base(pr.head_sha, pr.base_sha)
            if pr.merge_commit_sha:
                return self.history.diff_merge_commit(pr.merge_commit_sha)
            if self.connector is not None:
                return self.connector.get_pull_request_files(pr.number)
            logging.warning(f"PR #{pr.number} has no commit SHAs and no API fallback")
        except CommitNotFound as e:
            logging.warning(f"PR #{pr.number}: {e}; recording without files")
        except (GitError, ConnectorException) as e:
            logging.warning(
                f"PR #{pr.number}: could not retrieve changed files ({e}); "
                "recording without files"
            )
        return []

    def _attribute_file(self, change: PullRequestFile) -> AttributedFile:
        project_name = self.classifier.classify_file_path(change.file_name)
        return AttributedFile(
            file_name=change.file_name,
            status=change.status,
            additions=change.additions,
            deletions=change.deletions,
            changes=change.changes,
            project_name=project_name,
            project_group=self.classifier.classify_project_name(project_name),
        )

    def attribute(self, pr: RawPullRequest) -> AttributedPullRequest:
        """
        Attribute a PR's files to projects and its author to a team.

        :param pr: PR as returned by the connector.
        :return: AttributedPullRequest.
        """
        files = [self._attribute_file(change) for change in self._collect_files(pr)]
        counts = Counter(f.project_name for f in files)
        team = self.teams.resolve(pr.author)

        logging.debug(
            f"PR #{pr.number} by {pr.author} ({team}): {len(files)} files "
            f"across {len(counts)} projects"
        )
        return AttributedPullRequest(
            number=pr.number,
            title=pr.title,
            author=pr.author,
            team=team,
            merged_at=pr.merged_at,
            files=files,
            file_count_by_project_name=dict(counts),
            merge_commit_sha=pr.merge_commit_sha,
            is_rollup=pr.is_rollup,
        )
