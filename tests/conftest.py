"""Shared test fixtures for the test suite."""
import json
from datetime import datetime, timezone
from pathlib import Path

import pytest
from git import Actor
from git import Repo as GitRepo

from processors.attribution import AttributedFile, AttributedPullRequest

AUTHOR = Actor("Test Author", "author@example.com")


@pytest.fixture
def git_repo(tmp_path):
    """Return an empty GitPython repository in a temporary directory."""
    return GitRepo.init(tmp_path / "repo")


@pytest.fixture
def commit_files(git_repo):
    """
    Return a helper that writes files, stages removals/renames and commits.

    :return: Callable ``(message, files=None, remove=None, rename=None) -> sha``.
    """
    root = Path(git_repo.working_tree_dir)

    def _commit(message, files=None, remove=None, rename=None):
        for rel_path, content in (files or {}).items():
            path = root / rel_path
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
            git_repo.index.add([rel_path])
        for rel_path in remove or []:
            git_repo.index.remove([rel_path], working_tree=True)
        for old, new in (rename or {}).items():
            git_repo.git.mv(old, new)
        commit = git_repo.index.commit(message, author=AUTHOR, committer=AUTHOR)
        return commit.hexsha

    return _commit


@pytest.fixture
def project_groups_file(tmp_path):
    path = tmp_path / "project_groups.json"
    path.write_text(json.dumps(["Acme.Core", "Acme"]), encoding="utf-8")
    return path


@pytest.fixture
def teams_file(tmp_path):
    path = tmp_path / "teams.json"
    path.write_text(
        json.dumps(
            [
                {"name": "Alpha", "authors": ["bob"]},
                {"name": "Beta", "authors": ["carol"]},
            ]
        ),
        encoding="utf-8",
    )
    return path


def make_file(name, project, status="modified", additions=1, deletions=0, group=None):
    return AttributedFile(
        file_name=name,
        status=status,
        additions=additions,
        deletions=deletions,
        changes=additions + deletions,
        project_name=project,
        project_group=group or project,
    )


def make_pr(number, files, team="Alpha", author="bob", merged_at=None, **kwargs):
    counts = {}
    for f in files:
        counts[f.project_name] = counts.get(f.project_name, 0) + 1
    return AttributedPullRequest(
        number=number,
        title=kwargs.pop("title", f"PR {number}"),
        author=author,
        team=team,
        merged_at=merged_at or datetime(2025, 11, 1, 12, 0, tzinfo=timezone.utc),
        files=list(files),
        file_count_by_project_name=counts,
        merge_commit_sha=kwargs.pop("merge_commit_sha", f"{number:040x}"),
        **kwargs,
    )
