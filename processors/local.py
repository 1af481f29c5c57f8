import logging
from typing import Any, List, Optional, Tuple

from git import Repo as GitRepo
from git.exc import BadName, BadObject, GitCommandError

from connectors.models import PullRequestFile

STATUS_ADDED = "added"
STATUS_REMOVED = "removed"
STATUS_MODIFIED = "modified"
STATUS_RENAMED = "renamed"


class CommitNotFound(Exception):
    """A commit reference could not be resolved in the local clone."""

    def __init__(self, ref: str):
        self.ref = ref
        super().__init__(f"Commit not found in local repository: {ref}")


def _diff_status(diff: Any) -> str:
    if diff.new_file:
        return STATUS_ADDED
    if diff.deleted_file:
        return STATUS_REMOVED
    if diff.renamed_file:
        return STATUS_RENAMED
    return STATUS_MODIFIED


def _count_patch_lines(patch: Optional[bytes]) -> Tuple[int, int]:
    """
    Count added and deleted lines of a zero-context patch body.

    GitPython strips the ``---``/``+++`` file headers, so every remaining
    line starting with ``+`` or ``-`` is content.
    """
    if not patch:
        return 0, 0
    if isinstance(patch, bytes):
        patch = patch.decode("utf-8", errors="replace")
    additions = deletions = 0
    for line in patch.splitlines():
        if line.startswith("+"):
            additions += 1
        elif line.startswith("-"):
            deletions += 1
    return additions, deletions


def _file_change_from_diff(diff: Any) -> Optional[PullRequestFile]:
    file_path = diff.a_path if diff.deleted_file else (diff.b_path or diff.a_path)
    if not file_path:
        return None
    additions, deletions = _count_patch_lines(diff.diff)
    return PullRequestFile(
        file_name=file_path,
        status=_diff_status(diff),
        additions=additions,
        deletions=deletions,
        changes=additions + deletions,
    )


class RepositoryHistoryAdapter:
    """
    Computes per-file change records between commits of a local clone.

    All methods are blocking; async callers run them in an executor.
    """

    def __init__(self, repo_path: str, repo: Optional[GitRepo] = None):
        """
        :param repo_path: Path to the local clone.
        :param repo: Optional already-open GitPython repo.
        """
        self.repo_path = repo_path
        self.repo = repo if repo is not None else GitRepo(repo_path)

    def _resolve(self, ref: str):
        if not ref:
            raise CommitNotFound(str(ref))
        try:
            commit = self.repo.commit(ref)
            # Commit objects load lazily; a full hex sha is accepted even
            # when the object is missing from the clone.
            commit.tree
            return commit
        except (BadName, BadObject, ValueError, GitCommandError) as e:
            logging.debug(f"Could not resolve {ref}: {e}")
            raise CommitNotFound(ref) from e

    def _diff_commits(self, from_commit, to_commit) -> List[PullRequestFile]:
        diffs = from_commit.diff(to_commit, create_patch=True, unified=0)
        files: List[PullRequestFile] = []
        for diff in diffs:
            change = _file_change_from_diff(diff)
            if change is not None:
                files.append(change)
        return files

    def diff_files(self, from_ref: str, to_ref: str) -> List[PullRequestFile]:
        """
        Diff two commits with rename detection.

        :param from_ref: Older commit (sha or ref name).
        :param to_ref: Newer commit.
        :return: One record per changed path.
        :raises CommitNotFound: If either ref does not resolve.
        """
        from_commit = self._resolve(from_ref)
        to_commit = self._resolve(to_ref)
        return self._diff_commits(from_commit, to_commit)

    def diff_merge_commit(self, merge_sha: str) -> List[PullRequestFile]:
        """
        Diff a merge commit against its first parent.

        A root commit has nothing to diff against and yields an empty list.
        """
        commit = self._resolve(merge_sha)
        if not commit.parents:
            logging.debug(f"Commit {merge_sha} has no parent; no changes to report")
            return []
        return self._diff_commits(commit.parents[0], commit)

    def diff_head_base(self, head_sha: str, base_sha: str) -> List[PullRequestFile]:
        """Diff a PR's recorded base commit to its head commit."""
        return self.diff_files(base_sha, head_sha)
