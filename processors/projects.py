import fnmatch
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from utils import UNMATCHED_PROJECT

DEFAULT_MANIFEST_PATTERN = "*.csproj"


def _has_wildcard(pattern: str) -> bool:
    return any(ch in pattern for ch in "*?[")


class ProjectClassifier:
    """
    Maps project names and changed file paths to project groups.

    A project is a directory holding a manifest file. Its group is the
    longest configured prefix of its name (case-insensitive), or the
    project name itself when no prefix matches.
    """

    def __init__(
        self,
        repo_root: str,
        project_groups: Sequence[str],
        manifest_pattern: str = DEFAULT_MANIFEST_PATTERN,
    ):
        """
        :param repo_root: Path to the working tree of the local clone.
        :param project_groups: Group-name prefixes.
        :param manifest_pattern: fnmatch pattern identifying project manifests.
        """
        self.repo_root = os.path.normpath(os.path.abspath(repo_root))
        self.project_groups: List[str] = sorted(project_groups, key=len, reverse=True)
        self.manifest_pattern = manifest_pattern
        self.project_to_group: Dict[str, str] = {}
        # Normalized lowercase dir -> group, longest first.
        self._dir_index: List[Tuple[str, str]] = []

    def classify_project_name(self, name: str) -> str:
        lowered = name.lower()
        for group in self.project_groups:
            if lowered.startswith(group.lower()):
                return group
        return name

    def _project_name_for_manifest(self, manifest: Path) -> str:
        if _has_wildcard(self.manifest_pattern):
            return manifest.stem
        return manifest.parent.name

    def _find_manifests(self) -> List[Path]:
        manifests = []
        for root, dirs, files in os.walk(self.repo_root):
            dirs[:] = [d for d in dirs if d != ".git"]
            for name in files:
                if fnmatch.fnmatch(name, self.manifest_pattern):
                    manifests.append(Path(root) / name)
        return sorted(manifests)

    def build_directory_index(self) -> Dict[str, str]:
        """
        Scan the working tree for manifests and index project directories.

        :return: Mapping of absolute project directory to project group.
        """
        logging.info(
            f"Discovering '{self.manifest_pattern}' project manifests under {self.repo_root}"
        )
        directory_index: Dict[str, str] = {}
        for manifest in self._find_manifests():
            project_name = self._project_name_for_manifest(manifest)
            group = self.classify_project_name(project_name)
            self.project_to_group[project_name] = group
            directory_index[os.path.normpath(str(manifest.parent))] = group

        self._dir_index = sorted(
            ((d.lower(), g) for d, g in directory_index.items()),
            key=lambda item: len(item[0]),
            reverse=True,
        )
        logging.info(
            f"Found {len(directory_index)} projects mapped to "
            f"{len(set(self.project_to_group.values()))} project groups"
        )
        return directory_index

    def _absolute(self, path: str) -> str:
        if not os.path.isabs(path):
            path = os.path.join(self.repo_root, path)
        return os.path.normpath(path)

    def _match_directory(self, absolute_path: str) -> Optional[str]:
        lowered = absolute_path.lower()
        for directory, group in self._dir_index:
            if lowered == directory or lowered.startswith(directory.rstrip(os.sep) + os.sep):
                return group
        return None

    def _match_segments(self, absolute_path: str) -> Optional[str]:
        relative = os.path.relpath(absolute_path, self.repo_root)
        by_lower = {name.lower(): group for name, group in self.project_to_group.items()}
        for segment in relative.replace("\\", "/").split("/"):
            group = by_lower.get(segment.lower())
            if group is not None:
                return group
        return None

    def classify_file_path(self, path: str) -> str:
        """
        Classify a repository path into a project group.

        The most specific project directory containing the path wins; then
        any path segment naming a known project; otherwise ``"Unmatched"``.
        """
        absolute_path = self._absolute(path)
        group = self._match_directory(absolute_path)
        if group is None:
            group = self._match_segments(absolute_path)
        return group if group is not None else UNMATCHED_PROJECT

    def all_project_groups(self) -> List[str]:
        return sorted(set(self.project_to_group.values()))
