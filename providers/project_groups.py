from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Union

from providers.exceptions import ConfigurationError


def _read_json(path: Union[str, Path], what: str):
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"{what} file not found: {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"{what} file is not valid JSON: {path}: {exc}") from exc


def load_project_groups(path: Union[str, Path]) -> List[str]:
    """
    Load project-group prefixes from a JSON list of strings.

    Returned longest first so callers can take the first case-insensitive
    prefix match as the longest one.
    """
    data = _read_json(path, "Project groups")
    if not isinstance(data, list) or not data:
        raise ConfigurationError("Project groups file is empty or invalid")

    groups: List[str] = []
    for item in data:
        if not isinstance(item, str) or not item.strip():
            raise ConfigurationError(f"Invalid project group entry: {item!r}")
        groups.append(item.strip())

    groups.sort(key=len, reverse=True)
    logging.info(f"Loaded {len(groups)} project groups from {path}")
    return groups
