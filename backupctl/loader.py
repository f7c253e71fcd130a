"""Settings file loading."""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, Field
from .errors import SettingsFileInvalid, SettingsFileMissing

GLOBAL_SECTION = "globalJobSettings"
JOBS_KEY = "jobs"


class SettingsTree(BaseModel):
    """Raw settings as read from the file, before resolution."""
    source_file: Optional[str] = None
    global_settings: Dict[str, Any] = Field(default_factory=dict)
    jobs: List[Tuple[str, Dict[str, Any]]] = Field(default_factory=list)

    def job_names(self) -> List[str]:
        return [name for name, _ in self.jobs]


def lookup(section: Dict[str, Any], key: str, default: Any = None) -> Any:
    """Get a value by key, ignoring case."""
    if key in section:
        return section[key]
    wanted = key.lower()
    for name, value in section.items():
        if name.lower() == wanted:
            return value
    return default


def _read_json(file_path: Path) -> Any:
    """Read the settings document, reporting any failure as one error."""
    try:
        with open(file_path, "r", encoding="utf-8-sig") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        raise SettingsFileInvalid(f"Could not parse settings file {file_path}: {e}") from e


def _collect_jobs(raw_jobs: Any) -> List[Tuple[str, Dict[str, Any]]]:
    """Flatten the jobs collection into an ordered list of (name, section)."""
    if raw_jobs is None:
        return []
    if isinstance(raw_jobs, dict):
        entries = [{name: section} for name, section in raw_jobs.items()]
    elif isinstance(raw_jobs, list):
        entries = raw_jobs
    else:
        raise SettingsFileInvalid(f"'{JOBS_KEY}' must be a list of job objects")

    jobs = []
    seen = set()
    for entry in entries:
        if not isinstance(entry, dict):
            raise SettingsFileInvalid(f"Job entry {entry!r} is not an object")
        for name, section in entry.items():
            if section is None:
                section = {}
            if not isinstance(section, dict):
                raise SettingsFileInvalid(f"Settings for job '{name}' must be an object")
            if name in seen:
                raise SettingsFileInvalid(f"Job name '{name}' is defined more than once")
            seen.add(name)
            jobs.append((name, section))
    return jobs


def load(file_path: str) -> SettingsTree:
    """Load a settings file into a SettingsTree.

    Raises SettingsFileMissing if the path is not a non-empty file, and
    SettingsFileInvalid for anything that goes wrong while parsing.
    """
    path = Path(file_path)
    if not path.is_file() or os.path.getsize(path) == 0:
        raise SettingsFileMissing(f"Settings file {file_path} does not exist or is empty")

    document = _read_json(path)
    if not isinstance(document, dict):
        raise SettingsFileInvalid(f"Settings file {file_path} must contain a JSON object")

    section = lookup(document, GLOBAL_SECTION)
    if section is None:
        section = {}
    if not isinstance(section, dict):
        raise SettingsFileInvalid(f"'{GLOBAL_SECTION}' must be an object")

    global_settings = {k: v for k, v in section.items() if k.lower() != JOBS_KEY}
    jobs = _collect_jobs(lookup(section, JOBS_KEY))

    return SettingsTree(
        source_file=str(path.resolve()),
        global_settings=global_settings,
        jobs=jobs,
    )
