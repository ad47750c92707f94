"""Project registry — one directory per saved build configuration.

    ~/.pake-gui/
      1718000000000/
        tauri.conf.json     <- Project record (managed)
        MyApp.app           <- pake output, built with this dir as cwd
      my-notes-20240611/
        tauri.conf.json

tauri.conf.json record:
{
  "id": "1718000000000",
  "name": "My App",
  "config": {"url": "https://example.com", "name": "MyApp", ...},
  "lastModified": 1718000000000
}

``config`` is free-form here; ``pakegui.builder.BuildConfig`` gives it a
typed shape when a build is started.  ``lastModified`` is always stamped
by ``save_project`` and never taken from the caller.
"""

from __future__ import annotations

import logging
import shutil
import time
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from pakegui.errors import ErrorKind, NotFoundError, ParseError, StorageError, ValidationError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "tauri.conf.json"


class Project(BaseModel):
    """A named pake build configuration."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    config: dict[str, Any]
    last_modified: int = Field(default=0, alias="lastModified")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


def _now_ms() -> int:
    return int(time.time() * 1000)


def validate_project_id(project_id: str) -> str:
    """Reject ids that cannot safely be used as a single directory name."""
    if (
        not isinstance(project_id, str)
        or not project_id.strip()
        or project_id in (".", "..")
        or ".." in project_id
        or "/" in project_id
        or "\\" in project_id
        or "\x00" in project_id
    ):
        raise ValidationError(
            f"Invalid project ID: {project_id!r}", kind=ErrorKind.INVALID_PROJECT_ID
        )
    return project_id


def generate_project_id(
    pattern: str | None = None,
    name: str = "",
    now: datetime | None = None,
) -> str:
    """Expand a naming pattern into a filesystem-safe project id.

    Placeholders: ``{name}``, ``{time}`` (HHMMSS), ``{year}``, ``{month}``,
    ``{day}`` and ``{timestamp}`` (milliseconds since epoch).  An empty
    pattern means ``{timestamp}``.
    """
    now = now or datetime.now()
    timestamp = str(int(now.timestamp() * 1000))
    values = {
        "{name}": name.strip(),
        "{time}": now.strftime("%H%M%S"),
        "{year}": now.strftime("%Y"),
        "{month}": now.strftime("%m"),
        "{day}": now.strftime("%d"),
        "{timestamp}": timestamp,
    }

    result = (pattern or "").strip() or "{timestamp}"
    for placeholder, value in values.items():
        result = result.replace(placeholder, value)

    # Sanitize: alphanumeric, hyphen, underscore
    safe = "".join(c if c.isalnum() or c in "-_" else "_" for c in result).strip("_-")
    return safe or timestamp


class ProjectManager:
    """CRUD store for projects under a single root directory.

    ``skip_malformed`` decides what ``list_projects`` does with a project
    file that cannot be read or parsed: fail the whole listing (default)
    or log it and move on.
    """

    def __init__(
        self,
        projects_dir: Path | str | None = None,
        *,
        skip_malformed: bool | None = None,
    ) -> None:
        if projects_dir is None or skip_malformed is None:
            from pakegui.config import get_settings

            settings = get_settings()
            if projects_dir is None:
                projects_dir = settings.projects_dir
            if skip_malformed is None:
                skip_malformed = settings.skip_malformed_projects

        self.projects_dir = Path(projects_dir).expanduser()
        self.skip_malformed = skip_malformed
        try:
            self.projects_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"Could not create projects directory {self.projects_dir}: {e}"
            ) from e

    # ─── Paths ───────────────────────────────────────────────────────────

    def get_project_path(self, project_id: str) -> Path:
        """Directory of a project. Pure; does not touch the disk."""
        return self.projects_dir / validate_project_id(project_id)

    def get_project_config_path(self, project_id: str) -> Path:
        """Record file of a project. Pure; does not touch the disk."""
        return self.get_project_path(project_id) / CONFIG_FILENAME

    # ─── Read ────────────────────────────────────────────────────────────

    @staticmethod
    def _read_project(config_path: Path) -> Project:
        try:
            content = config_path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise NotFoundError(f"Project file not found: {config_path}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Failed to read {config_path}: {e}") from e

        try:
            return Project.model_validate_json(content)
        except PydanticValidationError as e:
            raise ParseError(f"Invalid project file {config_path}: {e}") from e

    def list_projects(self) -> list[Project]:
        """All projects, most recently modified first."""
        if not self.projects_dir.is_dir():
            return []

        projects: list[Project] = []
        try:
            entries = sorted(self.projects_dir.iterdir())
        except OSError as e:
            raise StorageError(f"Failed to scan {self.projects_dir}: {e}") from e

        for item in entries:
            if not item.is_dir():
                continue
            config_path = item / CONFIG_FILENAME
            if not config_path.exists():
                continue
            try:
                projects.append(self._read_project(config_path))
            except (ParseError, StorageError) as e:
                if not self.skip_malformed:
                    raise
                logger.warning("Skipping malformed project at %s: %s", item, e)

        projects.sort(key=lambda p: p.last_modified, reverse=True)
        return projects

    def load_project(self, project_id: str) -> Project:
        config_path = self.get_project_config_path(project_id)
        if not config_path.exists():
            raise NotFoundError(f"Project '{project_id}' not found")
        return self._read_project(config_path)

    # ─── Write ───────────────────────────────────────────────────────────

    def save_project(self, project: Project) -> Project:
        """Stamp ``lastModified`` and write the full record. Returns the stamped copy."""
        project_dir = self.get_project_path(project.id)
        stamped = project.model_copy(update={"last_modified": _now_ms()})

        try:
            project_dir.mkdir(parents=True, exist_ok=True)
            (project_dir / CONFIG_FILENAME).write_text(stamped.to_json(), encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to save project '{project.id}': {e}") from e

        logger.info("Saved project '%s' (%s)", stamped.id, stamped.name)
        return stamped

    def delete_project(self, project_id: str) -> None:
        """Remove a project directory. Deleting a missing project is a no-op."""
        project_dir = self.get_project_path(project_id)
        if not project_dir.exists():
            return
        try:
            shutil.rmtree(project_dir)
        except OSError as e:
            raise StorageError(f"Failed to delete project '{project_id}': {e}") from e
        logger.info("Deleted project '%s'", project_id)

    # ─── Build output ────────────────────────────────────────────────────

    def get_project_output_path(self, project_id: str) -> Path | None:
        """Best guess at the bundle pake produced for a project, if it exists.

        pake names its output after ``--name`` for remote URLs and after the
        file stem for local files; the suffix depends on the platform.
        """
        project = self.load_project(project_id)
        url = project.config.get("url")
        if not isinstance(url, str):
            return None

        name = project.config.get("name")
        name = name if isinstance(name, str) and name else "app"
        if url.startswith("http"):
            output_name = name
        else:
            output_name = Path(url).stem or name

        project_dir = self.get_project_path(project_id)
        for candidate in (
            project_dir / f"{output_name}.app",  # macOS
            project_dir / f"{output_name}.exe",  # Windows
            project_dir / output_name,  # Linux
        ):
            if candidate.exists():
                return candidate
        return None


__all__ = [
    "CONFIG_FILENAME",
    "Project",
    "ProjectManager",
    "generate_project_id",
    "validate_project_id",
]
