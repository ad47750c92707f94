"""Configuration management for Pake GUI.

Settings come from ``~/.pake-gui/settings.json`` (written by ``Settings.save``),
``PAKEGUI_*`` environment variables and an optional ``.env`` file.
"""

import json
import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pakegui.builder import BuildDefaults

logger = logging.getLogger(__name__)

_SETTINGS_FILENAME = "settings.json"


def default_projects_dir() -> Path:
    return Path.home() / ".pake-gui"


def get_settings_path() -> Path:
    """Get the settings file path (lives next to the projects)."""
    return default_projects_dir() / _SETTINGS_FILENAME


class Settings(BaseSettings):
    """Pake GUI settings with env and file support."""

    model_config = SettingsConfigDict(env_prefix="PAKEGUI_", env_file=".env", extra="ignore")

    # Project registry
    projects_dir: Path = Field(
        default_factory=default_projects_dir,
        description="Root directory holding one sub-directory per project",
    )
    skip_malformed_projects: bool = Field(
        default=False,
        description="Skip unreadable project files when listing instead of failing",
    )
    project_id_pattern: str = Field(
        default="{timestamp}",
        description="Pattern for new project ids: {name} {time} {year} {month} {day} {timestamp}",
    )

    # pake-cli
    pake_bin: str = Field(default="pake", description="pake-cli executable name or path")
    default_width: int = Field(default=1200, description="Window width pake uses by default")
    default_height: int = Field(default=780, description="Window height pake uses by default")
    default_targets: str = Field(default="all", description="Build targets pake uses by default")

    # Web Server
    web_host: str = Field(default="127.0.0.1", description="Web server host")
    web_port: int = Field(default=8765, description="Web server port")
    log_level: str = Field(default="INFO", description="Root logging level")

    def build_defaults(self) -> BuildDefaults:
        """Defaults the translator suppresses when a config repeats them."""
        return BuildDefaults(
            width=self.default_width,
            height=self.default_height,
            targets=self.default_targets,
        )

    def save(self) -> None:
        """Save settings to the settings file."""
        path = get_settings_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        data = self.model_dump(mode="json")
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    @classmethod
    def load(cls) -> "Settings":
        """Load settings from the settings file; env fills whatever the file leaves unset."""
        path = get_settings_path()
        data: dict = {}
        if path.exists():
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError) as e:
                logger.warning("Ignoring unreadable settings file %s: %s", path, e)

        if data:
            try:
                return cls(**data)
            except ValueError as e:
                logger.warning("Ignoring invalid settings in %s: %s", path, e)
        return cls()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.load()
