"""Helpers for showing projects and pake commands to the user."""

from __future__ import annotations

import shlex
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pakegui.builder import DEFAULTS, BuildDefaults, build_pake_args
from pakegui.projects import Project


def format_command_preview(
    config: Mapping[str, Any],
    pake_bin: str = "pake",
    defaults: BuildDefaults = DEFAULTS,
) -> str:
    """Render the pake command line a build would run, ready to paste in a shell."""
    url = config.get("url")
    if not isinstance(url, str) or not url.strip():
        return f"{pake_bin} <URL>"
    return shlex.join([pake_bin, *build_pake_args(config, defaults)])


def _yes_no(value: Any) -> str:
    return "Yes" if value else "No"


def format_config_summary(config: Mapping[str, Any], defaults: BuildDefaults = DEFAULTS) -> str:
    """Short human-readable overview of the main build options."""
    width = config.get("width") or defaults.width
    height = config.get("height") or defaults.height
    inject = config.get("inject") or []

    lines = [
        f"URL: {config.get('url') or 'Not specified'}",
        f"App Name: {config.get('name') or 'Not specified'}",
        f"Window Size: {width} x {height}",
        f"Debug Mode: {'Enabled' if config.get('debug') else 'Disabled'}",
        f"Fullscreen: {_yes_no(config.get('fullscreen'))}",
        f"Always On Top: {_yes_no(config.get('alwaysOnTop'))}",
        f"System Tray: {_yes_no(config.get('showSystemTray'))}",
        f"Injected Files: {len(inject)}",
    ]
    return "\n".join(lines)


def format_projects_summary(projects: list[Project]) -> str:
    """Render saved projects as a compact markdown summary."""
    if not projects:
        return "No projects saved yet. Fill in a URL and press Save to create one."

    lines = [f"Projects ({len(projects)}):"]
    for project in projects:
        url = project.config.get("url") or "no URL"
        modified = datetime.fromtimestamp(project.last_modified / 1000).strftime("%Y-%m-%d %H:%M")
        lines.append(f"- `{project.id}` — {project.name} ({url}, saved {modified})")
    return "\n".join(lines)
