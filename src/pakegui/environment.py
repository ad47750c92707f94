"""Environment checker for the pake-cli toolchain.

pake-cli needs Node.js (or Bun) to run, Rust to compile the Tauri shell and,
on Windows, the Visual Studio C++ Build Tools.  Each tool is probed by
looking it up on PATH and running its version flag.

Installers are fire-and-forget: they open a download page or start the
tool's official install script and return immediately.
"""

import asyncio
import logging
import platform
import shutil
import subprocess
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Literal

from pakegui.errors import ErrorKind, ProcessSpawnError, ValidationError
from pakegui.system import open_path

logger = logging.getLogger(__name__)

Status = Literal["ok", "error", "warning", "checking"]


@dataclass
class EnvironmentStatus:
    status: Status
    version: str | None = None
    path: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


# ─── Tool Definitions ───────────────────────────────────────────────────

TOOLS = [
    {
        "id": "nodejs",
        "name": "Node.js",
        "check_cmd": "node",
        "version_cmd": ["node", "--version"],
    },
    {
        "id": "bunjs",
        "name": "Bun",
        "check_cmd": "bun",
        "version_cmd": ["bun", "--version"],
    },
    {
        "id": "rust",
        "name": "Rust",
        "check_cmd": "rustc",
        "version_cmd": ["rustc", "--version"],
    },
    {
        "id": "pake",
        "name": "pake-cli",
        "check_cmd": "pake",
        "version_cmd": ["pake", "--version"],
    },
]

VISUAL_STUDIO_PATHS = [
    r"C:\Program Files (x86)\Microsoft Visual Studio\2022\BuildTools",
    r"C:\Program Files (x86)\Microsoft Visual Studio\2019\BuildTools",
    r"C:\Program Files\Microsoft Visual Studio\2022\Community",
    r"C:\Program Files\Microsoft Visual Studio\2019\Community",
]

_VERSION_TIMEOUT = 5


# ─── Check Logic ─────────────────────────────────────────────────────────


async def check_tool(tool: dict) -> EnvironmentStatus:
    """Check one tool: PATH lookup, then its version flag."""
    path = shutil.which(tool["check_cmd"])
    if path is None:
        return EnvironmentStatus(status="error")

    version_cmd = [path] + list(tool["version_cmd"][1:])
    try:
        proc = await asyncio.create_subprocess_exec(
            *version_cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.warning("Version check failed for %s: %s", tool["id"], e)
        return EnvironmentStatus(status="error", path=path)

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=_VERSION_TIMEOUT)
    except TimeoutError:
        logger.warning("Version check timed out for %s", tool["id"])
        proc.kill()
        await proc.wait()
        return EnvironmentStatus(status="error", path=path)

    if proc.returncode != 0:
        return EnvironmentStatus(status="error", path=path)

    raw = (stdout or stderr or b"").decode(errors="replace").strip()
    version = raw.split("\n")[0].strip() or None
    return EnvironmentStatus(status="ok", version=version, path=path)


def check_visual_studio() -> EnvironmentStatus:
    """Visual Studio Build Tools are only needed on Windows."""
    if platform.system() != "Windows":
        return EnvironmentStatus(status="ok", version="Not required on this platform")

    for vs_path in VISUAL_STUDIO_PATHS:
        if Path(vs_path).exists():
            return EnvironmentStatus(status="ok", version="Found", path=vs_path)
    return EnvironmentStatus(status="error")


async def check_environment() -> dict[str, EnvironmentStatus]:
    """Check all tools in parallel."""
    results = await asyncio.gather(*(check_tool(tool) for tool in TOOLS))
    statuses = {tool["id"]: status for tool, status in zip(TOOLS, results)}
    statuses["visualStudio"] = check_visual_studio()
    return statuses


# ─── Installers ──────────────────────────────────────────────────────────


def _spawn(cmd: list[str] | str, *, shell: bool = False) -> None:
    """Start an installer without waiting for it."""
    logger.info("Starting installer: %s", cmd)
    try:
        subprocess.Popen(cmd, shell=shell, stdin=subprocess.DEVNULL)
    except OSError as e:
        raise ProcessSpawnError(f"Failed to start installer: {e}") from e


def _is_windows() -> bool:
    return platform.system() == "Windows"


def _install_nodejs() -> str:
    open_path("https://nodejs.org")
    return "Opened the Node.js download page"


def _install_bunjs() -> str:
    if _is_windows():
        _spawn(["powershell", "-c", "irm bun.sh/install.ps1 | iex"])
    else:
        _spawn("curl -fsSL https://bun.sh/install | bash", shell=True)
    return "Bun install started"


def _install_rust() -> str:
    if _is_windows():
        open_path("https://rustup.rs")
        return "Opened the rustup download page"
    _spawn("curl --proto '=https' --tlsv1.2 -sSf https://sh.rustup.rs | sh -s -- -y", shell=True)
    return "Rust install started"


def _install_pake() -> str:
    for manager in ("bun", "npm"):
        binary = shutil.which(manager)
        if binary:
            _spawn([binary, "install", "-g", "pake-cli"])
            return f"Installing pake-cli with {manager}"
    raise ProcessSpawnError("Neither bun nor npm found; install Bun or Node.js first")


def _install_visual_studio() -> str:
    if not _is_windows():
        return "Visual Studio Build Tools are not required on this platform"
    open_path("https://visualstudio.microsoft.com/downloads/#build-tools-for-visual-studio-2022")
    return "Opened the Visual Studio Build Tools download page"


_INSTALLERS = {
    "nodejs": _install_nodejs,
    "bunjs": _install_bunjs,
    "rust": _install_rust,
    "pake": _install_pake,
    "visualStudio": _install_visual_studio,
}


def install_tool(tool: str) -> dict:
    """Kick off the installer for a tool."""
    installer = _INSTALLERS.get(tool)
    if installer is None:
        raise ValidationError(f"Unknown tool: {tool}", kind=ErrorKind.UNKNOWN_TOOL)

    logger.info("Installing tool '%s'", tool)
    message = installer()
    return {"status": "ok", "message": message}
