"""Host OS helpers: open files, folders and URLs with the default handler."""

import logging
import platform
import subprocess

from pakegui.errors import ProcessSpawnError

logger = logging.getLogger(__name__)


def opener_command() -> str:
    """Executable the host OS uses to open a path with its default app."""
    system = platform.system()
    if system == "Windows":
        return "explorer"
    if system == "Darwin":
        return "open"
    return "xdg-open"


def open_path(path: str) -> None:
    """Open a file, directory or URL. Fire-and-forget; does not wait for the opener."""
    cmd = [opener_command(), str(path)]
    logger.info("Opening %s", path)
    try:
        subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except OSError as e:
        raise ProcessSpawnError(f"Failed to open path: {e}") from e
