"""pake-cli build runner.

Translates a project's config into pake-cli flags, runs ``pake`` with the
project directory as cwd and relays its stdout/stderr line by line while
the build is still going.

    config                      pake argv
    ------                      ---------
    {"url": "a.html",           a.html
     "name": "MyApp",           --name MyApp
     "fullscreen": true,        --fullscreen
     "inject": ["a.js"]}        --inject a.js

Values equal to ``BuildDefaults`` (pake's own defaults) are left out so the
command stays minimal.

Windows notes:
  - npm/bun global installs create ``.cmd`` batch wrappers; the command is
    wrapped with ``cmd.exe /c`` automatically.
  - A SelectorEventLoop (e.g. uvicorn reload mode) does NOT support
    ``asyncio.create_subprocess_exec``; a ``subprocess.Popen`` + thread
    fallback with the same event contract is used in that case.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import subprocess
import sys
from collections.abc import AsyncIterator, Callable, Mapping
from contextlib import aclosing
from dataclasses import dataclass
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from pakegui.errors import (
    ErrorKind,
    ProcessExitError,
    ProcessSpawnError,
    StorageError,
    ValidationError,
)

if TYPE_CHECKING:
    from pakegui.projects import ProjectManager

logger = logging.getLogger(__name__)

# Pipes are read in chunks; a line longer than _LINE_LIMIT is relayed in pieces.
_CHUNK_SIZE = 64 * 1024
_LINE_LIMIT = 1024 * 1024


@dataclass(frozen=True)
class BuildDefaults:
    """pake's own defaults; config values equal to these are not emitted."""

    width: int = 1200
    height: int = 780
    targets: str = "all"


DEFAULTS = BuildDefaults()


class BuildConfig(BaseModel):
    """Typed view of a project's ``config`` mapping.

    Unknown keys are kept so configs written by newer front ends survive a
    round trip.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    url: str
    name: str | None = None
    icon: str | None = None
    width: int | None = None
    height: int | None = None
    use_local_file: bool | None = Field(default=None, alias="useLocalFile")
    fullscreen: bool | None = None
    hide_title_bar: bool | None = Field(default=None, alias="hideTitleBar")
    multi_arch: bool | None = Field(default=None, alias="multiArch")
    debug: bool | None = None
    activation_shortcut: str | None = Field(default=None, alias="activationShortcut")
    always_on_top: bool | None = Field(default=None, alias="alwaysOnTop")
    targets: str | None = None
    user_agent: str | None = Field(default=None, alias="userAgent")
    show_system_tray: bool | None = Field(default=None, alias="showSystemTray")
    system_tray_icon: str | None = Field(default=None, alias="systemTrayIcon")
    inject: list[str] | None = None
    safe_domain: list[str] | None = Field(default=None, alias="safeDomain")

    @field_validator("inject", "safe_domain", mode="before")
    @classmethod
    def drop_non_strings(cls, value: Any) -> Any:
        # Non-string entries are skipped, not rejected.
        if isinstance(value, list):
            return [item for item in value if isinstance(item, str)]
        return value

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any] | BuildConfig) -> BuildConfig:
        if isinstance(config, BuildConfig):
            return config

        url = config.get("url")
        if not isinstance(url, str) or not url.strip():
            raise ValidationError("URL is required", kind=ErrorKind.MISSING_REQUIRED_FIELD)

        try:
            return cls.model_validate(dict(config))
        except PydanticValidationError as e:
            fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
            raise ValidationError(
                f"Invalid build option(s): {fields or 'config'}", kind=ErrorKind.INVALID_FIELD
            ) from e


def build_pake_args(
    config: Mapping[str, Any] | BuildConfig,
    defaults: BuildDefaults = DEFAULTS,
) -> list[str]:
    """Translate a config into pake-cli arguments (without the executable)."""
    cfg = BuildConfig.from_mapping(config)
    args = [cfg.url]

    if cfg.name:
        args += ["--name", cfg.name]
    if cfg.icon:
        args += ["--icon", cfg.icon]
    if cfg.width is not None and cfg.width != defaults.width:
        args += ["--width", str(cfg.width)]
    if cfg.height is not None and cfg.height != defaults.height:
        args += ["--height", str(cfg.height)]
    if cfg.use_local_file:
        args.append("--use-local-file")
    if cfg.fullscreen:
        args.append("--fullscreen")
    if cfg.hide_title_bar:
        args.append("--hide-title-bar")
    if cfg.multi_arch:
        args.append("--multi-arch")
    if cfg.debug:
        args.append("--debug")
    if cfg.activation_shortcut:
        args += ["--activation-shortcut", cfg.activation_shortcut]
    if cfg.always_on_top:
        args.append("--always-on-top")
    if cfg.targets and cfg.targets != defaults.targets:
        args += ["--targets", cfg.targets]
    if cfg.user_agent:
        args += ["--user-agent", cfg.user_agent]
    if cfg.show_system_tray:
        args.append("--show-system-tray")
    if cfg.system_tray_icon:
        args += ["--system-tray-icon", cfg.system_tray_icon]
    for inject_file in cfg.inject or []:
        args += ["--inject", inject_file]
    for domain in cfg.safe_domain or []:
        args += ["--safe-domain", domain]

    return args


def _resolve_cmd(cmd: list[str]) -> list[str]:
    """Wrap command for Windows .cmd/.bat shim compatibility."""
    if sys.platform == "win32":
        return ["cmd.exe", "/c", *cmd]
    return cmd


def build_command(
    config: Mapping[str, Any] | BuildConfig,
    pake_bin: str = "pake",
    defaults: BuildDefaults = DEFAULTS,
) -> list[str]:
    """Full argv for a pake run."""
    return _resolve_cmd([pake_bin, *build_pake_args(config, defaults)])


# ─── Running ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class BuildEvent:
    """One line of pake output."""

    stream: Literal["stdout", "stderr"]
    line: str

    def format(self) -> str:
        return f"{self.stream}: {self.line}"


def _decode_line(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").rstrip("\r\n")


class BuildRun:
    """A single pake process and its live output.

    ``events()`` may be consumed once.  It yields every output line in
    arrival order and then either returns (exit code 0, or ``stop()`` was
    called) or raises ``ProcessSpawnError`` / ``ProcessExitError``.
    """

    def __init__(self, cmd: list[str], cwd: Path) -> None:
        self.cmd = cmd
        self.cwd = cwd
        self.returncode: int | None = None
        self._stop_flag = False
        self._process: asyncio.subprocess.Process | None = None
        self._sync_process: subprocess.Popen | None = None

    @property
    def stopped(self) -> bool:
        return self._stop_flag

    async def events(self) -> AsyncIterator[BuildEvent]:
        logger.info("Running %s (cwd=%s)", " ".join(self.cmd), self.cwd)
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self.cwd),
                limit=_LINE_LIMIT,
            )
        except NotImplementedError:
            logger.info("asyncio subprocess not available, using Popen fallback")
            async with aclosing(self._events_popen_fallback()) as fallback:
                async for event in fallback:
                    yield event
            return
        except OSError as e:
            raise ProcessSpawnError(f"Failed to start pake command: {e}") from e

        proc = self._process
        queue: asyncio.Queue[BuildEvent | None] = asyncio.Queue()

        async def _pump(reader: asyncio.StreamReader, stream: str) -> None:
            buffer = b""
            try:
                while True:
                    chunk = await reader.read(_CHUNK_SIZE)
                    if not chunk:
                        break
                    *lines, buffer = (buffer + chunk).split(b"\n")
                    for raw_line in lines:
                        await queue.put(BuildEvent(stream, _decode_line(raw_line)))
                    if len(buffer) >= _LINE_LIMIT:
                        await queue.put(BuildEvent(stream, _decode_line(buffer)))
                        buffer = b""
                if buffer:
                    await queue.put(BuildEvent(stream, _decode_line(buffer)))
            finally:
                await queue.put(None)

        assert proc.stdout is not None and proc.stderr is not None
        readers = [
            asyncio.create_task(_pump(proc.stdout, "stdout")),
            asyncio.create_task(_pump(proc.stderr, "stderr")),
        ]
        open_streams = len(readers)
        try:
            while open_streams:
                event = await queue.get()
                if event is None:
                    open_streams -= 1
                    continue
                logger.debug("pake %s", event.format())
                yield event
            await asyncio.gather(*readers)
            returncode = await proc.wait()
        finally:
            for task in readers:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*readers, return_exceptions=True)
            if proc.returncode is None:
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                # wait() only returns once both pipes are closed, so drain them.
                await proc.communicate()
            self._process = None

        self._finish(returncode)

    async def _events_popen_fallback(self) -> AsyncIterator[BuildEvent]:
        """Same contract as ``events`` using ``subprocess.Popen`` + reader threads.

        One thread per pipe pushes decoded lines into an ``asyncio.Queue``
        that this coroutine drains.
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[BuildEvent | None] = asyncio.Queue()

        try:
            proc = subprocess.Popen(
                self.cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=str(self.cwd),
            )
        except OSError as e:
            raise ProcessSpawnError(f"Failed to start pake command: {e}") from e
        self._sync_process = proc

        def _post(item: BuildEvent | None) -> None:
            if not loop.is_closed():
                loop.call_soon_threadsafe(queue.put_nowait, item)

        def _reader(pipe: IO[bytes], stream: str) -> None:
            try:
                for raw_line in pipe:
                    _post(BuildEvent(stream, _decode_line(raw_line)))
            finally:
                _post(None)

        assert proc.stdout is not None and proc.stderr is not None
        readers = [
            loop.run_in_executor(None, _reader, proc.stdout, "stdout"),
            loop.run_in_executor(None, _reader, proc.stderr, "stderr"),
        ]
        open_streams = len(readers)
        try:
            while open_streams:
                event = await queue.get()
                if event is None:
                    open_streams -= 1
                    continue
                logger.debug("pake %s", event.format())
                yield event
            returncode = await loop.run_in_executor(None, proc.wait)
            await asyncio.gather(*readers)
        finally:
            if proc.poll() is None:
                proc.kill()
                await loop.run_in_executor(None, proc.wait)
            # Reader threads end at EOF once the process is gone.
            await asyncio.gather(*readers, return_exceptions=True)
            proc.stdout.close()
            proc.stderr.close()
            self._sync_process = None

        self._finish(returncode)

    def _finish(self, returncode: int) -> None:
        self.returncode = returncode
        if returncode == 0:
            logger.info("pake finished successfully (cwd=%s)", self.cwd)
            return
        if self._stop_flag:
            logger.info("pake stopped with code %s (cwd=%s)", returncode, self.cwd)
            return
        logger.warning("pake exited with code %s (cwd=%s)", returncode, self.cwd)
        raise ProcessExitError(returncode)

    async def stop(self) -> None:
        self._stop_flag = True
        if self._process and self._process.returncode is None:
            try:
                self._process.terminate()
            except ProcessLookupError:
                pass
        if self._sync_process and self._sync_process.poll() is None:
            try:
                self._sync_process.terminate()
            except ProcessLookupError:
                pass


def prepare_build(
    config: Mapping[str, Any] | BuildConfig,
    project_id: str,
    manager: ProjectManager | None = None,
    *,
    pake_bin: str | None = None,
    defaults: BuildDefaults | None = None,
) -> BuildRun:
    """Validate the config and ready the project directory. Nothing is spawned yet."""
    from pakegui.config import get_settings
    from pakegui.projects import ProjectManager

    if pake_bin is None or defaults is None:
        settings = get_settings()
        pake_bin = pake_bin or settings.pake_bin
        defaults = defaults or settings.build_defaults()

    cmd = build_command(config, pake_bin, defaults)

    manager = manager or ProjectManager()
    project_dir = manager.get_project_path(project_id)
    try:
        project_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageError(f"Failed to create project directory: {e}") from e

    return BuildRun(cmd, project_dir)


async def stream_build(
    config: Mapping[str, Any] | BuildConfig,
    project_id: str,
    manager: ProjectManager | None = None,
    *,
    pake_bin: str | None = None,
    defaults: BuildDefaults | None = None,
) -> AsyncIterator[BuildEvent]:
    """Run pake for a project and yield its output as it arrives."""
    run = prepare_build(config, project_id, manager, pake_bin=pake_bin, defaults=defaults)
    async with aclosing(run.events()) as events:
        async for event in events:
            yield event


async def run_build(
    config: Mapping[str, Any] | BuildConfig,
    project_id: str,
    on_output: Callable[[str], Any],
    manager: ProjectManager | None = None,
    *,
    pake_bin: str | None = None,
    defaults: BuildDefaults | None = None,
) -> None:
    """Run pake and hand every line to ``on_output`` as ``"stdout: ..."``/``"stderr: ..."``.

    ``on_output`` may be a plain function or a coroutine function.  Process
    failures are reported as ``"error: ..."`` and then re-raised.
    """

    async def _emit(text: str) -> None:
        result = on_output(text)
        if inspect.isawaitable(result):
            await result

    run = prepare_build(config, project_id, manager, pake_bin=pake_bin, defaults=defaults)
    try:
        async with aclosing(run.events()) as events:
            async for event in events:
                await _emit(event.format())
    except (ProcessSpawnError, ProcessExitError) as e:
        await _emit(f"error: {e}")
        raise


__all__ = [
    "DEFAULTS",
    "BuildConfig",
    "BuildDefaults",
    "BuildEvent",
    "BuildRun",
    "build_command",
    "build_pake_args",
    "prepare_build",
    "run_build",
    "stream_build",
]
