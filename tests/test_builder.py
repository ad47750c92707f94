import asyncio
import sys
import textwrap

import pytest

from pakegui import builder
from pakegui.builder import (
    BuildConfig,
    BuildDefaults,
    BuildEvent,
    build_command,
    build_pake_args,
    prepare_build,
    run_build,
    stream_build,
)
from pakegui.errors import ErrorKind, ProcessExitError, ProcessSpawnError, ValidationError

# ─── Translation ─────────────────────────────────────────────────────────


def test_defaults_are_suppressed():
    config = {"url": "https://example.com", "width": 1200, "height": 780}

    assert build_pake_args(config) == ["https://example.com"]


def test_flags_follow_a_stable_order():
    config = {"url": "a.html", "name": "MyApp", "fullscreen": True, "inject": ["a.js", "b.js"]}

    assert build_pake_args(config) == [
        "a.html",
        "--name", "MyApp",
        "--fullscreen",
        "--inject", "a.js",
        "--inject", "b.js",
    ]


def test_every_option_is_translated():
    config = {
        "url": "https://example.com",
        "name": "App",
        "icon": "icon.png",
        "width": 800,
        "height": 600,
        "useLocalFile": True,
        "fullscreen": True,
        "hideTitleBar": True,
        "multiArch": True,
        "debug": True,
        "activationShortcut": "CmdOrControl+Shift+P",
        "alwaysOnTop": True,
        "targets": "deb",
        "userAgent": "Agent/1.0",
        "showSystemTray": True,
        "systemTrayIcon": "tray.png",
        "inject": ["style.css"],
        "safeDomain": ["example.org"],
    }

    assert build_pake_args(config) == [
        "https://example.com",
        "--name", "App",
        "--icon", "icon.png",
        "--width", "800",
        "--height", "600",
        "--use-local-file",
        "--fullscreen",
        "--hide-title-bar",
        "--multi-arch",
        "--debug",
        "--activation-shortcut", "CmdOrControl+Shift+P",
        "--always-on-top",
        "--targets", "deb",
        "--user-agent", "Agent/1.0",
        "--show-system-tray",
        "--system-tray-icon", "tray.png",
        "--inject", "style.css",
        "--safe-domain", "example.org",
    ]


def test_false_and_empty_options_are_omitted():
    config = {
        "url": "https://example.com",
        "name": "",
        "fullscreen": False,
        "debug": False,
        "inject": [],
        "targets": "all",
    }

    assert build_pake_args(config) == ["https://example.com"]


def test_custom_defaults_change_what_is_suppressed():
    defaults = BuildDefaults(width=800, height=600, targets="deb")
    config = {"url": "https://example.com", "width": 800, "height": 780, "targets": "deb"}

    assert build_pake_args(config, defaults) == ["https://example.com", "--height", "780"]


@pytest.mark.parametrize("config", [{}, {"url": ""}, {"url": "   "}, {"url": None}])
def test_missing_url_fails_validation(config):
    with pytest.raises(ValidationError) as exc_info:
        build_pake_args(config)
    assert exc_info.value.kind is ErrorKind.MISSING_REQUIRED_FIELD


def test_wrong_field_type_fails_validation():
    with pytest.raises(ValidationError) as exc_info:
        build_pake_args({"url": "https://example.com", "width": "wide"})
    assert exc_info.value.kind is ErrorKind.INVALID_FIELD
    assert "width" in str(exc_info.value)


def test_non_string_list_entries_are_skipped():
    config = {
        "url": "https://example.com",
        "inject": ["a.js", None, 3, "b.css"],
        "safeDomain": [None, "example.org"],
    }

    assert build_pake_args(config) == [
        "https://example.com",
        "--inject", "a.js",
        "--inject", "b.css",
        "--safe-domain", "example.org",
    ]


def test_unknown_keys_are_kept_but_not_emitted():
    cfg = BuildConfig.from_mapping({"url": "https://example.com", "theme": "dark"})

    assert cfg.model_extra == {"theme": "dark"}
    assert build_pake_args(cfg) == ["https://example.com"]


def test_build_command_prepends_executable(monkeypatch):
    monkeypatch.setattr(sys, "platform", "linux")

    assert build_command({"url": "https://example.com"}, "/opt/pake") == [
        "/opt/pake",
        "https://example.com",
    ]


def test_build_command_wraps_with_cmd_on_windows(monkeypatch):
    monkeypatch.setattr(sys, "platform", "win32")

    assert build_command({"url": "https://example.com"}) == [
        "cmd.exe", "/c", "pake", "https://example.com",
    ]


def test_build_event_format():
    assert BuildEvent("stderr", "boom").format() == "stderr: boom"


# ─── Running ─────────────────────────────────────────────────────────────
#
# A small Python script stands in for pake: the script path is the "url",
# so ``[sys.executable, script]`` is the command that gets run.


def _script(tmp_path, body: str) -> str:
    path = tmp_path / "fake_pake.py"
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return str(path)


_CHATTY = """
    import sys
    print("building", flush=True)
    print("warn: slow", file=sys.stderr, flush=True)
    print("done", flush=True)
"""

_FAILING = """
    import sys
    print("step 1", flush=True)
    print("fatal", file=sys.stderr, flush=True)
    sys.exit(1)
"""


async def _collect(run) -> list[BuildEvent]:
    return [event async for event in run.events()]


@pytest.mark.asyncio
async def test_build_relays_stdout_and_stderr_lines(tmp_path, manager):
    run = prepare_build(
        {"url": _script(tmp_path, _CHATTY)}, "demo", manager, pake_bin=sys.executable,
        defaults=BuildDefaults(),
    )

    events = await _collect(run)

    assert [e for e in events if e.stream == "stdout"] == [
        BuildEvent("stdout", "building"),
        BuildEvent("stdout", "done"),
    ]
    assert [e for e in events if e.stream == "stderr"] == [BuildEvent("stderr", "warn: slow")]
    assert run.returncode == 0
    assert run.cwd == manager.get_project_path("demo")
    assert run.cwd.is_dir()


@pytest.mark.asyncio
async def test_very_long_line_is_relayed_in_pieces(tmp_path, manager):
    script = _script(tmp_path, """
        import sys
        sys.stdout.write("x" * (2 * 1024 * 1024) + "\\n")
        for i in range(2000):
            sys.stdout.write(f"line {i}\\n")
        sys.stdout.flush()
    """)
    run = prepare_build(
        {"url": script}, "demo", manager, pake_bin=sys.executable, defaults=BuildDefaults()
    )

    events = await asyncio.wait_for(_collect(run), timeout=30)

    long_parts = [e.line for e in events if e.line.startswith("x")]
    assert len(long_parts) > 1
    assert sum(len(part) for part in long_parts) == 2 * 1024 * 1024
    assert [e.line for e in events if e.line.startswith("line ")] == [
        f"line {i}" for i in range(2000)
    ]
    assert run.returncode == 0


@pytest.mark.asyncio
async def test_build_runs_in_project_directory(tmp_path, manager):
    script = _script(tmp_path, """
        import os
        print(os.getcwd(), flush=True)
    """)

    events = [
        e async for e in stream_build(
            {"url": script}, "demo", manager, pake_bin=sys.executable, defaults=BuildDefaults()
        )
    ]

    assert events[0].line == str(manager.get_project_path("demo"))


@pytest.mark.asyncio
async def test_non_zero_exit_raises_after_output(tmp_path, manager):
    run = prepare_build(
        {"url": _script(tmp_path, _FAILING)}, "demo", manager, pake_bin=sys.executable,
        defaults=BuildDefaults(),
    )
    seen: list[BuildEvent] = []

    with pytest.raises(ProcessExitError) as exc_info:
        async for event in run.events():
            seen.append(event)

    assert BuildEvent("stdout", "step 1") in seen
    assert BuildEvent("stderr", "fatal") in seen
    assert exc_info.value.returncode == 1
    assert "exit code 1" in str(exc_info.value)


@pytest.mark.asyncio
async def test_missing_executable_raises_spawn_error(manager):
    run = prepare_build(
        {"url": "https://example.com"}, "demo", manager,
        pake_bin="/nonexistent/pake-binary", defaults=BuildDefaults(),
    )

    with pytest.raises(ProcessSpawnError):
        await _collect(run)


def test_invalid_config_fails_before_anything_runs(manager):
    with pytest.raises(ValidationError):
        prepare_build({}, "demo", manager, pake_bin="pake", defaults=BuildDefaults())

    assert not manager.get_project_path("demo").exists()


@pytest.mark.asyncio
async def test_run_build_formats_lines_for_callback(tmp_path, manager):
    lines: list[str] = []

    await run_build(
        {"url": _script(tmp_path, _CHATTY)}, "demo", lines.append, manager,
        pake_bin=sys.executable, defaults=BuildDefaults(),
    )

    assert "stdout: building" in lines
    assert "stdout: done" in lines
    assert "stderr: warn: slow" in lines
    assert lines.index("stdout: building") < lines.index("stdout: done")


@pytest.mark.asyncio
async def test_run_build_reports_failure_then_raises(tmp_path, manager):
    lines: list[str] = []

    async def _on_output(text: str) -> None:
        lines.append(text)

    with pytest.raises(ProcessExitError):
        await run_build(
            {"url": _script(tmp_path, _FAILING)}, "demo", _on_output, manager,
            pake_bin=sys.executable, defaults=BuildDefaults(),
        )

    assert "stdout: step 1" in lines
    assert lines[-1] == "error: Command terminated with non-zero exit code 1"


@pytest.mark.asyncio
async def test_popen_fallback_has_same_contract(tmp_path, manager, monkeypatch):
    async def _unsupported(*args, **kwargs):
        raise NotImplementedError

    monkeypatch.setattr(builder.asyncio, "create_subprocess_exec", _unsupported)
    run = prepare_build(
        {"url": _script(tmp_path, _FAILING)}, "demo", manager, pake_bin=sys.executable,
        defaults=BuildDefaults(),
    )
    seen: list[BuildEvent] = []

    with pytest.raises(ProcessExitError):
        async for event in run.events():
            seen.append(event)

    assert BuildEvent("stdout", "step 1") in seen
    assert BuildEvent("stderr", "fatal") in seen


@pytest.mark.asyncio
async def test_stop_ends_run_without_error(tmp_path, manager):
    script = _script(tmp_path, """
        import time
        print("started", flush=True)
        time.sleep(30)
    """)
    run = prepare_build(
        {"url": script}, "demo", manager, pake_bin=sys.executable, defaults=BuildDefaults()
    )
    seen: list[BuildEvent] = []

    async def _consume():
        async for event in run.events():
            seen.append(event)
            if event.line == "started":
                await run.stop()

    await asyncio.wait_for(_consume(), timeout=10)

    assert run.stopped
    assert seen == [BuildEvent("stdout", "started")]
    assert run.returncode != 0


@pytest.mark.asyncio
async def test_popen_fallback_cleans_up_when_abandoned(tmp_path, manager, monkeypatch):
    async def _unsupported(*args, **kwargs):
        raise NotImplementedError

    monkeypatch.setattr(builder.asyncio, "create_subprocess_exec", _unsupported)
    script = _script(tmp_path, """
        import time
        print("started", flush=True)
        time.sleep(30)
    """)
    run = prepare_build(
        {"url": script}, "demo", manager, pake_bin=sys.executable, defaults=BuildDefaults()
    )
    events = run.events()

    first = await asyncio.wait_for(events.__anext__(), timeout=10)
    proc = run._sync_process
    await asyncio.wait_for(events.aclose(), timeout=10)

    assert first == BuildEvent("stdout", "started")
    assert proc.poll() is not None
    assert proc.stdout.closed and proc.stderr.closed
    assert run._sync_process is None
