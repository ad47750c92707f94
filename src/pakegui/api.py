"""Pake GUI — FastAPI API router.

Provides REST endpoints for:
  /api/projects                    — project CRUD + paths
  /api/projects/{id}/build         — run pake, output streamed as NDJSON
  /api/preview                     — pake command preview
  /api/project-id                  — new project id from the naming pattern
  /api/environment                 — toolchain checks + installers
  /api/open                        — open a path with the OS default app
"""

import json
import logging
from contextlib import aclosing
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from pakegui.errors import (
    NotFoundError,
    ParseError,
    ProcessExitError,
    ProcessSpawnError,
    ValidationError,
)
from pakegui.projects import Project, ProjectManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Pake GUI"])


def get_project_manager() -> ProjectManager:
    return ProjectManager()


async def _read_body(request: Request) -> dict[str, Any]:
    body = await request.body()
    if not body:
        return {}
    try:
        data = await request.json()
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail=f"Invalid JSON body: {e}")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return data


def _dump(project: Project) -> dict[str, Any]:
    return project.model_dump(by_alias=True)


# ─── Projects ────────────────────────────────────────────────────────────


@router.get("/projects")
async def get_projects():
    """List all saved projects, most recent first."""
    from pakegui.summary import format_projects_summary

    try:
        projects = get_project_manager().list_projects()
    except ParseError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Listing projects failed")
        raise HTTPException(status_code=500, detail=str(e))
    return {
        "projects": [_dump(p) for p in projects],
        "summary": format_projects_summary(projects),
    }


@router.get("/projects/{project_id}")
async def get_project(project_id: str):
    try:
        project = get_project_manager().load_project(project_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (ValidationError, ParseError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Loading project failed: %s", project_id)
        raise HTTPException(status_code=500, detail=str(e))
    return {"project": _dump(project)}


@router.put("/projects/{project_id}")
async def save_project_endpoint(project_id: str, request: Request):
    """Create or overwrite a project. ``lastModified`` is always set server-side."""
    data = await _read_body(request)
    name = data.get("name")
    config = data.get("config")
    if not isinstance(name, str):
        raise HTTPException(status_code=400, detail="Missing 'name' field")
    if not isinstance(config, dict):
        raise HTTPException(status_code=400, detail="Missing 'config' object")

    try:
        project = get_project_manager().save_project(
            Project(id=project_id, name=name, config=config)
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Saving project failed: %s", project_id)
        raise HTTPException(status_code=500, detail=str(e))
    return {"status": "ok", "project": _dump(project)}


@router.delete("/projects/{project_id}")
async def delete_project_endpoint(project_id: str):
    try:
        get_project_manager().delete_project(project_id)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Deleting project failed: %s", project_id)
        raise HTTPException(status_code=500, detail=str(e))
    return {"status": "ok", "message": f"Project '{project_id}' deleted"}


@router.get("/projects/{project_id}/path")
async def get_project_path(project_id: str):
    try:
        path = get_project_manager().get_project_path(project_id)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"path": str(path)}


@router.get("/projects/{project_id}/config-path")
async def get_project_config_path(project_id: str):
    try:
        path = get_project_manager().get_project_config_path(project_id)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"path": str(path)}


@router.get("/projects/{project_id}/output-path")
async def get_project_output_path(project_id: str):
    """Path of the bundle pake produced, or null if none is found."""
    try:
        path = get_project_manager().get_project_output_path(project_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (ValidationError, ParseError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Output lookup failed: %s", project_id)
        raise HTTPException(status_code=500, detail=str(e))
    return {"path": str(path) if path else None}


# ─── Build ───────────────────────────────────────────────────────────────


@router.post("/projects/{project_id}/build")
async def build_project_endpoint(project_id: str, request: Request):
    """Run pake for a project and stream its output as NDJSON.

    Body: ``{"config": {...}}``.  Without a config the saved project's
    config is used.  Each line is one of:
      {"type": "stdout" | "stderr", "line": "..."}
      {"type": "error", "message": "..."}      (terminal)
      {"type": "done", "stopped": false}       (terminal)
    """
    from pakegui.builder import prepare_build

    data = await _read_body(request)
    manager = get_project_manager()

    config = data.get("config")
    try:
        if config is None:
            config = manager.load_project(project_id).config
        if not isinstance(config, dict):
            raise HTTPException(status_code=400, detail="'config' must be an object")
        run = prepare_build(config, project_id, manager)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (ValidationError, ParseError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Build setup failed: %s", project_id)
        raise HTTPException(status_code=500, detail=str(e))

    async def _stream():
        try:
            async with aclosing(run.events()) as events:
                async for event in events:
                    yield json.dumps({"type": event.stream, "line": event.line}) + "\n"
        except (ProcessSpawnError, ProcessExitError) as e:
            yield json.dumps({"type": "error", "message": str(e)}) + "\n"
            return
        except Exception as e:
            logger.exception("Build failed: %s", project_id)
            yield json.dumps({"type": "error", "message": str(e)}) + "\n"
            return
        yield json.dumps({"type": "done", "stopped": run.stopped}) + "\n"

    return StreamingResponse(_stream(), media_type="application/x-ndjson")


@router.post("/preview")
async def preview_endpoint(request: Request):
    """Preview the pake command for a config without running it."""
    from pakegui.builder import build_pake_args
    from pakegui.config import get_settings
    from pakegui.summary import format_command_preview, format_config_summary

    data = await _read_body(request)
    config = data.get("config") or {}
    if not isinstance(config, dict):
        raise HTTPException(status_code=400, detail="'config' must be an object")

    settings = get_settings()
    defaults = settings.build_defaults()
    try:
        command = format_command_preview(config, settings.pake_bin, defaults)
        args = build_pake_args(config, defaults) if config.get("url") else []
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "command": command,
        "args": args,
        "summary": format_config_summary(config, defaults),
    }


@router.post("/project-id")
async def project_id_endpoint(request: Request):
    """Generate a new project id from the configured (or given) naming pattern."""
    from pakegui.config import get_settings
    from pakegui.projects import generate_project_id

    data = await _read_body(request)
    pattern = data.get("pattern") or get_settings().project_id_pattern
    name = data.get("name") or ""
    if not isinstance(pattern, str) or not isinstance(name, str):
        raise HTTPException(status_code=400, detail="'pattern' and 'name' must be strings")
    return {"id": generate_project_id(pattern, name)}


# ─── Environment ─────────────────────────────────────────────────────────


@router.get("/environment")
async def get_environment():
    """Check node, bun, rust, Visual Studio and pake."""
    from pakegui.environment import check_environment

    statuses = await check_environment()
    return {"environment": {tool: status.to_dict() for tool, status in statuses.items()}}


@router.post("/environment/{tool}/install")
async def install_tool_endpoint(tool: str):
    from pakegui.environment import install_tool

    try:
        return install_tool(tool)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Tool install failed: %s", tool)
        raise HTTPException(status_code=500, detail=str(e))


# ─── System ──────────────────────────────────────────────────────────────


@router.post("/open")
async def open_path_endpoint(request: Request):
    """Open a file or folder with the OS default handler."""
    from pakegui.system import open_path

    data = await _read_body(request)
    path = data.get("path", "")
    if not isinstance(path, str) or not path.strip():
        raise HTTPException(status_code=400, detail="Missing 'path' field")

    try:
        open_path(path.strip())
    except ProcessSpawnError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"status": "ok"}
