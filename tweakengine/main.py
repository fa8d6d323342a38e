"""
Tweak Engine - FastAPI Application

HTTP entry point of the Tweak Engine.
Provides endpoints for submitting template runs and retrieving results.
"""

from __future__ import annotations
import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, BackgroundTasks, HTTPException, status
from fastapi.responses import JSONResponse, PlainTextResponse

from tweakengine import __version__
from tweakengine.config import get_settings
from tweakengine.models import (
    ArtifactsResponse,
    Entry,
    ErrorResponse,
    Group,
    History,
    Mode,
    RunCreateRequest,
    RunCreateResponse,
    RunStatus,
    RunStatusResponse,
    RunSummary,
)
from tweakengine.engine.loader import TemplateError, TemplateLoader
from tweakengine.engine.executor import ExecutionError, create_executor
from tweakengine.engine.emitter import dump_template
from tweakengine.storage import StorageManager, get_storage

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION SETUP
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Tweak Engine starting...")
    logger.info(f"Storage path: {get_storage().base_path.absolute()}")
    yield
    # Shutdown
    logger.info("Tweak Engine shutting down...")


app = FastAPI(
    title="Tweak Engine",
    description="""
    ## Template-Driven System Optimization

    This API provides endpoints for:
    - **Submitting runs** of a YAML optimization template
    - **Monitoring run status**
    - **Retrieving the resulting template** with per-entry History

    ### Modes
    - `analyze`: report whether the system matches each entry
    - `execute`: apply entries and capture rollback instructions
    - `rollback`: undo entries changed by a previous execute run

    ### Execution Flow
    1. Submit a template via POST /runs
    2. Monitor progress via GET /runs/{run_id}
    3. Download the resulting template via GET /runs/{run_id}/template
    4. Feed an execute result back with mode `rollback` to undo it
    """,
    version=__version__,
    lifespan=lifespan,
)

# Global state for tracking active runs
active_runs: Dict[str, Dict[str, Any]] = {}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def generate_run_id() -> str:
    """Generate unique run ID."""
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    unique = uuid.uuid4().hex[:6]
    return f"run_{timestamp}_{unique}"


def _require_run(storage: StorageManager, run_id: str) -> None:
    if not storage.run_exists(run_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Run not found: {run_id}",
        )


async def execute_run_async(
    run_id: str,
    yaml_content: str,
    mode: Mode,
    groups: Optional[list],
    storage: StorageManager,
) -> None:
    """
    Execute a template run asynchronously.

    This runs in a background task to not block the API response.
    """
    settings = get_settings()
    summary: Optional[RunSummary] = None

    try:
        active_runs[run_id]["status"] = RunStatus.RUNNING
        active_runs[run_id]["message"] = "Loading template..."

        template = TemplateLoader().parse(yaml_content, mode=mode)

        executor = create_executor(
            adapter_type=settings.adapter_type,
            host=settings.host,
            state_path=settings.system_state_path,
        )

        def progress_callback(group: Group, entry: Entry, history: History):
            if run_id in active_runs:
                active_runs[run_id]["current_entry"] = f"{group.id}/{entry.name}"

        executor.set_progress_callback(progress_callback)
        active_runs[run_id]["message"] = f"Running template in {mode.value} mode..."

        # Run in thread pool to not block event loop
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                lambda: executor.run(template, mode, groups=groups),
            )
        finally:
            summary = executor.summary

        summary.run_id = run_id
        summary.artifacts = [
            storage.save_template(run_id, dump_template(template)),
        ]
        storage.save_summary(run_id, summary)

        active_runs[run_id]["status"] = summary.status
        active_runs[run_id]["summary"] = summary
        active_runs[run_id]["message"] = "Run completed"

        logger.info(f"Run {run_id} completed: {summary.status.value}")

    except TemplateError as e:
        logger.error(f"Run {run_id} template error: {e}")
        _mark_failed(run_id, storage, summary, mode, f"Template error: {e}")

    except ExecutionError as e:
        logger.error(f"Run {run_id} aborted: {e.message}")
        _mark_failed(run_id, storage, summary, mode, f"Execution error: {e.message}")

    except Exception as e:
        logger.exception(f"Run {run_id} failed: {str(e)}")
        _mark_failed(run_id, storage, summary, mode, f"Execution error: {str(e)}")


def _mark_failed(
    run_id: str,
    storage: StorageManager,
    summary: Optional[RunSummary],
    mode: Mode,
    message: str,
) -> None:
    if summary is None:
        summary = RunSummary(mode=mode, started_at=datetime.now(timezone.utc))
    summary.run_id = run_id
    summary.status = RunStatus.FAILED
    summary.error_message = message
    storage.save_summary(run_id, summary)

    active_runs[run_id]["status"] = RunStatus.FAILED
    active_runs[run_id]["message"] = message
    active_runs[run_id]["summary"] = summary


# =============================================================================
# API ENDPOINTS
# =============================================================================

@app.get("/", tags=["Health"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Tweak Engine",
        "version": __version__,
        "status": "running",
        "endpoints": {
            "create_run": "POST /runs",
            "get_status": "GET /runs/{run_id}",
            "get_template": "GET /runs/{run_id}/template",
            "get_artifacts": "GET /runs/{run_id}/artifacts",
            "list_runs": "GET /runs",
        },
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "active_runs": len([r for r in active_runs.values() if r["status"] == RunStatus.RUNNING]),
    }


@app.post(
    "/runs",
    response_model=RunCreateResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Runs"],
    summary="Create and start a new template run",
)
async def create_run(
    request: RunCreateRequest,
    background_tasks: BackgroundTasks,
) -> RunCreateResponse:
    """
    Create and start a new template run.

    The run executes asynchronously. Use GET /runs/{run_id} to monitor progress.

    **Request Body:**
    - `template_yaml`: YAML template document
    - `mode`: analyze, execute or rollback (default: analyze)
    - `groups`: Optional group IDs to restrict the run to

    **Returns:**
    - `run_id`: Unique identifier for the run
    - `status`: Initial status
    - `message`: Status message
    """
    run_id = generate_run_id()
    storage = get_storage()

    # Validate template first
    try:
        template = TemplateLoader().parse(request.template_yaml, mode=request.mode)
    except TemplateError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "Template validation failed",
                "message": e.message,
                "errors": e.errors,
            },
        )

    storage.create_run(
        run_id,
        RunSummary(
            mode=request.mode,
            total_groups=len(template.groups),
            total_entries=sum(len(g.entries) for g in template.groups),
        ),
        request.template_yaml,
    )

    # Initialize run state
    active_runs[run_id] = {
        "status": RunStatus.CREATED,
        "message": "Run created, starting execution...",
        "current_entry": None,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }

    # Start background execution
    background_tasks.add_task(
        execute_run_async,
        run_id,
        request.template_yaml,
        request.mode,
        request.groups or None,
        storage,
    )

    logger.info(f"Run created: {run_id} ({request.mode.value})")

    return RunCreateResponse(
        run_id=run_id,
        status=RunStatus.CREATED,
        message=f"Run created in {request.mode.value} mode with {len(template.groups)} groups",
    )


@app.get(
    "/runs/{run_id}",
    response_model=RunStatusResponse,
    tags=["Runs"],
    summary="Get run status",
)
async def get_run_status(run_id: str) -> RunStatusResponse:
    """
    Get the current status of a run.

    **Returns:**
    - `run_id`: Run identifier
    - `status`: Current status (created/running/completed/failed)
    - `current_entry`: Last processed entry as `group/entry`
    - `summary`: Full summary (when finished)
    """
    # Check active runs first
    if run_id in active_runs:
        run_state = active_runs[run_id]
        return RunStatusResponse(
            run_id=run_id,
            status=run_state["status"],
            message=run_state.get("message"),
            current_entry=run_state.get("current_entry"),
            summary=run_state.get("summary"),
        )

    # Check storage
    summary = get_storage().load_summary(run_id)
    if summary is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Run not found: {run_id}",
        )

    return RunStatusResponse(
        run_id=run_id,
        status=summary.status,
        message=summary.error_message,
        summary=summary,
    )


@app.get(
    "/runs/{run_id}/template",
    response_class=PlainTextResponse,
    tags=["Runs"],
    summary="Get the resulting template document",
)
async def get_run_template(run_id: str) -> PlainTextResponse:
    """
    Get the template as persisted after the run, with History attached.

    The document of an execute run is valid input for a rollback run.
    """
    storage = get_storage()
    _require_run(storage, run_id)

    content = storage.load_template_yaml(run_id)
    if content is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Run has not produced a template: {run_id}",
        )
    return PlainTextResponse(content, media_type="application/x-yaml")


@app.get(
    "/runs/{run_id}/artifacts",
    response_model=ArtifactsResponse,
    tags=["Runs"],
    summary="List artifacts stored for a run",
)
async def get_artifacts(run_id: str) -> ArtifactsResponse:
    """
    Get list of artifacts stored for a run.

    Artifacts include:
    - `input.yaml`: Template as submitted
    - `template.yaml`: Template after the run
    - `summary.json`: Run summary
    """
    storage = get_storage()
    _require_run(storage, run_id)

    return ArtifactsResponse(
        run_id=run_id,
        artifacts=storage.list_artifacts(run_id),
    )


@app.get(
    "/runs/{run_id}/artifacts/{artifact_path:path}",
    tags=["Runs"],
    summary="Get specific artifact content",
)
async def get_artifact_content(run_id: str, artifact_path: str):
    """
    Get the content of a specific artifact.

    **Path Parameters:**
    - `run_id`: Run identifier
    - `artifact_path`: Path to artifact (e.g., "summary.json")
    """
    storage = get_storage()
    _require_run(storage, run_id)

    content = storage.get_artifact_content(run_id, artifact_path)
    if content is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Artifact not found: {artifact_path}",
        )

    return content


@app.get(
    "/runs",
    tags=["Runs"],
    summary="List all runs",
)
async def list_runs():
    """
    List all runs.

    Returns a list of run IDs with their current status.
    """
    storage = get_storage()

    runs = []
    for run_id in storage.get_all_runs():
        # Check active state first
        if run_id in active_runs:
            runs.append({
                "run_id": run_id,
                "status": active_runs[run_id]["status"],
                "current_entry": active_runs[run_id].get("current_entry"),
            })
            continue

        summary = storage.load_summary(run_id)
        if summary:
            runs.append({
                "run_id": run_id,
                "status": summary.status,
                "mode": summary.mode,
                "completed_at": summary.completed_at.isoformat() if summary.completed_at else None,
            })

    return {"runs": runs, "total": len(runs)}


@app.delete(
    "/runs/{run_id}",
    tags=["Runs"],
    summary="Delete a run and its artifacts",
)
async def delete_run(run_id: str):
    """
    Delete a run and all its artifacts.

    **Warning:** This action cannot be undone.
    """
    # Cannot delete running jobs
    if run_id in active_runs:
        if active_runs[run_id]["status"] in (RunStatus.CREATED, RunStatus.RUNNING):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Cannot delete a running execution",
            )
        del active_runs[run_id]

    if get_storage().delete_run(run_id):
        return {"message": f"Run {run_id} deleted successfully"}
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Run not found: {run_id}",
    )


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request, exc: Exception):
    """Global exception handler."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="Internal server error",
            detail=str(exc),
        ).model_dump(),
    )


# =============================================================================
# MAIN
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "tweakengine.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
