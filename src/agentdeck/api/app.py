"""
Core API backend for agentdeck.

This module exposes agent runs over HTTP for the dashboard and the remote CLI.
It exposes the following endpoints:
- **GET /health**  - liveness probe for health checks.
- **GET /api/agents** - list agent profiles and their tools.
- **POST /api/agent/run** - start a run; the response is a server-sent event stream of chunks.
- **POST /api/agent/runs/{run_id}/cancel** - stop an active run.
- **GET /api/jira/tickets**, **GET /api/repos** - dashboard lookups (see ``integrations``).
"""

import asyncio
import logging
import uuid
from typing import (
    AsyncIterator,
    Dict,
    List,
    Set,
)

from fastapi import (
    Depends,
    FastAPI,
    HTTPException,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from agentdeck.agent.agent_loop import (
    EmptyInputError,
    run_agent,
    validate_run_request,
)
from agentdeck.agent.cancellation import CancellationController
from agentdeck.agent.planner_interface import (
    BasePlanner,
    load_planner,
)
from agentdeck.agent.profiles import (
    PROFILES,
    UnknownAgentError,
)
from agentdeck.agent.sinks import SSESink
from agentdeck.api.integrations import router as integrations_router
from agentdeck.api.models import (
    AgentInfo,
    CancelResponse,
    RunAgentRequest,
)
from agentdeck.common import (
    AnsiColors,
    colored_print,
)
from agentdeck.config import (
    SECRET_SETTINGS,
    settings,
)
from agentdeck.core.schema import ErrorChunk

logger = logging.getLogger(__name__)

RUN_ID_HEADER = "X-Run-Id"

# Cancellation controllers of runs that are still streaming, keyed by run id
active_runs: Dict[str, CancellationController] = {}
_run_tasks: Set["asyncio.Task[None]"] = set()

app = FastAPI(title="agentdeck API", version="0.1.0", description="agentdeck agent harness API")

# Add CORS middleware to allow requests from the dashboard
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[RUN_ID_HEADER],
)
app.include_router(integrations_router)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
def get_planner() -> BasePlanner:
    """Model back-end for new runs (overridden in tests)."""
    try:
        return load_planner()
    except ValueError as exc:
        logger.error("Planner misconfigured: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def _forget_task(task: "asyncio.Task[None]") -> None:
    _run_tasks.discard(task)
    if not task.cancelled() and task.exception() is not None:
        logger.error("Agent run task failed", exc_info=task.exception())


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


@app.get("/api/agents", response_model=List[AgentInfo], summary="List agent profiles")
async def list_agents() -> List[AgentInfo]:
    """List every agent profile with the tools it may use."""
    return [
        AgentInfo(name=profile.name, tools=sorted(profile.allowed_tools))
        for profile in PROFILES.values()
    ]


@app.post("/api/agent/run", summary="Run an agent and stream its chunks")
async def run_agent_endpoint(
    req: RunAgentRequest, planner: BasePlanner = Depends(get_planner)
) -> StreamingResponse:
    """
    Start a run and stream it as ``text/event-stream``.

    Invalid requests are rejected with HTTP 400 before the stream opens.  The run id needed to
    cancel the run is returned in the ``X-Run-Id`` header; closing the connection cancels it too.
    """
    try:
        validate_run_request(req.agent, req.user_input)
    except (UnknownAgentError, EmptyInputError) as exc:
        logger.warning("Rejected run request: %s", exc)
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    run_id = uuid.uuid4().hex
    controller = CancellationController()
    sink = SSESink()
    active_runs[run_id] = controller

    async def drive() -> None:
        try:
            await run_agent(
                req.agent,
                req.user_input,
                extra_context=req.system_context,
                max_steps=req.max_steps,
                sink=sink,
                planner=planner,
                cancellation=controller,
                project_path=req.project_path,
                repo_slugs=req.repo_slugs,
                ticket_key=req.ticket_key,
                debug=req.debug or settings.DEBUG,
            )
        finally:
            active_runs.pop(run_id, None)
            if not sink.closed:
                logger.error("Run %s ended without closing its stream", run_id)
                sink.on_chunk(ErrorChunk(message="Agent run failed"))
                sink.on_close()

    task = asyncio.create_task(drive())
    _run_tasks.add(task)
    task.add_done_callback(_forget_task)
    logger.info("Started run %s (agent=%s)", run_id, req.agent)

    async def stream() -> AsyncIterator[str]:
        try:
            async for frame in sink.frames():
                yield frame
        finally:
            if not task.done() and controller.cancel():
                logger.info("Client disconnected; cancelling run %s", run_id)

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            RUN_ID_HEADER: run_id,
        },
    )


@app.post(
    "/api/agent/runs/{run_id}/cancel",
    response_model=CancelResponse,
    response_model_by_alias=True,
    summary="Cancel an active run",
)
async def cancel_run(run_id: str) -> CancelResponse:
    """Request cancellation of an active run."""
    controller = active_runs.get(run_id)
    if controller is None:
        raise HTTPException(status_code=404, detail=f"Run '{run_id}' not found")
    controller.cancel()
    return CancelResponse(run_id=run_id, cancelled=True)


@app.get("/", summary="API root")
async def root() -> dict[str, str]:
    """Return a simple welcome message."""
    return {"message": "Welcome to the agentdeck API! Use /docs for API documentation."}


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload (useful in development).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn out of the import path of the library modules
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:  # Use the default from settings if not provided
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting agentdeck API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    logger.debug("API settings: %s", settings.model_dump(exclude=SECRET_SETTINGS))

    colored_print(f"🃏 agentdeck API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "agentdeck.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m agentdeck.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
