"""
AiNote Backend — FastAPI Application Factory
==============================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn to start the server (uvicorn app.main:app).
When:  Once at server startup; the returned app handles all subsequent requests.

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware Chain:                                  │
    │  ┌──────────┐ ┌──────────┐ ┌──────┐ ┌────────────┐  │
    │  │ Req ID   │→│ Logging  │→│ GZip │→│ CORS       │  │
    │  └──────────┘ └──────────┘ └──────┘ └────────────┘  │
    │                                                     │
    │  Admission: require(store[, ai_provider]) → 503     │
    │                                                     │
    │  Routes:                                            │
    │  ┌──────────┐ ┌──────────────────────────────────┐  │
    │  │ GET /    │ │ /notes, /notes/plain, /notes/{id} │  │
    │  └──────────┘ └──────────────────────────────────┘  │
    │                                                     │
    │  Exception Handlers:                                │
    │  ┌──────────────────────────────────────────────┐   │
    │  │ Validation→400 │ NotFound→404 │ Conflict→409 │   │
    │  │ Unavailable→503 │ AI→500 │ Persistence→500   │   │
    │  └──────────────────────────────────────────────┘   │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Configure logging
    2. Validate settings per dependency (missing ones → UNCONFIGURED)
    3. Bring up the store and the AI provider concurrently
    4. Create the AdmissionGate and NoteWorkflow
    5. Install the event-loop exception handler

    The server starts serving even if a dependency is down; requests that
    need it get 503 until the process is restarted with a working setup.

    Shutdown:
    1. Restore the previous event-loop exception handler
    2. Close every dependency handle (dispose the database engine)
"""

import asyncio
import logging
import os
import signal
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Iterable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from app import __version__, config
from app.config import Settings
from app.database import StoreHandle
from app.exceptions import (
    AIServiceError,
    ConflictError,
    NotFoundError,
    PersistenceError,
    ServiceUnavailableError,
    ValidationError,
)
from app.middleware.logging import UNAVAILABLE_STATE_KEY, RequestLoggingMiddleware
from app.middleware.request_id import RequestIDMiddleware, request_id_var
from app.routes import health, notes
from app.services.admission import AdmissionGate
from app.services.dependency_base import Dependency, DependencyHandle
from app.services.gemini_service import GeminiService
from app.services.note_service import NoteWorkflow
from app.services.supervisor import ConnectionSupervisor

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger once at startup.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),  # Docker captures stdout
        ],
        force=True,
    )

    # Third-party libraries log every operation at DEBUG/INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Supervisory Boundary
# ══════════════════════════════════════════════════════════════════════════

def request_shutdown() -> None:
    """Ask the server for a graceful shutdown (uvicorn handles SIGTERM)."""
    logger.critical("Requesting graceful shutdown of process %d", os.getpid())
    os.kill(os.getpid(), signal.SIGTERM)


def handle_loop_exception(loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
    """
    Event-loop exception handler installed by the lifespan.

    Errors reaching the loop were not handled by any request (e.g. a failed
    task nobody awaited). They are logged at CRITICAL and the process shuts
    down gracefully: in-flight requests finish, new connections are refused.
    """
    exc = context.get("exception")
    logger.critical(
        "Unhandled error in event loop: %s",
        context.get("message", "no message"),
        exc_info=(type(exc), exc, exc.__traceback__) if exc is not None else None,
    )
    request_shutdown()


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Bring dependencies up on startup and release them on shutdown.

    Dependency failures never abort startup; they are reflected in the
    readiness snapshot and enforced per request by the AdmissionGate.
    """
    # ── Startup ───────────────────────────────────────────────────────────
    cfg: Settings = app.state.settings
    supervisor: ConnectionSupervisor = app.state.supervisor

    setup_logging(cfg.log_level)
    logger.info("=" * 60)
    logger.info("AiNote Backend %s starting up...", __version__)

    supervisor.configure(cfg)  # logs each missing setting
    snapshot = await supervisor.bring_up()

    handles = supervisor.handles
    app.state.admission_gate = AdmissionGate(supervisor)
    app.state.workflow = NoteWorkflow(
        store=handles.get(Dependency.STORE.value),
        ai=handles.get(Dependency.AI_PROVIDER.value),
    )

    loop = asyncio.get_running_loop()
    previous_handler = loop.get_exception_handler()
    loop.set_exception_handler(handle_loop_exception)

    if snapshot.ready:
        logger.info("All dependencies ready")
    else:
        logger.warning("Starting with unavailable dependencies; affected requests get 503")
    logger.info("Server ready at http://%s:%d", cfg.backend_host, cfg.backend_port)
    logger.info("=" * 60)

    try:
        yield  # Application runs here
    finally:
        # ── Shutdown ──────────────────────────────────────────────────────
        logger.info("AiNote Backend shutting down...")
        loop.set_exception_handler(previous_handler)
        await supervisor.shutdown()
        logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(
    status_code: int,
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    rid = request_id_var.get("")
    content: Dict[str, Any] = {"error": error, "message": message}
    if details:
        content["details"] = details
    content["request_id"] = rid
    # The catch-all handler runs outside RequestIDMiddleware, so set it here too
    headers = {"X-Request-ID": rid} if rid else None
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to HTTP status codes and the common error body.

    Handler hierarchy:
        ValidationError / RequestValidationError → 400
        NotFoundError                            → 404
        ConflictError                            → 409
        ServiceUnavailableError                  → 503 (lists each dependency)
        AIServiceError                           → 500 ai_service_error
        PersistenceError                         → 500 server_error (generic)
        Exception (fallback)                     → 500 internal_server_error

    Internal details (SQL, driver messages, stack traces) are only logged.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return _error_response(400, "validation_error", exc.message, exc.context)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        """Malformed body or path parameter; reported as 400 like blank content."""
        errors = [
            {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
            for e in exc.errors()
        ]
        first = errors[0]["msg"] if errors else "Invalid request"
        logger.warning("[%s] Request validation failed: %s", request_id_var.get(""), first)
        return _error_response(400, "validation_error", f"Invalid request: {first}", {"errors": errors})

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(404, "not_found", exc.message)

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        return _error_response(409, "conflict", exc.message)

    @app.exception_handler(ServiceUnavailableError)
    async def handle_service_unavailable(request: Request, exc: ServiceUnavailableError):
        setattr(request.state, UNAVAILABLE_STATE_KEY, sorted(exc.unavailable))
        return _error_response(
            503,
            "service_unavailable",
            exc.message,
            {"dependencies": exc.unavailable},
        )

    @app.exception_handler(AIServiceError)
    async def handle_ai_error(request: Request, exc: AIServiceError):
        logger.error("[%s] AI service error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return _error_response(500, "ai_service_error", exc.message)

    @app.exception_handler(PersistenceError)
    async def handle_persistence_error(request: Request, exc: PersistenceError):
        # Full context server-side only
        logger.error("[%s] Persistence error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return _error_response(
            500,
            "server_error",
            "An internal error occurred. Please try again later.",
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s",
            request_id_var.get(""),
            str(exc),
            exc_info=True,
        )
        return _error_response(
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    settings: Optional[Settings] = None,
    handles: Optional[Iterable[DependencyHandle]] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Settings to use; defaults to the module-level ``settings``.
        handles: Dependency handles to supervise; defaults to a StoreHandle
            and a GeminiService. Tests pass their own handles here.
    """
    cfg = settings if settings is not None else config.settings
    if handles is None:
        handles = [StoreHandle(), GeminiService()]

    app = FastAPI(
        title="AiNote API",
        description=(
            "Note-taking service that stores short notes and, on request, "
            "enriches them with an AI-generated learning suggestion."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.supervisor = ConnectionSupervisor(handles)

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added executes first: RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(health.router)
    app.include_router(notes.router)

    return app


# uvicorn expects `app.main:app` to be importable
app = create_app()
