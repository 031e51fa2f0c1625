"""
AiNote Backend — Status Route
===============================

What:  GET / reports that the process is up and the readiness of each
       dependency.
How:   Reads the supervisor's ReadinessSnapshot (no I/O, no connection attempts). The
       route itself requires no dependency, so it answers 200 even when both
       the store and the AI provider are down.
Who:   Polled by the UI, Docker health checks and operators.

Secrets (database password, API key) are never part of the response.
"""

from fastapi import APIRouter, Request

from app import __version__
from app.schemas.note import StatusResponse

router = APIRouter(tags=["Status"])


@router.get(
    "/",
    response_model=StatusResponse,
    summary="Service status",
    description="Always 200 while the process runs; `ready` is true only when every dependency is ready.",
)
async def service_status(request: Request) -> StatusResponse:
    snapshot = request.app.state.supervisor.snapshot()
    return StatusResponse(
        version=__version__,
        ready=snapshot.ready,
        status=snapshot.to_dict(),
    )
