"""
AiNote Backend — Route Dependencies
=====================================

What:  FastAPI dependencies shared by the note routes.
How:   require(*deps) builds a dependency that runs the AdmissionGate for the
       given dependencies on every request; get_workflow() returns the
       NoteWorkflow created by the lifespan.

Usage:
    @router.get("/notes", dependencies=[Depends(require(Dependency.STORE))])
"""

from typing import Awaitable, Callable

from fastapi import Request

from app.services.admission import AdmissionGate
from app.services.dependency_base import Dependency
from app.services.note_service import NoteWorkflow
from app.services.supervisor import ReadinessSnapshot


def require(*dependencies: Dependency) -> Callable[[Request], Awaitable[ReadinessSnapshot]]:
    """Return a route dependency admitting the request only if ``dependencies`` are READY."""
    required = tuple(dependencies)

    # async so FastAPI runs it on the event loop; check() performs no I/O
    async def check_admission(request: Request) -> ReadinessSnapshot:
        gate: AdmissionGate = request.app.state.admission_gate
        return gate.check(required)

    return check_admission


def get_workflow(request: Request) -> NoteWorkflow:
    return request.app.state.workflow
