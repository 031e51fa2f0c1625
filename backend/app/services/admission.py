"""
AiNote Backend — Admission Gate
=================================

What:  Request-level guard that rejects work when a required dependency is
       not READY.
How:   check() reads a fresh ReadinessSnapshot on every call and raises
       ServiceUnavailableError naming each unavailable dependency.
Who:   Invoked by the route dependency built with app.routes.deps.require()
       before any NoteWorkflow operation runs.

The decision is never cached across requests.
"""

import logging
from typing import Iterable

from app.exceptions import ServiceUnavailableError
from app.services.dependency_base import Dependency
from app.services.supervisor import ConnectionSupervisor, ReadinessSnapshot

logger = logging.getLogger(__name__)


class AdmissionGate:
    """Checks dependency readiness for a request."""

    def __init__(self, supervisor: ConnectionSupervisor) -> None:
        self._supervisor = supervisor

    def check(self, required: Iterable[Dependency]) -> ReadinessSnapshot:
        """
        Admit the request or raise.

        Args:
            required: Dependencies the request needs, e.g. {STORE} for plain
                CRUD or {STORE, AI_PROVIDER} for the annotate workflow.

        Returns:
            The snapshot the decision was based on.

        Raises:
            ServiceUnavailableError: At least one required dependency is not
                READY; carries one reason per unavailable dependency.
        """
        snapshot = self._supervisor.snapshot()
        unavailable = {}
        for dependency in required:
            key = dependency.value
            status = snapshot.dependencies.get(key)
            if status is None:
                unavailable[key] = f"{key} is not registered"
            elif not status.ready:
                unavailable[key] = status.message

        if unavailable:
            logger.warning("Request rejected, unavailable: %s", ", ".join(sorted(unavailable)))
            raise ServiceUnavailableError(unavailable)
        return snapshot
