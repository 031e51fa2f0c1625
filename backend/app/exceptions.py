"""
AiNote Backend — Custom Exception Hierarchy
=============================================

What:  Application-specific exceptions for every failure class of the service.
How:   Each exception carries a user-facing message and an optional context
       dict. Request-time exceptions are raised by the admission gate and the
       note workflow and turned into JSON responses by the handlers registered
       in main.py. Startup-time exceptions are never raised: dependency
       handles keep them as captured state for diagnostics.

Exception Hierarchy:
    AiNoteError (base)
    ├── ConfigurationMissingError   startup, captured on the handle
    ├── DependencyUnreachableError  startup, captured on the handle
    ├── ServiceUnavailableError     → 503 Service Unavailable
    ├── ValidationError             → 400 Bad Request
    ├── NotFoundError               → 404 Not Found
    ├── ConflictError               → 409 Conflict
    ├── AIServiceError              → 500 Internal Server Error
    └── PersistenceError            → 500 Internal Server Error (generic body)
"""

from typing import Any, Dict, List, Optional


class AiNoteError(Exception):
    """
    Base exception for all AiNote application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged; only some handlers return it)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


# ══════════════════════════════════════════════════════════════════════════
# Startup-time (captured as dependency state, never propagated)
# ══════════════════════════════════════════════════════════════════════════


class ConfigurationMissingError(AiNoteError):
    """
    Required settings for a dependency are absent.

    Recorded by DependencyHandle.configure(); the handle stays UNCONFIGURED
    and no connection is attempted with partial settings.
    """

    def __init__(self, dependency: str, missing: List[str]):
        message = f"{dependency} is not configured; missing settings: {', '.join(missing)}"
        super().__init__(
            message=message,
            context={"dependency": dependency, "missing": list(missing)},
        )
        self.dependency = dependency
        self.missing = list(missing)


class DependencyUnreachableError(AiNoteError):
    """
    The single connection attempt of a configured dependency failed.

    ``reason`` is one of the FailureReason values; ``detail`` is the
    underlying error text and is only written to the server log.
    """

    def __init__(self, dependency: str, reason: str, detail: str = ""):
        message = f"{dependency} is unreachable ({reason})"
        super().__init__(
            message=message,
            context={"dependency": dependency, "reason": reason, "detail": detail},
        )
        self.dependency = dependency
        self.reason = reason
        self.detail = detail


# ══════════════════════════════════════════════════════════════════════════
# Request-time
# ══════════════════════════════════════════════════════════════════════════


class ServiceUnavailableError(AiNoteError):
    """
    A dependency required by the request is not READY.

    Raised by the AdmissionGate before the request reaches the workflow.
    ``unavailable`` maps each missing dependency name to a readable reason.
    """

    def __init__(self, unavailable: Dict[str, str]):
        names = ", ".join(sorted(unavailable))
        super().__init__(
            message=f"Service temporarily unavailable: {names} not ready",
            context={"dependencies": dict(unavailable)},
        )
        self.unavailable = dict(unavailable)


class ValidationError(AiNoteError):
    """
    Client input failed validation (HTTP 400).

    Raised for blank note content and for malformed request bodies or path
    parameters.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(AiNoteError):
    """The requested note does not exist (HTTP 404)."""

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(AiNoteError):
    """
    The request conflicts with the current state of the resource (HTTP 409).

    Raised when a note that already carries an AI suggestion is asked to be
    annotated again.
    """

    def __init__(
        self,
        message: str = "The resource is in a conflicting state",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AIServiceError(AiNoteError):
    """
    The AI provider call failed (HTTP 500).

    Phase 1 of the annotate workflow. Nothing has been written when this is
    raised.
    """

    def __init__(
        self,
        message: str = "The AI service did not return a suggestion",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PersistenceError(AiNoteError):
    """
    A store operation failed (HTTP 500).

    The response body is always generic; the underlying error is logged
    server-side only. When raised from phase 2 of the annotate workflow, the
    already-computed AI suggestion has been discarded.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
