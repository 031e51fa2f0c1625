"""
AiNote Backend — Pydantic Request/Response Schemas
====================================================

What:  Pydantic models defining the API contract between the UI and backend.
How:   FastAPI validates request bodies against these models, serializes
       responses through them, and generates the OpenAPI document from them.

Design Decision:
    Schemas are separate from the SQLAlchemy model so the API shape stays
    stable if the table changes, and so note content validation (blank text)
    happens in NoteWorkflow where it can be reported as a 400 with a clear
    message.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class NoteCreate(BaseModel):
    """
    Body of POST /notes and POST /notes/plain.

    ``content`` is optional at the schema level; a missing or blank value is
    rejected by NoteWorkflow with a 400 validation_error.
    """
    content: Optional[str] = Field(
        default=None,
        description="Note text; must contain at least one non-whitespace character",
        examples=["Studied TCP congestion control today"],
    )


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class NoteResponse(BaseModel):
    """A stored note as returned by the list and detail endpoints."""
    id: int = Field(description="Store-assigned note identifier")
    user_note: str = Field(description="Text written by the user")
    ai_note: Optional[str] = Field(
        default=None,
        description="AI suggestion (null until the note is annotated)",
    )
    created_at: datetime = Field(description="When the note was stored")

    model_config = {"from_attributes": True}


class NoteCreatedResponse(BaseModel):
    """Returned with HTTP 201 after a note has been stored."""
    message: str = Field(default="Note saved", description="Human-readable result")
    id: int = Field(description="Identifier of the new note")


class DeleteResponse(BaseModel):
    """Returned by both delete endpoints."""
    message: str = Field(description="Human-readable result")
    deleted_count: int = Field(
        serialization_alias="deletedCount",
        description="Number of notes removed",
    )


class StatusResponse(BaseModel):
    """
    Body of GET /.

    ``status`` maps each dependency name to its state, reason and (for
    unconfigured dependencies) the missing setting names. Secrets are never
    included.
    """
    message: str = Field(default="Server running")
    version: str = Field(description="Application version")
    ready: bool = Field(description="True when every dependency is ready")
    status: Dict[str, Dict[str, Any]] = Field(description="Per-dependency readiness")


class ErrorResponse(BaseModel):
    """
    Standardized error body for every failed request.

    Example:
        {
            "error": "service_unavailable",
            "message": "Service temporarily unavailable: ai_provider not ready",
            "details": {"dependencies": {"ai_provider": "ai_provider is not configured (missing: GEMINI_API_KEY)"}},
            "request_id": "1f2e3d4c"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")
