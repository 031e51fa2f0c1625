"""
AiNote Backend — Notes Route Handlers
=======================================

What:  CRUD and AI annotation endpoints for notes.
How:   Each route declares the dependencies it needs through require(); the
       AdmissionGate rejects the request with 503 before the handler runs if
       any of them is not READY. Handlers then delegate to NoteWorkflow.
Who:   Called by the note-taking UI.

Endpoint → required dependencies:
    POST   /notes                store, ai_provider
    POST   /notes/plain          store
    GET    /notes                store
    GET    /notes/{id}           store
    POST   /notes/{id}/advice    store, ai_provider
    DELETE /notes/{id}           store
    DELETE /notes                store
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends

from app.routes.deps import get_workflow, require
from app.schemas.note import (
    DeleteResponse,
    ErrorResponse,
    NoteCreate,
    NoteCreatedResponse,
    NoteResponse,
)
from app.services.dependency_base import Dependency
from app.services.note_service import NoteWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Notes"])

STORE_ONLY = [Depends(require(Dependency.STORE))]
STORE_AND_AI = [Depends(require(Dependency.STORE, Dependency.AI_PROVIDER))]

_UNAVAILABLE = {503: {"description": "A required dependency is not ready", "model": ErrorResponse}}
_SERVER_ERROR = {500: {"description": "Server error", "model": ErrorResponse}}
_BAD_REQUEST = {400: {"description": "Blank or malformed input", "model": ErrorResponse}}
_NOT_FOUND = {404: {"description": "Note not found", "model": ErrorResponse}}


@router.post(
    "/notes",
    status_code=201,
    response_model=NoteCreatedResponse,
    dependencies=STORE_AND_AI,
    responses={**_BAD_REQUEST, **_UNAVAILABLE, **_SERVER_ERROR},
    summary="Save a note with an AI suggestion",
    description=(
        "Asks the AI provider for a related-topic suggestion, then stores the "
        "note together with the suggestion. If the AI call fails nothing is stored."
    ),
)
async def annotate_note(
    payload: Optional[NoteCreate] = None,
    workflow: NoteWorkflow = Depends(get_workflow),
) -> NoteCreatedResponse:
    content = payload.content if payload is not None else None
    note_id = await workflow.annotate_note(content)
    return NoteCreatedResponse(id=note_id)


@router.post(
    "/notes/plain",
    status_code=201,
    response_model=NoteCreatedResponse,
    dependencies=STORE_ONLY,
    responses={**_BAD_REQUEST, **_UNAVAILABLE, **_SERVER_ERROR},
    summary="Save a note without an AI suggestion",
)
async def create_note(
    payload: Optional[NoteCreate] = None,
    workflow: NoteWorkflow = Depends(get_workflow),
) -> NoteCreatedResponse:
    content = payload.content if payload is not None else None
    note_id = await workflow.create_note(content)
    return NoteCreatedResponse(id=note_id)


@router.get(
    "/notes",
    response_model=List[NoteResponse],
    dependencies=STORE_ONLY,
    responses={**_UNAVAILABLE, **_SERVER_ERROR},
    summary="List all notes, newest first",
)
async def list_notes(
    workflow: NoteWorkflow = Depends(get_workflow),
) -> List[NoteResponse]:
    return await workflow.list_notes()


@router.get(
    "/notes/{note_id}",
    response_model=NoteResponse,
    dependencies=STORE_ONLY,
    responses={**_NOT_FOUND, **_UNAVAILABLE, **_SERVER_ERROR},
    summary="Get a single note",
)
async def get_note(
    note_id: int,
    workflow: NoteWorkflow = Depends(get_workflow),
) -> NoteResponse:
    return await workflow.get_note(note_id)


@router.post(
    "/notes/{note_id}/advice",
    response_model=NoteResponse,
    dependencies=STORE_AND_AI,
    responses={
        **_NOT_FOUND,
        409: {"description": "Note already has an AI suggestion", "model": ErrorResponse},
        **_UNAVAILABLE,
        **_SERVER_ERROR,
    },
    summary="Add an AI suggestion to an existing note",
    description="Only notes without a suggestion can be annotated; a second request returns 409.",
)
async def annotate_existing(
    note_id: int,
    workflow: NoteWorkflow = Depends(get_workflow),
) -> NoteResponse:
    return await workflow.annotate_existing(note_id)


@router.delete(
    "/notes/{note_id}",
    response_model=DeleteResponse,
    dependencies=STORE_ONLY,
    responses={**_NOT_FOUND, **_UNAVAILABLE, **_SERVER_ERROR},
    summary="Delete a single note",
)
async def delete_note(
    note_id: int,
    workflow: NoteWorkflow = Depends(get_workflow),
) -> DeleteResponse:
    deleted = await workflow.delete_note(note_id)
    return DeleteResponse(message="Note deleted", deleted_count=deleted)


@router.delete(
    "/notes",
    response_model=DeleteResponse,
    dependencies=STORE_ONLY,
    responses={**_UNAVAILABLE, **_SERVER_ERROR},
    summary="Delete every note",
)
async def delete_all_notes(
    workflow: NoteWorkflow = Depends(get_workflow),
) -> DeleteResponse:
    deleted = await workflow.delete_all_notes()
    return DeleteResponse(message="All notes deleted", deleted_count=deleted)
