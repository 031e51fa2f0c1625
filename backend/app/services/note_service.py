"""
AiNote Backend — Note Workflow (Business Logic Orchestrator)
==============================================================

What:  Orchestrates note creation, AI annotation, listing and deletion.
How:   Receives the store and AI-provider handles explicitly and sequences
       their calls with plain awaits. Each store operation runs in its own
       transactional session (StoreHandle.session()).
Who:   Called by the notes routes after the AdmissionGate admitted the request.

Annotate Flow (POST /notes):
    ┌──────────┐    ┌──────────────────┐    ┌──────────────────────┐
    │ Validate │───▶│ Phase 1: AI call │───▶│ Phase 2: one INSERT  │
    │ content  │    │ (suggest)        │    │ user_note + ai_note  │
    └──────────┘    └──────────────────┘    └──────────────────────┘

    Phase 1 fails → AIServiceError; nothing written, no unannotated fallback
    Phase 2 fails → PersistenceError; the suggestion is discarded and the
                    client must submit the content again

Note state machine:
    NonExistent → Created (ai_note NULL) → Annotated → NonExistent (deleted)
    Created → Annotated happens at most once (annotate_existing uses a
    conditional UPDATE ... WHERE ai_note IS NULL).
"""

import logging
from typing import Any, List, Optional

from sqlalchemy import delete, desc, select, update

from app.database import StoreHandle
from app.exceptions import (
    AIServiceError,
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from app.models.note import Note
from app.schemas.note import NoteResponse

logger = logging.getLogger(__name__)

# notes.id is a 32-bit INTEGER on every supported engine; ids are never <= 0
MAX_NOTE_ID = 2**31 - 1


def _require_storable_id(note_id: int) -> None:
    """Ids outside the column range were never issued; report them as missing."""
    if not 1 <= note_id <= MAX_NOTE_ID:
        raise NotFoundError(resource="note", resource_id=str(note_id))


class NoteWorkflow:
    """
    Business logic for notes.

    Error Handling Strategy:
        Store errors are wrapped in PersistenceError (internal details are
        logged, never returned). AI errors surface as AIServiceError.
        Application exceptions raised on purpose (NotFoundError,
        ConflictError, ValidationError) pass through unchanged.
    """

    def __init__(self, store: StoreHandle, ai: Any) -> None:
        """
        Args:
            store: The connected StoreHandle.
            ai: The AI provider handle; anything with ``async suggest(str) -> str``.
        """
        self._store = store
        self._ai = ai

    # ── Validation ────────────────────────────────────────────────────────

    @staticmethod
    def _validate_content(content: Optional[str]) -> str:
        if not isinstance(content, str) or not content.strip():
            raise ValidationError(
                message="Note content must not be empty",
                field="content",
            )
        return content

    # ── Create ────────────────────────────────────────────────────────────

    async def create_note(self, content: Optional[str]) -> int:
        """
        Store a plain note (ai_note absent).

        Returns:
            The store-assigned note id.

        Raises:
            ValidationError: content missing or blank
            PersistenceError: the insert failed
        """
        content = self._validate_content(content)
        return await self._insert(user_note=content, ai_note=None)

    async def annotate_note(self, content: Optional[str]) -> int:
        """
        Ask the AI provider for a suggestion, then store note and suggestion
        in a single insert.

        Returns:
            The store-assigned note id.

        Raises:
            ValidationError: content missing or blank (no AI call is made)
            AIServiceError: phase 1 failed; no note was written
            PersistenceError: phase 2 failed; the suggestion was discarded
        """
        content = self._validate_content(content)

        # ── Phase 1: AI suggestion ────────────────────────────────────────
        suggestion = await self._suggest(content)

        # ── Phase 2: persist both texts together ──────────────────────────
        try:
            return await self._insert(user_note=content, ai_note=suggestion)
        except PersistenceError:
            logger.error("AI suggestion discarded because the note could not be stored")
            raise

    async def annotate_existing(self, note_id: int) -> NoteResponse:
        """
        Add an AI suggestion to a stored note that has none yet.

        Raises:
            NotFoundError: no note with this id (also if it was deleted
                while the AI call was in flight)
            ConflictError: the note already has a suggestion
            AIServiceError: the AI call failed; the note is unchanged
            PersistenceError: the update failed; the suggestion was discarded
        """
        note = await self.get_note(note_id)
        if note.ai_note is not None:
            raise ConflictError(
                message=f"Note '{note_id}' already has an AI suggestion",
                context={"note_id": note_id},
            )

        suggestion = await self._suggest(note.user_note)

        try:
            async with self._store.session() as db:
                result = await db.execute(
                    update(Note)
                    .where(Note.id == note_id, Note.ai_note.is_(None))
                    .values(ai_note=suggestion)
                    .execution_options(synchronize_session=False)
                )
                updated = result.rowcount
        except Exception as e:
            logger.error("Database error annotating note %s: %s", note_id, str(e), exc_info=True)
            logger.error("AI suggestion discarded because the note could not be updated")
            raise PersistenceError(
                message="Could not save the AI suggestion. Please try again.",
                context={"note_id": note_id, "error_type": type(e).__name__},
            ) from e

        if updated == 0:
            # Another request annotated or deleted the note meanwhile
            if await self._fetch(note_id) is None:
                raise NotFoundError(resource="note", resource_id=str(note_id))
            raise ConflictError(
                message=f"Note '{note_id}' already has an AI suggestion",
                context={"note_id": note_id},
            )

        logger.info("Note %s annotated", note_id)
        return await self.get_note(note_id)

    # ── Read ──────────────────────────────────────────────────────────────

    async def list_notes(self) -> List[NoteResponse]:
        """
        Return every note, newest first.

        Query plan:
            SELECT * FROM notes ORDER BY created_at DESC, id DESC
            → idx_notes_created_at; id breaks ties between equal timestamps
        """
        try:
            async with self._store.session() as db:
                result = await db.execute(
                    select(Note).order_by(desc(Note.created_at), desc(Note.id))
                )
                notes = list(result.scalars().all())
        except Exception as e:
            logger.error("Database error listing notes: %s", str(e), exc_info=True)
            raise PersistenceError(
                message="Could not retrieve notes. Please try again.",
                context={"error_type": type(e).__name__},
            ) from e

        return [NoteResponse.model_validate(note) for note in notes]

    async def get_note(self, note_id: int) -> NoteResponse:
        """Return one note or raise NotFoundError."""
        note = await self._fetch(note_id)
        if note is None:
            raise NotFoundError(resource="note", resource_id=str(note_id))
        return NoteResponse.model_validate(note)

    # ── Delete ────────────────────────────────────────────────────────────

    async def delete_note(self, note_id: int) -> int:
        """
        Delete one note.

        Returns:
            Rows affected (always 1 on success).

        Raises:
            NotFoundError: no note with this id
        """
        _require_storable_id(note_id)
        try:
            async with self._store.session() as db:
                result = await db.execute(
                    delete(Note)
                    .where(Note.id == note_id)
                    .execution_options(synchronize_session=False)
                )
                deleted = result.rowcount
        except Exception as e:
            logger.error("Database error deleting note %s: %s", note_id, str(e), exc_info=True)
            raise PersistenceError(
                message="Could not delete the note. Please try again.",
                context={"note_id": note_id, "error_type": type(e).__name__},
            ) from e

        if deleted == 0:
            raise NotFoundError(resource="note", resource_id=str(note_id))

        logger.info("Note %s deleted", note_id)
        return deleted

    async def delete_all_notes(self) -> int:
        """Delete every note. Idempotent; returns 0 when nothing existed."""
        try:
            async with self._store.session() as db:
                result = await db.execute(
                    delete(Note).execution_options(synchronize_session=False)
                )
                deleted = result.rowcount
        except Exception as e:
            logger.error("Database error deleting all notes: %s", str(e), exc_info=True)
            raise PersistenceError(
                message="Could not delete notes. Please try again.",
                context={"error_type": type(e).__name__},
            ) from e

        logger.info("Deleted %d notes", deleted)
        return deleted

    # ── Internals ─────────────────────────────────────────────────────────

    async def _suggest(self, content: str) -> str:
        try:
            return await self._ai.suggest(content)
        except AIServiceError:
            raise
        except Exception as e:
            logger.error("Unexpected AI provider error: %s", str(e), exc_info=True)
            raise AIServiceError(
                context={"error_type": type(e).__name__},
            ) from e

    async def _insert(self, user_note: str, ai_note: Optional[str]) -> int:
        try:
            async with self._store.session() as db:
                note = Note(user_note=user_note, ai_note=ai_note)
                db.add(note)
                await db.flush()  # assigns the autoincrement id
                note_id = note.id
        except Exception as e:
            logger.error("Database error storing note: %s", str(e), exc_info=True)
            raise PersistenceError(
                message="Could not save the note. Please try again.",
                context={"error_type": type(e).__name__},
            ) from e

        logger.info("Note %s stored (annotated=%s)", note_id, ai_note is not None)
        return note_id

    async def _fetch(self, note_id: int) -> Optional[Note]:
        if not 1 <= note_id <= MAX_NOTE_ID:
            return None
        try:
            async with self._store.session() as db:
                result = await db.execute(select(Note).where(Note.id == note_id))
                return result.scalar_one_or_none()
        except Exception as e:
            logger.error("Database error fetching note %s: %s", note_id, str(e), exc_info=True)
            raise PersistenceError(
                message="Could not retrieve the note. Please try again.",
                context={"note_id": note_id},
            ) from e
