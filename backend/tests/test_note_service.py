"""
AiNote Backend — Note Workflow Tests
======================================

What:  Tests for NoteWorkflow against a real SQLite store (aiosqlite) and a
       fake AI provider.

What we test:
    ✅ Blank content is rejected and nothing is stored
    ✅ Listing is newest first, including notes stored in quick succession
    ✅ Annotate: AI failure stores nothing; store failure discards the suggestion
    ✅ Annotating an existing note happens at most once
    ✅ Deleting unknown notes is NotFound; delete-all is idempotent
"""

import pytest
from sqlalchemy import update

from app.exceptions import (
    AIServiceError,
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from app.models.note import Note


class TestCreateNote:
    @pytest.mark.parametrize("content", ["", "   ", "\n\t", None, 42])
    @pytest.mark.asyncio
    async def test_blank_or_missing_content_rejected(self, workflow, content):
        with pytest.raises(ValidationError) as exc_info:
            await workflow.create_note(content)

        assert exc_info.value.field == "content"
        assert await workflow.list_notes() == []

    @pytest.mark.asyncio
    async def test_created_note_is_listed_without_suggestion(self, workflow):
        note_id = await workflow.create_note("Studied TCP")

        notes = await workflow.list_notes()

        assert notes[0].id == note_id
        assert notes[0].user_note == "Studied TCP"
        assert notes[0].ai_note is None
        assert notes[0].created_at is not None

    @pytest.mark.asyncio
    async def test_content_is_stored_as_written(self, workflow):
        note_id = await workflow.create_note("  indented note  ")

        note = await workflow.get_note(note_id)

        assert note.user_note == "  indented note  "


class TestListNotes:
    @pytest.mark.asyncio
    async def test_empty_store_lists_nothing(self, workflow):
        assert await workflow.list_notes() == []

    @pytest.mark.asyncio
    async def test_newest_first(self, workflow):
        for content in ("A", "B", "C"):
            await workflow.create_note(content)

        notes = await workflow.list_notes()

        assert [n.user_note for n in notes] == ["C", "B", "A"]

    @pytest.mark.asyncio
    async def test_store_failure_is_persistence_error(self, workflow, store):
        await store.close()

        with pytest.raises(PersistenceError):
            await workflow.list_notes()


class TestAnnotateNote:
    @pytest.mark.asyncio
    async def test_note_and_suggestion_stored_together(self, workflow, advisor):
        advisor.suggest.return_value = "Look into BGP next."

        note_id = await workflow.annotate_note("Studied TCP")

        advisor.suggest.assert_awaited_once_with("Studied TCP")
        note = await workflow.get_note(note_id)
        assert note.user_note == "Studied TCP"
        assert note.ai_note == "Look into BGP next."

    @pytest.mark.asyncio
    async def test_blank_content_skips_ai_call(self, workflow, advisor):
        with pytest.raises(ValidationError):
            await workflow.annotate_note("   ")

        advisor.suggest.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ai_failure_stores_nothing(self, workflow, advisor):
        advisor.suggest.side_effect = AIServiceError()

        with pytest.raises(AIServiceError):
            await workflow.annotate_note("Studied TCP")

        assert await workflow.list_notes() == []

    @pytest.mark.asyncio
    async def test_unexpected_ai_error_becomes_ai_service_error(self, workflow, advisor):
        advisor.suggest.side_effect = RuntimeError("sdk exploded")

        with pytest.raises(AIServiceError):
            await workflow.annotate_note("Studied TCP")

        assert await workflow.list_notes() == []

    @pytest.mark.asyncio
    async def test_store_failure_after_ai_success(self, workflow, advisor, store):
        await store.close()

        with pytest.raises(PersistenceError):
            await workflow.annotate_note("Studied TCP")

        advisor.suggest.assert_awaited_once()


class TestAnnotateExisting:
    @pytest.mark.asyncio
    async def test_plain_note_gets_suggestion(self, workflow, advisor):
        advisor.suggest.return_value = "Read about UDP."
        note_id = await workflow.create_note("Studied TCP")

        note = await workflow.annotate_existing(note_id)

        assert note.id == note_id
        assert note.ai_note == "Read about UDP."
        advisor.suggest.assert_awaited_once_with("Studied TCP")

    @pytest.mark.asyncio
    async def test_second_annotation_conflicts(self, workflow, advisor):
        note_id = await workflow.create_note("Studied TCP")
        await workflow.annotate_existing(note_id)

        with pytest.raises(ConflictError):
            await workflow.annotate_existing(note_id)

        assert advisor.suggest.await_count == 1

    @pytest.mark.asyncio
    async def test_unknown_note_not_found(self, workflow, advisor):
        with pytest.raises(NotFoundError):
            await workflow.annotate_existing(999)

        advisor.suggest.assert_not_awaited()

    @pytest.mark.parametrize("note_id", [0, -1, 2**64])
    @pytest.mark.asyncio
    async def test_unissued_id_not_found_without_ai_call(self, workflow, advisor, note_id):
        with pytest.raises(NotFoundError):
            await workflow.annotate_existing(note_id)
        with pytest.raises(NotFoundError):
            await workflow.get_note(note_id)

        advisor.suggest.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ai_failure_leaves_note_unchanged(self, workflow, advisor):
        note_id = await workflow.create_note("Studied TCP")
        advisor.suggest.side_effect = AIServiceError()

        with pytest.raises(AIServiceError):
            await workflow.annotate_existing(note_id)

        assert (await workflow.get_note(note_id)).ai_note is None

    @pytest.mark.asyncio
    async def test_note_deleted_during_ai_call(self, workflow, advisor):
        note_id = await workflow.create_note("Studied TCP")

        async def delete_then_answer(content):
            await workflow.delete_note(note_id)
            return "Too late."

        advisor.suggest.side_effect = delete_then_answer

        with pytest.raises(NotFoundError):
            await workflow.annotate_existing(note_id)

    @pytest.mark.asyncio
    async def test_concurrent_annotation_wins_once(self, workflow, advisor, store):
        note_id = await workflow.create_note("Studied TCP")

        async def annotated_elsewhere(content):
            async with store.session() as db:
                await db.execute(
                    update(Note).where(Note.id == note_id).values(ai_note="First answer")
                )
            return "Second answer"

        advisor.suggest.side_effect = annotated_elsewhere

        with pytest.raises(ConflictError):
            await workflow.annotate_existing(note_id)

        assert (await workflow.get_note(note_id)).ai_note == "First answer"


class TestDeleteNotes:
    @pytest.mark.asyncio
    async def test_delete_unknown_note_not_found(self, workflow):
        with pytest.raises(NotFoundError):
            await workflow.delete_note(12345)

    @pytest.mark.parametrize("note_id", [0, -7, 2**31, 2**64])
    @pytest.mark.asyncio
    async def test_delete_out_of_range_id_not_found(self, workflow, note_id):
        await workflow.create_note("keep")

        with pytest.raises(NotFoundError):
            await workflow.delete_note(note_id)

        assert len(await workflow.list_notes()) == 1

    @pytest.mark.asyncio
    async def test_delete_removes_note(self, workflow):
        keep = await workflow.create_note("keep")
        drop = await workflow.create_note("drop")

        assert await workflow.delete_note(drop) == 1

        assert [n.id for n in await workflow.list_notes()] == [keep]
        with pytest.raises(NotFoundError):
            await workflow.get_note(drop)

    @pytest.mark.asyncio
    async def test_delete_all_is_idempotent(self, workflow):
        await workflow.create_note("one")
        await workflow.create_note("two")

        assert await workflow.delete_all_notes() == 2
        assert await workflow.delete_all_notes() == 0
        assert await workflow.list_notes() == []
