"""
Tests for the note edit workflow.

Covers NoteEditService with a mocked NoteStore, plus an end-to-end run
against the in-memory notes backend.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from notebridge_mcp.note_edit_service import NoteEditService
from notebridge_mcp.note_edit_sessions import (
    EditSessionStore,
    SessionNotFoundError,
    UnresolvedChangesError,
)
from notebridge_mcp.note_store import Note, NoteStore, VersionConflictError


ORIGINAL = "line1\nline2\nline3\n"
PROPOSED = "line1\nlineX\nline3\n"


def _note(content=ORIGINAL, version=7, title="Test Note"):
    return Note(uid="note-123", version=version, payload={"title": title, "content": content})


@pytest.fixture
def sessions(clock):
    return EditSessionStore(max_age=timedelta(hours=1), clock=clock)


@pytest.fixture
def notes():
    store = AsyncMock(spec=NoteStore)
    store.fetch.return_value = _note()
    store.conditional_write.return_value = _note(content=PROPOSED, version=8)
    return store


@pytest.fixture
def service(sessions, notes):
    return NoteEditService(sessions=sessions, notes=notes)


class TestProposeEdit:
    """Tests for NoteEditService.propose_edit."""

    @pytest.mark.asyncio
    async def test_creates_session_from_current_note(self, service, notes):
        session = await service.propose_edit(
            "note-123", PROPOSED, summary="Rename line2", author_id="user-1"
        )

        notes.fetch.assert_awaited_once_with("note-123")
        assert session.note_uid == "note-123"
        assert session.base_version == 7
        assert session.title == "Test Note"
        assert session.original_content == ORIGINAL
        assert session.summary == "Rename line2"
        assert session.created_by == "user-1"
        assert session.pending_count == 1

    @pytest.mark.asyncio
    async def test_sweeps_expired_sessions(self, service, sessions, clock):
        stale = await service.propose_edit("note-123", PROPOSED)
        clock.advance(hours=2)

        fresh = await service.propose_edit("note-123", PROPOSED)

        assert sessions.session_ids() == [fresh.id]
        assert stale.id not in sessions.session_ids()

    @pytest.mark.asyncio
    async def test_fetch_errors_create_no_session(self, service, sessions, notes):
        notes.fetch.side_effect = RuntimeError("backend down")

        with pytest.raises(RuntimeError):
            await service.propose_edit("note-123", PROPOSED)

        assert len(sessions) == 0


class TestApplyEdit:
    """Tests for NoteEditService.apply_edit."""

    @pytest.mark.asyncio
    async def test_writes_resolved_content_against_base_version(self, service, sessions, notes):
        session = await service.propose_edit("note-123", PROPOSED)
        service.decide(session.id, "h2", "accepted")

        updated = await service.apply_edit(session.id)

        notes.conditional_write.assert_awaited_once_with(
            "note-123", PROPOSED, expected_version=7
        )
        assert updated.version == 8
        assert len(sessions) == 0

    @pytest.mark.asyncio
    async def test_pending_hunks_block_apply(self, service, sessions, notes):
        session = await service.propose_edit("note-123", PROPOSED)

        with pytest.raises(UnresolvedChangesError):
            await service.apply_edit(session.id)

        notes.conditional_write.assert_not_awaited()
        assert session.id in sessions.session_ids()

    @pytest.mark.asyncio
    async def test_conflict_keeps_session_by_default(self, service, sessions, notes):
        session = await service.propose_edit("note-123", PROPOSED)
        service.decide(session.id, "h2", "accepted")
        notes.conditional_write.side_effect = VersionConflictError("note-123", 7, 9)

        with pytest.raises(VersionConflictError):
            await service.apply_edit(session.id)

        assert service.get_edit(session.id).resolved_content == PROPOSED

    @pytest.mark.asyncio
    async def test_conflict_discards_session_when_configured(self, sessions, notes):
        service = NoteEditService(sessions=sessions, notes=notes, retain_session_on_conflict=False)
        session = await service.propose_edit("note-123", PROPOSED)
        service.decide(session.id, "h2", "rejected")
        notes.conditional_write.side_effect = VersionConflictError("note-123", 7, 9)

        with pytest.raises(VersionConflictError):
            await service.apply_edit(session.id)

        with pytest.raises(SessionNotFoundError):
            service.get_edit(session.id)

    @pytest.mark.asyncio
    async def test_unknown_session_raises(self, service, notes):
        with pytest.raises(SessionNotFoundError):
            await service.apply_edit("nonexistent-id")

        notes.conditional_write.assert_not_awaited()


class TestDiscardEdit:
    """Tests for NoteEditService.discard_edit."""

    @pytest.mark.asyncio
    async def test_discard_returns_title(self, service, sessions, notes):
        session = await service.propose_edit("note-123", PROPOSED)

        assert service.discard_edit(session.id) == "Test Note"
        assert len(sessions) == 0
        notes.conditional_write.assert_not_awaited()


class TestEndToEnd:
    """Propose, review and apply against the in-memory notes backend."""

    @pytest.mark.asyncio
    async def test_mixed_decisions_are_written_back(self, notes_backend, sessions):
        notes_backend.add_note("n1", "Plan", "# Plan\nstep one\nstep two\nstep three\n", version=3)
        service = NoteEditService(sessions=sessions, notes=NoteStore())

        session = await service.propose_edit(
            "n1", "# Plan\nstep 1\nstep two\nstep three\nstep four\n"
        )
        changed = [h.id for h in session.hunks if h.kind != "unchanged"]
        assert changed == ["h2", "h4"]

        service.decide(session.id, "h2", "revised", revised_text="step uno\n")
        service.decide(session.id, "h4", "rejected")
        updated = await service.apply_edit(session.id)

        assert updated.version == 4
        assert updated.content == "# Plan\nstep uno\nstep two\nstep three\n"
        assert notes_backend.puts[0].headers["If-Match"] == "3"

    @pytest.mark.asyncio
    async def test_concurrent_change_is_reported_as_conflict(self, notes_backend, sessions):
        notes_backend.add_note("n1", "Plan", "a\n", version=1)
        service = NoteEditService(sessions=sessions, notes=NoteStore())

        session = await service.propose_edit("n1", "b\n")
        service.decide(session.id, "h1", "accepted")
        notes_backend.notes["n1"]["version"] = 2

        with pytest.raises(VersionConflictError):
            await service.apply_edit(session.id)

        assert notes_backend.puts == []
        assert session.id in sessions.session_ids()
