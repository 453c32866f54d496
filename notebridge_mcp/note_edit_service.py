"""
Note edit workflow.

Connects the note store (fetch / conditional write) with the edit session
store: propose an edit, record per-hunk decisions, apply or discard it.
"""

from typing import Optional

from loguru import logger

from notebridge_mcp.note_edit_sessions import (
    EditSessionStore,
    NoteEditSession,
    SessionNotFoundError,
)
from notebridge_mcp.note_store import Note, NoteStore, VersionConflictError
from notebridge_mcp.utils.diff import HunkStatus


class NoteEditService:
    """
    Propose / review / apply workflow for note edits.

    Args:
        sessions: Registry holding the in-progress review sessions
        notes: Note store used to read the base note and write the result
        retain_session_on_conflict: Keep the session when the write hits a
            version conflict (True), or discard it before re-raising (False)
    """

    def __init__(
        self,
        sessions: EditSessionStore,
        notes: NoteStore,
        retain_session_on_conflict: bool = True,
    ):
        self.sessions = sessions
        self.notes = notes
        self.retain_session_on_conflict = retain_session_on_conflict

    async def propose_edit(
        self,
        note_uid: str,
        proposed_content: str,
        summary: Optional[str] = None,
        author_id: Optional[str] = None,
    ) -> NoteEditSession:
        """
        Diff a proposed full replacement against the note's current content.

        Expired sessions are swept first.

        Returns:
            The new session, with every changed hunk pending
        """
        self.sessions.sweep_expired()

        note = await self.notes.fetch(note_uid)
        return self.sessions.create(
            note_uid=note.uid,
            base_version=note.version,
            original_content=note.content,
            proposed_content=proposed_content,
            title=note.title,
            summary=summary,
            author_id=author_id,
        )

    def get_edit(self, session_id: str) -> NoteEditSession:
        return self.sessions.get(session_id)

    def decide(
        self,
        session_id: str,
        hunk_id: str,
        status: HunkStatus,
        revised_text: Optional[str] = None,
    ) -> NoteEditSession:
        return self.sessions.set_hunk_status(session_id, hunk_id, status, revised_text)

    async def apply_edit(self, session_id: str) -> Note:
        """
        Write the reviewed content back to the note.

        Returns:
            The updated note

        Raises:
            SessionNotFoundError: If the session is absent or expired
            UnresolvedChangesError: If any changed hunk is still pending
            VersionConflictError: If the note changed since the edit was proposed
        """
        resolved = self.sessions.resolve(session_id)

        try:
            updated = await self.notes.conditional_write(
                resolved.note_uid,
                resolved.content,
                expected_version=resolved.base_version,
            )
        except VersionConflictError:
            if self.retain_session_on_conflict:
                logger.warning(f"Keeping edit session {session_id} after version conflict")
            else:
                logger.warning(f"Discarding edit session {session_id} after version conflict")
                self._forget(session_id)
            raise

        self._forget(session_id)
        logger.info(
            f"Applied edit session {session_id} to note {updated.uid}: "
            f"v{resolved.base_version} -> v{updated.version}"
        )
        return updated

    def discard_edit(self, session_id: str) -> str:
        """Discard a session; returns the note title."""
        return self.sessions.discard(session_id)

    def _forget(self, session_id: str) -> None:
        try:
            self.sessions.discard(session_id)
        except SessionNotFoundError:
            # Expired or discarded concurrently while the write was in flight
            logger.debug(f"Edit session {session_id} already gone")
