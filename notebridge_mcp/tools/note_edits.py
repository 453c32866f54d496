"""
MCP tools for hunk-by-hunk note editing.

Flow:
1. `edit_note` diffs a proposed full replacement against the note and opens
   a review session; every changed hunk starts pending.
2. `accept_note_edit_hunk` / `reject_note_edit_hunk` / `revise_note_edit_hunk`
   record a decision per hunk and return the updated review.
3. `apply_note_edit` writes the reviewed content with optimistic locking,
   or `discard_note_edit` drops the session.

Every review tool returns a NoteEditView; failures surface as ToolError.
"""

from typing import Annotated, Dict, List, Optional

import httpx
from fastmcp.exceptions import ToolError
from fastmcp.server.dependencies import get_access_token
from loguru import logger
from pydantic import BaseModel, Field

from notebridge_mcp.config import settings
from notebridge_mcp.mcp_instance import mcp
from notebridge_mcp.note_edit_service import NoteEditService
from notebridge_mcp.note_edit_sessions import (
    EditSessionStore,
    NoteEditError,
    NoteEditSession,
    count_hunk_statuses,
)
from notebridge_mcp.note_store import NoteStore, VersionConflictError
from notebridge_mcp.utils.diff import HunkStatus


class HunkView(BaseModel):
    """One diff hunk as shown to the reviewer (long unchanged runs abbreviated)."""

    id: str
    kind: str
    status: str
    original: str
    proposed: str
    revised_text: Optional[str] = None
    orig_start: Optional[int] = None
    orig_end: Optional[int] = None
    new_start: Optional[int] = None
    new_end: Optional[int] = None


class NoteEditView(BaseModel):
    """Review state of a pending note edit."""

    edit_id: str
    note_uid: str
    title: str
    base_version: int
    summary: Optional[str] = None
    hunks: List[HunkView]
    counts: Dict[str, int]
    resolved_content: Optional[str] = None
    message: str


class AppliedNoteEdit(BaseModel):
    """Result of applying a note edit."""

    note_uid: str
    title: str
    version: int
    message: str


class DiscardedNoteEdit(BaseModel):
    """Result of discarding a note edit."""

    edit_id: str
    title: str
    message: str


_service: Optional[NoteEditService] = None


def set_note_edit_service(service: Optional[NoteEditService]) -> None:
    """Override the service used by the tools (None restores the default)."""
    global _service
    _service = service


def get_note_edit_service() -> NoteEditService:
    """Return the shared service, building it from settings on first use."""
    global _service
    if _service is None:
        _service = NoteEditService(
            sessions=EditSessionStore.from_settings(settings),
            notes=NoteStore(),
            retain_session_on_conflict=settings.retain_session_on_conflict,
        )
    return _service


def _current_author_id() -> Optional[str]:
    token = get_access_token()
    if token is None:
        return None
    return token.claims.get("sub")


def build_note_edit_view(session: NoteEditSession, message: str) -> NoteEditView:
    """Serialize a session snapshot for the tool response."""
    return NoteEditView(
        edit_id=session.id,
        note_uid=session.note_uid,
        title=session.title,
        base_version=session.base_version,
        summary=session.summary,
        hunks=[
            HunkView(
                id=h.id,
                kind=h.kind,
                status=h.status,
                original=h.display_original,
                proposed=h.display_proposed,
                revised_text=h.revised_text,
                orig_start=h.orig_start,
                orig_end=h.orig_end,
                new_start=h.new_start,
                new_end=h.new_end,
            )
            for h in session.hunks
        ],
        counts=count_hunk_statuses(session.hunks),
        resolved_content=session.resolved_content,
        message=message,
    )


def _status_message(action: str, hunk_id: str, session: NoteEditSession) -> str:
    counts = count_hunk_statuses(session.hunks)
    return (
        f"{action} hunk {hunk_id}. "
        f"Status: {counts['accepted']} accepted, {counts['rejected']} rejected, "
        f"{counts['revised']} revised, {counts['pending']} pending."
    )


def _decide(
    edit_id: str,
    hunk_id: str,
    status: HunkStatus,
    action: str,
    revised_text: Optional[str] = None,
) -> NoteEditView:
    try:
        session = get_note_edit_service().decide(edit_id, hunk_id, status, revised_text)
    except (NoteEditError, ValueError) as e:
        logger.warning(f"{action} hunk {hunk_id} in {edit_id} failed: {e}")
        raise ToolError(str(e)) from e

    return build_note_edit_view(session, _status_message(action, hunk_id, session))


@mcp.tool()
async def edit_note(
    uid: Annotated[str, Field(description="UID of the note to edit")],
    proposed_content: Annotated[
        str, Field(description="Full proposed replacement content for the note")
    ],
    summary: Annotated[
        Optional[str], Field(description="Short description of the proposed changes")
    ] = None,
) -> NoteEditView:
    """
    Propose an edit to a note and open a hunk-by-hunk review.

    The proposed content is a full replacement, not a patch. The response
    lists the diff hunks (IDs 'h1', 'h2', ...); every changed hunk starts
    pending and must be accepted, rejected, or revised before applying.

    Args:
        uid: UID of the note to edit
        proposed_content: Full proposed content
        summary: Optional human-readable change description

    Returns:
        NoteEditView with the edit_id needed by the other note edit tools
    """
    logger.info(f"Proposing note edit: uid={uid}")

    try:
        session = await get_note_edit_service().propose_edit(
            uid,
            proposed_content,
            summary=summary,
            author_id=_current_author_id(),
        )
    except httpx.HTTPStatusError as e:
        error_msg = f"Failed to load note '{uid}': {e.response.status_code} - {e.response.text}"
        logger.error(error_msg)
        raise ToolError(error_msg) from e
    except ValueError as e:
        raise ToolError(str(e)) from e

    changes = sum(count_hunk_statuses(session.hunks).values())
    if changes:
        message = f"Edit session created for '{session.title}'. {changes} change(s) to review."
    else:
        message = f"Proposed content for '{session.title}' is identical to the current note."
    return build_note_edit_view(session, message)


@mcp.tool()
async def get_note_edit(
    edit_id: Annotated[str, Field(description="ID of the pending note edit session")],
) -> NoteEditView:
    """Show the current review state of a pending note edit."""
    try:
        session = get_note_edit_service().get_edit(edit_id)
    except NoteEditError as e:
        raise ToolError(str(e)) from e

    counts = count_hunk_statuses(session.hunks)
    return build_note_edit_view(
        session, f"Edit session for '{session.title}': {counts['pending']} pending change(s)."
    )


@mcp.tool()
async def accept_note_edit_hunk(
    edit_id: Annotated[str, Field(description="ID of the pending note edit session")],
    hunk_id: Annotated[str, Field(description="ID of the diff hunk to accept (e.g., 'h1', 'h2')")],
) -> NoteEditView:
    """
    Accept a specific diff hunk in a pending note edit session.

    The proposed change for this hunk will be included when the edit is applied.
    """
    logger.info(f"Accepting hunk: edit_id={edit_id}, hunk_id={hunk_id}")
    return _decide(edit_id, hunk_id, "accepted", "Accepted")


@mcp.tool()
async def reject_note_edit_hunk(
    edit_id: Annotated[str, Field(description="ID of the pending note edit session")],
    hunk_id: Annotated[str, Field(description="ID of the diff hunk to reject (e.g., 'h1', 'h2')")],
) -> NoteEditView:
    """
    Reject a specific diff hunk in a pending note edit session.

    The original content for this hunk will be kept when the edit is applied.
    """
    logger.info(f"Rejecting hunk: edit_id={edit_id}, hunk_id={hunk_id}")
    return _decide(edit_id, hunk_id, "rejected", "Rejected")


@mcp.tool()
async def revise_note_edit_hunk(
    edit_id: Annotated[str, Field(description="ID of the pending note edit session")],
    hunk_id: Annotated[str, Field(description="ID of the diff hunk to revise (e.g., 'h1', 'h2')")],
    revised_text: Annotated[
        str, Field(description="Replacement text for this hunk, including line endings")
    ],
) -> NoteEditView:
    """
    Revise a specific diff hunk in a pending note edit session.

    The revised text replaces both the original and the proposed text of
    this hunk when the edit is applied.
    """
    logger.info(f"Revising hunk: edit_id={edit_id}, hunk_id={hunk_id}")
    return _decide(edit_id, hunk_id, "revised", "Revised", revised_text=revised_text)


@mcp.tool()
async def apply_note_edit(
    edit_id: Annotated[str, Field(description="ID of the pending note edit session")],
) -> AppliedNoteEdit:
    """
    Apply a fully reviewed note edit session.

    Writes the reviewed content with optimistic locking against the note
    version captured when the edit was proposed. Fails while any hunk is
    still pending. On a version conflict the session is kept (unless
    configured otherwise) so it can be discarded or re-proposed.
    """
    logger.info(f"Applying note edit: edit_id={edit_id}")
    service = get_note_edit_service()

    try:
        updated = await service.apply_edit(edit_id)
    except (NoteEditError, VersionConflictError) as e:
        logger.warning(f"Apply failed for {edit_id}: {e}")
        raise ToolError(str(e)) from e
    except httpx.HTTPStatusError as e:
        error_msg = f"Failed to update note: {e.response.status_code} - {e.response.text}"
        logger.error(f"HTTP error applying note edit: {error_msg}")
        raise ToolError(error_msg) from e

    return AppliedNoteEdit(
        note_uid=updated.uid,
        title=updated.title,
        version=updated.version,
        message=f"Applied note edit to '{updated.title}'. New version: v{updated.version}.",
    )


@mcp.tool()
async def discard_note_edit(
    edit_id: Annotated[str, Field(description="ID of the pending note edit session")],
) -> DiscardedNoteEdit:
    """Discard a pending note edit session without changing the note."""
    logger.info(f"Discarding note edit: edit_id={edit_id}")

    try:
        title = get_note_edit_service().discard_edit(edit_id)
    except NoteEditError as e:
        raise ToolError(str(e)) from e

    return DiscardedNoteEdit(
        edit_id=edit_id,
        title=title,
        message=f"Discarded pending edit session for '{title}'.",
    )
