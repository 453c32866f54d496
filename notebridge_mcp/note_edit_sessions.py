"""
In-memory note edit session storage.

Maintains short-lived "pending edits" so that:
- `edit_note` can create a session (original + proposed),
- per-hunk accept / reject / revise calls can refer to that session by ID,
- `apply_note_edit` can rebuild the reviewed content and write it back with
  an optimistic concurrency check (version at create vs version at apply).

Note: This is per-process storage. Call sites receive an EditSessionStore
instance rather than importing module state, so a shared store (Redis/DB)
can replace it behind the same interface.
"""

import copy
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from loguru import logger

from notebridge_mcp.config import Settings
from notebridge_mcp.utils.diff import (
    HUNK_STATUSES,
    DiffHunk,
    HunkDecision,
    HunkKind,
    HunkStatus,
    annotate_hunks_with_ids,
    apply_hunk_decisions,
    compute_line_diff,
    elide_unchanged_text,
)

DEFAULT_MAX_AGE = timedelta(hours=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NoteEditError(Exception):
    """Base class for note edit session errors."""


class SessionNotFoundError(NoteEditError):
    """Raised when a session ID is unknown, already applied/discarded, or expired."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Edit session '{session_id}' not found or expired")


class UnresolvedChangesError(NoteEditError):
    """Raised when applying a session that still has pending hunks."""

    def __init__(self, session_id: str, pending: int):
        self.session_id = session_id
        self.pending = pending
        super().__init__(
            f"There are {pending} pending change(s). "
            "Please accept, reject, or revise each change before applying."
        )


class ReconstructionError(NoteEditError):
    """Raised when every hunk is resolved but the content still cannot be rebuilt."""

    def __init__(self, session_id: str, hunk_id: str):
        self.session_id = session_id
        self.hunk_id = hunk_id
        super().__init__(
            f"Could not rebuild content for edit session '{session_id}': "
            f"hunk {hunk_id} has no usable decision"
        )


@dataclass
class NoteEditHunkState:
    """
    Per-hunk state within a note edit session.

    Combines DiffHunk data with user decision status. `original` and
    `proposed` hold the full text; the display_* fields hold the
    abbreviated rendering of long unchanged hunks.
    """
    id: str                     # Same as DiffHunk.id
    kind: HunkKind
    original: str
    proposed: str
    status: HunkStatus
    revised_text: Optional[str] = None
    orig_start: Optional[int] = None
    orig_end: Optional[int] = None
    new_start: Optional[int] = None
    new_end: Optional[int] = None
    display_original: str = ""
    display_proposed: str = ""

    def to_diff_hunk(self) -> DiffHunk:
        return DiffHunk(
            kind=self.kind,
            original=self.original,
            proposed=self.proposed,
            id=self.id,
            orig_start=self.orig_start,
            orig_end=self.orig_end,
            new_start=self.new_start,
            new_end=self.new_end,
        )

    def to_decision(self) -> HunkDecision:
        return HunkDecision(status=self.status, revised_text=self.revised_text)


@dataclass
class NoteEditSession:
    """A pending note edit awaiting user approval."""

    id: str                     # UUID4 hex
    note_uid: str               # Note UID
    base_version: int           # note.version at session creation
    title: str                  # Note title for display
    original_content: str       # Content before changes
    proposed_content: str       # Content after changes
    summary: Optional[str]      # Human-readable change description
    created_at: datetime = field(default_factory=_utcnow)
    created_by: Optional[str] = None  # Author ID from access token
    hunks: List[NoteEditHunkState] = field(default_factory=list)
    resolved_content: Optional[str] = None  # Merged content once every hunk is decided

    @property
    def pending_count(self) -> int:
        return sum(1 for h in self.hunks if h.kind != "unchanged" and h.status == "pending")

    def is_expired(self, now: datetime, max_age: timedelta) -> bool:
        return now - self.created_at > max_age


@dataclass
class ResolvedEdit:
    """Fully reviewed content, ready for a conditional write to the note store."""

    session_id: str
    note_uid: str
    base_version: int
    title: str
    content: str


def _build_hunk_states(hunks: List[DiffHunk], max_unchanged_lines: int) -> List[NoteEditHunkState]:
    states: List[NoteEditHunkState] = []
    for h in hunks:
        if h.kind == "unchanged":
            # Unchanged hunks are implicitly accepted and only abbreviated for display
            status: HunkStatus = "accepted"
            display = elide_unchanged_text(h.original, max_unchanged_lines)
            display_original = display_proposed = display
        else:
            status = "pending"
            display_original, display_proposed = h.original, h.proposed

        states.append(
            NoteEditHunkState(
                id=h.id or "",
                kind=h.kind,
                original=h.original,
                proposed=h.proposed,
                status=status,
                orig_start=h.orig_start,
                orig_end=h.orig_end,
                new_start=h.new_start,
                new_end=h.new_end,
                display_original=display_original,
                display_proposed=display_proposed,
            )
        )
    return states


class EditSessionStore:
    """
    Registry of in-progress note edit sessions.

    All access goes through session IDs; every returned session is a
    snapshot, never the stored object. A single lock serializes all reads
    and writes, and no method does I/O while holding it.

    Expired sessions are invisible to lookups immediately, and are only
    removed from the registry by sweep_expired().
    """

    def __init__(
        self,
        max_age: timedelta = DEFAULT_MAX_AGE,
        max_unchanged_lines: int = 5,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.max_age = max_age
        self.max_unchanged_lines = max_unchanged_lines
        self._clock = clock
        self._sessions: Dict[str, NoteEditSession] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "EditSessionStore":
        return cls(
            max_age=settings.edit_session_max_age,
            max_unchanged_lines=settings.max_unchanged_lines,
        )

    def create(
        self,
        note_uid: str,
        base_version: int,
        original_content: str,
        proposed_content: str,
        title: Optional[str] = None,
        summary: Optional[str] = None,
        author_id: Optional[str] = None,
    ) -> NoteEditSession:
        """
        Create a new note edit session.

        The diff is computed once without truncation; long unchanged hunks
        only get abbreviated display_* fields, so reconciliation always works
        from full text and hunk IDs never need re-correlating.

        Args:
            note_uid: UID of the note being edited
            base_version: note.version observed when the edit was proposed
            original_content: The current note content
            proposed_content: The proposed replacement content
            title: Note title for display (defaults to 'Untitled note')
            summary: Optional human-readable change description
            author_id: Optional user ID from access token

        Returns:
            Snapshot of the created NoteEditSession

        Raises:
            ValueError: If note_uid is empty
        """
        if not note_uid:
            raise ValueError("note_uid is required to create an edit session")

        hunks = annotate_hunks_with_ids(
            compute_line_diff(original_content, proposed_content, truncate_unchanged=False)
        )

        session = NoteEditSession(
            id=uuid.uuid4().hex,
            note_uid=note_uid,
            base_version=base_version,
            title=(title or "Untitled note").strip() or "Untitled note",
            # Preserve whitespace verbatim - important for markdown/code formatting
            original_content=original_content,
            proposed_content=proposed_content,
            summary=summary,
            created_at=self._clock(),
            created_by=author_id,
            hunks=_build_hunk_states(hunks, self.max_unchanged_lines),
        )
        # Identical texts (or both empty) leave nothing to decide
        self._recompute_resolved_content(session)

        with self._lock:
            self._sessions[session.id] = session

        logger.info(
            f"Created edit session {session.id} for note {note_uid} "
            f"(v{base_version}, {len(session.hunks)} hunks, {session.pending_count} pending)"
        )
        return copy.deepcopy(session)

    def get(self, session_id: str) -> NoteEditSession:
        """
        Retrieve a session by ID.

        Raises:
            SessionNotFoundError: If the session is absent or expired
        """
        with self._lock:
            return copy.deepcopy(self._lookup(session_id))

    def set_hunk_status(
        self,
        session_id: str,
        hunk_id: str,
        status: HunkStatus,
        revised_text: Optional[str] = None,
    ) -> NoteEditSession:
        """
        Update the status of a specific hunk in a session.

        Unknown hunk IDs (e.g. from a stale render) and unchanged hunks are
        ignored: the session comes back unmodified.

        Args:
            session_id: The session ID
            hunk_id: The hunk ID (e.g., 'h1', 'h2')
            status: New status for the hunk
            revised_text: Replacement text, required when status is 'revised'

        Returns:
            Snapshot of the updated session

        Raises:
            SessionNotFoundError: If the session is absent or expired
            ValueError: If status is unknown, or 'revised' comes without text
            ReconstructionError: If resolved hunks still fail to rebuild
        """
        if status not in HUNK_STATUSES:
            raise ValueError(f"Unknown hunk status: {status!r}")
        if status == "revised" and revised_text is None:
            raise ValueError("revised_text is required when status is 'revised'")

        with self._lock:
            session = self._lookup(session_id)

            hunk = next((h for h in session.hunks if h.id == hunk_id), None)
            if hunk is None or hunk.kind == "unchanged":
                logger.debug(f"Ignoring decision for unknown hunk {hunk_id} in session {session_id}")
                return copy.deepcopy(session)

            previous = (hunk.status, hunk.revised_text)
            hunk.status = status
            hunk.revised_text = revised_text if status == "revised" else None

            try:
                self._recompute_resolved_content(session)
            except ReconstructionError:
                hunk.status, hunk.revised_text = previous
                self._recompute_resolved_content(session)
                raise

            logger.debug(
                f"Session {session_id}: hunk {hunk_id} -> {status} "
                f"({session.pending_count} pending)"
            )
            return copy.deepcopy(session)

    def resolve(self, session_id: str) -> ResolvedEdit:
        """
        Return the reviewed content of a fully decided session, keeping the session.

        Raises:
            SessionNotFoundError: If the session is absent or expired
            UnresolvedChangesError: If any changed hunk is still pending
        """
        with self._lock:
            session = self._lookup(session_id)
            if session.resolved_content is None:
                raise UnresolvedChangesError(session_id, session.pending_count)

            return ResolvedEdit(
                session_id=session.id,
                note_uid=session.note_uid,
                base_version=session.base_version,
                title=session.title,
                content=session.resolved_content,
            )

    def apply(self, session_id: str) -> ResolvedEdit:
        """
        Hand over the reviewed content and remove the session.

        The store never writes to the backend: the caller performs the
        conditional update using ResolvedEdit.base_version.

        Raises:
            SessionNotFoundError: If the session is absent or expired
            UnresolvedChangesError: If any changed hunk is still pending
        """
        with self._lock:
            resolved = self.resolve(session_id)
            del self._sessions[session_id]

        logger.info(f"Applied edit session {session_id} for note {resolved.note_uid}")
        return resolved

    def discard(self, session_id: str) -> str:
        """
        Remove a session regardless of its review state.

        Returns:
            The session's note title, for confirmation messages

        Raises:
            SessionNotFoundError: If the session is absent or expired
        """
        with self._lock:
            session = self._lookup(session_id)
            del self._sessions[session_id]

        logger.info(f"Discarded edit session {session_id} for note {session.note_uid}")
        return session.title

    def sweep_expired(self, max_age: Optional[timedelta] = None) -> int:
        """
        Remove sessions older than max_age.

        Args:
            max_age: Maximum session age (defaults to the store's max_age)

        Returns:
            Number of sessions removed
        """
        max_age = self.max_age if max_age is None else max_age
        now = self._clock()

        with self._lock:
            expired = [
                session_id
                for session_id, session in self._sessions.items()
                if session.is_expired(now, max_age)
            ]
            for session_id in expired:
                del self._sessions[session_id]

        if expired:
            logger.debug(f"Swept {len(expired)} expired edit session(s)")
        return len(expired)

    def pending_hunks(self, session_id: str) -> List[NoteEditHunkState]:
        """Get all pending (non-unchanged) hunks for a session."""
        with self._lock:
            session = self._lookup(session_id)
            return [
                copy.deepcopy(h) for h in session.hunks
                if h.kind != "unchanged" and h.status == "pending"
            ]

    def hunk_counts(self, session_id: str) -> Dict[str, int]:
        """
        Get counts of changed hunks by status for a session.

        Returns:
            Dict with keys: pending, accepted, rejected, revised
        """
        with self._lock:
            return count_hunk_statuses(self._lookup(session_id).hunks)

    def session_ids(self) -> List[str]:
        """IDs of every stored session, including expired ones not yet swept."""
        with self._lock:
            return list(self._sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _lookup(self, session_id: str) -> NoteEditSession:
        session = self._sessions.get(session_id)
        if session is None or session.is_expired(self._clock(), self.max_age):
            raise SessionNotFoundError(session_id)
        return session

    def _recompute_resolved_content(self, session: NoteEditSession) -> None:
        """
        Recompute session.resolved_content based on hunk statuses.

        Only computes if all changed hunks are non-pending. Works from the
        session's full-text hunks, never from abbreviated display text.
        """
        if session.pending_count:
            session.resolved_content = None
            return

        decisions = {h.id: h.to_decision() for h in session.hunks if h.id}
        result = apply_hunk_decisions([h.to_diff_hunk() for h in session.hunks], decisions)

        if not result.ok:
            session.resolved_content = None
            logger.error(
                f"Session {session.id}: hunk {result.unresolved_hunk_id} unresolved "
                "although no hunk is pending"
            )
            raise ReconstructionError(session.id, result.unresolved_hunk_id or "")

        session.resolved_content = result.content


def count_hunk_statuses(hunks: List[NoteEditHunkState]) -> Dict[str, int]:
    """Count changed hunks (unchanged excluded) by status."""
    counts = {"pending": 0, "accepted": 0, "rejected": 0, "revised": 0}
    for h in hunks:
        if h.kind != "unchanged":
            counts[h.status] += 1
    return counts
