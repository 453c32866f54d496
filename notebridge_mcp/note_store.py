"""
Note store client.

Reads notes from the backend REST API and writes reviewed content back with
optimistic locking (If-Match on the version observed when the edit was
proposed).
"""

from typing import Any, Dict, Optional

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from notebridge_mcp.async_client import get_client
from notebridge_mcp.utils.requests import call_get, call_put

# Status codes the backend uses for an If-Match mismatch
CONFLICT_STATUS_CODES = (409, 412)


class Note(BaseModel):
    """Individual note with version and metadata."""

    model_config = ConfigDict(populate_by_name=True)

    uid: str
    version: int
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")
    deleted_at: Optional[str] = Field(default=None, alias="deletedAt")
    payload: Dict[str, Any]

    @property
    def title(self) -> str:
        return (self.payload.get("title") or "Untitled note").strip() or "Untitled note"

    @property
    def content(self) -> str:
        return self.payload.get("content") or ""


class VersionConflictError(Exception):
    """Raised when a note changed since the version an edit was based on."""

    def __init__(self, note_uid: str, expected_version: int, actual_version: Optional[int] = None):
        self.note_uid = note_uid
        self.expected_version = expected_version
        self.actual_version = actual_version
        found = f"v{actual_version}" if actual_version is not None else "a newer version"
        super().__init__(
            f"Note '{note_uid}' was modified since the edit was proposed. "
            f"Expected v{expected_version}, found {found}."
        )


class NoteStore:
    """Document store backed by the notes REST API."""

    async def fetch(self, note_uid: str) -> Note:
        """
        Retrieve a single note by UID.

        Raises:
            httpx.HTTPStatusError: 404 if note not found, 410 if deleted
        """
        async with get_client() as client:
            logger.info(f"Getting note: uid={note_uid}")
            response = await call_get(client, f"/v1/notes/{note_uid}")
            return Note(**response.json())

    async def conditional_write(
        self,
        note_uid: str,
        content: str,
        expected_version: int,
    ) -> Note:
        """
        Replace a note's content if it is still at expected_version.

        The title and any other payload fields are preserved from the
        current note; only the content is replaced.

        Args:
            note_uid: UID of the note to update
            content: New note content
            expected_version: Version the edit was based on

        Returns:
            Updated note with incremented version

        Raises:
            VersionConflictError: If the note moved past expected_version
            httpx.HTTPStatusError: For any other backend failure
        """
        async with get_client() as client:
            response = await call_get(client, f"/v1/notes/{note_uid}")
            current = Note(**response.json())

            if current.version != expected_version:
                logger.warning(
                    f"Version conflict on note {note_uid}: "
                    f"expected v{expected_version}, found v{current.version}"
                )
                raise VersionConflictError(note_uid, expected_version, current.version)

            payload: Dict[str, Any] = {**current.payload, "uid": note_uid, "content": content}

            logger.info(f"Updating note: uid={note_uid}, if_match={expected_version}")
            try:
                response = await call_put(
                    client,
                    f"/v1/notes/{note_uid}",
                    json=payload,
                    if_match=expected_version,
                )
            except httpx.HTTPStatusError as e:
                if e.response.status_code in CONFLICT_STATUS_CODES:
                    logger.warning(f"Backend rejected If-Match={expected_version} for note {note_uid}")
                    raise VersionConflictError(note_uid, expected_version) from e
                raise

            return Note(**response.json())
