"""File-backed content store for message and summary blobs.

Layout::

    {base_path}/{session_id}/messages/{message_id}.json
    {base_path}/{session_id}/summaries/{summary_id}.json

Each blob is written to a temp file, fsynced and atomically moved into
place, so a reader never sees a partial record, a retried write simply
overwrites, and content is on disk before any metadata can reference it.
"""

import asyncio
import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any, Literal
from uuid import UUID, uuid4

import aiofiles
import aiofiles.os

from diychat.schemas.content import MessageContent, SummaryContent

logger = logging.getLogger("storage")

ContentKind = Literal["messages", "summaries"]
CONTENT_KINDS: tuple[ContentKind, ...] = ("messages", "summaries")


class FileContentStore:
    """Stores full message and summary payloads as JSON files."""

    def __init__(self, base_path: str | Path):
        self.base_path = Path(base_path)

    def session_dir(self, session_id: UUID | str) -> Path:
        return self.base_path / str(session_id)

    def path_for(self, session_id: UUID | str, content_id: UUID | str, kind: ContentKind) -> Path:
        if kind not in CONTENT_KINDS:
            raise ValueError(f"Unknown content kind: {kind}")
        return self.session_dir(session_id) / kind / f"{content_id}.json"

    def relative_path(self, path: Path) -> str:
        """Path as recorded in the metadata index (relative to the store root)."""
        return path.relative_to(self.base_path).as_posix()

    async def put(
        self,
        session_id: UUID | str,
        content_id: UUID | str,
        record: dict[str, Any],
        kind: ContentKind,
    ) -> Path:
        """Write a record, creating the session namespace if needed."""
        target = self.path_for(session_id, content_id, kind)
        await aiofiles.os.makedirs(target.parent, exist_ok=True)

        temp_file = target.with_name(f".{target.stem}.{uuid4().hex}.tmp")
        try:
            async with aiofiles.open(temp_file, "w", encoding="utf-8") as f:
                await f.write(json.dumps(record, indent=2, default=str))
                await f.flush()
                await asyncio.to_thread(os.fsync, f.fileno())
            await aiofiles.os.replace(temp_file, target)
        except OSError:
            if await aiofiles.os.path.exists(temp_file):
                await aiofiles.os.remove(temp_file)
            raise

        logger.debug(
            "Content written",
            extra={
                "service": "storage",
                "session_id": str(session_id),
                "content_id": str(content_id),
                "kind": kind,
            },
        )
        return target

    async def get(
        self,
        session_id: UUID | str,
        content_id: UUID | str,
        kind: ContentKind,
    ) -> dict[str, Any] | None:
        """Read a record, or None when it does not exist."""
        target = self.path_for(session_id, content_id, kind)
        if not await aiofiles.os.path.exists(target):
            return None
        async with aiofiles.open(target, "r", encoding="utf-8") as f:
            raw = await f.read()
        return json.loads(raw)

    async def save_message(self, content: MessageContent) -> Path:
        return await self.put(
            content.session_id,
            content.id,
            content.model_dump(mode="json"),
            "messages",
        )

    async def get_message(
        self, session_id: UUID | str, message_id: UUID | str
    ) -> MessageContent | None:
        data = await self.get(session_id, message_id, "messages")
        return MessageContent.model_validate(data) if data is not None else None

    async def save_summary(self, content: SummaryContent) -> Path:
        return await self.put(
            content.session_id,
            content.id,
            content.model_dump(mode="json"),
            "summaries",
        )

    async def get_summary(
        self, session_id: UUID | str, summary_id: UUID | str
    ) -> SummaryContent | None:
        data = await self.get(session_id, summary_id, "summaries")
        return SummaryContent.model_validate(data) if data is not None else None

    async def list_content_ids(self, session_id: UUID | str, kind: ContentKind) -> set[str]:
        """Ids of every blob of one kind stored for a session."""
        directory = self.session_dir(session_id) / kind
        if not await aiofiles.os.path.isdir(directory):
            return set()
        names = await aiofiles.os.listdir(directory)
        return {
            name[: -len(".json")]
            for name in names
            if name.endswith(".json") and not name.startswith(".")
        }

    async def delete_session(self, session_id: UUID | str) -> bool:
        """Remove a session's namespace. Returns False if it was already gone."""
        directory = self.session_dir(session_id)
        if not await aiofiles.os.path.isdir(directory):
            return False
        await asyncio.to_thread(shutil.rmtree, directory, ignore_errors=True)
        logger.info(
            "Session content deleted",
            extra={"service": "storage", "session_id": str(session_id)},
        )
        return True


__all__ = ["CONTENT_KINDS", "ContentKind", "FileContentStore"]
