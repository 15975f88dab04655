from __future__ import annotations

import logging
import re
from pathlib import Path

import aiofiles

from agentcore.types.chat import Conversation

__all__ = ["FileConversationStore"]

_SAFE_ID = re.compile(r"^[A-Za-z0-9_.-]+$")


class FileConversationStore:
    """Persist conversations as one JSON file per session under *directory*."""

    def __init__(
        self,
        directory: str | Path,
        *,
        encoding: str = "utf-8",
        logger: logging.Logger | None = None,
    ) -> None:
        self.directory = Path(directory)
        self.encoding = encoding
        self.logger = logger or logging.getLogger(__name__)

    def path_for(self, session_id: str) -> Path:
        if not _SAFE_ID.match(session_id) or session_id in {".", ".."}:
            raise ValueError(f"Invalid session id: {session_id!r}")
        return self.directory / f"{session_id}.json"

    async def load(self, session_id: str) -> Conversation:
        """Stored conversation for *session_id*, or an empty one when none exists."""
        path = self.path_for(session_id)
        if not path.exists():
            self.logger.debug("No stored conversation for %s", session_id)
            return Conversation()
        async with aiofiles.open(path, "r", encoding=self.encoding) as f:
            raw = await f.read()
        conversation = Conversation.from_json(raw)
        self.logger.debug("Loaded %d message(s) for %s", len(conversation), session_id)
        return conversation

    async def save(self, session_id: str, conversation: Conversation) -> None:
        path = self.path_for(session_id)
        self.directory.mkdir(parents=True, exist_ok=True)
        # write-then-rename so readers never see a half-written file
        tmp = path.with_suffix(".json.tmp")
        async with aiofiles.open(tmp, "w", encoding=self.encoding) as f:
            await f.write(conversation.to_json(indent=2))
        tmp.replace(path)
        self.logger.debug("Saved %d message(s) for %s", len(conversation), session_id)

    async def delete(self, session_id: str) -> bool:
        path = self.path_for(session_id)
        if not path.exists():
            return False
        path.unlink()
        return True
