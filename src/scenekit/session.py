"""Per-chat session bookkeeping and the stores that persist it."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import StorageError
from .integrity import SceneHint

logger = logging.getLogger(__name__)


class Session(BaseModel):
    """Short-lived bookkeeping kept for each chat.

    The record is always read, modified and written back as a whole. Two
    events for the same chat handled concurrently race and the later write
    wins; the conversation tolerates the dropped update.
    """

    model_config = ConfigDict(validate_assignment=True)

    active_scene_id: str | None = None
    last_message_id: int | None = None
    input_prompt_message_id: int | None = None
    reply_to_last_once: bool = False
    message_scenes: Dict[int, str] = Field(default_factory=dict)

    def scene_hint_for(self, message_id: int) -> SceneHint | None:
        """Return the decoded hint recorded for ``message_id``, if valid."""

        return SceneHint.decode(self.message_scenes.get(message_id))

    def record_scene_hint(self, message_id: int, hint: SceneHint) -> None:
        # Reassign so validate_assignment sees the change.
        scenes = dict(self.message_scenes)
        scenes[message_id] = hint.encode()
        self.message_scenes = scenes


class SessionStore(ABC):
    """Interface describing how per-chat sessions are persisted."""

    @abstractmethod
    async def load(self, chat_id: int) -> Session | None:
        """Return the stored session for ``chat_id`` or ``None``.

        Raises:
            StorageError: If the backend cannot be read.
        """

    @abstractmethod
    async def save(self, chat_id: int, session: Session) -> None:
        """Replace the stored session for ``chat_id``."""

    @abstractmethod
    async def delete(self, chat_id: int) -> None:
        """Remove the stored session if it exists."""


class InMemorySessionStore(SessionStore):
    """Keep sessions in local process memory.

    Records are stored in serialised form so callers never share a mutable
    session object, matching how remote backends behave.
    """

    def __init__(self) -> None:
        self._sessions: Dict[int, str] = {}

    async def load(self, chat_id: int) -> Session | None:
        raw = self._sessions.get(chat_id)
        if raw is None:
            return None
        return Session.model_validate_json(raw)

    async def save(self, chat_id: int, session: Session) -> None:
        self._sessions[chat_id] = session.model_dump_json()

    async def delete(self, chat_id: int) -> None:
        self._sessions.pop(chat_id, None)

    def list_chats(self) -> List[int]:
        return sorted(self._sessions)


class FileSessionStore(SessionStore):
    """Persist sessions as JSON files on disk, one file per chat."""

    def __init__(self, storage_dir: Path) -> None:
        self.storage_dir = storage_dir
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    async def load(self, chat_id: int) -> Session | None:
        return await asyncio.to_thread(self._load, chat_id)

    async def save(self, chat_id: int, session: Session) -> None:
        await asyncio.to_thread(self._save, chat_id, session)

    async def delete(self, chat_id: int) -> None:
        await asyncio.to_thread(self._delete, chat_id)

    def list_chats(self) -> List[int]:
        chats: List[int] = []
        for session_path in self.storage_dir.glob("*.json"):
            if not session_path.is_file():
                continue
            try:
                chats.append(int(session_path.stem))
            except ValueError:
                continue
        return sorted(chats)

    def _load(self, chat_id: int) -> Session | None:
        session_file = self._session_path(chat_id)
        try:
            if not session_file.exists():
                return None
            return Session.model_validate_json(session_file.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            raise StorageError(f"cannot read session for chat {chat_id}") from exc

    def _save(self, chat_id: int, session: Session) -> None:
        session_file = self._session_path(chat_id)
        try:
            session_file.write_text(session.model_dump_json(indent=2), encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"cannot write session for chat {chat_id}") from exc

    def _delete(self, chat_id: int) -> None:
        session_file = self._session_path(chat_id)
        try:
            if session_file.exists():
                session_file.unlink()
        except OSError as exc:
            raise StorageError(f"cannot delete session for chat {chat_id}") from exc

    def _session_path(self, chat_id: int) -> Path:
        if not isinstance(chat_id, int) or isinstance(chat_id, bool):
            raise TypeError("chat_id must be an integer")
        return self.storage_dir / f"{chat_id}.json"


class ChatSession:
    """Session access bound to a single chat.

    Read failures surface as :class:`StorageError` from :meth:`get`; most
    callers go through :meth:`get_or_default` and :meth:`update`, which log
    failures and degrade instead of raising.
    """

    def __init__(self, store: SessionStore, chat_id: int) -> None:
        self.store = store
        self.chat_id = chat_id

    async def get(self) -> Session | None:
        try:
            return await self.store.load(self.chat_id)
        except StorageError:
            raise
        except (OSError, ValidationError) as exc:
            raise StorageError(f"cannot read session for chat {self.chat_id}") from exc

    async def get_or_default(self) -> Session:
        """Return the stored session, or a fresh one when absent or unreadable."""

        try:
            session = await self.get()
        except StorageError as exc:
            logger.warning("session read failed for chat %s: %s", self.chat_id, exc)
            return Session()
        return session if session is not None else Session()

    async def peek(self) -> Session | None:
        """Return the stored session, treating read failures as absent."""

        try:
            return await self.get()
        except StorageError as exc:
            logger.warning("session read failed for chat %s: %s", self.chat_id, exc)
            return None

    async def update(self, session: Session, *, reason: str = "update") -> bool:
        """Write ``session`` back, logging instead of raising on failure."""

        try:
            await self.store.save(self.chat_id, session)
        except (StorageError, OSError) as exc:
            logger.error(
                "session update failed (%s) for chat %s: %s", reason, self.chat_id, exc
            )
            return False
        return True


__all__ = [
    "ChatSession",
    "FileSessionStore",
    "InMemorySessionStore",
    "Session",
    "SessionStore",
]
