"""Durable per-message records of which scene produced a message."""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, Tuple

from pydantic import BaseModel, Field, ValidationError

from .errors import StorageError

Clock = Callable[[], float]


class MessageMetadata(BaseModel):
    """Scene state remembered for one ``(chat, message)`` pair."""

    scene_id: str = Field(..., min_length=1)
    scene_version: int = Field(..., ge=0, le=0xFFFF)
    state_json: str | None = None
    state_ref: str | None = None
    state_checksum: str | None = None
    created_at: int
    ttl_secs: int = Field(..., ge=0, le=0xFFFFFFFF)

    def is_expired(self, now: float) -> bool:
        return now >= self.created_at + self.ttl_secs


class MetadataStore(ABC):
    """Interface for the durable message metadata index.

    Stores own expiry: a record older than its ``ttl_secs`` must not be
    returned by :meth:`load`.
    """

    @abstractmethod
    async def save(
        self, chat_id: int, message_id: int, meta: MessageMetadata
    ) -> None:
        """Persist ``meta``, replacing any record for the same message."""

    @abstractmethod
    async def load(self, chat_id: int, message_id: int) -> MessageMetadata | None:
        """Return the live record for the message, if any.

        Raises:
            StorageError: If the backend cannot be read.
        """


class NoopMetadataStore(MetadataStore):
    """Store that remembers nothing; restores always fall back to the session."""

    async def save(
        self, chat_id: int, message_id: int, meta: MessageMetadata
    ) -> None:
        return None

    async def load(self, chat_id: int, message_id: int) -> MessageMetadata | None:
        return None


class InMemoryMetadataStore(MetadataStore):
    """Keep metadata in process memory, expiring records lazily on read."""

    def __init__(self, *, clock: Clock = time.time) -> None:
        self._clock = clock
        self._records: Dict[Tuple[int, int], str] = {}

    async def save(
        self, chat_id: int, message_id: int, meta: MessageMetadata
    ) -> None:
        self._records[(chat_id, message_id)] = meta.model_dump_json()

    async def load(self, chat_id: int, message_id: int) -> MessageMetadata | None:
        key = (chat_id, message_id)
        raw = self._records.get(key)
        if raw is None:
            return None

        meta = MessageMetadata.model_validate_json(raw)
        if meta.is_expired(self._clock()):
            self._records.pop(key, None)
            return None
        return meta

    def __len__(self) -> int:
        return len(self._records)


class FileMetadataStore(MetadataStore):
    """Persist metadata as JSON files grouped by namespace and chat."""

    def __init__(
        self,
        storage_dir: Path,
        *,
        namespace: str = "msgmeta",
        clock: Clock = time.time,
    ) -> None:
        namespace = namespace.strip()
        if not namespace or "/" in namespace or namespace in {".", ".."}:
            raise ValueError("namespace must be a simple, non-empty directory name")

        self.storage_dir = storage_dir
        self.namespace = namespace
        self._clock = clock
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def _root(self) -> Path:
        return self.storage_dir / self.namespace

    async def save(
        self, chat_id: int, message_id: int, meta: MessageMetadata
    ) -> None:
        await asyncio.to_thread(self._save, chat_id, message_id, meta)

    async def load(self, chat_id: int, message_id: int) -> MessageMetadata | None:
        return await asyncio.to_thread(self._load, chat_id, message_id)

    def _save(self, chat_id: int, message_id: int, meta: MessageMetadata) -> None:
        record_path = self._record_path(chat_id, message_id)
        try:
            record_path.parent.mkdir(parents=True, exist_ok=True)
            record_path.write_text(meta.model_dump_json(), encoding="utf-8")
        except OSError as exc:
            raise StorageError(
                f"cannot write metadata for chat {chat_id} message {message_id}"
            ) from exc

    def _load(self, chat_id: int, message_id: int) -> MessageMetadata | None:
        record_path = self._record_path(chat_id, message_id)
        try:
            if not record_path.exists():
                return None
            meta = MessageMetadata.model_validate_json(
                record_path.read_text(encoding="utf-8")
            )
            if meta.is_expired(self._clock()):
                record_path.unlink(missing_ok=True)
                return None
        except (OSError, ValidationError) as exc:
            raise StorageError(
                f"cannot read metadata for chat {chat_id} message {message_id}"
            ) from exc
        return meta

    def _record_path(self, chat_id: int, message_id: int) -> Path:
        return self._root / str(int(chat_id)) / f"{int(message_id)}.json"


__all__ = [
    "Clock",
    "FileMetadataStore",
    "InMemoryMetadataStore",
    "MessageMetadata",
    "MetadataStore",
    "NoopMetadataStore",
]
