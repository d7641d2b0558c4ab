"""Interface to the chat API and the incoming event types it produces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .errors import TransportError

if TYPE_CHECKING:  # pragma: no cover - imported only for type checking
    from .keyboard import InlineKeyboard


@dataclass(frozen=True)
class IncomingMessage:
    """A text (or non-text) message posted by a user into a chat."""

    chat_id: int
    message_id: int
    text: str | None = None
    user_id: int | None = None


@dataclass(frozen=True)
class OriginMessage:
    """The bot message carrying the button a callback query came from."""

    chat_id: int
    message_id: int


@dataclass(frozen=True)
class CallbackQuery:
    """A button press on an inline keyboard."""

    id: str
    data: str | None = None
    origin: OriginMessage | None = None
    user_id: int | None = None


class Transport(ABC):
    """Narrow view of the chat API used by the router and viewport.

    Implementations raise :class:`~scenekit.errors.TransportError` for every
    failed request. Retries and rate limiting are the implementation's own
    business.
    """

    @abstractmethod
    async def send(
        self,
        chat_id: int,
        text: str,
        *,
        markup: InlineKeyboard | None = None,
        parse_mode: str | None = None,
        disable_link_preview: bool | None = None,
        reply_to: int | None = None,
    ) -> int:
        """Send a new message and return its message id."""

    @abstractmethod
    async def edit(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        *,
        markup: InlineKeyboard | None = None,
        parse_mode: str | None = None,
        disable_link_preview: bool | None = None,
    ) -> None:
        """Replace the text and markup of an existing message."""

    @abstractmethod
    async def delete(self, chat_id: int, message_id: int) -> None:
        """Delete a message from the chat."""

    @abstractmethod
    async def answer_callback(
        self,
        query_id: str,
        text: str | None = None,
        *,
        show_alert: bool = False,
    ) -> None:
        """Acknowledge a callback query, optionally showing ``text``."""


__all__ = [
    "CallbackQuery",
    "IncomingMessage",
    "OriginMessage",
    "Transport",
    "TransportError",
]
