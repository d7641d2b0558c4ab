"""Callback payload conventions shared by scenes and the router."""

from __future__ import annotations

import logging

from .errors import TransportError
from .transport import CallbackQuery, Transport

logger = logging.getLogger(__name__)

BACK = "ui:back"
CANCEL = "ui:cancel"
HIDE = "ui:hide"
DISABLE_NOTIFICATIONS = "ui:disable_notifications"
DISABLE_INFO_NOTIFICATIONS = "ui:disable_info_notifications"

RESERVED = frozenset(
    {BACK, CANCEL, HIDE, DISABLE_NOTIFICATIONS, DISABLE_INFO_NOTIFICATIONS}
)

MAX_CALLBACK_BYTES = 64
PAYLOAD_SEPARATOR = ":"


def is_valid_callback_data(data: str) -> bool:
    """Return ``True`` when ``data`` is ASCII and fits the payload limit."""

    try:
        encoded = data.encode("ascii")
    except UnicodeEncodeError:
        return False
    return len(encoded) <= MAX_CALLBACK_BYTES


def strip_scene_prefix(prefix: str, data: str) -> str | None:
    """Return the payload following ``prefix`` or ``None`` if it is not ours.

    ``data`` belongs to ``prefix`` only when nothing follows the prefix or the
    remainder starts with the separator, so ``"ab:1"`` is never attributed to
    a scene whose prefix is ``"a"``. The returned payload excludes the
    separator and is empty for a bare prefix.
    """

    if not data.startswith(prefix):
        return None

    rest = data[len(prefix):]
    if not rest:
        return ""
    if rest.startswith(PAYLOAD_SEPARATOR):
        return rest[len(PAYLOAD_SEPARATOR):]
    return None


def encode_callback(prefix: str, payload: str | None = None) -> str:
    """Build a ``<prefix>`` or ``<prefix>:<payload>`` callback string."""

    if payload is None:
        return prefix
    return f"{prefix}{PAYLOAD_SEPARATOR}{payload}"


async def answer_callback_safe(
    transport: Transport,
    query: CallbackQuery,
    text: str | None = None,
    *,
    show_alert: bool = False,
) -> bool:
    """Acknowledge ``query`` and log instead of raising on failure."""

    try:
        await transport.answer_callback(query.id, text, show_alert=show_alert)
    except TransportError as exc:
        logger.warning("answer_callback failed for query %s: %s", query.id, exc)
        return False
    return True


async def show_success_alert(
    transport: Transport, query: CallbackQuery, text: str
) -> bool:
    return await answer_callback_safe(transport, query, f"✅ {text}", show_alert=True)


async def show_warning_alert(
    transport: Transport, query: CallbackQuery, text: str
) -> bool:
    return await answer_callback_safe(transport, query, f"⚠️ {text}", show_alert=True)


async def show_error_alert(
    transport: Transport, query: CallbackQuery, text: str
) -> bool:
    return await answer_callback_safe(transport, query, f"❌ {text}", show_alert=True)


__all__ = [
    "BACK",
    "CANCEL",
    "HIDE",
    "DISABLE_NOTIFICATIONS",
    "DISABLE_INFO_NOTIFICATIONS",
    "RESERVED",
    "MAX_CALLBACK_BYTES",
    "PAYLOAD_SEPARATOR",
    "is_valid_callback_data",
    "strip_scene_prefix",
    "encode_callback",
    "answer_callback_safe",
    "show_success_alert",
    "show_warning_alert",
    "show_error_alert",
]
