"""Apply rendered views to the chat and remember which scene produced them.

The viewport owns the render policies (edit in place, edit only, send new),
tracks the chat's last-action and input-prompt message ids in the session,
and writes the per-message scene hints and metadata records that the restore
engine reads back later.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Protocol, Tuple

from pydantic import ValidationError

from . import callbacks
from .errors import StorageError, TransportError
from .integrity import SceneHint, content_checksum
from .keyboard import InlineButton, InlineKeyboard
from .metadata import Clock, MessageMetadata, MetadataStore
from .observer import RouterObserver
from .scene import RenderPolicy, View
from .scheduler import AsyncioScheduler, TaskScheduler
from .session import ChatSession, Session
from .settings import DEFAULT_SNAPSHOT_TTL_SECS, SceneKitSettings
from .transport import CallbackQuery, IncomingMessage, Transport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetaSpec:
    """State to remember for the message a view ends up in."""

    scene_id: str
    scene_version: int
    state_json: str | None = None
    state_ref: str | None = None
    ttl_secs: int = DEFAULT_SNAPSHOT_TTL_SECS


class SceneLookup(Protocol):
    def find_scene_for_callback(self, data: str) -> Tuple[str, int] | None:
        ...


def _hint_from_meta(meta: MessageMetadata) -> SceneHint:
    """Carry a metadata record into the session without re-signing it."""

    if meta.state_json is not None and meta.state_checksum is not None:
        return SceneHint(
            scene_id=meta.scene_id,
            scene_version=meta.scene_version,
            state_json=meta.state_json,
            checksum=meta.state_checksum,
        )
    return SceneHint(scene_id=meta.scene_id, scene_version=meta.scene_version)


def _active_scene_hint(session: Session) -> SceneHint | None:
    if session.active_scene_id is None or session.last_message_id is None:
        return None
    previous = session.scene_hint_for(session.last_message_id)
    if previous is None or previous.scene_id != session.active_scene_id:
        return None
    return SceneHint(scene_id=previous.scene_id, scene_version=previous.scene_version)


class Viewport:
    """Render views through a :class:`Transport` and persist message metadata."""

    def __init__(
        self,
        transport: Transport,
        metadata: MetadataStore,
        *,
        scheduler: TaskScheduler | None = None,
        observer: RouterObserver | None = None,
        settings: SceneKitSettings | None = None,
        clock: Clock = time.time,
    ) -> None:
        self.transport = transport
        self.metadata = metadata
        self.scheduler = scheduler if scheduler is not None else AsyncioScheduler()
        self.observer = observer if observer is not None else RouterObserver()
        self.settings = settings if settings is not None else SceneKitSettings()
        self._clock = clock

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    async def load_meta(self, chat_id: int, message_id: int) -> MessageMetadata | None:
        """Return the metadata record for a message, treating errors as absent."""

        try:
            return await self.metadata.load(chat_id, message_id)
        except (StorageError, OSError) as exc:
            logger.warning(
                "metadata load failed for chat %s message %s: %s",
                chat_id,
                message_id,
                exc,
            )
            return None

    async def save_meta(self, chat_id: int, message_id: int, spec: MetaSpec) -> bool:
        """Store metadata for a message without sending anything."""

        checksum = (
            content_checksum(spec.state_json) if spec.state_json is not None else None
        )
        try:
            meta = MessageMetadata(
                scene_id=spec.scene_id,
                scene_version=spec.scene_version,
                state_json=spec.state_json,
                state_ref=spec.state_ref,
                state_checksum=checksum,
                created_at=int(self._clock()),
                ttl_secs=spec.ttl_secs,
            )
            await self.metadata.save(chat_id, message_id, meta)
        except (StorageError, OSError, ValidationError) as exc:
            logger.warning(
                "metadata save failed for chat %s message %s: %s",
                chat_id,
                message_id,
                exc,
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    async def apply_view(
        self,
        chat: ChatSession,
        view: View,
        policy: RenderPolicy,
        meta: MetaSpec | None = None,
    ) -> int | None:
        """Show ``view`` according to ``policy`` and persist ``meta``.

        Returns the id of the message now showing the view, or ``None`` when
        nothing was rendered (edit-only without a target, or a failed send).
        Persistence is best effort: the view has already reached the user
        even if the snapshot cannot be stored.
        """

        self.observer.on_render(policy.value)

        if policy is RenderPolicy.EDIT_OR_REPLY:
            message_id = await self._edit_or_reply(chat, view)
        elif policy is RenderPolicy.EDIT_ONLY:
            message_id = await self._edit_only(chat, view)
        else:
            message_id = await self._send_new(chat, view, meta)

        if message_id is None or meta is None:
            return message_id

        session = await chat.get_or_default()
        session.record_scene_hint(
            message_id,
            SceneHint.for_state(meta.scene_id, meta.scene_version, meta.state_json),
        )
        await chat.update(session, reason="apply_view")

        await self.save_meta(chat.chat_id, message_id, meta)
        return message_id

    async def _edit_or_reply(self, chat: ChatSession, view: View) -> int | None:
        session = await chat.get_or_default()
        target = session.last_message_id

        if target is not None:
            try:
                await self.transport.edit(
                    chat.chat_id,
                    target,
                    view.text,
                    markup=view.markup,
                    parse_mode=view.parse_mode,
                    disable_link_preview=view.disable_link_preview,
                )
            except TransportError as exc:
                logger.debug(
                    "edit failed for chat %s message %s, sending new: %s",
                    chat.chat_id,
                    target,
                    exc,
                )
            else:
                return target

        try:
            message_id = await self.transport.send(
                chat.chat_id,
                view.text,
                markup=view.markup,
                parse_mode=view.parse_mode,
                disable_link_preview=view.disable_link_preview,
            )
        except TransportError as exc:
            logger.warning("send failed for chat %s: %s", chat.chat_id, exc)
            return None

        session = await chat.get_or_default()
        session.last_message_id = message_id
        await chat.update(session, reason="edit_or_reply")
        return message_id

    async def _edit_only(self, chat: ChatSession, view: View) -> int | None:
        session = await chat.get_or_default()
        target = session.last_message_id
        if target is None:
            logger.debug("edit-only skipped for chat %s: no tracked message", chat.chat_id)
            return None

        try:
            await self.transport.edit(
                chat.chat_id,
                target,
                view.text,
                markup=view.markup,
                parse_mode=view.parse_mode,
                disable_link_preview=view.disable_link_preview,
            )
        except TransportError as exc:
            logger.debug(
                "edit-only failed for chat %s message %s: %s",
                chat.chat_id,
                target,
                exc,
            )
            return None
        return target

    async def _send_new(
        self, chat: ChatSession, view: View, meta: MetaSpec | None = None
    ) -> int | None:
        await self.clear_input_prompt(chat)

        if not view.is_prompt:
            try:
                return await self.compact_reply(
                    chat,
                    view.text,
                    markup=view.markup,
                    parse_mode=view.parse_mode,
                    disable_link_preview=view.disable_link_preview,
                    hint=(
                        SceneHint(scene_id=meta.scene_id, scene_version=meta.scene_version)
                        if meta is not None
                        else None
                    ),
                )
            except TransportError as exc:
                logger.warning("send failed for chat %s: %s", chat.chat_id, exc)
                return None

        markup = (view.markup or InlineKeyboard()).with_row(
            [InlineButton(self.settings.close_button_text, callbacks.CANCEL)]
        )

        session = await chat.get_or_default()
        reply_to = session.last_message_id if session.reply_to_last_once else None

        try:
            message_id = await self.transport.send(
                chat.chat_id,
                view.text,
                markup=markup,
                parse_mode=view.parse_mode,
                disable_link_preview=view.disable_link_preview,
                reply_to=reply_to,
            )
        except TransportError as exc:
            logger.warning("prompt send failed for chat %s: %s", chat.chat_id, exc)
            return None

        session = await chat.get_or_default()
        session.input_prompt_message_id = message_id
        session.reply_to_last_once = False
        await chat.update(session, reason="send_prompt")
        return message_id

    # ------------------------------------------------------------------
    # Message helpers
    # ------------------------------------------------------------------

    async def compact_reply(
        self,
        chat: ChatSession,
        text: str,
        *,
        previous: int | None = None,
        markup: InlineKeyboard | None = None,
        parse_mode: str | None = None,
        disable_link_preview: bool | None = None,
        ttl_secs: float | None = None,
        hint: SceneHint | None = None,
    ) -> int:
        """Send ``text`` as the chat's new last-action message.

        ``previous`` is deleted first when given. With ``ttl_secs`` the new
        message is deleted again in the background after that delay. The
        message is attributed to ``hint``, or else to the active scene when
        the tracked last message names its version.

        Raises:
            TransportError: If the message cannot be sent.
        """

        if previous is not None:
            await self._delete_quietly(chat.chat_id, previous, reason="previous message")

        message_id = await self.transport.send(
            chat.chat_id,
            text,
            markup=markup,
            parse_mode=parse_mode,
            disable_link_preview=disable_link_preview,
        )

        if ttl_secs is not None:
            self.schedule_delete(chat.chat_id, message_id, ttl_secs)

        session = await chat.get_or_default()
        if hint is None:
            hint = _active_scene_hint(session)
        if hint is not None:
            session.record_scene_hint(message_id, hint)
        session.last_message_id = message_id
        await chat.update(session, reason="compact_reply")
        return message_id

    async def notify_ephemeral(
        self,
        chat_id: int,
        text: str,
        ttl_secs: float | None = None,
        *,
        markup: InlineKeyboard | None = None,
        parse_mode: str | None = None,
    ) -> int:
        """Send an untracked message, deleting it after ``ttl_secs`` if given.

        Raises:
            TransportError: If the message cannot be sent.
        """

        message_id = await self.transport.send(
            chat_id, text, markup=markup, parse_mode=parse_mode
        )
        if ttl_secs is not None:
            self.schedule_delete(chat_id, message_id, ttl_secs)
        return message_id

    def schedule_delete(self, chat_id: int, message_id: int, delay_secs: float) -> None:
        async def _delete() -> None:
            await self._delete_quietly(chat_id, message_id, reason="ephemeral ttl")

        self.scheduler.call_later(delay_secs, _delete, name=f"delete:{chat_id}:{message_id}")

    async def clear_input_prompt(self, chat: ChatSession) -> None:
        """Delete the chat's tracked input prompt and forget its id."""

        session = await chat.get_or_default()
        prompt_id = session.input_prompt_message_id
        if prompt_id is None:
            return

        await self._delete_quietly(chat.chat_id, prompt_id, reason="prompt")

        session = await chat.get_or_default()
        session.input_prompt_message_id = None
        await chat.update(session, reason="clear_input_prompt")

    async def delete_incoming(self, message: IncomingMessage) -> bool:
        return await self._delete_quietly(
            message.chat_id, message.message_id, reason="incoming message"
        )

    async def delete_message(self, chat_id: int, message_id: int) -> bool:
        try:
            await self.transport.delete(chat_id, message_id)
        except TransportError as exc:
            logger.warning(
                "delete failed for chat %s message %s: %s", chat_id, message_id, exc
            )
            return False
        return True

    async def _delete_quietly(self, chat_id: int, message_id: int, *, reason: str) -> bool:
        try:
            await self.transport.delete(chat_id, message_id)
        except TransportError as exc:
            logger.debug(
                "delete %s failed for chat %s message %s: %s",
                reason,
                chat_id,
                message_id,
                exc,
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Callback bookkeeping
    # ------------------------------------------------------------------

    async def activate_from_callback(
        self,
        chat: ChatSession,
        query: CallbackQuery,
        lookup: SceneLookup,
    ) -> None:
        """Point the session at the message a button was pressed on.

        Users may press buttons on older messages than the one the session
        tracks. The clicked message becomes the last-action message (with a
        one-shot reply flag) unless it already is, or is the open prompt.
        Its owning scene is resolved from metadata, falling back to the
        callback prefix, and recorded as the active scene.
        """

        origin = query.origin
        if origin is None:
            return

        message_id = origin.message_id
        data = query.data or ""

        session = await chat.get_or_default()
        is_prompt_click = session.input_prompt_message_id == message_id
        if not is_prompt_click and session.last_message_id != message_id:
            session.last_message_id = message_id
            session.reply_to_last_once = True

        meta = await self.load_meta(origin.chat_id, message_id)
        if meta is not None:
            session.record_scene_hint(message_id, _hint_from_meta(meta))
            session.active_scene_id = meta.scene_id
        else:
            found = lookup.find_scene_for_callback(data)
            if found is not None:
                scene_id, scene_version = found
                session.record_scene_hint(
                    message_id,
                    SceneHint(scene_id=scene_id, scene_version=scene_version),
                )
                session.active_scene_id = scene_id

        await chat.update(session, reason="activate_from_callback")


__all__ = ["MetaSpec", "SceneLookup", "Viewport"]
