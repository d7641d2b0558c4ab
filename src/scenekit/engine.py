"""Restore scene state, run scene updates and apply the resulting effects."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, Protocol, Sequence, Tuple

from . import callbacks
from .keyboard import InlineButton, InlineKeyboard
from .observer import RouterObserver
from .scene import (
    ClearPrompt,
    Ctx,
    Effect,
    Noop,
    NoopWithSideEffects,
    Notification,
    RenderPolicy,
    Scene,
    SideEffect,
    Snapshot,
    StateT,
    Stay,
    StayWithSideEffects,
    SwitchScene,
    effect_label,
)
from .errors import TransportError
from .session import ChatSession
from .transport import CallbackQuery, IncomingMessage, Transport
from .viewport import MetaSpec, Viewport

logger = logging.getLogger(__name__)

RESTORE_DIALOGUE = "dialogue"
RESTORE_META = "meta"
RESTORE_MISMATCH = "mismatch"
RESTORE_INIT = "init"

NOTIFICATION_DISABLE_TEXT = "Disable Notifications"
NOTIFICATION_HIDE_TEXT = "Hide"

MessageEntry = Callable[
    [Transport, ChatSession, IncomingMessage, Any], Awaitable[Optional[Any]]
]


class SceneSwitcher(Protocol):
    async def switch_to(self, ctx: Ctx, scene_id: str) -> bool:
        ...


@dataclass(frozen=True)
class RestoreResult(Generic[StateT]):
    """Restored (or freshly initialised) state and the tier it came from."""

    state: StateT
    label: str


@dataclass(frozen=True)
class Turn:
    """Everything a scene needs while handling one incoming event."""

    ctx: Ctx
    chat: ChatSession
    viewport: Viewport
    switcher: SceneSwitcher
    observer: RouterObserver
    snapshot_ttl_secs: int

    @property
    def transport(self) -> Transport:
        return self.viewport.transport


def _meta_spec(scene: Scene[Any, Any], turn: Turn, state: Any) -> MetaSpec:
    return MetaSpec(
        scene_id=scene.id,
        scene_version=scene.version,
        state_json=scene.snapshot(state),
        ttl_secs=turn.snapshot_ttl_secs,
    )


async def restore_state(
    scene: Scene[StateT, Any],
    turn: Turn,
    source: Tuple[int, int] | None,
) -> RestoreResult[StateT]:
    """Rebuild ``scene``'s state for the message at ``source``.

    The session copy is tried first when ``source`` is the chat's last-action
    message, then the durable metadata record. A metadata record that exists
    but does not restore is labelled ``"mismatch"``. Whatever fails, the scene
    starts again from ``init``.
    """

    state: StateT | None = None
    label = RESTORE_INIT

    if source is not None:
        chat_id, message_id = source

        session = await turn.chat.peek()
        if session is not None and session.last_message_id == message_id:
            hint = session.scene_hint_for(message_id)
            if hint is not None:
                state = scene.restore(
                    Snapshot(
                        scene_id=hint.scene_id,
                        scene_version=hint.scene_version,
                        state_json=hint.state_json,
                        checksum=hint.checksum,
                    )
                )
                if state is not None:
                    label = RESTORE_DIALOGUE

        if state is None:
            meta = await turn.viewport.load_meta(chat_id, message_id)
            if meta is not None:
                state = scene.restore(
                    Snapshot(
                        scene_id=meta.scene_id,
                        scene_version=meta.scene_version,
                        state_json=meta.state_json,
                        checksum=meta.state_checksum,
                    )
                )
                label = RESTORE_META if state is not None else RESTORE_MISMATCH

    if state is None:
        state = scene.init(turn.ctx)

    logger.debug("restored scene %s via %s", scene.id, label)
    turn.observer.on_restore(scene.id, label)
    return RestoreResult(state=state, label=label)


async def _mark_active(scene: Scene[Any, Any], turn: Turn, reason: str) -> None:
    session = await turn.chat.get_or_default()
    session.active_scene_id = scene.id
    await turn.chat.update(session, reason=reason)


async def _stay(
    scene: Scene[Any, Any], turn: Turn, state: Any, policy: RenderPolicy, reason: str
) -> None:
    view = scene.render(turn.ctx, state)
    spec = _meta_spec(scene, turn, state)

    # Persist the transition before rendering so concurrent readers see it.
    await _mark_active(scene, turn, reason)
    await turn.viewport.apply_view(turn.chat, view, policy, spec)


async def apply_effect(scene: Scene[Any, Any], turn: Turn, effect: Effect) -> bool:
    """Carry out ``effect`` for ``scene``.

    Returns ``False`` only for a switch to an unknown scene id; every other
    effect counts as handled even when rendering degraded.
    """

    label = effect_label(effect)
    logger.debug("applying %s for scene %s in chat %s", label, scene.id, turn.chat.chat_id)
    turn.observer.on_effect(scene.id, label)

    if isinstance(effect, StayWithSideEffects):
        await _stay(scene, turn, effect.state, effect.policy, "apply_effect:StayWithSideEffects")
        await run_side_effects(turn, effect.effects)
    elif isinstance(effect, Stay):
        await _stay(scene, turn, effect.state, effect.policy, "apply_effect:Stay")
    elif isinstance(effect, SwitchScene):
        return await turn.switcher.switch_to(turn.ctx, effect.target_id)
    elif isinstance(effect, NoopWithSideEffects):
        await run_side_effects(turn, effect.effects)
    elif isinstance(effect, Noop):
        pass
    else:
        raise TypeError(f"unsupported effect {effect!r}")
    return True


async def run_side_effects(turn: Turn, effects: Sequence[SideEffect]) -> None:
    """Execute UI side effects in order; failures are logged and skipped."""

    for side_effect in effects:
        if isinstance(side_effect, Notification):
            markup = InlineKeyboard(
                rows=(
                    (
                        InlineButton(
                            NOTIFICATION_DISABLE_TEXT,
                            callbacks.DISABLE_INFO_NOTIFICATIONS,
                        ),
                        InlineButton(NOTIFICATION_HIDE_TEXT, callbacks.HIDE),
                    ),
                )
            )
            try:
                await turn.viewport.notify_ephemeral(
                    turn.chat.chat_id,
                    side_effect.text,
                    side_effect.ttl_secs,
                    markup=markup,
                )
            except TransportError as exc:
                logger.warning(
                    "notification send failed for chat %s: %s", turn.chat.chat_id, exc
                )
        elif isinstance(side_effect, ClearPrompt):
            await turn.viewport.clear_input_prompt(turn.chat)
        else:
            raise TypeError(f"unsupported side effect {side_effect!r}")


async def init_and_render(scene: Scene[Any, Any], turn: Turn) -> None:
    """Enter ``scene`` from scratch and show it, editing in place if possible."""

    state = scene.init(turn.ctx)
    await _stay(scene, turn, state, RenderPolicy.EDIT_OR_REPLY, "init_and_render")


async def run_callback(scene: Scene[Any, Any], turn: Turn, query: CallbackQuery) -> bool:
    """Let ``scene`` handle a button press; ``False`` if no binding decodes it."""

    event = scene.decode_callback(query)
    if event is None:
        return False

    source = None
    if query.origin is not None:
        source = (query.origin.chat_id, query.origin.message_id)

    restored = await restore_state(scene, turn, source)
    effect = scene.update(turn.ctx, restored.state, event)
    await apply_effect(scene, turn, effect)

    await callbacks.answer_callback_safe(turn.transport, query)
    return True


async def run_message(
    scene: Scene[Any, Any],
    turn: Turn,
    message: IncomingMessage,
    entry: MessageEntry | None = None,
) -> bool:
    """Let ``scene`` handle a text message; ``False`` if nothing matched.

    While an input prompt owned by ``scene`` is open, the user's reply is
    removed from the chat and handed to ``entry`` first. Otherwise the
    scene's message bindings are tried, with free-text bindings enabled only
    while a prompt is open.
    """

    session = await turn.chat.peek()
    prompt_id = session.input_prompt_message_id if session is not None else None
    last_id = session.last_message_id if session is not None else None

    if prompt_id is not None:
        meta = await turn.viewport.load_meta(turn.chat.chat_id, prompt_id)
        current = None
        if meta is not None:
            current = scene.restore(
                Snapshot(
                    scene_id=meta.scene_id,
                    scene_version=meta.scene_version,
                    state_json=meta.state_json,
                    checksum=meta.state_checksum,
                )
            )
        if current is not None:
            await turn.viewport.delete_incoming(message)
            if entry is not None:
                next_state = await entry(turn.transport, turn.chat, message, current)
                if next_state is not None:
                    view = scene.render(turn.ctx, next_state)
                    await turn.viewport.apply_view(
                        turn.chat,
                        view,
                        RenderPolicy.EDIT_OR_REPLY,
                        _meta_spec(scene, turn, next_state),
                    )
                    return True

    event = scene.decode_message(message, prompt_active=prompt_id is not None)
    if event is None:
        return False

    source_id = prompt_id if prompt_id is not None else last_id
    source = (turn.chat.chat_id, source_id) if source_id is not None else None

    restored = await restore_state(scene, turn, source)
    effect = scene.update(turn.ctx, restored.state, event)
    await apply_effect(scene, turn, effect)
    return True


__all__ = [
    "MessageEntry",
    "NOTIFICATION_DISABLE_TEXT",
    "NOTIFICATION_HIDE_TEXT",
    "RESTORE_DIALOGUE",
    "RESTORE_INIT",
    "RESTORE_META",
    "RESTORE_MISMATCH",
    "RestoreResult",
    "SceneSwitcher",
    "Turn",
    "apply_effect",
    "init_and_render",
    "restore_state",
    "run_callback",
    "run_message",
    "run_side_effects",
]
