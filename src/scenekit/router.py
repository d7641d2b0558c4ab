"""Scene registration and event dispatch."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple, Union

from . import callbacks
from .engine import MessageEntry, Turn, init_and_render, run_callback, run_message
from .errors import ConfigurationError, DuplicateSceneId, DuplicateScenePrefix
from .observer import RouterObserver
from .scene import Ctx, Scene
from .session import ChatSession, SessionStore
from .settings import SceneKitSettings
from .transport import CallbackQuery, IncomingMessage
from .viewport import Viewport

logger = logging.getLogger(__name__)

IncomingEvent = Union[IncomingMessage, CallbackQuery]


@dataclass(frozen=True)
class SceneRoute:
    """A registered scene plus its optional prompt entry handler."""

    scene: Scene[Any, Any]
    message_entry: MessageEntry | None = None

    @property
    def id(self) -> str:
        return self.scene.id

    @property
    def prefix(self) -> str:
        return self.scene.prefix

    @property
    def version(self) -> int:
        return self.scene.version


class RouterBuilder:
    """Collect scenes in registration order and validate them on ``build``."""

    def __init__(
        self,
        viewport: Viewport,
        sessions: SessionStore,
        *,
        observer: RouterObserver | None = None,
        settings: SceneKitSettings | None = None,
    ) -> None:
        self._viewport = viewport
        self._sessions = sessions
        self._observer = observer
        self._settings = settings
        self._routes: List[SceneRoute] = []

    def route(
        self,
        scene: Scene[Any, Any],
        *,
        message_entry: MessageEntry | None = None,
    ) -> "RouterBuilder":
        """Register ``scene``; earlier registrations win free-text matches."""

        self._routes.append(SceneRoute(scene=scene, message_entry=message_entry))
        return self

    def build(self) -> "Router":
        """Return a router, failing fast on an invalid scene set.

        Raises:
            DuplicateSceneId: If two scenes share an id.
            DuplicateScenePrefix: If two scenes share a callback prefix.
            ConfigurationError: If a scene has an empty id or prefix.
        """

        seen_ids: set[str] = set()
        seen_prefixes: set[str] = set()
        for route in self._routes:
            scene_id = getattr(route.scene, "id", None)
            prefix = getattr(route.scene, "prefix", None)
            if not isinstance(scene_id, str) or not scene_id:
                raise ConfigurationError(
                    f"{type(route.scene).__name__} must define a non-empty string id"
                )
            if not isinstance(prefix, str) or not prefix:
                raise ConfigurationError(
                    f"scene '{scene_id}' must define a non-empty string prefix"
                )

            if scene_id in seen_ids:
                raise DuplicateSceneId(scene_id)
            seen_ids.add(scene_id)

            if prefix in seen_prefixes:
                raise DuplicateScenePrefix(prefix)
            seen_prefixes.add(prefix)

        observer = self._observer
        if observer is None:
            observer = self._viewport.observer
        settings = self._settings
        if settings is None:
            settings = self._viewport.settings

        return Router(
            tuple(self._routes),
            viewport=self._viewport,
            sessions=self._sessions,
            observer=observer,
            settings=settings,
        )


class Router:
    """Resolve incoming events to scenes and drive them.

    Build instances with :class:`RouterBuilder`. Each event is handled on
    its own; nothing serialises events of the same chat.
    """

    def __init__(
        self,
        routes: Tuple[SceneRoute, ...],
        *,
        viewport: Viewport,
        sessions: SessionStore,
        observer: RouterObserver,
        settings: SceneKitSettings,
    ) -> None:
        self._routes = routes
        self._by_id: Dict[str, SceneRoute] = {route.id: route for route in routes}
        self.viewport = viewport
        self.sessions = sessions
        self.observer = observer
        self.settings = settings

    @property
    def routes(self) -> Tuple[SceneRoute, ...]:
        return self._routes

    def has_scene(self, scene_id: str) -> bool:
        return scene_id in self._by_id

    def get_scene(self, scene_id: str) -> Scene[Any, Any] | None:
        route = self._by_id.get(scene_id)
        return route.scene if route is not None else None

    def find_scene_for_callback(self, data: str) -> Tuple[str, int] | None:
        """Return ``(scene_id, version)`` of the scene claiming ``data``."""

        route = self._route_for_callback(data)
        if route is None:
            return None
        return route.id, route.version

    def _route_for_callback(self, data: str) -> SceneRoute | None:
        if not data:
            return None

        for route in self._routes:
            if route.scene.owns_callback(data):
                return route

        for route in self._routes:
            if route.scene.matches_callback(data):
                return route
        return None

    def _turn(self, ctx: Ctx) -> Turn:
        if ctx.chat_id is None:
            raise ValueError("ctx.chat_id is required to handle an event")
        return Turn(
            ctx=ctx,
            chat=ChatSession(self.sessions, ctx.chat_id),
            viewport=self.viewport,
            switcher=self,
            observer=self.observer,
            snapshot_ttl_secs=self.settings.snapshot_ttl_secs,
        )

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def handle(self, ctx: Ctx, event: IncomingEvent) -> bool:
        """Dispatch a message or callback query; ``True`` if a scene took it."""

        if isinstance(event, IncomingMessage):
            return await self.handle_message(ctx, event)
        if isinstance(event, CallbackQuery):
            return await self.handle_callback(ctx, event)
        raise TypeError(f"unsupported event {event!r}")

    async def handle_message(self, ctx: Ctx, message: IncomingMessage) -> bool:
        """Route a text message to the scene that should see it.

        The chat's active scene gets it exclusively; without one, the scene
        that produced the last-action message does. Otherwise every scene's
        bindings are tried in registration order. Unclaimed messages are
        deleted when ``delete_unhandled_messages`` is set.
        """

        self.observer.on_event("msg", ctx.chat_id or 0, ctx.user_id)
        turn = self._turn(ctx)

        target = await self._route_for_message(turn.chat)
        if target is not None:
            handled = await run_message(target.scene, turn, message, target.message_entry)
        else:
            handled = False
            for route in self._routes:
                if await run_message(route.scene, turn, message, route.message_entry):
                    handled = True
                    break

        if not handled:
            logger.debug("unhandled message %s in chat %s", message.message_id, message.chat_id)
            if self.settings.delete_unhandled_messages:
                await self.viewport.delete_incoming(message)
        return handled

    async def _route_for_message(self, chat: ChatSession) -> SceneRoute | None:
        session = await chat.peek()
        if session is None:
            return None

        if session.active_scene_id is not None:
            route = self._by_id.get(session.active_scene_id)
            if route is not None:
                return route

        if session.last_message_id is not None:
            hint = session.scene_hint_for(session.last_message_id)
            if hint is not None:
                return self._by_id.get(hint.scene_id)
        return None

    async def handle_callback(self, ctx: Ctx, query: CallbackQuery) -> bool:
        """Route a button press, intercepting reserved UI controls first.

        Oversized or non-ASCII payloads are acknowledged and dropped before
        the session or any scene sees them.
        """

        self.observer.on_event("cb", ctx.chat_id or 0, ctx.user_id)
        turn = self._turn(ctx)
        transport = self.viewport.transport

        data = query.data or ""
        if not callbacks.is_valid_callback_data(data):
            logger.warning("rejected callback payload in chat %s", turn.chat.chat_id)
            await callbacks.answer_callback_safe(transport, query)
            return False

        await self.viewport.activate_from_callback(turn.chat, query, self)

        if data in callbacks.RESERVED:
            await self._handle_reserved(turn, query, data)
            return True

        tried: set[str] = set()
        route = self._route_for_callback(data)
        if route is not None:
            tried.add(route.id)
            if await run_callback(route.scene, turn, query):
                return True

        for route in self._routes:
            if route.id in tried:
                continue
            if await run_callback(route.scene, turn, query):
                return True

        await callbacks.answer_callback_safe(
            transport, query, self.settings.stale_menu_text, show_alert=True
        )
        return False

    async def _handle_reserved(self, turn: Turn, query: CallbackQuery, data: str) -> None:
        transport = self.viewport.transport
        origin = query.origin

        if data == callbacks.CANCEL:
            session = await turn.chat.get_or_default()
            prompt_id = session.input_prompt_message_id
            await self.viewport.clear_input_prompt(turn.chat)
            if origin is not None and origin.message_id != prompt_id:
                await self._delete_origin(turn, origin.chat_id, origin.message_id)
            await callbacks.answer_callback_safe(transport, query)
        elif data == callbacks.HIDE:
            await callbacks.answer_callback_safe(transport, query)
            if origin is not None:
                await self._delete_origin(turn, origin.chat_id, origin.message_id)
        else:
            await callbacks.answer_callback_safe(transport, query)

    async def _delete_origin(self, turn: Turn, chat_id: int, message_id: int) -> None:
        await self.viewport.delete_message(chat_id, message_id)

        session = await turn.chat.get_or_default()
        if session.last_message_id != message_id and session.input_prompt_message_id != message_id:
            return
        if session.last_message_id == message_id:
            session.last_message_id = None
            session.reply_to_last_once = False
        if session.input_prompt_message_id == message_id:
            session.input_prompt_message_id = None
        await turn.chat.update(session, reason="delete_origin")

    async def switch_to(self, ctx: Ctx, scene_id: str) -> bool:
        """Enter ``scene_id`` from scratch; ``False`` if it is not registered."""

        route = self._by_id.get(scene_id)
        if route is None:
            logger.warning("switch to unknown scene %s", scene_id)
            return False

        await init_and_render(route.scene, self._turn(ctx))
        return True


__all__ = ["IncomingEvent", "Router", "RouterBuilder", "SceneRoute"]
