"""The scene protocol: per-flow state machines driven by chat events."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import (
    Any,
    Callable,
    ClassVar,
    Generic,
    Optional,
    Pattern,
    Sequence,
    Tuple,
    TypeVar,
    Union,
)

from pydantic import TypeAdapter, ValidationError

from .callbacks import encode_callback, strip_scene_prefix
from .integrity import canonical_json, content_checksum
from .keyboard import InlineKeyboard
from .transport import CallbackQuery, IncomingMessage

StateT = TypeVar("StateT")
EventT = TypeVar("EventT")

MAX_SCENE_VERSION = 0xFFFF


@dataclass(frozen=True)
class Ctx:
    """Per-event context handed to every scene method."""

    user_id: int | None = None
    chat_id: int | None = None
    username: str | None = None


class RenderPolicy(Enum):
    """How a rendered view reaches the chat."""

    EDIT_OR_REPLY = "edit_or_reply"
    EDIT_ONLY = "edit_only"
    SEND_NEW = "send_new"


@dataclass(frozen=True)
class View:
    """Text and markup produced by :meth:`Scene.render`."""

    text: str
    markup: InlineKeyboard | None = None
    parse_mode: str | None = None
    disable_link_preview: bool | None = None

    @property
    def is_prompt(self) -> bool:
        """Return ``True`` when the view has no buttons and asks for input."""

        return self.markup is None or self.markup.is_empty


# ---------------------------------------------------------------------------
# Effects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Notification:
    """Post a short-lived message with "disable" and "hide" controls."""

    text: str
    ttl_secs: int | None = None

    def __post_init__(self) -> None:
        if self.ttl_secs is not None and self.ttl_secs < 0:
            raise ValueError("ttl_secs must be zero or a positive integer")


@dataclass(frozen=True)
class ClearPrompt:
    """Delete the chat's open input prompt, if any."""


SideEffect = Union[Notification, ClearPrompt]


@dataclass(frozen=True)
class Stay(Generic[StateT]):
    state: StateT
    policy: RenderPolicy = RenderPolicy.EDIT_OR_REPLY


@dataclass(frozen=True)
class StayWithSideEffects(Generic[StateT]):
    state: StateT
    policy: RenderPolicy = RenderPolicy.EDIT_OR_REPLY
    effects: Tuple[SideEffect, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "effects", tuple(self.effects))


@dataclass(frozen=True)
class SwitchScene:
    target_id: str


@dataclass(frozen=True)
class Noop:
    pass


@dataclass(frozen=True)
class NoopWithSideEffects:
    effects: Tuple[SideEffect, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "effects", tuple(self.effects))


Effect = Union[Stay, StayWithSideEffects, SwitchScene, Noop, NoopWithSideEffects]


def effect_label(effect: Effect) -> str:
    """Return the effect's kind name, used for logging and observers."""

    return type(effect).__name__


# ---------------------------------------------------------------------------
# Bindings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Command:
    """Match ``/name`` optionally followed by ``@bot`` and arguments."""

    name: str

    def __post_init__(self) -> None:
        name = self.name.strip().lstrip("/")
        if not name:
            raise ValueError("command name must be a non-empty string")
        object.__setattr__(self, "name", name)

    def matches(self, text: str) -> bool:
        head = text.strip().split(maxsplit=1)
        if not head:
            return False
        command = head[0].split("@", 1)[0]
        return command == f"/{self.name}"


@dataclass(frozen=True)
class TextPrefix:
    prefix: str

    def matches(self, text: str) -> bool:
        return text.startswith(self.prefix)


@dataclass(frozen=True)
class Regex:
    pattern: str
    _compiled: Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_compiled", re.compile(self.pattern))

    def matches(self, text: str) -> bool:
        return self._compiled.search(text) is not None


@dataclass(frozen=True)
class AnyText:
    """Match any free text; only consulted while an input prompt is open."""

    def matches(self, text: str) -> bool:
        return True


MessagePattern = Union[Command, TextPrefix, Regex, AnyText]


@dataclass(frozen=True)
class ExactKey:
    key: str

    def matches(self, data: str) -> bool:
        return data == self.key


@dataclass(frozen=True)
class KeyPrefix:
    prefix: str

    def matches(self, data: str) -> bool:
        return data.startswith(self.prefix)


CallbackKey = Union[ExactKey, KeyPrefix]


@dataclass(frozen=True)
class MessageBinding(Generic[EventT]):
    pattern: MessagePattern
    to_event: Callable[[IncomingMessage], Optional[EventT]]


@dataclass(frozen=True)
class CallbackBinding(Generic[EventT]):
    key: CallbackKey
    to_event: Callable[[CallbackQuery], Optional[EventT]]


@dataclass(frozen=True)
class Bindings(Generic[EventT]):
    """Decoders turning raw chat events into scene events."""

    messages: Sequence[MessageBinding[EventT]] = ()
    callbacks: Sequence[CallbackBinding[EventT]] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "messages", tuple(self.messages))
        object.__setattr__(self, "callbacks", tuple(self.callbacks))


@dataclass(frozen=True)
class Snapshot:
    """Candidate serialised state passed through the restore pipeline."""

    scene_id: str
    scene_version: int
    state_json: str | None = None
    checksum: str | None = None


@lru_cache(maxsize=None)
def _adapter_for(state_type: Any) -> TypeAdapter[Any]:
    return TypeAdapter(state_type)


class Scene(ABC, Generic[StateT, EventT]):
    """Base class for a self-contained conversation flow.

    Subclasses declare ``id``, ``prefix`` and ``version`` as class attributes
    and a ``state_type`` that pydantic can validate and dump (a model,
    dataclass, enum, primitive or a container of those). ``render`` must be
    free of side effects; everything that changes the chat flows through the
    :data:`Effect` returned by ``update``.
    """

    id: ClassVar[str]
    prefix: ClassVar[str]
    version: ClassVar[int] = 1
    state_type: ClassVar[Any] = Any

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        version = getattr(cls, "version", 1)
        if not isinstance(version, int) or not 0 <= version <= MAX_SCENE_VERSION:
            raise ValueError(
                f"{cls.__name__}.version must be an integer between 0 and {MAX_SCENE_VERSION}"
            )

    @abstractmethod
    def init(self, ctx: Ctx) -> StateT:
        """Return the starting state when nothing can be restored."""

    @abstractmethod
    def render(self, ctx: Ctx, state: StateT) -> View:
        """Describe how ``state`` should look in the chat."""

    @abstractmethod
    def update(self, ctx: Ctx, state: StateT, event: EventT) -> Effect:
        """Apply ``event`` to ``state`` and describe the outcome."""

    @abstractmethod
    def bindings(self) -> Bindings[EventT]:
        """Return the message and callback decoders of this scene."""

    def snapshot(self, state: StateT) -> str | None:
        """Serialise ``state`` to canonical JSON.

        Returns ``None`` when the state cannot be serialised; such a state is
        simply not restorable later and the scene starts over from ``init``.
        """

        try:
            dumped = _adapter_for(self.state_type).dump_python(state, mode="json")
            return canonical_json(dumped)
        except (TypeError, ValueError):
            return None

    def restore(self, snapshot: Snapshot) -> StateT | None:
        """Rebuild state from ``snapshot`` or return ``None`` if it is not ours.

        The snapshot must name this scene and version. A supplied checksum has
        to match a fresh hash of ``state_json``. Nothing here raises: a
        rejected snapshot only means the caller falls back to ``init``.
        """

        if snapshot.scene_id != self.id:
            return None
        if snapshot.scene_version != self.version:
            return None
        if snapshot.state_json is None:
            return None
        if snapshot.checksum is not None:
            if snapshot.checksum != content_checksum(snapshot.state_json):
                return None

        try:
            return _adapter_for(self.state_type).validate_json(snapshot.state_json)
        except ValidationError:
            return None

    def callback(self, payload: str | None = None) -> str:
        """Return callback data addressed to this scene."""

        return encode_callback(self.prefix, payload)

    def owns_callback(self, data: str) -> bool:
        return strip_scene_prefix(self.prefix, data) is not None

    def callback_payload(self, data: str) -> str | None:
        """Return the part of ``data`` after this scene's prefix, if owned."""

        return strip_scene_prefix(self.prefix, data)

    def matches_callback(self, data: str) -> bool:
        """Return ``True`` if the prefix or any callback key claims ``data``."""

        if self.owns_callback(data):
            return True
        return any(binding.key.matches(data) for binding in self.bindings().callbacks)

    def decode_message(
        self, message: IncomingMessage, *, prompt_active: bool
    ) -> EventT | None:
        """Return the first event a message binding decodes from ``message``.

        ``AnyText`` bindings are skipped unless an input prompt is open so
        that unrelated chatter is not swallowed.
        """

        text = message.text
        if text is None:
            return None

        for binding in self.bindings().messages:
            if isinstance(binding.pattern, AnyText) and not prompt_active:
                continue
            if not binding.pattern.matches(text):
                continue
            event = binding.to_event(message)
            if event is not None:
                return event
        return None

    def decode_callback(self, query: CallbackQuery) -> EventT | None:
        data = query.data or ""
        for binding in self.bindings().callbacks:
            if not binding.key.matches(data):
                continue
            event = binding.to_event(query)
            if event is not None:
                return event
        return None


__all__ = [
    "AnyText",
    "Bindings",
    "CallbackBinding",
    "CallbackKey",
    "ClearPrompt",
    "Command",
    "Ctx",
    "Effect",
    "ExactKey",
    "KeyPrefix",
    "MessageBinding",
    "MessagePattern",
    "Noop",
    "NoopWithSideEffects",
    "Notification",
    "Regex",
    "RenderPolicy",
    "Scene",
    "SideEffect",
    "Snapshot",
    "Stay",
    "StayWithSideEffects",
    "SwitchScene",
    "TextPrefix",
    "View",
    "effect_label",
    "MAX_SCENE_VERSION",
]
