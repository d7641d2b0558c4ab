"""Test configuration for the scenekit project."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Tuple

import pytest
from pydantic import BaseModel, Field

from scenekit import (
    AnyText,
    Bindings,
    CallbackBinding,
    ChatSession,
    ClearPrompt,
    Command,
    CountingObserver,
    Ctx,
    ExactKey,
    InlineKeyboard,
    InMemoryMetadataStore,
    InMemorySessionStore,
    KeyPrefix,
    MessageBinding,
    Noop,
    NoopWithSideEffects,
    Notification,
    RenderPolicy,
    RouterBuilder,
    Scene,
    SceneKitSettings,
    Stay,
    StayWithSideEffects,
    SwitchScene,
    TaskScheduler,
    Transport,
    TransportError,
    View,
    Viewport,
)
from scenekit.keyboard import rows

CHAT_ID = 7


@dataclass
class SentMessage:
    chat_id: int
    message_id: int
    text: str
    markup: InlineKeyboard | None = None
    parse_mode: str | None = None
    disable_link_preview: bool | None = None
    reply_to: int | None = None


class FakeTransport(Transport):
    """Deterministic in-memory chat API that records every request."""

    def __init__(self, *, first_message_id: int = 100) -> None:
        self._next_id = first_message_id
        self.sent: List[SentMessage] = []
        self.edits: List[Tuple[int, int, str]] = []
        self.deleted: List[Tuple[int, int]] = []
        self.answers: List[Tuple[str, str | None, bool]] = []
        self.fail_send = False
        self.fail_edit = False
        self.fail_delete = False
        self.fail_answer = False
        self.before_render: Callable[[], Awaitable[object]] | None = None

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
        if self.before_render is not None:
            await self.before_render()
        if self.fail_send:
            raise TransportError("send rejected")
        message_id = self._next_id
        self._next_id += 1
        self.sent.append(
            SentMessage(
                chat_id=chat_id,
                message_id=message_id,
                text=text,
                markup=markup,
                parse_mode=parse_mode,
                disable_link_preview=disable_link_preview,
                reply_to=reply_to,
            )
        )
        return message_id

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
        if self.before_render is not None:
            await self.before_render()
        if self.fail_edit or (chat_id, message_id) in self.deleted:
            raise TransportError("message can't be edited")
        self.edits.append((chat_id, message_id, text))

    async def delete(self, chat_id: int, message_id: int) -> None:
        if self.fail_delete:
            raise TransportError("message can't be deleted")
        self.deleted.append((chat_id, message_id))

    async def answer_callback(
        self,
        query_id: str,
        text: str | None = None,
        *,
        show_alert: bool = False,
    ) -> None:
        if self.fail_answer:
            raise TransportError("query is too old")
        self.answers.append((query_id, text, show_alert))


class ManualScheduler(TaskScheduler):
    """Collect delayed jobs so tests can run them on demand."""

    def __init__(self) -> None:
        self.jobs: List[Tuple[float, Callable[[], Awaitable[object]], str]] = []

    def call_later(
        self, delay_secs: float, job: Callable[[], Awaitable[object]], *, name: str = "job"
    ) -> None:
        self.jobs.append((delay_secs, job, name))

    async def run_all(self) -> None:
        jobs, self.jobs = self.jobs, []
        for _, job, _ in jobs:
            await job()


class FakeClock:
    """Deterministic clock used to simulate time progression in tests."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self._now = now

    def __call__(self) -> float:
        return self._now

    def advance(self, delta: float) -> None:
        self._now += delta


class Tally(BaseModel):
    total: int = 0
    asking: bool = False
    history: List[int] = Field(default_factory=list)


@dataclass(frozen=True)
class Add:
    amount: int


@dataclass(frozen=True)
class Start:
    pass


@dataclass(frozen=True)
class AskAmount:
    pass


@dataclass(frozen=True)
class Typed:
    text: str


@dataclass(frozen=True)
class Jump:
    target: str


@dataclass(frozen=True)
class Ping:
    ttl_secs: int | None = None


@dataclass(frozen=True)
class Idle:
    pass


def _decode_tally_callback(query: Any) -> Any:
    payload = (query.data or "")[len("a:"):]
    if payload.isdigit():
        return Add(int(payload))
    if payload == "ask":
        return AskAmount()
    if payload.startswith("jump:"):
        return Jump(payload[len("jump:"):])
    if payload == "ping":
        return Ping(ttl_secs=5)
    if payload == "idle":
        return Idle()
    return None


class TallyScene(Scene[Tally, Any]):
    """Adds numbers picked from buttons or typed into a prompt."""

    id = "a"
    prefix = "a"
    version = 1
    state_type = Tally

    def init(self, ctx: Ctx) -> Tally:
        return Tally()

    def render(self, ctx: Ctx, state: Tally) -> View:
        if state.asking:
            return View(text="Enter an amount")
        return View(
            text=f"Total: {state.total}",
            markup=rows([[("+1", "a:1"), ("+5", "a:5")], [("Type", "a:ask")]]),
        )

    def update(self, ctx: Ctx, state: Tally, event: Any) -> Any:
        if isinstance(event, Add):
            return Stay(
                Tally(total=state.total + event.amount, history=state.history + [event.amount]),
                RenderPolicy.EDIT_OR_REPLY,
            )
        if isinstance(event, Start):
            return Stay(state, RenderPolicy.SEND_NEW)
        if isinstance(event, AskAmount):
            return Stay(state.model_copy(update={"asking": True}), RenderPolicy.SEND_NEW)
        if isinstance(event, Typed):
            if not event.text.strip().isdigit():
                return Noop()
            amount = int(event.text.strip())
            return StayWithSideEffects(
                Tally(total=state.total + amount, history=state.history + [amount]),
                RenderPolicy.EDIT_OR_REPLY,
                (ClearPrompt(),),
            )
        if isinstance(event, Jump):
            return SwitchScene(event.target)
        if isinstance(event, Ping):
            return NoopWithSideEffects((Notification("Saved", ttl_secs=event.ttl_secs),))
        return Noop()

    def bindings(self) -> Bindings[Any]:
        return Bindings(
            messages=[
                MessageBinding(Command("start"), lambda message: Start()),
                MessageBinding(AnyText(), lambda message: Typed(message.text or "")),
            ],
            callbacks=[CallbackBinding(KeyPrefix("a:"), _decode_tally_callback)],
        )


class ProfileScene(Scene[str, str]):
    """Scene whose prefix shares leading characters with ``TallyScene``."""

    id = "profile"
    prefix = "ab"
    version = 2
    state_type = str

    def init(self, ctx: Ctx) -> str:
        return "guest"

    def render(self, ctx: Ctx, state: str) -> View:
        return View(text=f"Profile of {state}", markup=rows([[("Rename", "ab:rename")]]))

    def update(self, ctx: Ctx, state: str, event: str) -> Any:
        if event == "rename":
            return Stay(state.upper(), RenderPolicy.EDIT_OR_REPLY)
        if event == "help":
            return Stay(state, RenderPolicy.SEND_NEW)
        return Noop()

    def bindings(self) -> Bindings[str]:
        return Bindings(
            messages=[MessageBinding(Command("profile"), lambda message: "open")],
            callbacks=[
                CallbackBinding(ExactKey("ab"), lambda query: "open"),
                CallbackBinding(ExactKey("ab:rename"), lambda query: "rename"),
                CallbackBinding(KeyPrefix("legacy-profile"), lambda query: "open"),
            ],
        )


@dataclass
class Harness:
    """Bundle of a router and the doubles wired into it."""

    transport: FakeTransport
    sessions: InMemorySessionStore
    metadata: InMemoryMetadataStore
    scheduler: ManualScheduler
    observer: CountingObserver
    clock: FakeClock
    viewport: Viewport
    builder: RouterBuilder
    chat_id: int = CHAT_ID
    _router: Any = field(default=None, init=False)

    @property
    def router(self) -> Any:
        if self._router is None:
            self._router = self.builder.build()
        return self._router

    @property
    def chat(self) -> ChatSession:
        return ChatSession(self.sessions, self.chat_id)

    def ctx(self) -> Ctx:
        return Ctx(user_id=1, chat_id=self.chat_id)


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def make_harness() -> Callable[..., Harness]:
    """Factory fixture wiring a router with in-memory doubles."""

    def _factory(*scenes: Scene[Any, Any], settings: SceneKitSettings | None = None) -> Harness:
        transport = FakeTransport()
        sessions = InMemorySessionStore()
        clock = FakeClock()
        metadata = InMemoryMetadataStore(clock=clock)
        scheduler = ManualScheduler()
        observer = CountingObserver()
        viewport = Viewport(
            transport,
            metadata,
            scheduler=scheduler,
            observer=observer,
            settings=settings,
            clock=clock,
        )
        builder = RouterBuilder(viewport, sessions)
        for scene in scenes:
            builder.route(scene)
        return Harness(
            transport=transport,
            sessions=sessions,
            metadata=metadata,
            scheduler=scheduler,
            observer=observer,
            clock=clock,
            viewport=viewport,
            builder=builder,
        )

    return _factory


@pytest.fixture()
def tally_scene() -> TallyScene:
    return TallyScene()


@pytest.fixture()
def profile_scene() -> ProfileScene:
    return ProfileScene()


__all__ = [
    "CHAT_ID",
    "FakeClock",
    "FakeTransport",
    "Harness",
    "ManualScheduler",
    "ProfileScene",
    "SentMessage",
    "Tally",
    "TallyScene",
    "fake_clock",
    "make_harness",
    "profile_scene",
    "tally_scene",
    "transport",
]
