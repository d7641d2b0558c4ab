"""Hooks for counting what the router does, in place of a metrics global."""

from __future__ import annotations

from collections import Counter
from typing import Tuple


class RouterObserver:
    """Receive notifications about routing decisions.

    Every hook is a no-op; subclasses override the ones they care about and
    forward them to whatever metrics backend the application uses.
    """

    def on_event(self, kind: str, chat_id: int, user_id: int | None) -> None:
        """Called once per incoming ``"msg"`` or ``"cb"`` event."""

    def on_restore(self, scene_id: str, label: str) -> None:
        """Called with the restore tier that produced a scene's state."""

    def on_effect(self, scene_id: str, effect: str) -> None:
        """Called with the kind of effect a scene's update returned."""

    def on_render(self, policy: str) -> None:
        """Called whenever the viewport applies a view."""


class CountingObserver(RouterObserver):
    """Tally every hook call in a :class:`collections.Counter`."""

    def __init__(self) -> None:
        self.counts: Counter[Tuple[str, ...]] = Counter()

    def on_event(self, kind: str, chat_id: int, user_id: int | None) -> None:
        self.counts[("event", kind)] += 1

    def on_restore(self, scene_id: str, label: str) -> None:
        self.counts[("restore", scene_id, label)] += 1

    def on_effect(self, scene_id: str, effect: str) -> None:
        self.counts[("effect", scene_id, effect)] += 1

    def on_render(self, policy: str) -> None:
        self.counts[("render", policy)] += 1


__all__ = ["CountingObserver", "RouterObserver"]
