"""Inline keyboard markup attached to rendered views."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence, Tuple


def _validate_text(value: str, *, field_name: str) -> str:
    """Ensure button labels and payloads are non-empty strings."""

    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string, got {type(value)!r}")

    if not value.strip():
        raise ValueError(f"{field_name} must be a non-empty string")
    return value


@dataclass(frozen=True)
class InlineButton:
    """A single button that sends ``callback_data`` back when pressed."""

    text: str
    callback_data: str

    def __post_init__(self) -> None:
        _validate_text(self.text, field_name="button text")
        _validate_text(self.callback_data, field_name="callback data")


@dataclass(frozen=True)
class InlineKeyboard:
    """Rows of inline buttons rendered underneath a message."""

    rows: Tuple[Tuple[InlineButton, ...], ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        normalised = tuple(tuple(row) for row in self.rows)
        for row in normalised:
            for button in row:
                if not isinstance(button, InlineButton):
                    raise TypeError(
                        f"keyboard rows must contain InlineButton, got {type(button)!r}"
                    )
        object.__setattr__(self, "rows", normalised)

    @property
    def is_empty(self) -> bool:
        """Return ``True`` when the keyboard has no rows at all."""

        return not self.rows

    def with_row(self, row: Iterable[InlineButton]) -> "InlineKeyboard":
        """Return a copy of the keyboard with ``row`` appended."""

        return InlineKeyboard(rows=self.rows + (tuple(row),))

    def iter_callback_data(self) -> Tuple[str, ...]:
        """Return every callback payload in reading order."""

        return tuple(button.callback_data for row in self.rows for button in row)


def rows(layout: Sequence[Sequence[Tuple[str, str]]]) -> InlineKeyboard:
    """Build a keyboard from nested ``(text, callback_data)`` pairs."""

    return InlineKeyboard(
        rows=tuple(
            tuple(InlineButton(text, data) for text, data in row) for row in layout
        )
    )


def back_button(text: str, data: str) -> InlineKeyboard:
    """Return a keyboard holding a single button."""

    return rows([[(text, data)]])


def to_row(items: Iterable[Tuple[str, str]]) -> Tuple[InlineButton, ...]:
    return tuple(InlineButton(text, data) for text, data in items)


def label_selected(base: str, selected: bool, selected_prefix: str) -> str:
    if selected:
        return f"{selected_prefix} {base}"
    return base


def toggle_label(
    base: str,
    on: bool,
    on_icon: str | None = None,
    off_icon: str | None = None,
) -> str:
    """Prefix ``base`` with the icon matching its on/off state, if any."""

    icon = on_icon if on else off_icon
    if icon:
        return f"{icon} {base}"
    return base


def toggles_row(
    items: Iterable[Tuple[str, str, bool]],
    on_icon: str | None = None,
    off_icon: str | None = None,
) -> Tuple[InlineButton, ...]:
    return tuple(
        InlineButton(toggle_label(base, on, on_icon, off_icon), data)
        for base, data, on in items
    )


def choice_row(
    items: Iterable[Tuple[str, str, bool]],
    selected_icon: str | None = None,
    unselected_icon: str | None = None,
) -> Tuple[InlineButton, ...]:
    """Render a single-choice row where the selected entry carries an icon."""

    return toggles_row(items, selected_icon, unselected_icon)


__all__ = [
    "InlineButton",
    "InlineKeyboard",
    "rows",
    "back_button",
    "to_row",
    "label_selected",
    "toggle_label",
    "toggles_row",
    "choice_row",
]
