from __future__ import annotations

import asyncio

import pytest

from scenekit import CallbackQuery, InlineButton, InlineKeyboard, SceneHint, content_checksum
from scenekit.callbacks import (
    MAX_CALLBACK_BYTES,
    answer_callback_safe,
    encode_callback,
    is_valid_callback_data,
    show_error_alert,
    strip_scene_prefix,
)
from scenekit.integrity import canonical_json
from scenekit.keyboard import (
    back_button,
    choice_row,
    label_selected,
    rows,
    to_row,
    toggles_row,
)


def test_callback_payload_limit_is_inclusive() -> None:
    assert is_valid_callback_data("a:" + "1" * (MAX_CALLBACK_BYTES - 2))
    assert not is_valid_callback_data("a:" + "1" * (MAX_CALLBACK_BYTES - 1))


@pytest.mark.parametrize("data", ["a:é", "a:✓", "ab: "])
def test_non_ascii_callback_payloads_are_rejected(data: str) -> None:
    assert not is_valid_callback_data(data)


def test_prefix_attribution_requires_separator() -> None:
    assert strip_scene_prefix("a", "a") == ""
    assert strip_scene_prefix("a", "a:1") == "1"
    assert strip_scene_prefix("a", "ab:1") is None
    assert strip_scene_prefix("ab", "ab:1") == "1"
    assert strip_scene_prefix("ab", "a:1") is None


def test_encode_callback_joins_with_separator() -> None:
    assert encode_callback("ab") == "ab"
    assert encode_callback("ab", "rename") == "ab:rename"


def test_answer_callback_safe_swallows_transport_errors(transport, caplog) -> None:
    transport.fail_answer = True
    query = CallbackQuery(id="q1", data="a:1")

    assert asyncio.run(answer_callback_safe(transport, query)) is False
    assert "answer_callback failed" in caplog.text


def test_error_alert_is_shown_as_alert(transport) -> None:
    query = CallbackQuery(id="q1", data="a:1")

    assert asyncio.run(show_error_alert(transport, query, "Nope"))
    assert transport.answers == [("q1", "❌ Nope", True)]


def test_keyboard_rows_and_close_row() -> None:
    keyboard = rows([[("One", "a:1"), ("Two", "a:2")]])
    extended = keyboard.with_row([InlineButton("Close", "ui:cancel")])

    assert keyboard.iter_callback_data() == ("a:1", "a:2")
    assert extended.iter_callback_data() == ("a:1", "a:2", "ui:cancel")
    assert InlineKeyboard().is_empty
    assert back_button("Back", "ui:back").rows == ((InlineButton("Back", "ui:back"),),)
    assert to_row([("A", "a:1")]) == (InlineButton("A", "a:1"),)


def test_button_requires_text_and_payload() -> None:
    with pytest.raises(ValueError):
        InlineButton("  ", "a:1")
    with pytest.raises(TypeError):
        InlineButton("Go", None)  # type: ignore[arg-type]


def test_choice_row_marks_selection() -> None:
    row = choice_row([("Small", "a:s", False), ("Large", "a:l", True)], "●", "○")

    assert [button.text for button in row] == ["○ Small", "● Large"]
    assert [button.text for button in toggles_row([("Sound", "a:snd", True)], "✅")] == [
        "✅ Sound"
    ]
    assert label_selected("Sound", False, "✅") == "Sound"


def test_canonical_json_sorts_keys_without_spaces() -> None:
    assert canonical_json({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'


def test_scene_hint_round_trip_keeps_checksum() -> None:
    hint = SceneHint.for_state("a", 1, '{"total":1}')

    decoded = SceneHint.decode(hint.encode())

    assert decoded == hint
    assert decoded.checksum == content_checksum('{"total":1}')


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "",
        '"a"',
        "not json",
        '{"scene_id":"a","state_json":"{}"}',
        '{"scene_id":"a","extra":1}',
        '{"scene_id":"a"}',
        '{"scene_id":"a","scene_version":70000}',
    ],
)
def test_scene_hint_decode_rejects_malformed_values(raw) -> None:
    assert SceneHint.decode(raw) is None
