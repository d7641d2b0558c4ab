from __future__ import annotations

import asyncio
import logging

from scenekit import (
    RESTORE_DIALOGUE,
    RESTORE_INIT,
    RESTORE_META,
    RESTORE_MISMATCH,
    ChatSession,
    Ctx,
    MessageMetadata,
    SceneHint,
    Session,
    SessionStore,
    StorageError,
    Turn,
    content_checksum,
    restore_state,
)

CHAT_ID = 7
STATE_JSON = '{"asking":false,"history":[3],"total":3}'


def _turn(harness, chat: ChatSession | None = None) -> Turn:
    return Turn(
        ctx=Ctx(user_id=1, chat_id=CHAT_ID),
        chat=chat if chat is not None else harness.chat,
        viewport=harness.viewport,
        switcher=harness.router,
        observer=harness.observer,
        snapshot_ttl_secs=60,
    )


def _save_meta(harness, message_id: int, *, state_json=STATE_JSON, checksum=None, **overrides):
    fields = dict(
        scene_id="a",
        scene_version=1,
        state_json=state_json,
        state_checksum=checksum if checksum is not None else content_checksum(state_json),
        created_at=int(harness.clock()),
        ttl_secs=60,
    )
    fields.update(overrides)
    asyncio.run(harness.metadata.save(CHAT_ID, message_id, MessageMetadata(**fields)))


def test_restore_without_source_initialises(make_harness, tally_scene) -> None:
    harness = make_harness(tally_scene)

    result = asyncio.run(restore_state(tally_scene, _turn(harness), None))

    assert result.label == RESTORE_INIT
    assert result.state.total == 0
    assert harness.observer.counts[("restore", "a", RESTORE_INIT)] == 1


def test_session_hint_wins_for_last_message(make_harness, tally_scene) -> None:
    harness = make_harness(tally_scene)
    session = Session(last_message_id=55)
    session.record_scene_hint(55, SceneHint.for_state("a", 1, STATE_JSON))
    asyncio.run(harness.sessions.save(CHAT_ID, session))
    _save_meta(harness, 55, state_json='{"total":99}')

    result = asyncio.run(restore_state(tally_scene, _turn(harness), (CHAT_ID, 55)))

    assert result.label == RESTORE_DIALOGUE
    assert result.state.total == 3


def test_session_hint_is_ignored_for_other_messages(make_harness, tally_scene) -> None:
    harness = make_harness(tally_scene)
    session = Session(last_message_id=56)
    session.record_scene_hint(55, SceneHint.for_state("a", 1, '{"total":99}'))
    asyncio.run(harness.sessions.save(CHAT_ID, session))
    _save_meta(harness, 55)

    result = asyncio.run(restore_state(tally_scene, _turn(harness), (CHAT_ID, 55)))

    assert result.label == RESTORE_META
    assert result.state.total == 3


def test_tampered_session_hint_falls_back_to_metadata(make_harness, tally_scene) -> None:
    harness = make_harness(tally_scene)
    session = Session(
        last_message_id=55,
        message_scenes={
            55: SceneHint(
                scene_id="a", scene_version=1, state_json='{"total":99}', checksum="bad"
            ).encode()
        },
    )
    asyncio.run(harness.sessions.save(CHAT_ID, session))
    _save_meta(harness, 55)

    result = asyncio.run(restore_state(tally_scene, _turn(harness), (CHAT_ID, 55)))

    assert result.label == RESTORE_META
    assert result.state.total == 3


def test_metadata_with_wrong_checksum_is_a_mismatch(make_harness, tally_scene) -> None:
    harness = make_harness(tally_scene)
    _save_meta(harness, 55, checksum="0" * 64)

    result = asyncio.run(restore_state(tally_scene, _turn(harness), (CHAT_ID, 55)))

    assert result.label == RESTORE_MISMATCH
    assert result.state == tally_scene.init(Ctx())
    assert harness.observer.counts[("restore", "a", RESTORE_MISMATCH)] == 1


def test_metadata_of_another_scene_is_a_mismatch(make_harness, tally_scene) -> None:
    harness = make_harness(tally_scene)
    _save_meta(harness, 55, scene_id="profile", scene_version=2)

    result = asyncio.run(restore_state(tally_scene, _turn(harness), (CHAT_ID, 55)))

    assert result.label == RESTORE_MISMATCH


def test_metadata_of_older_scene_version_is_a_mismatch(make_harness, tally_scene) -> None:
    harness = make_harness(tally_scene)
    _save_meta(harness, 55, scene_version=0)

    result = asyncio.run(restore_state(tally_scene, _turn(harness), (CHAT_ID, 55)))

    assert result.label == RESTORE_MISMATCH


def test_expired_metadata_is_ignored(make_harness, tally_scene) -> None:
    harness = make_harness(tally_scene)
    _save_meta(harness, 55)
    harness.clock.advance(61)

    result = asyncio.run(restore_state(tally_scene, _turn(harness), (CHAT_ID, 55)))

    assert result.label == RESTORE_INIT


class _BrokenSessionStore(SessionStore):
    async def load(self, chat_id: int) -> Session | None:
        raise StorageError("backend down")

    async def save(self, chat_id: int, session: Session) -> None:
        raise StorageError("backend down")

    async def delete(self, chat_id: int) -> None:
        raise StorageError("backend down")


def test_unreadable_session_still_restores_from_metadata(
    make_harness, tally_scene, caplog
) -> None:
    harness = make_harness(tally_scene)
    _save_meta(harness, 55)
    chat = ChatSession(_BrokenSessionStore(), CHAT_ID)

    with caplog.at_level(logging.WARNING):
        result = asyncio.run(restore_state(tally_scene, _turn(harness, chat), (CHAT_ID, 55)))

    assert result.label == RESTORE_META
    assert "session read failed" in caplog.text
