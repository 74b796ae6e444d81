from __future__ import annotations

import asyncio
from typing import Any

import pytest

from solcases_backend.engine.chat import MAX_MESSAGE_LENGTH, ChatRelay, filter_message
from solcases_backend.engine.service import CaseEngineService


def _drain(queue: asyncio.Queue) -> list[dict[str, Any]]:
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


@pytest.fixture
def relay(engine: CaseEngineService, clock) -> ChatRelay:
    return ChatRelay(engine, blocked_words=["rug"], clock=clock)


def test_filter_message_masks_whole_words_only() -> None:
    assert filter_message("total RUG pull", ["rug"]) == "total *** pull"
    assert filter_message("rugged terrain", ["rug"]) == "rugged terrain"
    assert filter_message("anything goes", []) == "anything goes"


@pytest.mark.asyncio
async def test_connect_requires_known_session(relay: ChatRelay) -> None:
    with pytest.raises(KeyError):
        await relay.connect("ghost")


@pytest.mark.asyncio
async def test_connect_sends_history_and_presence(engine: CaseEngineService, relay: ChatRelay, open_account) -> None:
    await open_account("s1", deposit=0)
    await engine.save_username("s1", "whale")

    connection = await relay.connect("s1")

    events = _drain(connection.queue)
    assert [event["type"] for event in events] == ["username_loaded", "chat_history", "online_count"]
    assert events[0]["username"] == "whale"
    assert events[1]["messages"] == []
    assert events[2]["count"] == 1
    assert connection.username == "whale"


@pytest.mark.asyncio
async def test_chat_message_fans_out_with_cooldown(relay: ChatRelay, open_account, clock) -> None:
    await open_account("s1", deposit=0)
    await open_account("s2", deposit=0)
    sender = await relay.connect("s1")
    listener = await relay.connect("s2")
    _drain(sender.queue)
    _drain(listener.queue)

    await relay.handle_message(sender.connection_id, {"type": "chat_message", "content": "no rug here"})
    received = _drain(listener.queue)
    assert len(received) == 1
    assert received[0]["type"] == "user"
    assert received[0]["content"] == "no *** here"
    assert received[0]["username"] == sender.username
    assert relay.history() == received

    await relay.handle_message(sender.connection_id, {"type": "chat_message", "content": "again"})
    warnings = _drain(sender.queue)
    assert [event["type"] for event in warnings] == ["user", "system"]
    assert _drain(listener.queue) == []

    clock.advance(1.5)
    await relay.handle_message(sender.connection_id, {"type": "chat_message", "content": "again"})
    assert _drain(listener.queue)[0]["content"] == "again"


@pytest.mark.asyncio
async def test_overlong_message_is_refused(relay: ChatRelay, open_account) -> None:
    await open_account("s1", deposit=0)
    connection = await relay.connect("s1")
    _drain(connection.queue)

    await relay.handle_message(connection.connection_id, {"type": "chat_message", "content": "x" * (MAX_MESSAGE_LENGTH + 1)})

    events = _drain(connection.queue)
    assert len(events) == 1
    assert events[0]["type"] == "system"
    assert relay.history() == []


@pytest.mark.asyncio
async def test_username_update_persists_and_announces(engine: CaseEngineService, relay: ChatRelay, open_account) -> None:
    await open_account("s1", deposit=0)
    connection = await relay.connect("s1")
    old_name = connection.username
    _drain(connection.queue)

    await relay.handle_message(connection.connection_id, {"type": "username_update", "username": "moonboy"})

    assert (await engine.get_state("s1")).username == "moonboy"
    events = _drain(connection.queue)
    assert events[0]["type"] == "system"
    assert events[0]["content"] == f"{old_name} is now known as moonboy"

    await relay.handle_message(connection.connection_id, {"type": "username_update", "username": "x" * 30})
    assert _drain(connection.queue)[0]["content"] == "Username too long"


@pytest.mark.asyncio
async def test_disconnect_updates_online_count(relay: ChatRelay, open_account) -> None:
    await open_account("s1", deposit=0)
    await open_account("s2", deposit=0)
    first = await relay.connect("s1")
    second = await relay.connect("s2")
    _drain(second.queue)

    relay.disconnect(first.connection_id)

    assert relay.online_count == 1
    assert _drain(second.queue) == [{"type": "online_count", "count": 1}]
