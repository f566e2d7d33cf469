from __future__ import annotations

import pytest

from app.monitoring.metrics import realtime_events_total
from conftest import DummyWebSocket
from lionsphere.realtime import (
    MessageRelay,
    PresenceTable,
    TypingRelay,
    conversation_key,
    split_conversation_key,
)


def test_conversation_key_is_sorted_numerically():
    assert conversation_key(12, 3) == "3_12"
    assert conversation_key(3, 12) == "3_12"
    assert conversation_key(5, 5) == "5_5"


def test_split_conversation_key_rejects_malformed_ids():
    assert split_conversation_key("3_12") == (3, 12)
    with pytest.raises(ValueError):
        split_conversation_key("3-12")
    with pytest.raises(ValueError):
        split_conversation_key("a_b")


@pytest.mark.anyio("asyncio")
async def test_online_recipient_receives_exactly_one_message(presence_table: PresenceTable):
    relay = MessageRelay(presence_table)
    alice = DummyWebSocket("alice")
    bob = DummyWebSocket("bob")
    await presence_table.record_connect(1, alice)
    await presence_table.record_connect(2, bob)

    result = await relay.send(alice, sender_id=1, recipient_id=2, text="hi")

    received = bob.of_type("receive_message")
    assert len(received) == 1
    assert received[0]["sender_id"] == 1
    assert received[0]["text"] == "hi"
    assert received[0]["conversation_id"] == "1_2"
    assert result.delivered is True
    assert result.conversation_id == "1_2"

    acks = alice.of_type("message_sent")
    assert len(acks) == 1
    assert acks[0]["success"] is True
    assert acks[0]["message"]["recipient_id"] == 2
    assert acks[0]["message"]["created_at"] == received[0]["created_at"]
    assert alice.of_type("receive_message") == []


@pytest.mark.anyio("asyncio")
async def test_offline_recipient_gets_nothing_but_sender_is_acknowledged(presence_table: PresenceTable):
    relay = MessageRelay(presence_table)
    alice = DummyWebSocket("alice")
    await presence_table.record_connect(10, alice)
    before = realtime_events_total._samples.get(("message", "out", "skipped"), 0.0)

    result = await relay.send(alice, sender_id=10, recipient_id=4, text="later")

    assert result.delivered is False
    assert result.conversation_id == "4_10"
    assert alice.of_type("message_sent")[0]["message"]["conversation_id"] == "4_10"
    assert realtime_events_total._samples[("message", "out", "skipped")] == before + 1


@pytest.mark.anyio("asyncio")
async def test_publish_counts_only_online_users(presence_table: PresenceTable):
    relay = MessageRelay(presence_table)
    bob = DummyWebSocket("bob")
    await presence_table.record_connect(2, bob)

    delivered = await relay.publish([2, 3, 2], {"type": "new_message", "chat_id": 1})

    assert delivered == 1
    assert bob.of_type("new_message") == [{"type": "new_message", "chat_id": 1}]


@pytest.mark.anyio("asyncio")
async def test_typing_is_forwarded_only_to_the_other_participant(presence_table: PresenceTable):
    relay = TypingRelay(presence_table)
    alice = DummyWebSocket("alice")
    bob = DummyWebSocket("bob")
    await presence_table.record_connect(1, alice)
    await presence_table.record_connect(2, bob)

    assert await relay.typing("1_2", 1) is True
    assert await relay.stop_typing("1_2", 1) is True

    assert bob.of_type("user_typing") == [{"type": "user_typing", "conversation_id": "1_2", "user_id": 1}]
    assert bob.of_type("user_stop_typing") == [
        {"type": "user_stop_typing", "conversation_id": "1_2", "user_id": 1}
    ]
    assert alice.of_type("user_typing") == []
    assert alice.of_type("user_stop_typing") == []


@pytest.mark.anyio("asyncio")
async def test_typing_rejects_outsiders_and_ignores_self_chats(presence_table: PresenceTable):
    relay = TypingRelay(presence_table)

    with pytest.raises(ValueError):
        await relay.typing("1_2", 3)
    assert await relay.typing("4_4", 4) is False


@pytest.mark.anyio("asyncio")
async def test_typing_to_offline_participant_is_dropped(presence_table: PresenceTable):
    relay = TypingRelay(presence_table)
    alice = DummyWebSocket("alice")
    await presence_table.record_connect(1, alice)

    assert await relay.typing("1_2", 1) is False
    assert alice.of_type("user_typing") == []
