"""Realtime message and typing relays built on top of :class:`PresenceTable`."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from fastapi.websockets import WebSocket

from app.monitoring.metrics import realtime_events_total

from .presence import PresenceTable, safe_send_json


logger = logging.getLogger(__name__)

CONVERSATION_ID_SEPARATOR = "_"

TYPING_EVENTS = {
    "typing": "user_typing",
    "stop_typing": "user_stop_typing",
}


def conversation_key(first_user_id: int, second_user_id: int) -> str:
    """Canonical id of the two-party conversation between the given users."""

    low, high = sorted((int(first_user_id), int(second_user_id)))
    return f"{low}{CONVERSATION_ID_SEPARATOR}{high}"


def split_conversation_key(conversation_id: str) -> tuple[int, int]:
    """Recover both participant ids from a canonical conversation id."""

    parts = str(conversation_id).split(CONVERSATION_ID_SEPARATOR)
    if len(parts) != 2:
        raise ValueError(f"Malformed conversation id: {conversation_id!r}")
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        raise ValueError(f"Malformed conversation id: {conversation_id!r}") from None


@dataclass(slots=True)
class RelayResult:
    """Outcome of a single relay attempt."""

    conversation_id: str
    created_at: datetime
    delivered: bool


class MessageRelay:
    """Forwards chat messages to online recipients.

    The relay never queues, retries or persists. Durable storage happens
    through the REST message endpoints; the acknowledgment emitted here only
    confirms the relay attempt.
    """

    def __init__(self, presence: PresenceTable) -> None:
        self._presence = presence

    async def send(
        self,
        websocket: WebSocket,
        *,
        sender_id: int,
        recipient_id: int,
        text: str,
        conversation_id: str | None = None,
    ) -> RelayResult:
        conversation_id = conversation_id or conversation_key(sender_id, recipient_id)
        created_at = datetime.now(timezone.utc)
        timestamp = created_at.isoformat()

        delivered = await self._presence.send_to(
            recipient_id,
            {
                "type": "receive_message",
                "sender_id": sender_id,
                "text": text,
                "conversation_id": conversation_id,
                "created_at": timestamp,
            },
        )
        if not delivered:
            logger.debug("Recipient %s offline, skipping realtime delivery", recipient_id)
        realtime_events_total.labels(
            "message", "out", "delivered" if delivered else "skipped"
        ).inc()

        await safe_send_json(
            websocket,
            {
                "type": "message_sent",
                "success": True,
                "message": {
                    "sender_id": sender_id,
                    "recipient_id": recipient_id,
                    "text": text,
                    "conversation_id": conversation_id,
                    "created_at": timestamp,
                },
            },
        )
        return RelayResult(conversation_id=conversation_id, created_at=created_at, delivered=delivered)

    async def publish(self, user_ids: Iterable[int], payload: dict[str, Any]) -> int:
        """Push *payload* to each online user in *user_ids*; returns the delivered count."""

        delivered = 0
        for user_id in set(user_ids):
            if await self._presence.send_to(user_id, payload):
                delivered += 1
        realtime_events_total.labels("message", "out", payload.get("type", "publish")).inc()
        return delivered


class TypingRelay:
    """Stateless forwarding of typing indicators to the other participant."""

    def __init__(self, presence: PresenceTable) -> None:
        self._presence = presence

    async def typing(self, conversation_id: str, user_id: int) -> bool:
        return await self._forward("typing", conversation_id, user_id)

    async def stop_typing(self, conversation_id: str, user_id: int) -> bool:
        return await self._forward("stop_typing", conversation_id, user_id)

    async def _forward(self, event: str, conversation_id: str, user_id: int) -> bool:
        participants = split_conversation_key(conversation_id)
        if user_id not in participants:
            raise ValueError("User is not a participant of this conversation")
        other_id = next((candidate for candidate in participants if candidate != user_id), None)
        if other_id is None:
            return False

        forwarded = await self._presence.send_to(
            other_id,
            {
                "type": TYPING_EVENTS[event],
                "conversation_id": conversation_id,
                "user_id": user_id,
            },
        )
        realtime_events_total.labels("typing", "out", event).inc()
        return forwarded
