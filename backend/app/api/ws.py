"""WebSocket endpoint for realtime chat: presence, relay and typing."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Dict, TypeVar

from fastapi import APIRouter, WebSocket, status
from fastapi.exceptions import HTTPException
from fastapi.websockets import WebSocketDisconnect, WebSocketState

from app.api.deps import get_message_relay, get_presence_table, get_typing_relay, get_user_from_token
from app.config import get_settings
from app.database import get_db_session
from app.monitoring.metrics import realtime_events_total
from lionsphere.realtime import (
    MessageRelay,
    PresenceTable,
    TypingRelay,
    conversation_key,
    safe_send_json,
)

router = APIRouter(prefix="/ws", tags=["ws"])

settings = get_settings()

logger = logging.getLogger(__name__)

T = TypeVar("T")

INBOUND_EVENTS = frozenset({"user_connect", "send_message", "typing", "stop_typing"})


async def iter_keepalive_messages(
    websocket: WebSocket,
    receiver: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: float | int | None,
    ping_interval_seconds: float | int | None,
    ping_payload: Dict[str, Any] | None = None,
) -> AsyncIterator[T]:
    """Yield messages from *receiver* while sending keepalive pings when idle."""

    ping_payload = ping_payload or {"type": "ping"}
    timeout = float(timeout_seconds) if timeout_seconds else 0.0
    interval = float(ping_interval_seconds) if ping_interval_seconds else 0.0
    last_activity = time.monotonic()
    last_ping_sent: float | None = None

    while True:
        try:
            if timeout > 0:
                message = await asyncio.wait_for(receiver(), timeout=timeout)
            else:
                message = await receiver()
        except asyncio.TimeoutError:
            if websocket.application_state != WebSocketState.CONNECTED:
                break

            now = time.monotonic()
            should_ping = interval <= 0 or (
                now - last_activity >= interval
                and (last_ping_sent is None or now - last_ping_sent >= interval)
            )
            if should_ping:
                if not await safe_send_json(websocket, ping_payload):
                    break
                last_ping_sent = now
            continue
        except asyncio.CancelledError:  # pragma: no cover - cooperative cancellation
            raise
        except (RuntimeError, WebSocketDisconnect):
            break
        else:
            last_activity = time.monotonic()
            last_ping_sent = None
            yield message


async def _resolve_user_id(websocket: WebSocket) -> int | None:
    token = websocket.query_params.get("token")
    if not token:
        auth_header = websocket.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.removeprefix("Bearer ").strip()
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Missing token")
        return None

    try:
        with get_db_session() as db:
            return get_user_from_token(token, db).id
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid token")
        return None


async def _send_error(websocket: WebSocket, detail: str) -> None:
    await safe_send_json(websocket, {"type": "error", "detail": detail})


def _claimed_id(payload: dict[str, Any], field: str, user_id: int) -> bool:
    """True when *field* is absent or names the authenticated user."""

    claimed = payload.get(field)
    if claimed is None:
        return True
    try:
        return int(claimed) == user_id
    except (TypeError, ValueError):
        return False


async def _handle_send_message(
    websocket: WebSocket, user_id: int, payload: dict[str, Any], relay: MessageRelay
) -> None:
    if not _claimed_id(payload, "sender_id", user_id):
        await _send_error(websocket, "sender_id does not match the authenticated user")
        return

    recipient_raw = payload.get("recipient_id")
    try:
        recipient_id = int(recipient_raw)
    except (TypeError, ValueError):
        await _send_error(websocket, "recipient_id must be an integer")
        return
    if recipient_id == user_id:
        await _send_error(websocket, "Cannot send a message to yourself")
        return

    text = payload.get("text")
    if not isinstance(text, str) or not text.strip():
        await _send_error(websocket, "Message text cannot be empty")
        return
    if len(text) > settings.chat_message_max_length:
        await _send_error(websocket, "Message is too long")
        return

    expected = conversation_key(user_id, recipient_id)
    conversation_id = payload.get("conversation_id")
    if conversation_id is not None and str(conversation_id) != expected:
        await _send_error(websocket, "conversation_id does not match the participants")
        return

    await relay.send(
        websocket,
        sender_id=user_id,
        recipient_id=recipient_id,
        text=text,
        conversation_id=expected,
    )


async def _handle_typing(
    websocket: WebSocket,
    user_id: int,
    event: str,
    payload: dict[str, Any],
    relay: TypingRelay,
) -> None:
    if not _claimed_id(payload, "user_id", user_id):
        await _send_error(websocket, "user_id does not match the authenticated user")
        return

    conversation_id = payload.get("conversation_id")
    if not conversation_id:
        await _send_error(websocket, "conversation_id is required")
        return

    forward = relay.typing if event == "typing" else relay.stop_typing
    try:
        await forward(str(conversation_id), user_id)
    except ValueError as exc:
        await _send_error(websocket, str(exc))


@router.websocket("/chat")
async def websocket_chat(websocket: WebSocket) -> None:
    """Realtime chat socket.

    The connection only appears in the presence table after the client sends
    ``user_connect``; until then it can relay but is not reachable.
    """

    user_id = await _resolve_user_id(websocket)
    if user_id is None:
        return

    presence: PresenceTable = get_presence_table(websocket)
    message_relay: MessageRelay = get_message_relay(websocket)
    typing_relay: TypingRelay = get_typing_relay(websocket)

    await websocket.accept()

    try:
        async for raw_message in iter_keepalive_messages(
            websocket,
            websocket.receive_text,
            timeout_seconds=settings.websocket_keepalive_timeout_seconds,
            ping_interval_seconds=settings.websocket_keepalive_ping_interval_seconds,
        ):
            try:
                payload = json.loads(raw_message)
            except json.JSONDecodeError:
                logger.debug("Dropping malformed frame from user %s", user_id)
                await _send_error(websocket, "Invalid message format")
                continue

            if not isinstance(payload, dict):
                await _send_error(websocket, "Message payload must be a JSON object")
                continue

            event = payload.get("type")
            if event == "ping":
                await safe_send_json(websocket, {"type": "pong"})
                continue
            if event == "pong":
                continue

            if not isinstance(event, str) or event not in INBOUND_EVENTS:
                await _send_error(websocket, f"Unsupported event type: {event}")
                continue
            realtime_events_total.labels("chat", "in", event).inc()

            if event == "user_connect":
                if not _claimed_id(payload, "user_id", user_id):
                    await _send_error(websocket, "user_id does not match the authenticated user")
                    continue
                await presence.record_connect(user_id, websocket)
            elif event == "send_message":
                await _handle_send_message(websocket, user_id, payload, message_relay)
            else:
                await _handle_typing(websocket, user_id, event, payload, typing_relay)
    finally:
        await presence.record_disconnect(websocket)
