"""Per-participant unread counters and read markers for chats.

The stored ``ChatParticipant.unread_count`` is always meant to equal the
number of messages authored by other participants that the user has not
read. Message creation increments it, a bulk read zeroes it, and a
single-message read recomputes it from the read markers.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import exists, func, select
from sqlalchemy.orm import Session

from app.models import Chat, ChatMessage, ChatParticipant, MessageReadMarker


logger = logging.getLogger(__name__)


def _unread_filter(chat_id: int, user_id: int):
    already_read = exists().where(
        MessageReadMarker.message_id == ChatMessage.id,
        MessageReadMarker.user_id == user_id,
    )
    return (
        ChatMessage.chat_id == chat_id,
        ChatMessage.sender_id != user_id,
        ~already_read,
    )


def count_unread(chat_id: int, user_id: int, db: Session) -> int:
    """Count messages in *chat_id* authored by others and not read by *user_id*."""

    stmt = select(func.count(ChatMessage.id)).where(*_unread_filter(chat_id, user_id))
    return db.execute(stmt).scalar_one()


def record_message(chat: Chat, message: ChatMessage, db: Session) -> None:
    """Apply the bookkeeping for a freshly stored message.

    The sender is marked as a reader, every other participant's counter grows
    by one and the chat's latest-message pointer and timestamp move forward.
    """

    message.read_markers.append(MessageReadMarker(user_id=message.sender_id))
    for participant in chat.participants:
        if participant.user_id != message.sender_id:
            participant.unread_count = (participant.unread_count or 0) + 1
            db.add(participant)
    chat.latest_message = message
    chat.updated_at = datetime.now(timezone.utc)
    db.add(chat)


def mark_chat_read(chat: Chat, participant: ChatParticipant, db: Session) -> int:
    """Zero the participant's counter and mark every unread message as read.

    Returns the number of messages that gained a read marker.
    """

    stmt = select(ChatMessage.id).where(*_unread_filter(chat.id, participant.user_id))
    message_ids = list(db.execute(stmt).scalars())
    for message_id in message_ids:
        db.add(MessageReadMarker(message_id=message_id, user_id=participant.user_id))
    participant.unread_count = 0
    db.add(participant)
    logger.debug(
        "User %s read chat %s (%d messages)", participant.user_id, chat.id, len(message_ids)
    )
    return len(message_ids)


def mark_message_read(message: ChatMessage, user_id: int, db: Session) -> int:
    """Add *user_id* to the message's readers and resync the chat counter.

    Returns the number of messages from others still unread in the chat.
    """

    if user_id not in message.read_by:
        message.read_markers.append(MessageReadMarker(user_id=user_id))
        db.add(message)
        db.flush()

    remaining = count_unread(message.chat_id, user_id, db)
    participant = db.execute(
        select(ChatParticipant).where(
            ChatParticipant.chat_id == message.chat_id,
            ChatParticipant.user_id == user_id,
        )
    ).scalar_one_or_none()
    if participant is not None and participant.unread_count != remaining:
        participant.unread_count = remaining
        db.add(participant)
    return remaining
