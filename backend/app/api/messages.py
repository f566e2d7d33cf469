"""Durable chat message endpoints."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.api.chats import (
    load_chat,
    require_participant,
    serialize_preview,
    serialize_public_user,
)
from app.api.deps import get_current_user, get_message_relay
from app.config import get_settings
from app.database import get_db
from app.models import ChatMessage, User
from app.monitoring.metrics import messages_created_total
from app.schemas import MessageCreate, MessagePage, MessageRead, MessageReadResult
from app.services import mark_message_read, record_message
from lionsphere.realtime import MessageRelay

router = APIRouter(prefix="/messages", tags=["messages"])

settings = get_settings()

logger = logging.getLogger(__name__)

DELETED_MESSAGE_TEXT = "This message was deleted"


def _message_options():
    return (
        selectinload(ChatMessage.sender),
        selectinload(ChatMessage.read_markers),
        selectinload(ChatMessage.reply_to).selectinload(ChatMessage.read_markers),
        selectinload(ChatMessage.chat),
    )


def serialize_message(message: ChatMessage) -> MessageRead:
    return MessageRead(
        id=message.id,
        chat_id=message.chat_id,
        conversation_id=message.chat.key,
        sender_id=message.sender_id,
        sender=serialize_public_user(message.sender) if message.sender else None,
        text=message.text,
        image_url=message.image_url,
        reply_to_id=message.reply_to_id,
        reply_to=serialize_preview(message.reply_to) if message.reply_to else None,
        read_by=message.read_by,
        created_at=message.created_at,
        updated_at=message.updated_at,
        deleted_at=message.deleted_at,
    )


def _load_message(message_id: int, db: Session) -> ChatMessage:
    stmt = select(ChatMessage).where(ChatMessage.id == message_id).options(*_message_options())
    message = db.execute(stmt).scalar_one_or_none()
    if message is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return message


@router.get("/{chat_id}", response_model=MessagePage)
def list_messages(
    chat_id: int,
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessagePage:
    """Return one page of history; pages count back from the newest message."""

    chat = load_chat(chat_id, db)
    require_participant(chat, current_user.id)

    limit = min(limit or settings.chat_history_default_limit, settings.chat_history_max_limit)
    skip = (page - 1) * limit

    total = db.execute(
        select(func.count(ChatMessage.id)).where(ChatMessage.chat_id == chat.id)
    ).scalar_one()
    stmt = (
        select(ChatMessage)
        .where(ChatMessage.chat_id == chat.id)
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .offset(skip)
        .limit(limit)
        .options(*_message_options())
    )
    messages = list(db.execute(stmt).scalars())
    messages.reverse()

    return MessagePage(
        messages=[serialize_message(message) for message in messages],
        has_more=skip + len(messages) < total,
        page=page,
        total_messages=total,
    )


@router.post("", response_model=MessageRead, status_code=status.HTTP_201_CREATED)
async def create_message(
    payload: MessageCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    relay: MessageRelay = Depends(get_message_relay),
) -> MessageRead:
    """Store a message, update unread counters and push it to online participants."""

    chat = load_chat(payload.chat_id, db)
    require_participant(chat, current_user.id)

    if len(payload.text or "") > settings.chat_message_max_length:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message is too long")

    if payload.reply_to_id is not None:
        parent = db.get(ChatMessage, payload.reply_to_id)
        if parent is None or parent.chat_id != chat.id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Replied message not found in this chat",
            )

    message = ChatMessage(
        chat_id=chat.id,
        sender_id=current_user.id,
        text=payload.text or "",
        image_url=payload.image_url,
        reply_to_id=payload.reply_to_id,
    )
    message.chat = chat
    message.sender = current_user
    db.add(message)
    record_message(chat, message, db)
    db.commit()
    messages_created_total.labels().inc()

    message_payload = serialize_message(_load_message(message.id, db))
    recipients = [
        participant.user_id
        for participant in chat.participants
        if participant.user_id != current_user.id
    ]
    await relay.publish(
        recipients,
        {
            "type": "new_message",
            "chat_id": chat.id,
            "conversation_id": chat.key,
            "message": message_payload.model_dump(mode="json"),
        },
    )
    return message_payload


@router.put("/{message_id}/read", response_model=MessageReadResult)
def read_message(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessageReadResult:
    """Mark one message as read and resync the caller's unread counter."""

    message = _load_message(message_id, db)
    require_participant(load_chat(message.chat_id, db), current_user.id)
    try:
        remaining = mark_message_read(message, current_user.id, db)
        db.commit()
    except IntegrityError:
        # an overlapping read stored the same marker first
        db.rollback()
        message = _load_message(message_id, db)
        remaining = mark_message_read(message, current_user.id, db)
        db.commit()
    return MessageReadResult(message_id=message.id, unread_count=remaining)


@router.delete("/{message_id}", response_model=MessageRead)
def delete_message(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessageRead:
    """Soft-delete a message: the record stays, its payload is overwritten."""

    message = _load_message(message_id, db)
    if message.sender_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only delete your own messages",
        )

    message.text = DELETED_MESSAGE_TEXT
    message.image_url = None
    message.deleted_at = datetime.now(timezone.utc)
    db.add(message)
    db.commit()
    logger.info("Message %s deleted by user %s", message.id, current_user.id)
    return serialize_message(_load_message(message.id, db))
