"""Two-party chat endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.api.deps import get_current_user
from app.database import get_db
from app.models import Chat, ChatMessage, ChatParticipant, User
from app.schemas import ChatCreate, ChatRead, ChatReadState, MessagePreview, PublicUser
from app.services import count_unread, mark_chat_read
from lionsphere.realtime import conversation_key

router = APIRouter(prefix="/chats", tags=["chats"])


def serialize_public_user(user: User) -> PublicUser:
    return PublicUser(
        id=user.id,
        username=user.username,
        display_name=user.display_name,
        avatar_url=user.avatar_url,
    )


def serialize_preview(message: ChatMessage) -> MessagePreview:
    return MessagePreview(
        id=message.id,
        sender_id=message.sender_id,
        text=message.text,
        image_url=message.image_url,
        read_by=message.read_by,
        created_at=message.created_at,
    )


def _chat_options():
    return (
        selectinload(Chat.participants).selectinload(ChatParticipant.user),
        selectinload(Chat.latest_message).selectinload(ChatMessage.read_markers),
    )


def ensure_chat(user_id: int, other_id: int, db: Session) -> Chat:
    """Return the canonical chat between two users, creating it when missing."""

    key = conversation_key(user_id, other_id)
    stmt = select(Chat).where(Chat.key == key).options(*_chat_options())
    chat = db.execute(stmt).scalar_one_or_none()
    if chat is None:
        chat = Chat(key=key)
        chat.participants = [
            ChatParticipant(user_id=candidate, unread_count=0)
            for candidate in sorted({user_id, other_id})
        ]
        db.add(chat)
        db.flush()
    else:
        existing = {participant.user_id for participant in chat.participants}
        for candidate in (user_id, other_id):
            if candidate not in existing:
                chat.participants.append(
                    ChatParticipant(user_id=candidate, unread_count=count_unread(chat.id, candidate, db))
                )
        db.flush()
    return chat


def load_chat(chat_id: int, db: Session) -> Chat:
    stmt = select(Chat).where(Chat.id == chat_id).options(*_chat_options())
    chat = db.execute(stmt).scalar_one_or_none()
    if chat is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found")
    return chat


def require_participant(chat: Chat, user_id: int) -> ChatParticipant:
    participant = chat.participant(user_id)
    if participant is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not a participant in this chat",
        )
    return participant


def serialize_chat(chat: Chat, current_user_id: int) -> ChatRead:
    membership = chat.participant(current_user_id)
    others = [
        serialize_public_user(participant.user)
        for participant in chat.participants
        if participant.user_id != current_user_id and participant.user is not None
    ]
    return ChatRead(
        id=chat.id,
        conversation_id=chat.key,
        participants=others,
        latest_message=serialize_preview(chat.latest_message) if chat.latest_message else None,
        unread_count=membership.unread_count if membership else 0,
        updated_at=chat.updated_at,
    )


@router.get("", response_model=list[ChatRead])
def list_chats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[ChatRead]:
    """Return the caller's chats, most recently active first."""

    stmt = (
        select(Chat)
        .join(ChatParticipant)
        .where(ChatParticipant.user_id == current_user.id)
        .order_by(Chat.updated_at.desc(), Chat.id.desc())
        .options(*_chat_options())
    )
    chats = db.execute(stmt).scalars().unique().all()
    return [serialize_chat(chat, current_user.id) for chat in chats]


@router.post("", response_model=ChatRead)
def get_or_create_chat(
    payload: ChatCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ChatRead:
    """Open the chat with another user; an existing chat is reused."""

    if payload.other_user_id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot chat with yourself")
    if db.get(User, payload.other_user_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    try:
        chat = ensure_chat(current_user.id, payload.other_user_id, db)
        db.commit()
    except IntegrityError:
        # a concurrent request created the same chat first
        db.rollback()
        chat = ensure_chat(current_user.id, payload.other_user_id, db)
        db.commit()
    return serialize_chat(load_chat(chat.id, db), current_user.id)


@router.put("/{chat_id}/read", response_model=ChatReadState)
def read_chat(
    chat_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ChatReadState:
    """Acknowledge every message in the chat for the caller."""

    chat = load_chat(chat_id, db)
    participant = require_participant(chat, current_user.id)
    try:
        marked = mark_chat_read(chat, participant, db)
        db.commit()
    except IntegrityError:
        # an overlapping read stored some of the same markers first
        db.rollback()
        chat = load_chat(chat_id, db)
        participant = require_participant(chat, current_user.id)
        marked = mark_chat_read(chat, participant, db)
        db.commit()
    return ChatReadState(chat_id=chat.id, unread_count=0, marked_count=marked)


@router.delete("/{chat_id}", status_code=status.HTTP_204_NO_CONTENT)
def leave_chat(
    chat_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    """Remove the chat from the caller's list; the other side keeps it."""

    chat = load_chat(chat_id, db)
    participant = require_participant(chat, current_user.id)
    chat.participants.remove(participant)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
