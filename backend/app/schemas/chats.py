"""Schemas for two-party chats."""

from datetime import datetime

from pydantic import BaseModel, Field

from .messages import MessagePreview
from .users import PublicUser


class ChatCreate(BaseModel):
    """Payload for fetching or opening the chat with another user."""

    other_user_id: int = Field(..., description="User to chat with")


class ChatRead(BaseModel):
    """Chat as seen by one of its participants."""

    id: int
    conversation_id: str = Field(..., description="Canonical key shared with the realtime relay")
    participants: list[PublicUser] = Field(
        default_factory=list, description="Participants other than the caller"
    )
    latest_message: MessagePreview | None = None
    unread_count: int = Field(0, ge=0)
    updated_at: datetime


class ChatReadState(BaseModel):
    """Result of acknowledging a whole chat as read."""

    chat_id: int
    unread_count: int = Field(0, ge=0)
    marked_count: int = Field(0, ge=0, description="Messages that gained a read marker")
