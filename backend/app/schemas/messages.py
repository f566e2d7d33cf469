"""Schemas related to chat messages."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from .users import PublicUser


class MessagePreview(BaseModel):
    """Compact message used for chat list previews and reply references."""

    id: int
    sender_id: int
    text: str
    image_url: str | None = None
    read_by: list[int] = Field(default_factory=list)
    created_at: datetime


class MessageRead(BaseModel):
    """Serialized representation of a chat message."""

    id: int
    chat_id: int
    conversation_id: str
    sender_id: int
    sender: PublicUser | None = None
    text: str
    image_url: str | None = None
    reply_to_id: int | None = None
    reply_to: MessagePreview | None = None
    read_by: list[int] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None


class MessageCreate(BaseModel):
    """Payload for durably storing a new message."""

    chat_id: int
    text: str | None = Field(default=None, max_length=2000)
    image_url: str | None = Field(default=None, max_length=512)
    reply_to_id: int | None = None

    @model_validator(mode="after")
    def ensure_content(self) -> "MessageCreate":
        text = (self.text or "").strip()
        if not text and not self.image_url:
            raise ValueError("Either text or image_url must be provided")
        self.text = text
        return self


class MessagePage(BaseModel):
    """Page of chat history, oldest first."""

    messages: list[MessageRead]
    has_more: bool = False
    page: int = 1
    total_messages: int = 0


class MessageReadResult(BaseModel):
    """Outcome of marking a single message as read."""

    message_id: int
    unread_count: int = Field(..., ge=0, description="Messages from others still unread in the chat")
