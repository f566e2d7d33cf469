"""Schemas for activity notifications."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import NotificationType

from .users import PublicUser


class NotificationCreate(BaseModel):
    """Payload for recording an activity notification from the current user."""

    recipient_id: int
    type: NotificationType
    post_id: str | None = Field(default=None, max_length=64)
    comment_id: str | None = Field(default=None, max_length=64)
    message: str = Field(..., min_length=1, max_length=255)


class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    recipient_id: int
    sender_id: int
    sender: PublicUser | None = None
    type: NotificationType
    post_id: str | None = None
    comment_id: str | None = None
    message: str
    read: bool
    created_at: datetime


class NotificationCreateResult(BaseModel):
    """Result of a create request, which may collapse into an existing entry."""

    created: bool
    notification: NotificationRead | None = None


class NotificationList(BaseModel):
    notifications: list[NotificationRead] = Field(default_factory=list)
    unread_count: int = Field(0, ge=0)


class UnreadCount(BaseModel):
    unread_count: int = Field(0, ge=0)
