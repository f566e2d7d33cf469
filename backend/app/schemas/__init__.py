"""Pydantic schemas for API payloads."""

from .chats import ChatCreate, ChatRead, ChatReadState
from .messages import (
    MessageCreate,
    MessagePage,
    MessagePreview,
    MessageRead,
    MessageReadResult,
)
from .notifications import (
    NotificationCreate,
    NotificationCreateResult,
    NotificationList,
    NotificationRead,
    UnreadCount,
)
from .users import PublicUser, UserCreate, UserRead

__all__ = [
    "ChatCreate",
    "ChatRead",
    "ChatReadState",
    "MessageCreate",
    "MessagePage",
    "MessagePreview",
    "MessageRead",
    "MessageReadResult",
    "NotificationCreate",
    "NotificationCreateResult",
    "NotificationList",
    "NotificationRead",
    "UnreadCount",
    "PublicUser",
    "UserCreate",
    "UserRead",
]
