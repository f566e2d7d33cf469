"""Database models package."""

from .base import Base
from .social import (
    Chat,
    ChatMessage,
    ChatParticipant,
    MessageReadMarker,
    Notification,
    User,
)
from .enums import NotificationType

__all__ = [
    "Base",
    "User",
    "Chat",
    "ChatParticipant",
    "ChatMessage",
    "MessageReadMarker",
    "Notification",
    "NotificationType",
]
