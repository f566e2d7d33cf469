"""Application service helpers."""

from .cache import get_cache
from .notifications import create_notification
from .unread import count_unread, mark_chat_read, mark_message_read, record_message

__all__ = [
    "get_cache",
    "create_notification",
    "count_unread",
    "mark_chat_read",
    "mark_message_read",
    "record_message",
]
