"""Realtime presence and messaging relay."""

from .presence import OFFLINE, ONLINE, PresenceTable, safe_send_json  # noqa: F401
from .relay import (  # noqa: F401
    CONVERSATION_ID_SEPARATOR,
    MessageRelay,
    RelayResult,
    TypingRelay,
    conversation_key,
    split_conversation_key,
)

__all__ = [
    "ONLINE",
    "OFFLINE",
    "PresenceTable",
    "safe_send_json",
    "CONVERSATION_ID_SEPARATOR",
    "MessageRelay",
    "RelayResult",
    "TypingRelay",
    "conversation_key",
    "split_conversation_key",
]
