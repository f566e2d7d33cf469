from __future__ import annotations

from enum import Enum


class NotificationType(str, Enum):
    """Kinds of activity a user can be notified about."""

    LIKE = "like"
    COMMENT = "comment"
    FOLLOW = "follow"
    MENTION = "mention"


POST_BOUND_NOTIFICATIONS = frozenset({NotificationType.LIKE, NotificationType.COMMENT})
"""Notification types that must reference a post."""
