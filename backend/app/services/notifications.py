"""Creation of activity notifications with short-window de-duplication."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.config import get_settings
from app.models import Notification, NotificationType
from app.monitoring.metrics import notifications_created_total, notifications_deduplicated_total
from app.services.cache import CacheBackend, get_cache


logger = logging.getLogger(__name__)


def dedup_key(
    recipient_id: int, sender_id: int, notification_type: NotificationType, post_id: str | None
) -> str:
    return f"notify:{recipient_id}:{sender_id}:{NotificationType(notification_type).value}:{post_id or '-'}"


def create_notification(
    db: Session,
    *,
    recipient_id: int,
    sender_id: int,
    notification_type: NotificationType,
    message: str,
    post_id: str | None = None,
    comment_id: str | None = None,
    cache: CacheBackend | None = None,
) -> tuple[Notification | None, bool]:
    """Store a notification unless it is a self-action or a recent duplicate.

    Returns ``(notification, created)``. Self-actions yield ``(None, False)``;
    a duplicate within the configured window yields the earlier notification
    with ``created`` set to False.
    """

    if recipient_id == sender_id:
        return None, False

    settings = get_settings()
    cache = cache or get_cache()
    notification_type = NotificationType(notification_type)
    key = dedup_key(recipient_id, sender_id, notification_type, post_id)

    cached_id = cache.get(key)
    if cached_id is not None:
        existing = db.get(Notification, int(cached_id))
        if existing is not None:
            notifications_deduplicated_total.labels(notification_type.value).inc()
            logger.debug("Collapsed duplicate %s notification into %s", notification_type.value, existing.id)
            return existing, False
        cache.delete(key)

    notification = Notification(
        recipient_id=recipient_id,
        sender_id=sender_id,
        type=notification_type,
        post_id=post_id,
        comment_id=comment_id,
        message=message,
        read=False,
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)

    cache.set(key, str(notification.id), settings.notification_dedup_window_seconds)
    notifications_created_total.labels(notification_type.value).inc()
    return notification, True
