"""Activity notification endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

from app.api.deps import get_current_user
from app.config import get_settings
from app.database import get_db
from app.models import Notification, User
from app.models.enums import POST_BOUND_NOTIFICATIONS
from app.schemas import (
    NotificationCreate,
    NotificationCreateResult,
    NotificationList,
    NotificationRead,
    UnreadCount,
)
from app.services import create_notification

router = APIRouter(prefix="/notifications", tags=["notifications"])

settings = get_settings()


def _unread_count(user_id: int, db: Session) -> int:
    stmt = select(func.count(Notification.id)).where(
        Notification.recipient_id == user_id,
        Notification.read.is_(False),
    )
    return db.execute(stmt).scalar_one()


def _load_owned(notification_id: int, user_id: int, db: Session) -> Notification:
    notification = db.get(Notification, notification_id)
    if notification is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    if notification.recipient_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Notification belongs to another user",
        )
    return notification


@router.get("", response_model=NotificationList)
def list_notifications(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> NotificationList:
    """Return the caller's latest notifications with sender details."""

    stmt = (
        select(Notification)
        .where(Notification.recipient_id == current_user.id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(settings.notification_list_limit)
        .options(selectinload(Notification.sender))
    )
    notifications = db.execute(stmt).scalars().all()
    return NotificationList(
        notifications=[NotificationRead.model_validate(item) for item in notifications],
        unread_count=_unread_count(current_user.id, db),
    )


@router.get("/unread-count", response_model=UnreadCount)
def read_unread_count(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UnreadCount:
    return UnreadCount(unread_count=_unread_count(current_user.id, db))


@router.post("", response_model=NotificationCreateResult, status_code=status.HTTP_201_CREATED)
def post_notification(
    payload: NotificationCreate,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> NotificationCreateResult:
    """Record an activity notification sent by the caller.

    Self-actions and repeats inside the de-duplication window answer 200 and
    do not create a new row.
    """

    if payload.type in POST_BOUND_NOTIFICATIONS and not payload.post_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"post_id is required for {payload.type.value} notifications",
        )
    if db.get(User, payload.recipient_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipient not found")

    notification, created = create_notification(
        db,
        recipient_id=payload.recipient_id,
        sender_id=current_user.id,
        notification_type=payload.type,
        message=payload.message,
        post_id=payload.post_id,
        comment_id=payload.comment_id,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return NotificationCreateResult(
        created=created,
        notification=NotificationRead.model_validate(notification) if notification else None,
    )


@router.put("/read-all", response_model=UnreadCount)
def read_all_notifications(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UnreadCount:
    db.execute(
        update(Notification)
        .where(Notification.recipient_id == current_user.id, Notification.read.is_(False))
        .values(read=True)
    )
    db.commit()
    return UnreadCount(unread_count=0)


@router.put("/{notification_id}/read", response_model=NotificationRead)
def read_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> NotificationRead:
    notification = _load_owned(notification_id, current_user.id, db)
    notification.read = True
    db.add(notification)
    db.commit()
    db.refresh(notification)
    return NotificationRead.model_validate(notification)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    notification = _load_owned(notification_id, current_user.id, db)
    db.delete(notification)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
