from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

from sqlalchemy import func

from app.zv.constants import NOTIFICATION_RELATED_TYPES, NOTIFICATION_TYPES
from app.zv.errors import NotFound, ValidationFailed
from app.zv.modules.notifications.models import Notification
from app.zv.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

MAX_PAGE_SIZE = 100


def notify(
    s: "Session",
    user_id: int,
    title: str,
    message: str,
    *,
    type: str = "INFO",
    related_type: str | None = None,
    related_id: int | None = None,
) -> Notification:
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {type}")
    if related_type is not None and related_type not in NOTIFICATION_RELATED_TYPES:
        raise ValueError(f"Unknown notification related type: {related_type}")
    n = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=type,
        related_type=related_type,
        related_id=related_id,
        is_read=False,
    )
    s.add(n)
    return n


def notify_many(s: "Session", user_ids: Iterable[int], title: str, message: str, **kwargs) -> list[Notification]:
    return [notify(s, uid, title, message, **kwargs) for uid in dict.fromkeys(user_ids)]


def serialize_notification(n: Notification) -> dict:
    return {
        "id": n.id,
        "title": n.title,
        "message": n.message,
        "type": n.type,
        "related_type": n.related_type,
        "related_id": n.related_id,
        "is_read": n.is_read,
        "created_at": iso(n.created_at),
    }


def unread_count(s: "Session", user_id: int) -> int:
    return (
        s.query(func.count(Notification.id))
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .scalar()
        or 0
    )


def list_notifications(s: "Session", user_id: int, *, limit: int = 20, offset: int = 0, unread_only: bool = False) -> dict:
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    offset = max(0, offset)
    q = s.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    # one extra row tells us whether another page exists
    rows = q.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(offset).limit(limit + 1).all()
    return {
        "notifications": [serialize_notification(n) for n in rows[:limit]],
        "unread_count": unread_count(s, user_id),
        "has_more": len(rows) > limit,
    }


def _get_own(s: "Session", user_id: int, notification_id: int) -> Notification:
    n = s.get(Notification, notification_id)
    if not n or n.user_id != user_id:
        raise NotFound("Notification not found")
    return n


def set_read(s: "Session", user_id: int, notification_id: int, is_read) -> Notification:
    if not isinstance(is_read, bool):
        raise ValidationFailed("is_read must be a boolean")
    n = _get_own(s, user_id, notification_id)
    n.is_read = is_read
    return n


def mark_all_read(s: "Session", user_id: int) -> int:
    return (
        s.query(Notification)
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .update({Notification.is_read: True}, synchronize_session=False)
    )


def delete_notification(s: "Session", user_id: int, notification_id: int) -> None:
    s.delete(_get_own(s, user_id, notification_id))
