"""
Notification Service.

Records actor -> recipient activity (stars, comments, replies, invites,
uploads) and collapses repeats into counted notifications so a burst of
activity from one person shows up as a single entry. Every create or bump is
pushed to the recipient's private realtime channel.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import and_, func, or_, text
from sqlalchemy.orm import Session

from .. import models
from ..cache import cache_delete, cache_get_int, cache_set_int
from ..realtime.publisher import NOTIFICATION_CREATED, NOTIFICATION_UPDATED, realtime, user_channel
from ..roles import EDIT, is_guest_owner
from ..settings import NOTIFICATION_GROUPING_WINDOW_MINUTES
from . import user_cache

logger = logging.getLogger(__name__)

STAR = "star"
COMMENT = "comment"
COMMENT_REPLY = "comment-reply"
GALLERY_INVITE = "gallery-invite"
IMAGE_UPLOADED = "image-uploaded"

NOTIFICATION_TYPES = (STAR, COMMENT, COMMENT_REPLY, GALLERY_INVITE, IMAGE_UPLOADED)

# Cache key patterns
UNREAD_COUNT_KEY = "notif:unread:{user_id}"


def grouping_target(notification_type: str, gallery_id: int | None, data: dict[str, Any]) -> str:
    """Type-specific target that, with recipient/type/actor, identifies a notification group."""
    if notification_type in (STAR, COMMENT):
        return f"image:{data['imageId']}:gallery:{gallery_id}"
    if notification_type == COMMENT_REPLY:
        return f"comment:{data['parentCommentId']}"
    if notification_type in (GALLERY_INVITE, IMAGE_UPLOADED):
        return f"gallery:{gallery_id}"
    raise ValueError(f"Unknown notification type: {notification_type}")


def group_key(recipient_id: str, notification_type: str, actor_id: str, target_key: str) -> str:
    return f"{recipient_id}|{notification_type}|{actor_id}|{target_key}"


def snippet(text: str | None, limit: int = 100) -> str | None:
    if not text:
        return None
    return text if len(text) <= limit else text[:limit] + "..."


def serialize_notification(notification: models.Notification) -> dict[str, Any]:
    return {
        "id": notification.id,
        "type": notification.type,
        "actorId": notification.actor_id,
        "galleryId": notification.gallery_id,
        "groupId": notification.group_id,
        "count": notification.count,
        "isSeen": notification.is_seen,
        "data": notification.data or {},
        "createdAt": notification.created_at.isoformat() + "Z",
    }


class NotificationService:
    """Service for recording, grouping and reading notifications."""

    @staticmethod
    def actor_data(db: Session, actor_id: str, gallery: models.Gallery | None = None) -> dict[str, Any]:
        """Denormalized actor (and gallery) fields stored with a notification."""
        cached = user_cache.fetch_cached_users(db, [actor_id]).get(actor_id)
        data: dict[str, Any] = {
            "actorName": cached.display_name if cached else "Someone",
            "actorImageUrl": cached.image_url if cached else None,
            "actorColor": cached.color if cached else None,
        }
        if gallery is not None:
            data["galleryTitle"] = gallery.title
            data["gallerySlug"] = gallery.slug
        return data

    @staticmethod
    def record_event(
        db: Session,
        recipient_id: str,
        actor_id: str,
        gallery_id: int | None,
        notification_type: str,
        data: dict[str, Any],
        now: datetime | None = None,
    ) -> models.Notification | None:
        """
        Record one event, merging it into a recent matching notification.

        A notification matches when recipient, type, actor and target agree and
        it was created inside the grouping window. A match gets its count
        bumped, its data replaced with this event's payload and its timestamp
        refreshed; otherwise a new notification is created.

        Returns:
            The created or bumped notification, or None for self-notifications
        """
        if recipient_id == actor_id:
            logger.debug(f"Skipping self-notification for user {recipient_id}")
            return None

        now = now or models.utcnow()
        target_key = grouping_target(notification_type, gallery_id, data)
        window_start = now - timedelta(minutes=NOTIFICATION_GROUPING_WINDOW_MINUTES)
        NotificationService._lock_group(db, group_key(recipient_id, notification_type, actor_id, target_key))

        existing = (
            db.query(models.Notification)
            .filter(
                models.Notification.user_id == recipient_id,
                models.Notification.type == notification_type,
                models.Notification.actor_id == actor_id,
                models.Notification.target_key == target_key,
                models.Notification.created_at >= window_start,
            )
            .order_by(models.Notification.created_at.desc())
            .with_for_update()
            .first()
        )

        if existing:
            existing.count += 1
            existing.data = {**data, "count": existing.count}
            existing.created_at = now
            existing.is_seen = False
            notification = existing
            event = NOTIFICATION_UPDATED
        else:
            notification = models.Notification(
                user_id=recipient_id,
                actor_id=actor_id,
                type=notification_type,
                gallery_id=gallery_id,
                target_key=target_key,
                data={**data, "count": 1},
                group_id=uuid.uuid4().hex,
                count=1,
                is_seen=False,
                created_at=now,
            )
            db.add(notification)
            event = NOTIFICATION_CREATED

        db.commit()
        db.refresh(notification)

        logger.info(
            f"{'Bumped' if existing else 'Created'} {notification_type} notification "
            f"{notification.id} for user {recipient_id} (count={notification.count})"
        )

        cache_delete(UNREAD_COUNT_KEY.format(user_id=recipient_id))
        NotificationService._broadcast(notification, event)
        return notification

    @staticmethod
    def gallery_managers(db: Session, gallery: models.Gallery) -> list[str]:
        """Owner plus every registered Edit collaborator; guest owners cannot receive notifications."""
        editors = (
            db.query(models.Invite.user_id)
            .filter(
                models.Invite.gallery_id == gallery.id,
                models.Invite.role == EDIT,
                models.Invite.user_id.isnot(None),
            )
            .all()
        )
        owners = [] if is_guest_owner(gallery.owner_user_id) else [gallery.owner_user_id]
        return list(dict.fromkeys([*owners, *(row.user_id for row in editors)]))

    @staticmethod
    def fan_out(
        db: Session,
        gallery: models.Gallery,
        actor_id: str,
        notification_type: str,
        data: dict[str, Any],
        now: datetime | None = None,
    ) -> list[models.Notification]:
        """Record an event for the gallery owner and Edit collaborators, except the actor."""
        notifications = []
        for recipient_id in NotificationService.gallery_managers(db, gallery):
            if recipient_id == actor_id:
                continue
            notification = NotificationService.record_event(
                db, recipient_id, actor_id, gallery.id, notification_type, data, now=now
            )
            if notification is not None:
                notifications.append(notification)
        return notifications

    @staticmethod
    def get_unread_count(db: Session, user_id: str) -> int:
        """Unread notification count; Redis cache with database fallback."""
        cache_key = UNREAD_COUNT_KEY.format(user_id=user_id)
        cached = cache_get_int(cache_key)
        if cached is not None:
            return cached

        count = (
            db.query(func.count(models.Notification.id))
            .filter(models.Notification.user_id == user_id, models.Notification.is_seen.is_(False))
            .scalar()
            or 0
        )
        cache_set_int(cache_key, count)
        return count

    @staticmethod
    def list_notifications(
        db: Session,
        user_id: str,
        limit: int = 50,
        cursor: tuple[datetime, int] | None = None,
        unseen_only: bool = False,
    ) -> tuple[list[models.Notification], tuple[datetime, int] | None]:
        """
        List notifications newest first, paged on (created_at, id).

        ``cursor`` is the (created_at, id) of the last notification already seen.

        Returns:
            Tuple of (notifications, next_cursor)
        """
        query = db.query(models.Notification).filter(models.Notification.user_id == user_id)
        if unseen_only:
            query = query.filter(models.Notification.is_seen.is_(False))
        if cursor:
            created_at, last_id = cursor
            query = query.filter(
                or_(
                    models.Notification.created_at < created_at,
                    and_(models.Notification.created_at == created_at, models.Notification.id < last_id),
                )
            )

        rows = (
            query.order_by(models.Notification.created_at.desc(), models.Notification.id.desc())
            .limit(limit + 1)
            .all()
        )
        items = rows[:limit]
        next_cursor = (items[-1].created_at, items[-1].id) if len(rows) > limit and items else None
        return items, next_cursor

    @staticmethod
    def mark_all_seen(db: Session, user_id: str) -> int:
        """Mark every notification of the user seen; counts and data are untouched."""
        count = (
            db.query(models.Notification)
            .filter(models.Notification.user_id == user_id, models.Notification.is_seen.is_(False))
            .update({"is_seen": True}, synchronize_session=False)
        )
        db.commit()
        cache_set_int(UNREAD_COUNT_KEY.format(user_id=user_id), 0)
        return count

    @staticmethod
    def mark_seen(db: Session, notification_ids: list[int], user_id: str) -> int:
        if not notification_ids:
            return 0
        count = (
            db.query(models.Notification)
            .filter(
                models.Notification.id.in_(notification_ids),
                models.Notification.user_id == user_id,
                models.Notification.is_seen.is_(False),
            )
            .update({"is_seen": True}, synchronize_session=False)
        )
        db.commit()
        if count:
            cache_delete(UNREAD_COUNT_KEY.format(user_id=user_id))
        return count

    @staticmethod
    def delete_notification(db: Session, notification_id: int, user_id: str) -> bool:
        notification = (
            db.query(models.Notification)
            .filter(models.Notification.id == notification_id, models.Notification.user_id == user_id)
            .first()
        )
        if not notification:
            return False

        db.delete(notification)
        db.commit()
        cache_delete(UNREAD_COUNT_KEY.format(user_id=user_id))
        return True

    # =========================================================================
    # Private helper methods
    # =========================================================================

    @staticmethod
    def _lock_group(db: Session, key: str) -> None:
        """
        Serialize writers of one notification group until the transaction ends.

        A row lock cannot cover a group whose first notification does not exist
        yet, so PostgreSQL takes a transaction-scoped advisory lock on the key.
        SQLite already serializes writers.
        """
        if db.get_bind().dialect.name != "postgresql":
            return
        db.execute(text("SELECT pg_advisory_xact_lock(hashtext(:key))"), {"key": key})

    @staticmethod
    def _broadcast(notification: models.Notification, event: str) -> None:
        if not realtime.trigger(user_channel(notification.user_id), event, serialize_notification(notification)):
            logger.warning(f"Failed to push notification {notification.id} to user {notification.user_id}")
