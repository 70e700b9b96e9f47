"""Notification endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import schemas
from ..auth import CurrentUser, get_current_user
from ..deps import get_db
from ..errors import NotFound, ValidationError
from ..pagination import decode_cursor, encode_cursor
from ..services.notifications import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=schemas.Page[schemas.NotificationOut])
def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    cursor: str | None = Query(None, description="Opaque cursor from the previous page"),
    unseen_only: bool = Query(False, alias="unseenOnly"),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.Page[schemas.NotificationOut]:
    """
    List notifications for the current user.

    Grouped notifications surface at the time of their latest event.
    """
    position = None
    if cursor:
        decoded = decode_cursor(cursor)
        try:
            position = (datetime.fromisoformat(decoded[1]), decoded[0]) if decoded else None
        except (TypeError, ValueError):
            position = None
        if position is None:
            raise ValidationError("Invalid cursor", field="cursor")

    notifications, next_cursor = NotificationService.list_notifications(
        db, current_user.id, limit=limit, cursor=position, unseen_only=unseen_only
    )
    return schemas.Page[schemas.NotificationOut](
        items=[schemas.NotificationOut.model_validate(n) for n in notifications],
        next_cursor=encode_cursor(next_cursor[1], next_cursor[0].isoformat()) if next_cursor else None,
    )


@router.get("/unread-count", response_model=schemas.UnreadCount)
def get_unread_count(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.UnreadCount:
    return schemas.UnreadCount(unread_count=NotificationService.get_unread_count(db, current_user.id))


@router.post("/mark-all-read", response_model=schemas.MarkedCount)
def mark_all_read(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.MarkedCount:
    return schemas.MarkedCount(updated=NotificationService.mark_all_seen(db, current_user.id))


@router.post("/mark-read", response_model=schemas.MarkedCount)
def mark_read(
    payload: schemas.MarkReadRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.MarkedCount:
    """Mark specific notifications seen; ids belonging to other users are ignored."""
    return schemas.MarkedCount(updated=NotificationService.mark_seen(db, payload.ids, current_user.id))


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> None:
    if not NotificationService.delete_notification(db, notification_id, current_user.id):
        raise NotFound("Notification not found")
