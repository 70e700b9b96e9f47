"""Image endpoints: stars and comment threads."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import CurrentUser, get_current_user, get_current_user_optional
from ..deps import get_db
from ..realtime.publisher import IMAGE_STARRED, gallery_channel, realtime
from ..roles import load_image
from ..services import comments as comment_service
from ..services import user_cache
from ..services.notifications import STAR, NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/images", tags=["Images"])


def _star_count(db: Session, image_id: int) -> int:
    return db.query(func.count(models.Star.user_id)).filter(models.Star.image_id == image_id).scalar() or 0


def _get_star(db: Session, image_id: int, user_id: str) -> models.Star | None:
    return (
        db.query(models.Star)
        .filter(models.Star.image_id == image_id, models.Star.user_id == user_id)
        .first()
    )


def _publish_star(gallery: models.Gallery, image_id: int, user_id: str, is_starred: bool, count: int) -> None:
    realtime.trigger(
        gallery_channel(gallery.slug),
        IMAGE_STARRED,
        {"imageId": image_id, "userId": user_id, "isStarred": is_starred, "starCount": count},
    )


@router.post("/{image_id}/star", response_model=schemas.StarResult)
def toggle_star(
    image_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.StarResult:
    """
    Star the image, or unstar it if the caller already has.

    View-only collaborators cannot star. A new star notifies the gallery's
    owner and editors; rapid repeats collapse into one counted notification.
    """
    image, gallery, _ = load_image(db, image_id, current_user.id, "star")

    existing = _get_star(db, image.id, current_user.id)
    if existing:
        db.delete(existing)
        db.commit()
        count = _star_count(db, image.id)
        _publish_star(gallery, image.id, current_user.id, False, count)
        return schemas.StarResult(is_starred=False, star_count=count)

    db.add(models.Star(user_id=current_user.id, image_id=image.id))
    try:
        db.commit()
    except IntegrityError:
        # Concurrent duplicate click already starred it.
        db.rollback()
        return schemas.StarResult(is_starred=True, star_count=_star_count(db, image.id))

    count = _star_count(db, image.id)
    _publish_star(gallery, image.id, current_user.id, True, count)
    NotificationService.fan_out(
        db,
        gallery,
        current_user.id,
        STAR,
        {
            **NotificationService.actor_data(db, current_user.id, gallery),
            "imageId": image.id,
            "imageUrl": image.url,
        },
    )
    return schemas.StarResult(is_starred=True, star_count=count)


@router.delete("/{image_id}/star", response_model=schemas.StarResult)
def remove_star(
    image_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.StarResult:
    """Remove the caller's star. Idempotent."""
    image, gallery, _ = load_image(db, image_id, current_user.id, "star")

    existing = _get_star(db, image.id, current_user.id)
    if existing:
        db.delete(existing)
        db.commit()
        count = _star_count(db, image.id)
        _publish_star(gallery, image.id, current_user.id, False, count)
        return schemas.StarResult(is_starred=False, star_count=count)
    return schemas.StarResult(is_starred=False, star_count=_star_count(db, image.id))


@router.get("/{image_id}/stars", response_model=list[schemas.StarUser])
def list_stars(
    image_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser | None = Depends(get_current_user_optional),
) -> list[schemas.StarUser]:
    """Users who starred the image, earliest first."""
    image, _, _ = load_image(db, image_id, current_user.id if current_user else None)
    stars = (
        db.query(models.Star)
        .filter(models.Star.image_id == image.id)
        .order_by(models.Star.created_at)
        .all()
    )
    profiles = user_cache.fetch_cached_users(db, [s.user_id for s in stars])
    result = []
    for star in stars:
        profile = profiles.get(star.user_id)
        result.append(
            schemas.StarUser(
                user_id=star.user_id,
                name=profile.display_name if profile else "Unknown User",
                image_url=profile.image_url if profile else None,
                color=profile.color if profile else None,
                starred_at=star.created_at,
            )
        )
    return result


@router.get("/{image_id}/comments", response_model=list[schemas.CommentOut])
def list_comments(
    image_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser | None = Depends(get_current_user_optional),
) -> list[schemas.CommentOut]:
    user_id = current_user.id if current_user else None
    image, _, _ = load_image(db, image_id, user_id)
    return comment_service.list_threads(db, image, user_id)


@router.post("/{image_id}/comments", response_model=schemas.CommentOut, status_code=status.HTTP_201_CREATED)
def create_comment(
    image_id: int,
    payload: schemas.CommentCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.CommentOut:
    """
    Pin a comment on the image, or reply to a top-level comment.

    Replies to replies are rejected with 400.
    """
    image, gallery, _ = load_image(db, image_id, current_user.id, "comment")
    comment = comment_service.create_comment(
        db,
        gallery,
        image,
        current_user,
        payload.content,
        x_position=payload.x_position,
        y_position=payload.y_position,
        parent_id=payload.parent_id,
    )
    cached = db.get(models.CachedUser, current_user.id)
    return comment_service.comment_out(comment, current_user.id, cached.color if cached else None)
