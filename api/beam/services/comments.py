"""
Pinned image comments, one level of replies, and emoji reactions.

``Image.comment_count`` is kept in step with every insert and delete here;
nothing else writes comments.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..errors import Forbidden, NotFound, ValidationError
from ..realtime.publisher import COMMENT_ADDED, gallery_channel, realtime
from . import user_cache
from .notifications import COMMENT, COMMENT_REPLY, NotificationService, snippet

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 5000


def _clean_content(content: str | None) -> str:
    content = (content or "").strip()
    if not content:
        raise ValidationError("Comment can't be empty", field="content")
    if len(content) > MAX_CONTENT_LENGTH:
        raise ValidationError("Comment is too long", field="content")
    return content


def get_comment(db: Session, comment_id: int) -> models.Comment:
    comment = db.get(models.Comment, comment_id)
    if comment is None:
        raise NotFound("Comment not found")
    return comment


def require_author(comment: models.Comment, user_id: str) -> None:
    if comment.user_id != user_id:
        raise Forbidden("Only the author can change this comment")


def reaction_summaries(reactions: list[models.CommentReaction], user_id: str | None) -> list[schemas.ReactionSummary]:
    by_emoji: dict[str, list[str]] = defaultdict(list)
    for reaction in sorted(reactions, key=lambda r: r.created_at):
        by_emoji[reaction.emoji].append(reaction.user_id)
    return [
        schemas.ReactionSummary(emoji=emoji, count=len(users), user_ids=users, reacted=user_id in users)
        for emoji, users in by_emoji.items()
    ]


def comment_out(comment: models.Comment, user_id: str | None, color: str | None = None) -> schemas.CommentOut:
    return schemas.CommentOut(
        id=comment.id,
        image_id=comment.image_id,
        parent_id=comment.parent_id,
        content=comment.content,
        x_position=comment.x_position,
        y_position=comment.y_position,
        user_id=comment.user_id,
        user_name=comment.user_name,
        user_image_url=comment.user_image_url,
        user_color=color,
        created_at=comment.created_at,
        updated_at=comment.updated_at,
        reactions=reaction_summaries(comment.reactions, user_id),
    )


def list_threads(db: Session, image: models.Image, user_id: str | None) -> list[schemas.CommentOut]:
    """Top-level comments oldest first, each with its replies and reaction summaries."""
    comments = (
        db.query(models.Comment)
        .filter(models.Comment.image_id == image.id)
        .order_by(models.Comment.created_at, models.Comment.id)
        .all()
    )
    colors = {
        uid: cached.color
        for uid, cached in user_cache.fetch_cached_users(db, [c.user_id for c in comments]).items()
    }

    def to_out(comment: models.Comment) -> schemas.CommentOut:
        return comment_out(comment, user_id, colors.get(comment.user_id))

    threads: dict[int, schemas.CommentOut] = {}
    for comment in comments:
        if comment.parent_id is None:
            threads[comment.id] = to_out(comment)
    for comment in comments:
        if comment.parent_id is not None and comment.parent_id in threads:
            threads[comment.parent_id].replies.append(to_out(comment))
    return list(threads.values())


def create_comment(
    db: Session,
    gallery: models.Gallery,
    image: models.Image,
    author,
    content: str,
    x_position: float = 0,
    y_position: float = 0,
    parent_id: int | None = None,
) -> models.Comment:
    """
    Add a comment, or a reply when ``parent_id`` is set.

    Replies may only target top-level comments on the same image.

    Args:
        author: The authenticated ``CurrentUser``
    """
    content = _clean_content(content)

    parent = None
    if parent_id is not None:
        parent = db.get(models.Comment, parent_id)
        if parent is None or parent.image_id != image.id:
            raise ValidationError("Parent comment not found on this image", field="parentId")
        if parent.parent_id is not None:
            raise ValidationError("Replies can't be nested more than one level", field="parentId")
        # Replies sit on their parent's pin.
        x_position, y_position = parent.x_position, parent.y_position

    cached = db.get(models.CachedUser, author.id)
    comment = models.Comment(
        image_id=image.id,
        parent_id=parent_id,
        content=content,
        x_position=x_position,
        y_position=y_position,
        user_id=author.id,
        user_name=cached.display_name if cached else author.display_name,
        user_image_url=(cached.image_url if cached else None) or author.image_url,
    )
    db.add(comment)
    image.comment_count = (image.comment_count or 0) + 1
    db.commit()
    db.refresh(comment)

    logger.info(f"User {author.id} commented {comment.id} on image {image.id}")

    realtime.trigger(
        gallery_channel(gallery.slug),
        COMMENT_ADDED,
        {"imageId": image.id, "commentId": comment.id, "parentId": parent_id, "userId": author.id},
    )

    data = {
        **NotificationService.actor_data(db, author.id, gallery),
        "imageId": image.id,
        "imageUrl": image.url,
        "commentId": comment.id,
        "snippet": snippet(content),
    }
    notified: set[str] = set()
    if parent is not None and parent.user_id != author.id:
        NotificationService.record_event(
            db, parent.user_id, author.id, gallery.id, COMMENT_REPLY, {**data, "parentCommentId": parent.id}
        )
        notified.add(parent.user_id)

    for recipient_id in NotificationService.gallery_managers(db, gallery):
        if recipient_id in notified or recipient_id == author.id:
            continue
        NotificationService.record_event(db, recipient_id, author.id, gallery.id, COMMENT, data)
    return comment


def update_content(db: Session, comment: models.Comment, content: str) -> models.Comment:
    comment.content = _clean_content(content)
    comment.updated_at = models.utcnow()
    db.commit()
    return comment


def move_pin(db: Session, comment: models.Comment, x_position: float, y_position: float) -> models.Comment:
    if comment.parent_id is not None:
        raise ValidationError("Replies follow their parent's position", field="parentId")
    comment.x_position = x_position
    comment.y_position = y_position
    comment.updated_at = models.utcnow()
    db.commit()
    return comment


def delete_comment(db: Session, comment: models.Comment) -> int:
    """Delete a comment and its replies; returns how many rows went."""
    comment_id = comment.id
    image = db.get(models.Image, comment.image_id)
    doomed = [*comment.replies, comment]
    for row in doomed:
        db.delete(row)
    if image is not None:
        image.comment_count = max(0, (image.comment_count or 0) - len(doomed))
    db.commit()
    logger.info(f"Deleted comment {comment_id} with {len(doomed) - 1} replies")
    return len(doomed)


def toggle_reaction(db: Session, comment: models.Comment, user_id: str, emoji: str) -> bool:
    """Add the reaction, or remove it if present. Returns True when added."""
    emoji = (emoji or "").strip()
    if not emoji or len(emoji) > 32:
        raise ValidationError("Invalid emoji", field="emoji")

    existing = (
        db.query(models.CommentReaction)
        .filter(
            models.CommentReaction.comment_id == comment.id,
            models.CommentReaction.user_id == user_id,
            models.CommentReaction.emoji == emoji,
        )
        .first()
    )
    if existing:
        db.delete(existing)
        db.commit()
        return False

    db.add(models.CommentReaction(comment_id=comment.id, user_id=user_id, emoji=emoji))
    try:
        db.commit()
    except IntegrityError:
        # A concurrent request added the same reaction.
        db.rollback()
    return True
