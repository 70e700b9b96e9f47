"""Comment management endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import CurrentUser, get_current_user
from ..deps import get_db
from ..roles import load_image
from ..services import comments as comment_service

router = APIRouter(prefix="/comments", tags=["Comments"])


def _load_own_comment(db: Session, comment_id: int, user: CurrentUser) -> models.Comment:
    comment = comment_service.get_comment(db, comment_id)
    # Author must still be able to see the gallery.
    load_image(db, comment.image_id, user.id)
    comment_service.require_author(comment, user.id)
    return comment


def _out(db: Session, comment: models.Comment, user_id: str) -> schemas.CommentOut:
    cached = db.get(models.CachedUser, comment.user_id)
    return comment_service.comment_out(comment, user_id, cached.color if cached else None)


@router.put("/{comment_id}/position", response_model=schemas.CommentOut)
def move_comment(
    comment_id: int,
    payload: schemas.CommentPosition,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.CommentOut:
    """Drag a comment pin to a new spot (percentages of the image size). Author only."""
    comment = _load_own_comment(db, comment_id, current_user)
    comment_service.move_pin(db, comment, payload.x_position, payload.y_position)
    return _out(db, comment, current_user.id)


@router.put("/{comment_id}", response_model=schemas.CommentOut)
def update_comment(
    comment_id: int,
    payload: schemas.CommentUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.CommentOut:
    comment = _load_own_comment(db, comment_id, current_user)
    comment_service.update_content(db, comment, payload.content)
    return _out(db, comment, current_user.id)


@router.delete("/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> None:
    """Delete a comment together with its replies. Author only."""
    comment = _load_own_comment(db, comment_id, current_user)
    comment_service.delete_comment(db, comment)


@router.post("/{comment_id}/reactions", response_model=schemas.ReactionResult)
def toggle_reaction(
    comment_id: int,
    payload: schemas.ReactionToggle,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.ReactionResult:
    comment = comment_service.get_comment(db, comment_id)
    load_image(db, comment.image_id, current_user.id, "comment")

    added = comment_service.toggle_reaction(db, comment, current_user.id, payload.emoji)
    db.refresh(comment)
    return schemas.ReactionResult(
        added=added,
        reactions=comment_service.reaction_summaries(comment.reactions, current_user.id),
    )
