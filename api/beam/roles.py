"""
Gallery role resolution and capability checks.

Every gallery route funnels through ``load_gallery`` so that the same
private/not-found policy applies everywhere: a missing or trashed slug is a
404, an existing gallery the caller cannot see is a 403 flagged ``isPrivate``.
"""

from __future__ import annotations

from typing import Literal

from sqlalchemy.orm import Session

from . import models
from .errors import Forbidden, NotFound, PrivateGallery

OWNER = "owner"
EDIT = "Edit"
COMMENT = "Comment"
VIEW = "View"

INVITE_ROLES = (EDIT, COMMENT, VIEW)

# Anonymous galleries are owned by a synthetic id nobody can sign in as.
GUEST_OWNER_PREFIX = "guest_"

Capability = Literal["read", "upload", "comment", "star", "manage", "own"]


def is_guest_owner(user_id: str | None) -> bool:
    return bool(user_id) and user_id.startswith(GUEST_OWNER_PREFIX)


def resolve_role(db: Session, gallery: models.Gallery, user_id: str | None) -> str | None:
    """Effective role of ``user_id`` on ``gallery``; first match wins."""
    if user_id and user_id == gallery.owner_user_id:
        return OWNER

    if user_id:
        invite = (
            db.query(models.Invite)
            .filter(models.Invite.gallery_id == gallery.id, models.Invite.user_id == user_id)
            .first()
        )
        if invite:
            return invite.role

    if gallery.is_public or gallery.guest_upload:
        return VIEW
    return None


def can_manage_gallery(role: str | None) -> bool:
    return role in (OWNER, EDIT)


def can_comment(role: str | None) -> bool:
    return role in (OWNER, EDIT, COMMENT)


def can_star(role: str | None) -> bool:
    return role in (OWNER, EDIT, COMMENT)


def can_upload(role: str | None, gallery: models.Gallery) -> bool:
    # Anonymous galleries accept uploads from anyone holding the link.
    return gallery.guest_upload or can_manage_gallery(role)


def has_capability(role: str | None, gallery: models.Gallery, capability: Capability) -> bool:
    if capability == "read":
        return role is not None
    if capability == "upload":
        return can_upload(role, gallery)
    if capability == "comment":
        return can_comment(role)
    if capability == "star":
        return can_star(role)
    if capability == "manage":
        return can_manage_gallery(role)
    if capability == "own":
        return role == OWNER
    raise ValueError(f"Unknown capability: {capability}")


def get_live_gallery(db: Session, slug: str) -> models.Gallery:
    gallery = (
        db.query(models.Gallery)
        .filter(models.Gallery.slug == slug, models.Gallery.deleted_at.is_(None))
        .first()
    )
    if gallery is None:
        raise NotFound("Gallery not found")
    return gallery


def authorize(
    db: Session,
    gallery: models.Gallery,
    user_id: str | None,
    capability: Capability = "read",
) -> str | None:
    """
    Resolve the caller's role and require ``capability``.

    Raises:
        PrivateGallery: caller has no role at all
        Forbidden: caller can see the gallery but lacks the capability
    """
    role = resolve_role(db, gallery, user_id)
    if role is None:
        raise PrivateGallery(requires_auth=user_id is None)
    if not has_capability(role, gallery, capability):
        raise Forbidden()
    return role


def load_gallery(
    db: Session,
    slug: str,
    user_id: str | None,
    capability: Capability = "read",
) -> tuple[models.Gallery, str | None]:
    """Fetch a live gallery by slug and check the caller may act on it."""
    gallery = get_live_gallery(db, slug)
    role = authorize(db, gallery, user_id, capability)
    return gallery, role


def load_image(
    db: Session,
    image_id: int,
    user_id: str | None,
    capability: Capability = "read",
) -> tuple[models.Image, models.Gallery, str | None]:
    """Fetch an image in a live gallery and check the caller may act on it."""
    image = db.get(models.Image, image_id)
    if image is None or image.gallery is None or image.gallery.deleted_at is not None:
        raise NotFound("Image not found")
    role = authorize(db, image.gallery, user_id, capability)
    return image, image.gallery, role
