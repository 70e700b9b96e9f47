"""
Gallery lifecycle and image ordering.

Multi-row mutations (reorder, image delete, purge) each run in one transaction
and bump ``Gallery.version`` so concurrent writers from two tabs cannot
interleave into a half-applied ordering.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .. import models
from ..errors import Conflict, NotFound, ValidationError
from ..realtime.publisher import GALLERY_UPDATED, IMAGE_UPLOADED, gallery_channel, realtime
from ..roles import GUEST_OWNER_PREFIX
from ..settings import MAX_IMAGE_BYTES, MAX_UPLOAD_BATCH, TRASH_RETENTION_DAYS
from ..sqids_config import encode_gallery_id
from . import folders, storage
from .notifications import IMAGE_UPLOADED as IMAGE_UPLOADED_NOTIFICATION
from .notifications import NotificationService

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled Project"


@dataclass
class UploadRequest:
    name: str
    content_type: str
    size: int
    width: int | None = None
    height: int | None = None


@dataclass
class UploadSlot:
    image: models.Image
    signed_url: str
    public_url: str
    key: str


@dataclass
class GallerySummary:
    gallery: models.Gallery
    image_count: int
    thumbnail: models.Image | None


def create_gallery(
    db: Session,
    owner_user_id: str | None,
    title: str | None = None,
    is_public: bool = False,
    folder_id: int | None = None,
) -> models.Gallery:
    """
    Create a gallery and assign its public slug.

    Anonymous callers get a guest gallery: publicly readable and open to uploads.
    """
    is_guest = owner_user_id is None
    if folder_id is not None:
        if is_guest:
            raise ValidationError("Guests can't file galleries into folders", field="folderId")
        folders.get_folder(db, folder_id, owner_user_id)

    gallery = models.Gallery(
        title=(title or "").strip()[:255] or DEFAULT_TITLE,
        owner_user_id=owner_user_id or f"{GUEST_OWNER_PREFIX}{uuid.uuid4().hex}",
        is_public=is_public or is_guest,
        guest_upload=is_guest,
        folder_id=folder_id,
    )
    db.add(gallery)
    db.flush()
    gallery.slug = encode_gallery_id(gallery.id)
    db.commit()
    db.refresh(gallery)

    logger.info(f"Created {'guest ' if is_guest else ''}gallery {gallery.slug} for {gallery.owner_user_id}")
    return gallery


def summarize(db: Session, galleries: list[models.Gallery]) -> list[GallerySummary]:
    """Attach image counts and first-position thumbnails."""
    ids = [g.id for g in galleries]
    if not ids:
        return []

    counts = dict(
        db.query(models.Image.gallery_id, func.count(models.Image.id))
        .filter(models.Image.gallery_id.in_(ids))
        .group_by(models.Image.gallery_id)
        .all()
    )

    first_positions = (
        db.query(models.Image.gallery_id, func.min(models.Image.position).label("position"))
        .filter(models.Image.gallery_id.in_(ids))
        .group_by(models.Image.gallery_id)
        .subquery()
    )
    thumbnails = {
        image.gallery_id: image
        for image in db.query(models.Image).join(
            first_positions,
            (models.Image.gallery_id == first_positions.c.gallery_id)
            & (models.Image.position == first_positions.c.position),
        )
    }

    return [GallerySummary(g, counts.get(g.id, 0), thumbnails.get(g.id)) for g in galleries]


def list_owned(
    db: Session,
    user_id: str,
    page: int = 1,
    limit: int = 20,
    folder_id: int | None = None,
) -> tuple[list[GallerySummary], int]:
    query = db.query(models.Gallery).filter(
        models.Gallery.owner_user_id == user_id,
        models.Gallery.deleted_at.is_(None),
    )
    if folder_id is not None:
        query = query.filter(models.Gallery.folder_id == folder_id)

    total = query.count()
    galleries = (
        query.order_by(models.Gallery.created_at.desc(), models.Gallery.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return summarize(db, galleries), total


def list_shared(db: Session, user_id: str) -> list[tuple[GallerySummary, str]]:
    """Galleries the user was invited to, with their role."""
    rows = (
        db.query(models.Gallery, models.Invite.role)
        .join(models.Invite, models.Invite.gallery_id == models.Gallery.id)
        .filter(
            models.Invite.user_id == user_id,
            models.Gallery.owner_user_id != user_id,
            models.Gallery.deleted_at.is_(None),
        )
        .order_by(models.Invite.created_at.desc())
        .all()
    )
    summaries = summarize(db, [gallery for gallery, _ in rows])
    return [(summary, role) for summary, (_, role) in zip(summaries, rows)]


def list_recent(db: Session, user_id: str, limit: int = 10) -> list[GallerySummary]:
    """Recently viewed galleries the user owns or was invited to."""
    shared_ids = select(models.Invite.gallery_id).where(models.Invite.user_id == user_id)
    galleries = (
        db.query(models.Gallery)
        .filter(
            (models.Gallery.owner_user_id == user_id) | models.Gallery.id.in_(shared_ids),
            models.Gallery.deleted_at.is_(None),
            models.Gallery.last_viewed_at.isnot(None),
        )
        .order_by(models.Gallery.last_viewed_at.desc())
        .limit(limit)
        .all()
    )
    return summarize(db, galleries)


def list_trash(db: Session, user_id: str) -> list[GallerySummary]:
    galleries = (
        db.query(models.Gallery)
        .filter(models.Gallery.owner_user_id == user_id, models.Gallery.deleted_at.isnot(None))
        .order_by(models.Gallery.deleted_at.desc())
        .all()
    )
    return summarize(db, galleries)


def mark_viewed(db: Session, gallery: models.Gallery, now: datetime | None = None) -> None:
    gallery.last_viewed_at = now or models.utcnow()
    db.commit()


def _publish_update(gallery: models.Gallery, **changes) -> None:
    realtime.trigger(gallery_channel(gallery.slug), GALLERY_UPDATED, {"slug": gallery.slug, **changes})


def rename(db: Session, gallery: models.Gallery, title: str) -> models.Gallery:
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title can't be empty", field="title")
    if len(title) > 255:
        raise ValidationError("Title is too long", field="title")
    gallery.title = title
    db.commit()
    _publish_update(gallery, title=title)
    return gallery


def set_visibility(db: Session, gallery: models.Gallery, is_public: bool) -> models.Gallery:
    gallery.is_public = is_public
    db.commit()
    _publish_update(gallery, isPublic=is_public)
    return gallery


def move_to_folder(db: Session, gallery: models.Gallery, folder_id: int | None) -> models.Gallery:
    """Move into one of the owner's folders, or back to the root with ``None``."""
    if folder_id is not None:
        folders.get_folder(db, folder_id, gallery.owner_user_id)
    gallery.folder_id = folder_id
    gallery.version += 1
    db.commit()
    return gallery


def soft_delete(db: Session, gallery: models.Gallery, now: datetime | None = None) -> None:
    gallery.deleted_at = now or models.utcnow()
    db.commit()
    logger.info(f"Moved gallery {gallery.slug} to trash")


def get_trashed(db: Session, slug: str, user_id: str) -> models.Gallery:
    gallery = (
        db.query(models.Gallery)
        .filter(
            models.Gallery.slug == slug,
            models.Gallery.owner_user_id == user_id,
            models.Gallery.deleted_at.isnot(None),
        )
        .first()
    )
    if gallery is None:
        raise NotFound("Gallery not found in trash")
    return gallery


def restore(db: Session, gallery: models.Gallery) -> None:
    gallery.deleted_at = None
    db.commit()
    logger.info(f"Restored gallery {gallery.slug}")


def _delete_gallery_rows(db: Session, gallery_id: int) -> list[str]:
    """Bulk-delete a gallery and everything hanging off it; returns storage keys. Caller commits."""
    image_ids = select(models.Image.id).where(models.Image.gallery_id == gallery_id)
    comment_ids = select(models.Comment.id).where(models.Comment.image_id.in_(image_ids))
    keys = [key for (key,) in db.query(models.Image.public_id).filter(models.Image.gallery_id == gallery_id)]

    db.query(models.CommentReaction).filter(models.CommentReaction.comment_id.in_(comment_ids)).delete(
        synchronize_session=False
    )
    # Replies first so no statement leaves a dangling parent reference.
    db.query(models.Comment).filter(
        models.Comment.image_id.in_(image_ids), models.Comment.parent_id.isnot(None)
    ).delete(synchronize_session=False)
    db.query(models.Comment).filter(models.Comment.image_id.in_(image_ids)).delete(synchronize_session=False)
    db.query(models.Star).filter(models.Star.image_id.in_(image_ids)).delete(synchronize_session=False)
    db.query(models.Image).filter(models.Image.gallery_id == gallery_id).delete(synchronize_session=False)
    db.query(models.Invite).filter(models.Invite.gallery_id == gallery_id).delete(synchronize_session=False)
    db.query(models.Notification).filter(models.Notification.gallery_id == gallery_id).delete(
        synchronize_session=False
    )
    db.query(models.Gallery).filter(models.Gallery.id == gallery_id).delete(synchronize_session=False)
    return keys


def purge(db: Session, gallery: models.Gallery) -> int:
    """Permanently erase a gallery in one transaction, then drop its stored objects."""
    return _purge(db, gallery.id, gallery.slug)


def _purge(db: Session, gallery_id: int, slug: str) -> int:
    try:
        keys = _delete_gallery_rows(db, gallery_id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Purged gallery {slug} ({len(keys)} images)")
    storage.delete_objects(keys)
    return len(keys)


def purge_expired(db: Session, now: datetime | None = None, retention_days: int = TRASH_RETENTION_DAYS) -> int:
    """Purge galleries that have sat in the trash longer than the retention period."""
    cutoff = (now or models.utcnow()) - timedelta(days=retention_days)
    expired = (
        db.query(models.Gallery.id, models.Gallery.slug)
        .filter(models.Gallery.deleted_at.isnot(None), models.Gallery.deleted_at < cutoff)
        .all()
    )
    purged = 0
    for gallery_id, slug in expired:
        try:
            _purge(db, gallery_id, slug)
            purged += 1
        except Exception as e:
            logger.error(f"Failed to purge expired gallery {slug}: {e}")
    if purged:
        logger.info(f"Purged {purged} galleries deleted before {cutoff.isoformat()}")
    return purged


def validate_uploads(files: list[UploadRequest]) -> None:
    if not files:
        raise ValidationError("No files to upload", field="files")
    if len(files) > MAX_UPLOAD_BATCH:
        raise ValidationError(f"At most {MAX_UPLOAD_BATCH} files per request", field="files")
    for f in files:
        if f.content_type not in storage.ALLOWED_CONTENT_TYPES:
            raise ValidationError(f"Unsupported file type: {f.content_type}", field="files")
        if f.size <= 0 or f.size > MAX_IMAGE_BYTES:
            raise ValidationError(f"File {f.name} exceeds the size limit", field="files")


def upload_fingerprint(files: list[UploadRequest]) -> str:
    return "|".join(f"{f.name}:{f.size}:{f.content_type}" for f in files)


def request_uploads(
    db: Session,
    gallery: models.Gallery,
    files: list[UploadRequest],
    actor_id: str | None,
) -> list[UploadSlot]:
    """
    Reserve image rows at the end of the gallery and presign a PUT URL for each.

    Every URL is presigned before any row is written, so an object-store
    failure leaves no half-created images behind. Positions are then assigned
    under the gallery row lock, like reorder and delete, so overlapping
    batches append after each other.
    """
    validate_uploads(files)

    signed = []
    for f in files:
        key = storage.build_key(gallery.slug, f.name, f.content_type)
        signed.append((f, key, storage.presign_upload(key, f.content_type)))

    slots = []
    try:
        locked = (
            db.query(models.Gallery)
            .filter(models.Gallery.id == gallery.id)
            .populate_existing()
            .with_for_update()
            .one()
        )
        last_position = (
            db.query(func.max(models.Image.position)).filter(models.Image.gallery_id == gallery.id).scalar()
        )
        next_position = 0 if last_position is None else last_position + 1

        for offset, (f, key, signed_url) in enumerate(signed):
            image = models.Image(
                gallery_id=gallery.id,
                url=storage.public_url(key),
                public_id=key,
                original_filename=f.name[:500],
                content_type=f.content_type,
                width=f.width or 0,
                height=f.height or 0,
                position=next_position + offset,
            )
            db.add(image)
            slots.append(UploadSlot(image=image, signed_url=signed_url, public_url=image.url, key=key))
        locked.version += 1
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Reserved {len(slots)} uploads in gallery {gallery.slug}")

    realtime.trigger(
        gallery_channel(gallery.slug),
        IMAGE_UPLOADED,
        {"slug": gallery.slug, "imageIds": [s.image.id for s in slots], "actorId": actor_id},
    )
    if actor_id:
        NotificationService.fan_out(
            db,
            gallery,
            actor_id,
            IMAGE_UPLOADED_NOTIFICATION,
            {**NotificationService.actor_data(db, actor_id, gallery), "imageCount": len(slots)},
        )
    return slots


def reorder(
    db: Session,
    gallery: models.Gallery,
    order: list[int],
    expected_version: int | None = None,
) -> int:
    """
    Replace the gallery's image ordering with ``order`` (image ids, first to last).

    With ``expected_version`` the write is a compare-and-swap against the
    version the client read; without it the gallery row is locked for the
    duration of the transaction. Returns the new version.

    Raises:
        ValidationError: ``order`` is not exactly the gallery's image ids
        Conflict: the gallery changed since ``expected_version``
    """
    if len(set(order)) != len(order):
        raise ValidationError("Order contains duplicate image ids", field="order")

    try:
        if expected_version is not None:
            claimed = (
                db.query(models.Gallery)
                .filter(models.Gallery.id == gallery.id, models.Gallery.version == expected_version)
                .update({models.Gallery.version: models.Gallery.version + 1}, synchronize_session=False)
            )
            if not claimed:
                raise Conflict("Gallery was reordered by someone else, refresh and try again")
        else:
            locked = (
                db.query(models.Gallery)
                .filter(models.Gallery.id == gallery.id)
                .populate_existing()
                .with_for_update()
                .one()
            )
            locked.version += 1

        images = db.query(models.Image).filter(models.Image.gallery_id == gallery.id).all()
        if set(order) != {image.id for image in images}:
            raise ValidationError("Order must list every image in the gallery exactly once", field="order")

        position_of = {image_id: index for index, image_id in enumerate(order)}
        for image in images:
            image.position = position_of[image.id]
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(gallery)
    logger.info(f"Reordered {len(order)} images in gallery {gallery.slug} (version {gallery.version})")
    _publish_update(gallery, order=order, version=gallery.version)
    return gallery.version


def delete_images(db: Session, gallery: models.Gallery, image_ids: list[int]) -> int:
    """Delete images with their comments and stars, then close the position gaps."""
    if not image_ids:
        raise ValidationError("No images selected", field="imageIds")

    try:
        locked = (
            db.query(models.Gallery)
            .filter(models.Gallery.id == gallery.id)
            .populate_existing()
            .with_for_update()
            .one()
        )
        doomed = (
            db.query(models.Image)
            .filter(models.Image.gallery_id == gallery.id, models.Image.id.in_(image_ids))
            .all()
        )
        if len(doomed) != len(set(image_ids)):
            raise NotFound("One or more images were not found in this gallery")

        keys = [image.public_id for image in doomed]
        for image in doomed:
            db.delete(image)
        db.flush()

        remaining = (
            db.query(models.Image)
            .filter(models.Image.gallery_id == gallery.id)
            .order_by(models.Image.position, models.Image.id)
            .all()
        )
        for index, image in enumerate(remaining):
            image.position = index
        locked.version += 1
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Deleted {len(keys)} images from gallery {gallery.slug}")
    storage.delete_objects(keys)
    _publish_update(gallery, deletedImageIds=sorted(set(image_ids)), version=gallery.version)
    return len(keys)
