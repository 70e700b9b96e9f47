"""Gallery endpoints: lifecycle, uploads, ordering and sharing."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import CurrentUser, get_current_user, get_current_user_optional
from ..deps import get_db
from ..errors import DuplicateRequest
from ..roles import (
    OWNER,
    can_comment,
    can_manage_gallery,
    can_star,
    can_upload,
    load_gallery,
    resolve_role,
)
from ..services import galleries as gallery_service
from ..services import invites as invite_service
from ..services.rate_limit import check_duplicate_request, upload_request_key
from ..settings import UPLOAD_DEBOUNCE_SECONDS

router = APIRouter(prefix="/galleries", tags=["Galleries"])


def _user_id(user: CurrentUser | None) -> str | None:
    return user.id if user else None


def gallery_card(summary: gallery_service.GallerySummary, role: str | None = None) -> schemas.GalleryCard:
    gallery = summary.gallery
    return schemas.GalleryCard(
        id=gallery.id,
        slug=gallery.slug,
        title=gallery.title,
        is_public=gallery.is_public,
        guest_upload=gallery.guest_upload,
        is_draft=gallery.is_draft,
        folder_id=gallery.folder_id,
        created_at=gallery.created_at,
        last_viewed_at=gallery.last_viewed_at,
        deleted_at=gallery.deleted_at,
        image_count=summary.image_count,
        thumbnail_url=summary.thumbnail.url if summary.thumbnail else None,
        role=role,
    )


def image_out(
    image: models.Image,
    star_count: int = 0,
    is_starred: bool = False,
) -> schemas.ImageOut:
    return schemas.ImageOut.model_validate(image).model_copy(
        update={"star_count": star_count, "is_starred": is_starred}
    )


def gallery_detail(
    db: Session,
    gallery: models.Gallery,
    role: str | None,
    user_id: str | None,
) -> schemas.GalleryDetail:
    image_ids = [image.id for image in gallery.images]
    star_counts: dict[int, int] = {}
    starred: set[int] = set()
    if image_ids:
        star_counts = dict(
            db.query(models.Star.image_id, func.count(models.Star.user_id))
            .filter(models.Star.image_id.in_(image_ids))
            .group_by(models.Star.image_id)
            .all()
        )
        if user_id:
            starred = {
                image_id
                for (image_id,) in db.query(models.Star.image_id).filter(
                    models.Star.image_id.in_(image_ids), models.Star.user_id == user_id
                )
            }

    return schemas.GalleryDetail(
        id=gallery.id,
        slug=gallery.slug,
        title=gallery.title,
        owner_user_id=gallery.owner_user_id,
        is_public=gallery.is_public,
        guest_upload=gallery.guest_upload,
        is_draft=gallery.is_draft,
        folder_id=gallery.folder_id,
        version=gallery.version,
        created_at=gallery.created_at,
        last_viewed_at=gallery.last_viewed_at,
        role=role,
        is_owner=role == OWNER,
        can_manage=can_manage_gallery(role),
        can_comment=can_comment(role),
        can_star=can_star(role),
        can_upload=can_upload(role, gallery),
        images=[
            image_out(image, star_counts.get(image.id, 0), image.id in starred) for image in gallery.images
        ],
    )


def _upload_slots(slots: list[gallery_service.UploadSlot]) -> list[schemas.UploadSlotOut]:
    return [
        schemas.UploadSlotOut(signed_url=s.signed_url, public_url=s.public_url, image_id=s.image.id, key=s.key)
        for s in slots
    ]


def _upload_requests(files: list[schemas.FileManifest]) -> list[gallery_service.UploadRequest]:
    return [
        gallery_service.UploadRequest(
            name=f.name, content_type=f.type, size=f.size, width=f.width, height=f.height
        )
        for f in files
    ]


# ============================================================================
# LISTS
# ============================================================================


@router.get("", response_model=schemas.OffsetPage[schemas.GalleryCard])
def list_galleries(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    folder_id: int | None = Query(None, alias="folderId"),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.OffsetPage[schemas.GalleryCard]:
    """List the caller's own galleries, newest first, with thumbnail and image count."""
    summaries, total = gallery_service.list_owned(db, current_user.id, page, limit, folder_id)
    return schemas.OffsetPage[schemas.GalleryCard](
        items=[gallery_card(s, OWNER) for s in summaries],
        page=page,
        limit=limit,
        total=total,
    )


@router.get("/shared", response_model=list[schemas.GalleryCard])
def list_shared_galleries(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> list[schemas.GalleryCard]:
    return [gallery_card(summary, role) for summary, role in gallery_service.list_shared(db, current_user.id)]


@router.get("/recent", response_model=list[schemas.GalleryCard])
def list_recent_galleries(
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> list[schemas.GalleryCard]:
    return [gallery_card(s) for s in gallery_service.list_recent(db, current_user.id, limit)]


@router.get("/trash", response_model=list[schemas.GalleryCard])
def list_trashed_galleries(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> list[schemas.GalleryCard]:
    return [gallery_card(s, OWNER) for s in gallery_service.list_trash(db, current_user.id)]


# ============================================================================
# LIFECYCLE
# ============================================================================


@router.post("/create", response_model=schemas.GalleryCreateResponse, status_code=status.HTTP_201_CREATED)
def create_gallery(
    payload: schemas.GalleryCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser | None = Depends(get_current_user_optional),
) -> schemas.GalleryCreateResponse:
    """
    Create a gallery, optionally reserving upload URLs for its first images.

    Anonymous callers get a public guest gallery anyone with the link can add to.
    """
    gallery = gallery_service.create_gallery(
        db,
        _user_id(current_user),
        title=payload.title,
        is_public=payload.is_public,
        folder_id=payload.folder_id,
    )
    slots = []
    if payload.files:
        slots = gallery_service.request_uploads(db, gallery, _upload_requests(payload.files), _user_id(current_user))
        db.refresh(gallery)

    role = resolve_role(db, gallery, _user_id(current_user))
    return schemas.GalleryCreateResponse(
        gallery=gallery_detail(db, gallery, role, _user_id(current_user)),
        urls=_upload_slots(slots),
    )


@router.get("/{slug}", response_model=schemas.GalleryDetail)
def get_gallery(
    slug: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser | None = Depends(get_current_user_optional),
) -> schemas.GalleryDetail:
    """
    Fetch one gallery with its ordered images and the caller's role.

    Private galleries answer 403 with ``isPrivate`` so the client can offer an
    access request; only missing or trashed slugs answer 404.
    """
    gallery, role = load_gallery(db, slug, _user_id(current_user))
    if current_user and role is not None:
        gallery_service.mark_viewed(db, gallery)
    return gallery_detail(db, gallery, role, _user_id(current_user))


@router.patch("/{slug}/title", response_model=schemas.GalleryDetail)
def update_title(
    slug: str,
    payload: schemas.TitleUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.GalleryDetail:
    gallery, role = load_gallery(db, slug, current_user.id, "manage")
    gallery_service.rename(db, gallery, payload.title)
    return gallery_detail(db, gallery, role, current_user.id)


@router.patch("/{slug}/visibility", response_model=schemas.GalleryDetail)
def update_visibility(
    slug: str,
    payload: schemas.VisibilityUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.GalleryDetail:
    gallery, role = load_gallery(db, slug, current_user.id, "manage")
    gallery_service.set_visibility(db, gallery, payload.is_public)
    return gallery_detail(db, gallery, role, current_user.id)


@router.patch("/{slug}/move", response_model=schemas.GalleryDetail)
def move_gallery(
    slug: str,
    payload: schemas.MoveRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.GalleryDetail:
    gallery, role = load_gallery(db, slug, current_user.id, "manage")
    gallery_service.move_to_folder(db, gallery, payload.folder_id)
    return gallery_detail(db, gallery, role, current_user.id)


@router.delete("/{slug}", status_code=status.HTTP_204_NO_CONTENT)
def delete_gallery(
    slug: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> None:
    """Move a gallery to the trash. Owner only."""
    gallery, _ = load_gallery(db, slug, current_user.id, "own")
    gallery_service.soft_delete(db, gallery)


@router.post("/{slug}/restore", response_model=schemas.GalleryCard)
def restore_gallery(
    slug: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.GalleryCard:
    gallery = gallery_service.get_trashed(db, slug, current_user.id)
    gallery_service.restore(db, gallery)
    return gallery_card(gallery_service.summarize(db, [gallery])[0], OWNER)


@router.delete("/{slug}/permanent-delete", response_model=schemas.DeletedCount)
def permanently_delete_gallery(
    slug: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.DeletedCount:
    """Erase a trashed gallery and all of its images for good."""
    gallery = gallery_service.get_trashed(db, slug, current_user.id)
    return schemas.DeletedCount(deleted=gallery_service.purge(db, gallery))


# ============================================================================
# IMAGES
# ============================================================================


@router.post("/{slug}/images", response_model=schemas.UploadUrlsResponse)
def request_upload_urls(
    slug: str,
    payload: schemas.UploadUrlsRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: CurrentUser | None = Depends(get_current_user_optional),
) -> schemas.UploadUrlsResponse:
    """
    Reserve images and return presigned PUT URLs for a batch of files.

    Replaying the same manifest inside the debounce window is rejected with
    429 so a double-submitted form doesn't create duplicate images.
    """
    gallery, _ = load_gallery(db, slug, _user_id(current_user), "upload")
    files = _upload_requests(payload.files)

    user_key = current_user.id if current_user else (request.client.host if request.client else "anonymous")
    dedup_key = upload_request_key(user_key, slug, gallery_service.upload_fingerprint(files))
    if check_duplicate_request(dedup_key, UPLOAD_DEBOUNCE_SECONDS):
        raise DuplicateRequest("Duplicate upload request")

    slots = gallery_service.request_uploads(db, gallery, files, _user_id(current_user))
    return schemas.UploadUrlsResponse(urls=_upload_slots(slots))


@router.post("/{slug}/reorder", response_model=schemas.ReorderResponse)
def reorder_images(
    slug: str,
    payload: schemas.ReorderRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.ReorderResponse:
    gallery, _ = load_gallery(db, slug, current_user.id, "manage")
    version = gallery_service.reorder(db, gallery, payload.order, payload.version)
    return schemas.ReorderResponse(version=version)


@router.post("/{slug}/images/delete", response_model=schemas.DeletedCount)
def delete_images(
    slug: str,
    payload: schemas.DeleteImagesRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.DeletedCount:
    gallery, _ = load_gallery(db, slug, current_user.id, "manage")
    return schemas.DeletedCount(deleted=gallery_service.delete_images(db, gallery, payload.image_ids))


# ============================================================================
# SHARING
# ============================================================================


@router.post("/{slug}/invite", response_model=schemas.InviteOut, status_code=status.HTTP_201_CREATED)
def invite_collaborator(
    slug: str,
    payload: schemas.InviteRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.InviteOut:
    gallery, _ = load_gallery(db, slug, current_user.id, "manage")
    invite = invite_service.invite(db, gallery, payload.email, payload.role, current_user)
    return schemas.InviteOut(
        id=invite.id,
        email=invite.email,
        role=invite.role,
        user_id=invite.user_id,
        pending=invite.token is not None,
    )


@router.get("/{slug}/permissions", response_model=list[schemas.CollaboratorOut])
def list_permissions(
    slug: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> list[schemas.CollaboratorOut]:
    gallery, _ = load_gallery(db, slug, current_user.id, "manage")
    return [
        schemas.CollaboratorOut.model_validate(c) for c in invite_service.list_collaborators(db, gallery)
    ]


@router.patch("/{slug}/permissions", response_model=schemas.InviteOut)
def update_permission(
    slug: str,
    payload: schemas.RoleUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.InviteOut:
    gallery, _ = load_gallery(db, slug, current_user.id, "manage")
    invite = invite_service.update_role(db, gallery, payload.email, payload.role)
    return schemas.InviteOut(
        id=invite.id,
        email=invite.email,
        role=invite.role,
        user_id=invite.user_id,
        pending=invite.token is not None,
    )


@router.delete("/{slug}/permissions", status_code=status.HTTP_204_NO_CONTENT)
def revoke_permission(
    slug: str,
    payload: schemas.RevokeRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> None:
    gallery, _ = load_gallery(db, slug, current_user.id, "manage")
    invite_service.revoke(db, gallery, payload.email)
