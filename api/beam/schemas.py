from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ============================================================================
# BASE SCHEMAS
# ============================================================================


class ApiModel(BaseModel):
    """Base for wire models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


T = TypeVar("T")


class Page(ApiModel, Generic[T]):
    """Generic paginated response."""

    items: list[T]
    next_cursor: str | None = None


class OffsetPage(ApiModel, Generic[T]):
    """Page-numbered response for dashboard lists."""

    items: list[T]
    page: int
    limit: int
    total: int


InviteRole = Literal["Edit", "Comment", "View"]


# ============================================================================
# USERS
# ============================================================================


class UserProfile(ApiModel):
    user_id: str
    first_name: str | None = None
    last_name: str | None = None
    username: str | None = None
    email: str | None = None
    image_url: str | None = None
    color: str
    display_name: str


class ContactOut(ApiModel):
    contact_email: str
    contact_user_id: str | None = None
    invite_count: int
    last_invited_at: datetime


# ============================================================================
# GALLERIES & IMAGES
# ============================================================================


class ImageOut(ApiModel):
    id: int
    gallery_id: int
    url: str
    public_id: str
    original_filename: str | None = None
    width: int
    height: int
    aspect_ratio: float | None = None
    position: int
    comment_count: int
    star_count: int = 0
    is_starred: bool = False
    created_at: datetime


class GalleryCard(ApiModel):
    """Dashboard card: gallery plus image count and thumbnail."""

    id: int
    slug: str
    title: str
    is_public: bool
    guest_upload: bool
    is_draft: bool
    folder_id: int | None = None
    created_at: datetime
    last_viewed_at: datetime | None = None
    deleted_at: datetime | None = None
    image_count: int
    thumbnail_url: str | None = None
    role: str | None = None


class GalleryDetail(ApiModel):
    id: int
    slug: str
    title: str
    owner_user_id: str
    is_public: bool
    guest_upload: bool
    is_draft: bool
    folder_id: int | None = None
    version: int
    created_at: datetime
    last_viewed_at: datetime | None = None
    role: str | None = None
    is_owner: bool
    can_manage: bool
    can_comment: bool
    can_star: bool
    can_upload: bool
    images: list[ImageOut]


class FileManifest(ApiModel):
    name: str = Field(min_length=1, max_length=500)
    type: str
    size: int = Field(ge=0)
    width: int | None = Field(default=None, ge=0)
    height: int | None = Field(default=None, ge=0)


class GalleryCreate(ApiModel):
    title: str | None = Field(default=None, max_length=255)
    is_public: bool = False
    folder_id: int | None = None
    files: list[FileManifest] = Field(default_factory=list)


class UploadUrlsRequest(ApiModel):
    files: list[FileManifest]


class UploadSlotOut(ApiModel):
    signed_url: str
    public_url: str
    image_id: int
    key: str


class UploadUrlsResponse(ApiModel):
    urls: list[UploadSlotOut]


class GalleryCreateResponse(ApiModel):
    gallery: GalleryDetail
    urls: list[UploadSlotOut] = Field(default_factory=list)


class TitleUpdate(ApiModel):
    title: str = Field(max_length=255)


class VisibilityUpdate(ApiModel):
    is_public: bool


class MoveRequest(ApiModel):
    folder_id: int | None = None


class ReorderRequest(ApiModel):
    order: list[int]
    version: int | None = None


class ReorderResponse(ApiModel):
    version: int


class DeleteImagesRequest(ApiModel):
    image_ids: list[int]


class DeletedCount(ApiModel):
    deleted: int


# ============================================================================
# FOLDERS
# ============================================================================


class FolderCreate(ApiModel):
    name: str = Field(max_length=255)


class FolderOut(ApiModel):
    id: int
    name: str
    created_at: datetime
    gallery_count: int = 0


# ============================================================================
# SHARING
# ============================================================================


class InviteRequest(ApiModel):
    email: str
    role: InviteRole


class RoleUpdate(ApiModel):
    email: str
    role: InviteRole


class RevokeRequest(ApiModel):
    email: str


class InviteOut(ApiModel):
    id: int
    email: str
    role: str
    user_id: str | None = None
    pending: bool


class CollaboratorOut(ApiModel):
    email: str | None = None
    role: str
    user_id: str | None = None
    name: str | None = None
    image_url: str | None = None
    color: str | None = None
    is_owner: bool = False
    pending: bool = False


class MagicLinkClaim(ApiModel):
    token: str = Field(alias="inviteToken")
    email: str | None = None


class MagicLinkResult(ApiModel):
    gallery_slug: str
    role: str


# ============================================================================
# COLLABORATION
# ============================================================================


class StarResult(ApiModel):
    is_starred: bool
    star_count: int


class StarUser(ApiModel):
    user_id: str
    name: str
    image_url: str | None = None
    color: str | None = None
    starred_at: datetime


class CommentCreate(ApiModel):
    content: str = Field(max_length=5000)
    x_position: float = Field(default=0, ge=0, le=100)
    y_position: float = Field(default=0, ge=0, le=100)
    parent_id: int | None = None


class CommentUpdate(ApiModel):
    content: str = Field(max_length=5000)


class CommentPosition(ApiModel):
    x_position: float = Field(ge=0, le=100)
    y_position: float = Field(ge=0, le=100)


class ReactionToggle(ApiModel):
    emoji: str = Field(min_length=1, max_length=32)


class ReactionSummary(ApiModel):
    emoji: str
    count: int
    user_ids: list[str]
    reacted: bool = False


class CommentOut(ApiModel):
    id: int
    image_id: int
    parent_id: int | None = None
    content: str
    x_position: float
    y_position: float
    user_id: str
    user_name: str
    user_image_url: str | None = None
    user_color: str | None = None
    created_at: datetime
    updated_at: datetime
    reactions: list[ReactionSummary] = Field(default_factory=list)
    replies: list[CommentOut] = Field(default_factory=list)


class ReactionResult(ApiModel):
    added: bool
    reactions: list[ReactionSummary]


# ============================================================================
# NOTIFICATIONS
# ============================================================================


class NotificationOut(ApiModel):
    id: int
    type: str
    actor_id: str
    gallery_id: int | None = None
    group_id: str
    count: int
    is_seen: bool
    data: dict[str, Any]
    created_at: datetime


class UnreadCount(ApiModel):
    unread_count: int


class MarkReadRequest(ApiModel):
    ids: list[int]


class MarkedCount(ApiModel):
    updated: int
CommentOut.model_rebuild()
