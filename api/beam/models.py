from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .db import Base


def utcnow() -> datetime:
    """Naive UTC timestamp; all DateTime columns store UTC without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============================================================================
# IDENTITY MIRROR
# ============================================================================


class CachedUser(Base):
    """Local mirror of identity-provider profile fields plus a stable display color."""

    __tablename__ = "cached_users"

    user_id = Column(String(64), primary_key=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    username = Column(String(255), nullable=True)
    email = Column(String(320), nullable=True, index=True)
    image_url = Column(String(1000), nullable=True)
    # Assigned once on first sight, never overwritten.
    color = Column(String(9), nullable=False)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    @property
    def display_name(self) -> str:
        full = " ".join(p for p in (self.first_name, self.last_name) if p)
        return full or self.username or self.email or "Unknown User"


# ============================================================================
# GALLERIES & IMAGES
# ============================================================================


class Folder(Base):
    """User-owned folder grouping galleries on the dashboard."""

    __tablename__ = "folders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    galleries = relationship("Gallery", back_populates="folder")


class Gallery(Base):
    """A named, ordered collection of images owned by one user."""

    __tablename__ = "galleries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    slug = Column(String(32), unique=True, nullable=True, index=True)  # set after insert
    title = Column(String(255), nullable=False, default="Untitled Project")
    owner_user_id = Column(String(64), nullable=False, index=True)
    is_public = Column(Boolean, nullable=False, default=False)
    guest_upload = Column(Boolean, nullable=False, default=False)
    is_draft = Column(Boolean, nullable=False, default=False)
    folder_id = Column(Integer, ForeignKey("folders.id", ondelete="SET NULL"), nullable=True, index=True)

    # Bumped by every multi-row ordering mutation (reorder, image delete).
    version = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    last_viewed_at = Column(DateTime, nullable=True)
    deleted_at = Column(DateTime, nullable=True, index=True)

    folder = relationship("Folder", back_populates="galleries")
    images = relationship(
        "Image",
        back_populates="gallery",
        order_by="Image.position",
        cascade="all, delete-orphan",
    )
    invites = relationship("Invite", back_populates="gallery", cascade="all, delete-orphan")


class Image(Base):
    """Image belonging to exactly one gallery, ordered by a dense position index."""

    __tablename__ = "images"

    id = Column(Integer, primary_key=True, autoincrement=True)
    gallery_id = Column(Integer, ForeignKey("galleries.id"), nullable=False, index=True)
    url = Column(String(1000), nullable=False)
    public_id = Column(String(500), nullable=False)  # object-store key
    original_filename = Column(String(500), nullable=True)
    content_type = Column(String(100), nullable=True)
    width = Column(Integer, nullable=False, default=0)
    height = Column(Integer, nullable=False, default=0)
    position = Column(Integer, nullable=False, default=0)
    comment_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    gallery = relationship("Gallery", back_populates="images")
    comments = relationship("Comment", back_populates="image", cascade="all, delete-orphan")
    stars = relationship("Star", back_populates="image", cascade="all, delete-orphan")

    __table_args__ = (Index("ix_images_gallery_position", gallery_id, position),)

    @property
    def aspect_ratio(self) -> float | None:
        if not self.width or not self.height:
            return None
        return self.width / self.height


class Star(Base):
    """A user's star on an image. Cardinality is queried live."""

    __tablename__ = "stars"

    user_id = Column(String(64), primary_key=True)
    image_id = Column(Integer, ForeignKey("images.id"), primary_key=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    image = relationship("Image", back_populates="stars")


# ============================================================================
# SHARING
# ============================================================================


class Invite(Base):
    """Per-email grant of a role on a gallery; token is set only while unclaimed."""

    __tablename__ = "invites"

    id = Column(Integer, primary_key=True, autoincrement=True)
    gallery_id = Column(Integer, ForeignKey("galleries.id"), nullable=False, index=True)
    email = Column(String(320), nullable=False, index=True)  # lowercased
    user_id = Column(String(64), nullable=True, index=True)
    role = Column(String(16), nullable=False)  # Edit | Comment | View
    token = Column(String(128), nullable=True, unique=True, index=True)
    invited_by_user_id = Column(String(64), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    gallery = relationship("Gallery", back_populates="invites")

    __table_args__ = (UniqueConstraint("gallery_id", "email", name="uq_invites_gallery_email"),)


class Contact(Base):
    """Address-book entry ranking how often an owner invites an email."""

    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_user_id = Column(String(64), nullable=False, index=True)
    contact_user_id = Column(String(64), nullable=True)
    contact_email = Column(String(320), nullable=False)
    invite_count = Column(Integer, nullable=False, default=0)
    last_invited_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("owner_user_id", "contact_email", name="uq_contacts_owner_email"),
    )


# ============================================================================
# COLLABORATION
# ============================================================================


class Comment(Base):
    """Pinned comment on an image, threaded exactly one level deep."""

    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    image_id = Column(Integer, ForeignKey("images.id"), nullable=False, index=True)
    parent_id = Column(Integer, ForeignKey("comments.id"), nullable=True, index=True)
    content = Column(Text, nullable=False)
    # Percentages of the image dimensions, 0-100.
    x_position = Column(Float, nullable=False, default=0)
    y_position = Column(Float, nullable=False, default=0)
    user_id = Column(String(64), nullable=False, index=True)
    user_name = Column(String(255), nullable=False)
    user_image_url = Column(String(1000), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    image = relationship("Image", back_populates="comments")
    parent = relationship("Comment", remote_side=[id], back_populates="replies")
    replies = relationship("Comment", back_populates="parent", order_by="Comment.created_at")
    reactions = relationship("CommentReaction", back_populates="comment", cascade="all, delete-orphan")


class CommentReaction(Base):
    """Emoji reaction to a comment; at most one row per (comment, user, emoji)."""

    __tablename__ = "comment_reactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    comment_id = Column(Integer, ForeignKey("comments.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    emoji = Column(String(32), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    comment = relationship("Comment", back_populates="reactions")

    __table_args__ = (
        UniqueConstraint("comment_id", "user_id", "emoji", name="uq_comment_reactions_user_emoji"),
    )


class Notification(Base):
    """Counted, grouped notification of actor activity for one recipient."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)  # recipient
    actor_id = Column(String(64), nullable=False)
    type = Column(String(32), nullable=False)
    gallery_id = Column(Integer, ForeignKey("galleries.id", ondelete="CASCADE"), nullable=True, index=True)
    target_key = Column(String(128), nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    group_id = Column(String(32), nullable=False)
    count = Column(Integer, nullable=False, default=1)
    is_seen = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    __table_args__ = (
        Index(
            "ix_notifications_grouping",
            "user_id",
            "type",
            "actor_id",
            "target_key",
            "created_at",
        ),
        Index("ix_notifications_user_seen", "user_id", "is_seen"),
    )
