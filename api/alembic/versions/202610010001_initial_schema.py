"""initial gallery schema

Revision ID: 202610010001
Revises:
Create Date: 2026-10-01 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "202610010001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "cached_users",
        sa.Column("user_id", sa.String(length=64), primary_key=True),
        sa.Column("first_name", sa.String(length=255), nullable=True),
        sa.Column("last_name", sa.String(length=255), nullable=True),
        sa.Column("username", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("image_url", sa.String(length=1000), nullable=True),
        sa.Column("color", sa.String(length=9), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_cached_users_email", "cached_users", ["email"])
    op.create_index("ix_cached_users_updated_at", "cached_users", ["updated_at"])

    op.create_table(
        "folders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("owner_user_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_folders_owner_user_id", "folders", ["owner_user_id"])

    op.create_table(
        "galleries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("slug", sa.String(length=32), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("owner_user_id", sa.String(length=64), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("guest_upload", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_draft", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "folder_id",
            sa.Integer(),
            sa.ForeignKey("folders.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("last_viewed_at", sa.DateTime(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_galleries_slug", "galleries", ["slug"], unique=True)
    op.create_index("ix_galleries_owner_user_id", "galleries", ["owner_user_id"])
    op.create_index("ix_galleries_folder_id", "galleries", ["folder_id"])
    op.create_index("ix_galleries_created_at", "galleries", ["created_at"])
    op.create_index("ix_galleries_deleted_at", "galleries", ["deleted_at"])

    op.create_table(
        "images",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("gallery_id", sa.Integer(), sa.ForeignKey("galleries.id"), nullable=False),
        sa.Column("url", sa.String(length=1000), nullable=False),
        sa.Column("public_id", sa.String(length=500), nullable=False),
        sa.Column("original_filename", sa.String(length=500), nullable=True),
        sa.Column("content_type", sa.String(length=100), nullable=True),
        sa.Column("width", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("height", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("comment_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_images_gallery_id", "images", ["gallery_id"])
    op.create_index("ix_images_gallery_position", "images", ["gallery_id", "position"])

    op.create_table(
        "stars",
        sa.Column("user_id", sa.String(length=64), primary_key=True),
        sa.Column("image_id", sa.Integer(), sa.ForeignKey("images.id"), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_stars_image_id", "stars", ["image_id"])

    op.create_table(
        "invites",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("gallery_id", sa.Integer(), sa.ForeignKey("galleries.id"), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("token", sa.String(length=128), nullable=True),
        sa.Column("invited_by_user_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("gallery_id", "email", name="uq_invites_gallery_email"),
    )
    op.create_index("ix_invites_gallery_id", "invites", ["gallery_id"])
    op.create_index("ix_invites_email", "invites", ["email"])
    op.create_index("ix_invites_user_id", "invites", ["user_id"])
    op.create_index("ix_invites_token", "invites", ["token"], unique=True)

    op.create_table(
        "contacts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("owner_user_id", sa.String(length=64), nullable=False),
        sa.Column("contact_user_id", sa.String(length=64), nullable=True),
        sa.Column("contact_email", sa.String(length=320), nullable=False),
        sa.Column("invite_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_invited_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("owner_user_id", "contact_email", name="uq_contacts_owner_email"),
    )
    op.create_index("ix_contacts_owner_user_id", "contacts", ["owner_user_id"])

    op.create_table(
        "comments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("image_id", sa.Integer(), sa.ForeignKey("images.id"), nullable=False),
        sa.Column("parent_id", sa.Integer(), sa.ForeignKey("comments.id"), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("x_position", sa.Float(), nullable=False, server_default="0"),
        sa.Column("y_position", sa.Float(), nullable=False, server_default="0"),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("user_name", sa.String(length=255), nullable=False),
        sa.Column("user_image_url", sa.String(length=1000), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_comments_image_id", "comments", ["image_id"])
    op.create_index("ix_comments_parent_id", "comments", ["parent_id"])
    op.create_index("ix_comments_user_id", "comments", ["user_id"])
    op.create_index("ix_comments_created_at", "comments", ["created_at"])

    op.create_table(
        "comment_reactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("comment_id", sa.Integer(), sa.ForeignKey("comments.id"), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("emoji", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("comment_id", "user_id", "emoji", name="uq_comment_reactions_user_emoji"),
    )
    op.create_index("ix_comment_reactions_comment_id", "comment_reactions", ["comment_id"])
    op.create_index("ix_comment_reactions_user_id", "comment_reactions", ["user_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("actor_id", sa.String(length=64), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column(
            "gallery_id",
            sa.Integer(),
            sa.ForeignKey("galleries.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("target_key", sa.String(length=128), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("group_id", sa.String(length=32), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_seen", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_gallery_id", "notifications", ["gallery_id"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])
    op.create_index(
        "ix_notifications_grouping",
        "notifications",
        ["user_id", "type", "actor_id", "target_key", "created_at"],
    )
    op.create_index("ix_notifications_user_seen", "notifications", ["user_id", "is_seen"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("comment_reactions")
    op.drop_table("comments")
    op.drop_table("contacts")
    op.drop_table("invites")
    op.drop_table("stars")
    op.drop_table("images")
    op.drop_table("galleries")
    op.drop_table("folders")
    op.drop_table("cached_users")
