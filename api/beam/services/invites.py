"""
Gallery invites and collaborator management.

An invite is a per-email grant of a role on a gallery. Registered recipients
are bound to their account immediately; unregistered ones get a single-use
token mailed as a sign-up link, claimed after they create an account.
"""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models
from ..errors import Conflict, InvalidToken, NotFound, ValidationError
from ..realtime.publisher import MEMBER_ADDED, MEMBER_REMOVED, gallery_channel, realtime
from ..roles import EDIT, INVITE_ROLES
from . import email as email_service
from . import identity, user_cache
from .notifications import GALLERY_INVITE, NotificationService

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Display role for the synthesized owner row in collaborator lists.
OWNER_DISPLAY_ROLE = EDIT


@dataclass
class Collaborator:
    email: str | None
    role: str
    user_id: str | None
    name: str | None
    image_url: str | None
    color: str | None
    is_owner: bool = False
    pending: bool = False


@dataclass
class ClaimResult:
    gallery_slug: str
    role: str


def normalize_email(raw: str | None) -> str:
    """Lowercase and validate an email address."""
    value = (raw or "").strip().lower()
    if not value or len(value) > 320 or not EMAIL_PATTERN.match(value):
        raise ValidationError("Invalid email address", field="email")
    return value


def validate_role(role: str | None) -> str:
    if role not in INVITE_ROLES:
        raise ValidationError(f"Role must be one of {', '.join(INVITE_ROLES)}", field="role")
    return role


def generate_token() -> str:
    return secrets.token_urlsafe(32)


def _touch_contact(
    db: Session,
    owner_user_id: str,
    contact_email: str,
    contact_user_id: str | None,
    now: datetime,
) -> models.Contact:
    contact = (
        db.query(models.Contact)
        .filter(models.Contact.owner_user_id == owner_user_id, models.Contact.contact_email == contact_email)
        .first()
    )
    if contact is None:
        contact = models.Contact(
            owner_user_id=owner_user_id,
            contact_email=contact_email,
            invite_count=0,
        )
        db.add(contact)
    contact.invite_count = (contact.invite_count or 0) + 1
    contact.last_invited_at = now
    if contact_user_id:
        contact.contact_user_id = contact_user_id
    return contact


def invite(
    db: Session,
    gallery: models.Gallery,
    raw_email: str,
    role: str,
    inviter,
    now: datetime | None = None,
) -> models.Invite:
    """
    Grant ``role`` on ``gallery`` to an email address.

    Re-inviting an address updates the existing grant's role. The caller must
    already hold management rights on the gallery.

    Args:
        inviter: The authenticated ``CurrentUser`` sending the invite
    """
    email = normalize_email(raw_email)
    role = validate_role(role)
    now = now or models.utcnow()

    inviter_email = inviter.email
    if not inviter_email:
        cached = db.get(models.CachedUser, inviter.id)
        inviter_email = cached.email if cached else None
    if inviter_email and inviter_email.lower() == email:
        raise ValidationError("You can't invite yourself", field="email")

    registered = identity.find_user_by_email(email)
    if registered and registered.id == gallery.owner_user_id:
        raise ValidationError("The gallery owner already has access", field="email")

    invite_row = (
        db.query(models.Invite)
        .filter(models.Invite.gallery_id == gallery.id, models.Invite.email == email)
        .first()
    )
    is_new = invite_row is None
    if is_new:
        invite_row = models.Invite(gallery_id=gallery.id, email=email, invited_by_user_id=inviter.id)
        db.add(invite_row)

    invite_row.role = role
    invite_row.updated_at = now
    if registered:
        invite_row.user_id = registered.id
        invite_row.token = None
    elif invite_row.user_id is None and not invite_row.token:
        invite_row.token = generate_token()

    _touch_contact(db, inviter.id, email, registered.id if registered else None, now)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning(f"Concurrent invite for {email} on gallery {gallery.slug}")
        raise Conflict("This address was invited concurrently, please retry")
    db.refresh(invite_row)

    logger.info(
        f"{'Created' if is_new else 'Updated'} invite {invite_row.id} on gallery {gallery.slug} "
        f"for {email} as {role} (registered={registered is not None})"
    )

    if registered:
        user_cache.upsert_from_identity(db, registered)

    is_registered = invite_row.user_id is not None
    email_service.send_invite_email(
        to_email=email,
        gallery_title=gallery.title,
        slug=gallery.slug,
        role=role,
        inviter_name=inviter.display_name,
        is_registered=is_registered,
        token=invite_row.token,
    )

    if is_registered:
        NotificationService.record_event(
            db,
            recipient_id=invite_row.user_id,
            actor_id=inviter.id,
            gallery_id=gallery.id,
            notification_type=GALLERY_INVITE,
            data={**NotificationService.actor_data(db, inviter.id, gallery), "role": role},
            now=now,
        )

    realtime.trigger(
        gallery_channel(gallery.slug),
        MEMBER_ADDED,
        {"email": email, "role": role, "userId": invite_row.user_id, "pending": invite_row.token is not None},
    )
    return invite_row


def claim_invite(db: Session, token: str | None, email: str | None, user_id: str) -> ClaimResult:
    """
    Bind a pending invite to the account that just signed up.

    Raises:
        InvalidToken: unknown, already claimed, or issued to another address
    """
    if not token:
        raise InvalidToken()

    invite_row = db.query(models.Invite).filter(models.Invite.token == token).with_for_update().first()
    if invite_row is None:
        raise InvalidToken()
    if email and invite_row.email != email.strip().lower():
        raise InvalidToken("Invite was issued to a different email address")

    gallery = db.get(models.Gallery, invite_row.gallery_id)
    if gallery is None or gallery.deleted_at is not None:
        raise InvalidToken("Gallery no longer exists")

    invite_row.user_id = user_id
    invite_row.token = None
    invite_row.updated_at = models.utcnow()
    db.commit()

    logger.info(f"User {user_id} claimed invite {invite_row.id} on gallery {gallery.slug}")
    realtime.trigger(
        gallery_channel(gallery.slug),
        MEMBER_ADDED,
        {"email": invite_row.email, "role": invite_row.role, "userId": user_id, "pending": False},
    )
    return ClaimResult(gallery_slug=gallery.slug, role=invite_row.role)


def _get_invite(db: Session, gallery: models.Gallery, raw_email: str) -> models.Invite:
    email = normalize_email(raw_email)
    invite_row = (
        db.query(models.Invite)
        .filter(models.Invite.gallery_id == gallery.id, models.Invite.email == email)
        .first()
    )
    if invite_row is None:
        raise NotFound("Collaborator not found")
    return invite_row


def update_role(db: Session, gallery: models.Gallery, raw_email: str, role: str) -> models.Invite:
    role = validate_role(role)
    invite_row = _get_invite(db, gallery, raw_email)
    invite_row.role = role
    invite_row.updated_at = models.utcnow()
    db.commit()

    logger.info(f"Changed role of {invite_row.email} on gallery {gallery.slug} to {role}")
    realtime.trigger(
        gallery_channel(gallery.slug),
        MEMBER_ADDED,
        {"email": invite_row.email, "role": role, "userId": invite_row.user_id, "pending": invite_row.token is not None},
    )
    return invite_row


def revoke(db: Session, gallery: models.Gallery, raw_email: str) -> None:
    invite_row = _get_invite(db, gallery, raw_email)
    email, user_id = invite_row.email, invite_row.user_id
    db.delete(invite_row)
    db.commit()

    logger.info(f"Revoked access of {email} on gallery {gallery.slug}")
    realtime.trigger(gallery_channel(gallery.slug), MEMBER_REMOVED, {"email": email, "userId": user_id})


def list_collaborators(db: Session, gallery: models.Gallery) -> list[Collaborator]:
    """Invite rows joined with cached profiles, owner first."""
    invites = (
        db.query(models.Invite)
        .filter(models.Invite.gallery_id == gallery.id)
        .order_by(models.Invite.created_at)
        .all()
    )
    user_ids = [gallery.owner_user_id, *(i.user_id for i in invites if i.user_id)]
    profiles = user_cache.fetch_cached_users(db, user_ids)

    collaborators = []
    if not any(i.user_id == gallery.owner_user_id for i in invites):
        owner = profiles.get(gallery.owner_user_id)
        collaborators.append(
            Collaborator(
                email=owner.email if owner else None,
                role=OWNER_DISPLAY_ROLE,
                user_id=gallery.owner_user_id,
                name=owner.display_name if owner else None,
                image_url=owner.image_url if owner else None,
                color=owner.color if owner else None,
                is_owner=True,
            )
        )

    for invite_row in invites:
        profile = profiles.get(invite_row.user_id) if invite_row.user_id else None
        collaborators.append(
            Collaborator(
                email=invite_row.email,
                role=invite_row.role,
                user_id=invite_row.user_id,
                name=profile.display_name if profile else None,
                image_url=profile.image_url if profile else None,
                color=profile.color if profile else None,
                is_owner=invite_row.user_id == gallery.owner_user_id,
                pending=invite_row.token is not None,
            )
        )
    return collaborators


def search_contacts(db: Session, owner_user_id: str, query: str | None = None, limit: int = 10) -> list[models.Contact]:
    """Invite autocomplete, most frequently then most recently invited first."""
    q = db.query(models.Contact).filter(models.Contact.owner_user_id == owner_user_id)
    if query:
        q = q.filter(func.lower(models.Contact.contact_email).contains(query.strip().lower()))
    return (
        q.order_by(models.Contact.invite_count.desc(), models.Contact.last_invited_at.desc())
        .limit(limit)
        .all()
    )
