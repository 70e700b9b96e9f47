"""
Cached user profiles.

Mirrors identity-provider profile fields locally so renders don't round-trip to
the provider, and owns each user's display color. The color is assigned once
on first sight and never changes afterwards; collaborators rely on it for
cursors and avatars.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models
from ..errors import UpstreamFailure
from ..settings import CACHED_USER_TTL_MINUTES
from . import identity

logger = logging.getLogger(__name__)

AVATAR_COLORS = [
    "#F24822", "#2196F3", "#4CAF50", "#FFC107", "#9C27B0",
    "#FF5722", "#795548", "#607D8B", "#E91E63", "#00BCD4",
]


def pick_color() -> str:
    return random.choice(AVATAR_COLORS)


def _split_name(name: str | None) -> tuple[str | None, str | None]:
    if not name:
        return None, None
    first, _, last = name.strip().partition(" ")
    return first or None, last or None


def _insert_once(db: Session, row: models.CachedUser) -> models.CachedUser:
    """Insert a new row; if another request won the race, keep theirs (and their color)."""
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = db.get(models.CachedUser, row.user_id)
        if existing is None:
            raise
        return existing
    db.refresh(row)
    logger.info(f"Cached new user {row.user_id} with color {row.color}")
    return row


def ensure_cached_user(db: Session, user) -> models.CachedUser:
    """
    Make sure a CachedUser row exists for an authenticated caller.

    Token claims opportunistically refresh the profile fields; the color is
    only ever set on insert.
    """
    row = db.get(models.CachedUser, user.id)
    if row is None:
        first, last = _split_name(user.name)
        return _insert_once(
            db,
            models.CachedUser(
                user_id=user.id,
                first_name=first,
                last_name=last,
                email=user.email,
                image_url=user.image_url,
                color=pick_color(),
            ),
        )

    changed = False
    if user.email and row.email != user.email:
        row.email = user.email
        changed = True
    if user.image_url and row.image_url != user.image_url:
        row.image_url = user.image_url
        changed = True
    if changed:
        row.updated_at = models.utcnow()
        db.commit()
    return row


def _apply_identity(row: models.CachedUser, ident: identity.IdentityUser, now: datetime) -> None:
    row.first_name = ident.first_name
    row.last_name = ident.last_name
    row.username = ident.username
    row.email = ident.email or row.email
    row.image_url = ident.image_url
    row.updated_at = now


def upsert_from_identity(db: Session, ident: identity.IdentityUser) -> models.CachedUser:
    """Store provider profile fields, preserving any color already assigned."""
    now = models.utcnow()
    row = db.get(models.CachedUser, ident.id)
    if row is None:
        row = models.CachedUser(user_id=ident.id, color=pick_color(), created_at=now)
        _apply_identity(row, ident, now)
        return _insert_once(db, row)

    _apply_identity(row, ident, now)
    db.commit()
    return row


def fetch_cached_users(db: Session, user_ids: list[str]) -> dict[str, models.CachedUser]:
    """
    Return cached profiles for the given ids, refreshing missing or stale rows.

    Provider outages are tolerated here: whatever is cached is returned.
    """
    wanted = list(dict.fromkeys(uid for uid in user_ids if uid))
    if not wanted:
        return {}

    rows = db.query(models.CachedUser).filter(models.CachedUser.user_id.in_(wanted)).all()
    by_id = {row.user_id: row for row in rows}

    cutoff = models.utcnow() - timedelta(minutes=CACHED_USER_TTL_MINUTES)
    missing_or_stale = [
        uid for uid in wanted if uid not in by_id or by_id[uid].updated_at < cutoff
    ]
    if missing_or_stale:
        try:
            fetched = identity.get_users(missing_or_stale)
        except UpstreamFailure:
            logger.warning(f"Could not refresh {len(missing_or_stale)} cached users")
            fetched = []
        for ident in fetched:
            by_id[ident.id] = upsert_from_identity(db, ident)

    return by_id


def refresh_stale_users(db: Session, older_than: timedelta) -> int:
    """Re-fetch profiles not refreshed within ``older_than``. Returns rows refreshed."""
    cutoff = models.utcnow() - older_than
    stale_ids = [
        row.user_id
        for row in db.query(models.CachedUser.user_id).filter(models.CachedUser.updated_at < cutoff)
    ]
    if not stale_ids:
        return 0

    refreshed = 0
    for ident in identity.get_users(stale_ids):
        upsert_from_identity(db, ident)
        refreshed += 1
    logger.info(f"Refreshed {refreshed} of {len(stale_ids)} stale cached users")
    return refreshed
