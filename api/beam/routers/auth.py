"""Account endpoints: magic-link invite claims, profile and contacts."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import CurrentUser, get_current_user
from ..deps import get_db
from ..services import invites as invite_service

router = APIRouter(tags=["Auth"])


@router.post("/auth/verify-magic-link", response_model=schemas.MagicLinkResult)
def verify_magic_link(
    payload: schemas.MagicLinkClaim,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.MagicLinkResult:
    """
    Claim a pending invite after the invitee has signed up.

    Returns the gallery slug and granted role so the client can redirect.
    Unknown or already used tokens answer 400 with ``code: INVALID_TOKEN``.
    """
    email = payload.email or current_user.email
    result = invite_service.claim_invite(db, payload.token, email, current_user.id)
    return schemas.MagicLinkResult(gallery_slug=result.gallery_slug, role=result.role)


@router.get("/user/me", response_model=schemas.UserProfile)
def get_me(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.UserProfile:
    """Cached profile of the caller, including their assigned display color."""
    cached = db.get(models.CachedUser, current_user.id)
    return schemas.UserProfile.model_validate(cached)


@router.get("/contacts", response_model=list[schemas.ContactOut])
def search_contacts(
    q: str | None = Query(None, max_length=320),
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> list[schemas.ContactOut]:
    """Invite autocomplete, most frequently invited first."""
    return [
        schemas.ContactOut.model_validate(c)
        for c in invite_service.search_contacts(db, current_user.id, q, limit)
    ]
