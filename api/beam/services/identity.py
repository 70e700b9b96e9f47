"""Identity-provider REST adapter (user lookup by email or id)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

import httpx

from ..errors import UpstreamFailure

logger = logging.getLogger(__name__)

IDP_API_URL = os.getenv("IDP_API_URL", "https://api.clerk.com/v1").rstrip("/")
IDP_SECRET_KEY = os.getenv("IDP_SECRET_KEY")
IDP_TIMEOUT_SECONDS = 10.0


@dataclass
class IdentityUser:
    id: str
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    username: str | None = None
    image_url: str | None = None


def _is_configured() -> bool:
    if not IDP_SECRET_KEY:
        logger.warning("IDP_SECRET_KEY not configured - identity lookups disabled")
        return False
    return True


def _parse_user(raw: dict[str, Any]) -> IdentityUser:
    primary_email = None
    primary_id = raw.get("primary_email_address_id")
    for address in raw.get("email_addresses") or []:
        if primary_email is None or address.get("id") == primary_id:
            primary_email = address.get("email_address")
    return IdentityUser(
        id=raw["id"],
        email=primary_email.lower() if primary_email else None,
        first_name=raw.get("first_name"),
        last_name=raw.get("last_name"),
        username=raw.get("username"),
        image_url=raw.get("image_url"),
    )


def _get(path: str, params: Any = None) -> Any:
    try:
        with httpx.Client(timeout=IDP_TIMEOUT_SECONDS) as client:
            response = client.get(
                f"{IDP_API_URL}{path}",
                params=params,
                headers={"Authorization": f"Bearer {IDP_SECRET_KEY}"},
            )
        response.raise_for_status()
        return response.json()
    except httpx.HTTPError as e:
        logger.error(f"Identity provider request to {path} failed: {e}")
        raise UpstreamFailure("Identity provider unavailable")


def find_user_by_email(email: str) -> IdentityUser | None:
    """Exact-email lookup of a registered account."""
    if not _is_configured():
        return None

    users = _get("/users", params=[("email_address", email)])
    for raw in users or []:
        user = _parse_user(raw)
        addresses = {
            (a.get("email_address") or "").lower() for a in raw.get("email_addresses") or []
        }
        if email.lower() in addresses:
            return user
    return None


def get_users(user_ids: list[str]) -> list[IdentityUser]:
    """Batch profile fetch; unknown ids are silently omitted."""
    if not user_ids or not _is_configured():
        return []

    params = [("user_id", uid) for uid in user_ids]
    params.append(("limit", str(min(len(user_ids), 500))))
    users = _get("/users", params=params)
    return [_parse_user(raw) for raw in users or []]


def get_user(user_id: str) -> IdentityUser | None:
    users = get_users([user_id])
    return users[0] if users else None
