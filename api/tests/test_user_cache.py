"""Cached profiles keep their color across refreshes."""

from __future__ import annotations

from datetime import timedelta

from beam import models
from beam.auth import CurrentUser
from beam.errors import UpstreamFailure
from beam.services import identity, user_cache


def _age(db, user_id: str, hours: int) -> None:
    row = db.get(models.CachedUser, user_id)
    row.updated_at = models.utcnow() - timedelta(hours=hours)
    db.commit()


def test_color_assigned_once(db):
    caller = CurrentUser(id="user_ann", email="ann@example.com", name="Ann Lee")
    first = user_cache.ensure_cached_user(db, caller)
    color = first.color

    assert color in user_cache.AVATAR_COLORS
    assert first.first_name == "Ann"
    assert first.last_name == "Lee"

    again = user_cache.upsert_from_identity(
        db, identity.IdentityUser(id="user_ann", email="ann@new.example.com", first_name="Annie")
    )
    assert again.color == color
    assert again.first_name == "Annie"
    assert again.email == "ann@new.example.com"


def test_fetch_refreshes_only_stale_rows(db, make_user, registered_users):
    make_user("user_fresh", "fresh@example.com", "Fresh Face")
    make_user("user_stale", "stale@example.com", "Old Name")
    _age(db, "user_stale", hours=2)
    registered_users["stale@example.com"] = identity.IdentityUser(
        id="user_stale", email="stale@example.com", first_name="New", last_name="Name"
    )

    rows = user_cache.fetch_cached_users(db, ["user_fresh", "user_stale", "user_fresh"])

    assert set(rows) == {"user_fresh", "user_stale"}
    assert rows["user_stale"].first_name == "New"
    assert rows["user_stale"].color == "#2196F3"
    assert rows["user_fresh"].first_name == "Fresh"


def test_fetch_tolerates_provider_outage(db, make_user, monkeypatch):
    make_user("user_stale", "stale@example.com", "Old Name")
    _age(db, "user_stale", hours=2)

    def _down(ids):
        raise UpstreamFailure("identity provider unavailable")

    monkeypatch.setattr(identity, "get_users", _down)

    rows = user_cache.fetch_cached_users(db, ["user_stale"])
    assert rows["user_stale"].first_name == "Old"


def test_refresh_stale_users(db, make_user, registered_users):
    make_user("user_a", "a@example.com", "A One")
    make_user("user_b", "b@example.com", "B Two")
    _age(db, "user_a", hours=30)
    registered_users["a@example.com"] = identity.IdentityUser(id="user_a", email="a@example.com", first_name="Alpha")

    refreshed = user_cache.refresh_stale_users(db, timedelta(hours=24))

    assert refreshed == 1
    db.expire_all()
    assert db.get(models.CachedUser, "user_a").first_name == "Alpha"
    assert db.get(models.CachedUser, "user_b").first_name == "B"
    assert user_cache.refresh_stale_users(db, timedelta(hours=24)) == 0
