from __future__ import annotations

import os

# Configure the app for an in-memory database and stubbed adapters before it is imported.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("IDP_JWT_SECRET", "test-signing-secret-that-is-long-enough-0123456789")
os.environ["RUN_MIGRATIONS"] = "false"
os.environ.pop("REDIS_URL", None)
os.environ.pop("IDP_SECRET_KEY", None)
os.environ.pop("RESEND_API_KEY", None)
os.environ.setdefault("S3_ENDPOINT_URL", "https://storage.test")
os.environ.setdefault("S3_PUBLIC_BASE_URL", "https://cdn.test")
os.environ.setdefault("S3_ACCESS_KEY_ID", "test-access-key")
os.environ.setdefault("S3_SECRET_ACCESS_KEY", "test-secret-key")

from datetime import datetime, timedelta, timezone  # noqa: E402
from typing import Any, Callable, Generator  # noqa: E402

import jwt  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from beam import models  # noqa: E402
from beam.auth import IDP_JWT_ALGORITHM, IDP_JWT_SECRET  # noqa: E402
from beam.db import Base, SessionLocal, engine  # noqa: E402
from beam.main import app  # noqa: E402
from beam.realtime import realtime  # noqa: E402
from beam.services import email as email_service  # noqa: E402
from beam.services import galleries as gallery_service  # noqa: E402
from beam.services import identity, storage  # noqa: E402


class RecordingTransport:
    """Realtime transport that keeps every published message in memory."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    def publish(self, topic: str, payload: dict[str, Any]) -> bool:
        self.messages.append((topic, payload))
        return True

    def close(self) -> None:
        self.closed = True

    def events(self, channel: str | None = None) -> list[tuple[str, dict[str, Any]]]:
        """(event, payload) pairs, optionally only those published on ``channel``."""
        result = []
        for topic, payload in self.messages:
            _, topic_channel, event = topic.split("/", 2)
            if channel is None or topic_channel == channel:
                result.append((event, payload))
        return result


@pytest.fixture(autouse=True)
def schema() -> Generator[None, None, None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def published() -> Generator[RecordingTransport, None, None]:
    transport = RecordingTransport()
    realtime.init(transport=transport)
    yield transport
    realtime.dispose()


@pytest.fixture(autouse=True)
def registered_users(monkeypatch: pytest.MonkeyPatch) -> dict[str, identity.IdentityUser]:
    """Accounts known to the identity provider, keyed by email."""
    users: dict[str, identity.IdentityUser] = {}
    monkeypatch.setattr(identity, "find_user_by_email", lambda email: users.get(email.lower()))
    monkeypatch.setattr(
        identity, "get_users", lambda ids: [u for u in users.values() if u.id in set(ids)]
    )
    return users


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    sent: list[dict[str, Any]] = []

    def _send(**kwargs: Any) -> str:
        sent.append(kwargs)
        return f"email-{len(sent)}"

    monkeypatch.setattr(email_service, "send_invite_email", _send)
    return sent


@pytest.fixture(autouse=True)
def deleted_objects(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    deleted: list[str] = []

    def _delete(keys: list[str]) -> int:
        deleted.extend(keys)
        return len(keys)

    monkeypatch.setattr(storage, "delete_objects", _delete)
    monkeypatch.setattr(
        storage,
        "presign_upload",
        lambda key, content_type, expires_in=3600: f"https://storage.test/beam-images/{key}?X-Amz-Signature=test",
    )
    return deleted


@pytest.fixture()
def db() -> Generator[Session, None, None]:
    """Create a database session for testing."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def make_token() -> Callable[..., str]:
    def _make(
        user_id: str,
        email: str | None = None,
        name: str | None = None,
        expires_in: timedelta = timedelta(hours=1),
    ) -> str:
        claims: dict[str, Any] = {"sub": user_id, "exp": datetime.now(timezone.utc) + expires_in}
        if email:
            claims["email"] = email
        if name:
            claims["name"] = name
        return jwt.encode(claims, IDP_JWT_SECRET, algorithm=IDP_JWT_ALGORITHM)

    return _make


@pytest.fixture()
def auth_headers(make_token: Callable[..., str]) -> Callable[..., dict[str, str]]:
    def _headers(user_id: str, email: str | None = None, name: str | None = None) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id, email=email, name=name)}"}

    return _headers


@pytest.fixture()
def make_user(db: Session) -> Callable[..., models.CachedUser]:
    def _make(user_id: str, email: str | None = None, name: str | None = None) -> models.CachedUser:
        first, _, last = (name or "").partition(" ")
        user = models.CachedUser(
            user_id=user_id,
            email=email,
            first_name=first or None,
            last_name=last or None,
            color="#2196F3",
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture()
def make_gallery(db: Session) -> Callable[..., models.Gallery]:
    """Create a gallery with ``images`` placeholder images at positions 0..n-1."""

    def _make(
        owner_user_id: str | None = "user_owner",
        title: str = "Trip",
        is_public: bool = False,
        images: int = 0,
    ) -> models.Gallery:
        gallery = gallery_service.create_gallery(db, owner_user_id, title=title, is_public=is_public)
        for position in range(images):
            key = f"galleries/{gallery.slug}/img{position}.jpg"
            db.add(
                models.Image(
                    gallery_id=gallery.id,
                    url=f"https://cdn.test/{key}",
                    public_id=key,
                    original_filename=f"img{position}.jpg",
                    content_type="image/jpeg",
                    width=1200,
                    height=800,
                    position=position,
                )
            )
        db.commit()
        db.refresh(gallery)
        return gallery

    return _make


@pytest.fixture()
def grant(db: Session) -> Callable[..., models.Invite]:
    """Give a registered user a role on a gallery directly."""

    def _grant(gallery: models.Gallery, user_id: str, role: str, email: str | None = None) -> models.Invite:
        invite = models.Invite(
            gallery_id=gallery.id,
            email=email or f"{user_id}@example.com",
            user_id=user_id,
            role=role,
        )
        db.add(invite)
        db.commit()
        db.refresh(invite)
        return invite

    return _grant
