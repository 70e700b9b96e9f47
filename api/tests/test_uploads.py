"""Presigned upload URLs and duplicate-request debouncing."""

from __future__ import annotations

import pytest

from beam import models
from beam.db import SessionLocal
from beam.errors import ValidationError
from beam.services import galleries as gallery_service
from beam.services import rate_limit
from beam.services import storage
from beam.services.galleries import UploadRequest

MANIFEST = {
    "files": [
        {"name": "beach.jpg", "type": "image/jpeg", "size": 120_000, "width": 1600, "height": 900},
        {"name": "dunes.webp", "type": "image/webp", "size": 80_000},
    ]
}


class FakeRedis:
    def __init__(self) -> None:
        self.store: dict[str, str] = {}

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True


class TestUploadUrls:
    def test_response_shape_and_reserved_images(self, client, auth_headers, db, make_gallery, published):
        gallery = make_gallery("user_owner", images=1)
        response = client.post(f"/api/galleries/{gallery.slug}/images", json=MANIFEST, headers=auth_headers("user_owner"))
        assert response.status_code == 200

        urls = response.json()["urls"]
        assert [set(u) for u in urls] == [{"signedUrl", "publicUrl", "imageId", "key"}] * 2
        for slot in urls:
            assert slot["key"].startswith(f"galleries/{gallery.slug}/")
            assert slot["signedUrl"].startswith("https://storage.test/")
            assert slot["publicUrl"] == storage.public_url(slot["key"])
        assert urls[0]["key"].endswith(".jpg")
        assert urls[1]["key"].endswith(".webp")

        db.expire_all()
        images = db.query(models.Image).filter_by(gallery_id=gallery.id).order_by(models.Image.position).all()
        assert [i.position for i in images] == [0, 1, 2]
        assert images[1].id == urls[0]["imageId"]
        assert images[1].aspect_ratio == pytest.approx(1600 / 900)

        uploaded = [p for e, p in published.events(f"presence-gallery-{gallery.slug}") if e == "image-uploaded"]
        assert uploaded[0]["imageIds"] == [u["imageId"] for u in urls]

    def test_duplicate_manifest_inside_window_is_rejected(
        self, client, auth_headers, make_gallery, monkeypatch
    ):
        fake = FakeRedis()
        monkeypatch.setattr(rate_limit, "get_redis_client", lambda: fake)
        gallery = make_gallery("user_owner")
        headers = auth_headers("user_owner")

        first = client.post(f"/api/galleries/{gallery.slug}/images", json=MANIFEST, headers=headers)
        second = client.post(f"/api/galleries/{gallery.slug}/images", json=MANIFEST, headers=headers)
        assert first.status_code == 200
        assert second.status_code == 429

        different = {"files": [{"name": "other.png", "type": "image/png", "size": 10}]}
        assert client.post(f"/api/galleries/{gallery.slug}/images", json=different, headers=headers).status_code == 200

    def test_without_redis_requests_are_not_debounced(self, client, auth_headers, make_gallery):
        gallery = make_gallery("user_owner")
        headers = auth_headers("user_owner")
        for _ in range(2):
            assert client.post(f"/api/galleries/{gallery.slug}/images", json=MANIFEST, headers=headers).status_code == 200

    def test_commenter_cannot_upload(self, client, auth_headers, make_gallery, grant):
        gallery = make_gallery("user_owner")
        grant(gallery, "user_commenter", "Comment")
        response = client.post(
            f"/api/galleries/{gallery.slug}/images", json=MANIFEST, headers=auth_headers("user_commenter")
        )
        assert response.status_code == 403

    def test_guest_gallery_accepts_anonymous_uploads(self, client):
        created = client.post("/api/galleries/create", json={"title": "Party", "files": MANIFEST["files"]})
        assert created.status_code == 201
        body = created.json()
        assert body["gallery"]["isPublic"] is True
        assert body["gallery"]["canUpload"] is True
        assert len(body["urls"]) == 2
        assert len(body["gallery"]["images"]) == 2

        slug = body["gallery"]["slug"]
        more = {"files": [{"name": "late.jpg", "type": "image/jpeg", "size": 5}]}
        assert client.post(f"/api/galleries/{slug}/images", json=more).status_code == 200

    def test_overlapping_batches_append_after_each_other(self, db, make_gallery, monkeypatch):
        gallery = make_gallery("user_owner", images=1)
        start_version = gallery.version
        signed = storage.presign_upload
        concurrent: list[models.Image] = []

        def presign_while_another_batch_lands(key, content_type, *args, **kwargs):
            if not concurrent:
                other = SessionLocal()
                try:
                    other_gallery = other.get(models.Gallery, gallery.id)
                    monkeypatch.setattr(storage, "presign_upload", signed)
                    slots = gallery_service.request_uploads(
                        other, other_gallery, [UploadRequest("second.png", "image/png", 10)], "user_owner"
                    )
                    concurrent.extend(slot.image for slot in slots)
                finally:
                    other.close()
            return signed(key, content_type)

        monkeypatch.setattr(storage, "presign_upload", presign_while_another_batch_lands)
        slots = gallery_service.request_uploads(
            db, gallery, [UploadRequest("first.jpg", "image/jpeg", 10)], "user_owner"
        )

        assert len(concurrent) == 1
        db.expire_all()
        images = db.query(models.Image).filter_by(gallery_id=gallery.id).order_by(models.Image.position).all()
        assert [i.position for i in images] == [0, 1, 2]
        assert images[2].id == slots[0].image.id
        assert db.get(models.Gallery, gallery.id).version == start_version + 2


class TestValidateUploads:
    def test_rejects_unsupported_type(self):
        with pytest.raises(ValidationError):
            gallery_service.validate_uploads([UploadRequest("notes.pdf", "application/pdf", 10)])

    def test_rejects_empty_batch(self):
        with pytest.raises(ValidationError):
            gallery_service.validate_uploads([])

    def test_rejects_oversized_file(self):
        with pytest.raises(ValidationError):
            gallery_service.validate_uploads([UploadRequest("huge.jpg", "image/jpeg", 10**12)])

    def test_unsupported_type_answers_400(self, client, auth_headers, make_gallery):
        gallery = make_gallery("user_owner")
        response = client.post(
            f"/api/galleries/{gallery.slug}/images",
            json={"files": [{"name": "notes.pdf", "type": "application/pdf", "size": 10}]},
            headers=auth_headers("user_owner"),
        )
        assert response.status_code == 400
        assert response.json()["field"] == "files"
