"""Gallery lifecycle, visibility and dashboard lists."""

from __future__ import annotations

from datetime import timedelta

from beam import models
from beam.services import galleries as gallery_service


class TestAccess:
    def test_missing_slug_is_404(self, client, auth_headers):
        response = client.get("/api/galleries/nosuchslug", headers=auth_headers("user_owner"))
        assert response.status_code == 404

    def test_private_gallery_is_403_with_flags(self, client, auth_headers, make_gallery):
        gallery = make_gallery("user_owner")

        anonymous = client.get(f"/api/galleries/{gallery.slug}")
        assert anonymous.status_code == 403
        assert anonymous.json()["isPrivate"] is True
        assert anonymous.json()["requiresAuth"] is True

        stranger = client.get(f"/api/galleries/{gallery.slug}", headers=auth_headers("user_eve"))
        assert stranger.status_code == 403
        assert stranger.json()["requiresAuth"] is False

    def test_public_gallery_is_view_only_for_strangers(self, client, auth_headers, make_gallery):
        gallery = make_gallery("user_owner", is_public=True, images=2)
        body = client.get(f"/api/galleries/{gallery.slug}", headers=auth_headers("user_eve")).json()
        assert body["role"] == "View"
        assert body["canStar"] is False
        assert body["canManage"] is False
        assert [image["position"] for image in body["images"]] == [0, 1]

    def test_owner_sees_full_capabilities(self, client, auth_headers, make_gallery):
        gallery = make_gallery("user_owner")
        body = client.get(f"/api/galleries/{gallery.slug}", headers=auth_headers("user_owner")).json()
        assert body["isOwner"] is True
        assert all(body[flag] for flag in ("canManage", "canComment", "canStar", "canUpload"))

    def test_expired_token_is_401(self, client, make_token, make_gallery):
        token = make_token("user_owner", expires_in=timedelta(minutes=-1))
        response = client.get("/api/galleries", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_security_headers(self, client):
        response = client.get("/api/healthz")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"


class TestManagement:
    def test_title_and_visibility(self, client, auth_headers, make_gallery, grant, published):
        gallery = make_gallery("user_owner")
        grant(gallery, "user_editor", "Edit")
        editor = auth_headers("user_editor")

        renamed = client.patch(f"/api/galleries/{gallery.slug}/title", json={"title": "  Road trip "}, headers=editor)
        assert renamed.json()["title"] == "Road trip"
        assert client.patch(f"/api/galleries/{gallery.slug}/title", json={"title": " "}, headers=editor).status_code == 400

        public = client.patch(f"/api/galleries/{gallery.slug}/visibility", json={"isPublic": True}, headers=editor)
        assert public.json()["isPublic"] is True
        assert client.get(f"/api/galleries/{gallery.slug}").status_code == 200

        events = [e for e, _ in published.events(f"presence-gallery-{gallery.slug}")]
        assert events.count("gallery-updated") == 2

    def test_editor_cannot_delete(self, client, auth_headers, make_gallery, grant):
        gallery = make_gallery("user_owner")
        grant(gallery, "user_editor", "Edit")
        assert client.delete(f"/api/galleries/{gallery.slug}", headers=auth_headers("user_editor")).status_code == 403

    def test_commenter_cannot_rename(self, client, auth_headers, make_gallery, grant):
        gallery = make_gallery("user_owner")
        grant(gallery, "user_commenter", "Comment")
        response = client.patch(
            f"/api/galleries/{gallery.slug}/title", json={"title": "Mine now"}, headers=auth_headers("user_commenter")
        )
        assert response.status_code == 403


class TestTrash:
    def test_soft_delete_restore_and_purge(self, client, auth_headers, db, make_gallery, deleted_objects):
        gallery = make_gallery("user_owner", images=2)
        slug = gallery.slug
        keys = sorted(image.public_id for image in gallery.images)
        headers = auth_headers("user_owner")

        assert client.delete(f"/api/galleries/{slug}", headers=headers).status_code == 204
        assert client.get(f"/api/galleries/{slug}", headers=headers).status_code == 404
        assert [g["slug"] for g in client.get("/api/galleries/trash", headers=headers).json()] == [slug]
        assert client.get("/api/galleries", headers=headers).json()["total"] == 0

        restored = client.post(f"/api/galleries/{slug}/restore", headers=headers)
        assert restored.status_code == 200
        assert restored.json()["imageCount"] == 2
        assert client.get(f"/api/galleries/{slug}", headers=headers).status_code == 200

        # Purging is only possible from the trash.
        assert client.delete(f"/api/galleries/{slug}/permanent-delete", headers=headers).status_code == 404
        client.delete(f"/api/galleries/{slug}", headers=headers)
        purged = client.delete(f"/api/galleries/{slug}/permanent-delete", headers=headers)
        assert purged.json() == {"deleted": 2}
        assert sorted(deleted_objects) == keys

        db.expire_all()
        assert db.query(models.Gallery).count() == 0
        assert db.query(models.Image).count() == 0

    def test_purge_cascades_everything(self, db, make_gallery, grant):
        gallery = make_gallery("user_owner", images=1)
        image = gallery.images[0]
        grant(gallery, "user_friend", "Comment")
        comment = models.Comment(image_id=image.id, content="hi", user_id="user_friend", user_name="Friend")
        db.add(comment)
        db.flush()
        db.add(models.Comment(image_id=image.id, parent_id=comment.id, content="yo", user_id="user_owner", user_name="Owner"))
        db.add(models.CommentReaction(comment_id=comment.id, user_id="user_owner", emoji="👍"))
        db.add(models.Star(user_id="user_friend", image_id=image.id))
        db.add(
            models.Notification(
                user_id="user_owner", actor_id="user_friend", type="star", gallery_id=gallery.id,
                target_key="x", data={}, group_id="g",
            )
        )
        db.commit()

        gallery_service.purge(db, gallery)
        db.expire_all()
        for model in (models.Gallery, models.Image, models.Comment, models.CommentReaction,
                      models.Star, models.Invite, models.Notification):
            assert db.query(model).count() == 0, model.__name__

    def test_purge_expired_respects_retention(self, db, make_gallery):
        old = make_gallery("user_owner", title="Old")
        recent = make_gallery("user_owner", title="Recent")
        now = models.utcnow()
        gallery_service.soft_delete(db, old, now=now - timedelta(days=31))
        gallery_service.soft_delete(db, recent, now=now - timedelta(days=2))

        assert gallery_service.purge_expired(db, now=now, retention_days=30) == 1
        db.expire_all()
        assert [g.title for g in db.query(models.Gallery).all()] == ["Recent"]


class TestLists:
    def test_owned_list_paginates_with_counts(self, client, auth_headers, make_gallery):
        for n in range(3):
            make_gallery("user_owner", title=f"G{n}", images=n)
        make_gallery("user_other", title="Not mine")
        headers = auth_headers("user_owner")

        first = client.get("/api/galleries", params={"page": 1, "limit": 2}, headers=headers).json()
        assert first["total"] == 3
        assert len(first["items"]) == 2
        second = client.get("/api/galleries", params={"page": 2, "limit": 2}, headers=headers).json()
        cards = {c["title"]: c for c in first["items"] + second["items"]}
        assert set(cards) == {"G0", "G1", "G2"}
        assert cards["G2"]["imageCount"] == 2
        assert cards["G2"]["thumbnailUrl"].endswith("img0.jpg")
        assert cards["G0"]["thumbnailUrl"] is None

    def test_shared_and_recent(self, client, auth_headers, make_gallery, grant):
        gallery = make_gallery("user_owner", title="Shared with me")
        grant(gallery, "user_friend", "Comment")
        headers = auth_headers("user_friend")

        shared = client.get("/api/galleries/shared", headers=headers).json()
        assert [(g["title"], g["role"]) for g in shared] == [("Shared with me", "Comment")]

        assert client.get("/api/galleries/recent", headers=headers).json() == []
        client.get(f"/api/galleries/{gallery.slug}", headers=headers)
        assert [g["slug"] for g in client.get("/api/galleries/recent", headers=headers).json()] == [gallery.slug]


class TestFolders:
    def test_folder_lifecycle(self, client, auth_headers, make_gallery):
        gallery = make_gallery("user_owner")
        headers = auth_headers("user_owner")

        folder = client.post("/api/folders", json={"name": "Holidays"}, headers=headers)
        assert folder.status_code == 201
        folder_id = folder.json()["id"]

        moved = client.patch(f"/api/galleries/{gallery.slug}/move", json={"folderId": folder_id}, headers=headers)
        assert moved.json()["folderId"] == folder_id

        listed = client.get("/api/folders", headers=headers).json()
        assert [(f["name"], f["galleryCount"]) for f in listed] == [("Holidays", 1)]
        in_folder = client.get("/api/galleries", params={"folderId": folder_id}, headers=headers).json()
        assert [g["slug"] for g in in_folder["items"]] == [gallery.slug]

        renamed = client.patch(f"/api/folders/{folder_id}", json={"name": "Trips"}, headers=headers)
        assert renamed.json()["name"] == "Trips"

        assert client.delete(f"/api/folders/{folder_id}", headers=headers).status_code == 204
        detail = client.get(f"/api/galleries/{gallery.slug}", headers=headers).json()
        assert detail["folderId"] is None

    def test_cannot_use_someone_elses_folder(self, client, auth_headers, make_gallery):
        gallery = make_gallery("user_owner")
        other_folder = client.post("/api/folders", json={"name": "Theirs"}, headers=auth_headers("user_other")).json()
        response = client.patch(
            f"/api/galleries/{gallery.slug}/move",
            json={"folderId": other_folder["id"]},
            headers=auth_headers("user_owner"),
        )
        assert response.status_code == 404
