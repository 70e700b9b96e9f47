"""Image stars and the star notification flow."""

from __future__ import annotations

from beam import models
from beam.roles import COMMENT, VIEW


def _stars(db, image_id):
    db.expire_all()
    return db.query(models.Star).filter(models.Star.image_id == image_id).all()


class TestStarToggle:
    def test_star_then_unstar_leaves_no_rows(self, client, auth_headers, db, make_gallery, grant):
        gallery = make_gallery("user_owner", images=1)
        grant(gallery, "user_fan", COMMENT)
        image_id = gallery.images[0].id
        headers = auth_headers("user_fan")

        starred = client.post(f"/api/images/{image_id}/star", headers=headers)
        assert starred.json() == {"isStarred": True, "starCount": 1}
        assert len(_stars(db, image_id)) == 1

        unstarred = client.post(f"/api/images/{image_id}/star", headers=headers)
        assert unstarred.json() == {"isStarred": False, "starCount": 0}
        assert _stars(db, image_id) == []

    def test_delete_is_idempotent(self, client, auth_headers, make_gallery):
        gallery = make_gallery("user_owner", images=1)
        image_id = gallery.images[0].id
        headers = auth_headers("user_owner")

        client.post(f"/api/images/{image_id}/star", headers=headers)
        for _ in range(2):
            response = client.delete(f"/api/images/{image_id}/star", headers=headers)
            assert response.status_code == 200
            assert response.json() == {"isStarred": False, "starCount": 0}

    def test_viewer_cannot_star(self, client, auth_headers, db, make_gallery, grant):
        gallery = make_gallery("user_owner", images=1)
        grant(gallery, "user_viewer", VIEW)
        image_id = gallery.images[0].id

        response = client.post(f"/api/images/{image_id}/star", headers=auth_headers("user_viewer"))
        assert response.status_code == 403
        assert _stars(db, image_id) == []

    def test_public_visitor_cannot_star(self, client, auth_headers, make_gallery):
        gallery = make_gallery("user_owner", is_public=True, images=1)
        response = client.post(f"/api/images/{gallery.images[0].id}/star", headers=auth_headers("user_random"))
        assert response.status_code == 403

    def test_unknown_image(self, client, auth_headers):
        assert client.post("/api/images/999/star", headers=auth_headers("user_owner")).status_code == 404

    def test_star_list_shows_profiles(self, client, auth_headers, make_gallery, grant):
        gallery = make_gallery("user_owner", images=1)
        grant(gallery, "user_fan", COMMENT)
        image_id = gallery.images[0].id
        client.post(f"/api/images/{image_id}/star", headers=auth_headers("user_fan", name="Fay Fan"))

        stars = client.get(f"/api/images/{image_id}/stars", headers=auth_headers("user_owner")).json()
        assert [(s["userId"], s["name"]) for s in stars] == [("user_fan", "Fay Fan")]
        assert stars[0]["color"]


class TestStarNotifications:
    def test_scenario_viewer_denied_commenter_notifies_owner_once(
        self, client, auth_headers, db, make_gallery, grant, published
    ):
        gallery = make_gallery("user_owner", images=1)
        image_id = gallery.images[0].id
        grant(gallery, "user_viewer", VIEW)
        viewer = auth_headers("user_viewer", name="Val Viewer")

        assert client.post(f"/api/images/{image_id}/star", headers=viewer).status_code == 403

        db.query(models.Invite).filter_by(user_id="user_viewer").update({"role": COMMENT})
        db.commit()

        # A rapid triple click: star, unstar, star.
        responses = [client.post(f"/api/images/{image_id}/star", headers=viewer) for _ in range(3)]
        assert all(r.status_code == 200 for r in responses)
        assert responses[-1].json()["isStarred"] is True

        db.expire_all()
        notifications = db.query(models.Notification).filter_by(user_id="user_owner").all()
        assert len(notifications) == 1
        assert notifications[0].type == "star"
        assert notifications[0].count == 2
        assert notifications[0].data["actorName"] == "Val Viewer"
        assert notifications[0].data["imageId"] == image_id

        gallery_events = [e for e, _ in published.events(f"presence-gallery-{gallery.slug}")]
        assert gallery_events.count("image-starred") == 3

    def test_owner_starring_own_image_creates_no_notification(self, client, auth_headers, db, make_gallery):
        gallery = make_gallery("user_owner", images=1)
        client.post(f"/api/images/{gallery.images[0].id}/star", headers=auth_headers("user_owner"))
        assert db.query(models.Notification).count() == 0
