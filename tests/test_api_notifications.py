"""
Notifications, thematic areas, health and token handling.
"""

import jwt as pyjwt
import pytest

from ideaportal.models import db
from ideaportal.services.jwt_service import decode_access_token, generate_access_token
from ideaportal.services.notification import NotificationService


def _notify(user, title="Heads up", **kwargs):
    return NotificationService.notify(recipient_ids=[user.id], title=title, **kwargs)


# ═════════════════════════════════════════════════════════════════════════════
# NOTIFICATIONS
# ═════════════════════════════════════════════════════════════════════════════

class TestNotifications:
    def test_list_and_unread(self, client, author, auth):
        _notify(author, "First")
        _notify(author, "Second")
        db.session.commit()

        body = client.get("/api/v1/notifications", headers=auth(author)).get_json()
        assert body["total"] == 2
        assert body["unread_count"] == 2
        assert {n["title"] for n in body["items"]} == {"First", "Second"}

        count = client.get("/api/v1/notifications/unread-count", headers=auth(author)).get_json()
        assert count == {"unread_count": 2}

    def test_mark_read(self, client, author, auth):
        first, = _notify(author, "First")
        _notify(author, "Second")
        db.session.commit()

        res = client.post(f"/api/v1/notifications/{first.id}/read", headers=auth(author))
        assert res.status_code == 200
        assert res.get_json()["is_read"] is True
        assert res.get_json()["read_at"] is not None

        unread = client.get("/api/v1/notifications", query_string={"unread_only": "true"},
                            headers=auth(author)).get_json()
        assert [n["title"] for n in unread["items"]] == ["Second"]
        assert unread["unread_count"] == 1

    def test_mark_all_read(self, client, author, auth):
        _notify(author, "First")
        _notify(author, "Second")
        db.session.commit()
        res = client.post("/api/v1/notifications/read-all", headers=auth(author))
        assert res.get_json() == {"marked_read": 2}
        assert client.get("/api/v1/notifications/unread-count", headers=auth(author)).get_json()["unread_count"] == 0

    def test_other_users_notification_is_404(self, client, author, other_author, auth):
        mine, = _notify(author)
        db.session.commit()
        res = client.post(f"/api/v1/notifications/{mine.id}/read", headers=auth(other_author))
        assert res.status_code == 404

    def test_notify_skips_duplicates_and_excluded(self, author, other_author):
        created = NotificationService.notify(
            recipient_ids=[author.id, author.id, other_author.id, None],
            title="Once each", exclude=[other_author.id],
        )
        assert [n.recipient_id for n in created] == [author.id]

    def test_bad_unread_only(self, client, author, auth):
        res = client.get("/api/v1/notifications", query_string={"unread_only": "perhaps"}, headers=auth(author))
        assert res.status_code == 400


# ═════════════════════════════════════════════════════════════════════════════
# THEMATIC AREAS
# ═════════════════════════════════════════════════════════════════════════════

class TestThematicAreas:
    def test_admin_creates_with_unique_slug(self, client, admin, auth, area):
        res = client.post("/api/v1/thematic-areas", json={"name": "Digital Transformation!"}, headers=auth(admin))
        assert res.status_code == 201
        assert res.get_json()["slug"] == "digital-transformation-2"

    def test_deputy_director_cannot_manage_areas(self, client, dd, auth):
        res = client.post("/api/v1/thematic-areas", json={"name": "Logistics"}, headers=auth(dd))
        assert res.status_code == 403

    def test_inactive_hidden_unless_all(self, client, admin, author, auth, area):
        res = client.put(
            f"/api/v1/thematic-areas/{area.id}",
            json={"name": "Digital Transformation", "is_active": False},
            headers=auth(admin),
        )
        assert res.status_code == 200
        assert res.get_json()["is_active"] is False

        assert client.get("/api/v1/thematic-areas", headers=auth(author)).get_json() == []
        # ?all=true is ignored without manage.thematic-areas
        assert client.get("/api/v1/thematic-areas?all=true", headers=auth(author)).get_json() == []
        assert len(client.get("/api/v1/thematic-areas?all=true", headers=auth(admin)).get_json()) == 1

    def test_rename_updates_slug(self, client, admin, auth, area):
        res = client.put(f"/api/v1/thematic-areas/{area.id}", json={"name": "Digital Services"}, headers=auth(admin))
        assert res.get_json()["slug"] == "digital-services"

    def test_name_required(self, client, admin, auth):
        res = client.post("/api/v1/thematic-areas", json={}, headers=auth(admin))
        assert res.status_code == 400
        assert "name" in res.get_json()["details"]

    def test_unknown_area_404(self, client, admin, auth):
        res = client.put("/api/v1/thematic-areas/9999", json={"name": "Nothing"}, headers=auth(admin))
        assert res.status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# HEALTH & TOKENS
# ═════════════════════════════════════════════════════════════════════════════

class TestHealth:
    def test_liveness_needs_no_token(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json() == {"status": "ok"}

    def test_readiness_checks_database(self, client):
        body = client.get("/api/v1/health/ready").get_json()
        assert body["status"] == "ok"
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["app"]["testing"] is True

    def test_unknown_route_is_json_404(self, client):
        res = client.get("/api/v1/nope")
        assert res.status_code == 404
        assert res.get_json()["path"] == "/api/v1/nope"


class TestTokens:
    def test_round_trip_claims(self, author):
        payload = decode_access_token(generate_access_token(author.id, ["author"]))
        assert payload["sub"] == str(author.id)
        assert payload["roles"] == ["author"]
        assert payload["type"] == "access"

    def test_expired_token_is_unauthenticated(self, client, author):
        token = generate_access_token(author.id, expires_in=-10)
        res = client.get("/api/v1/ideas", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401

    def test_wrong_type_rejected(self, app, author):
        secret = app.config.get("JWT_SECRET_KEY") or app.config["SECRET_KEY"]
        token = pyjwt.encode({"sub": str(author.id), "type": "refresh"}, secret, algorithm="HS256")
        with pytest.raises(pyjwt.InvalidTokenError):
            decode_access_token(token)
