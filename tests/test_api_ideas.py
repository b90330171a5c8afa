"""
Idea API tests.

Tests cover:
  - Authentication / permission gates on idea routes
  - Create (JSON and multipart with PDF), drafts, slug shape
  - Listing: mine vs public, filters, pagination
  - Visibility of drafts
  - Update (partial merge, team members, gate edit-idea)
  - Delete: hard for drafts, soft otherwise, bulk delete
  - Settings toggles, likes, comments
"""

import io
import re
from datetime import date, timedelta

from ideaportal.models import db
from ideaportal.models.audit import AuditLog
from ideaportal.models.auth import ROLE_ADMIN, ROLE_AUTHOR
from ideaportal.models.idea import Idea, IdeaLike
from ideaportal.models.workflow import STATUS_STAGE1_REVISE

BASE = "/api/v1/ideas"


def _create(client, headers, body, **kwargs):
    res = client.post(BASE, json=body, headers=headers, **kwargs)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════════
# AUTH
# ═════════════════════════════════════════════════════════════════════════════

class TestIdeaAuth:
    def test_requires_token(self, client):
        assert client.get(BASE).status_code == 401
        assert client.post(BASE, json={}).status_code == 401

    def test_invalid_token_is_unauthenticated(self, client):
        res = client.get(BASE, headers={"Authorization": "Bearer not-a-jwt"})
        assert res.status_code == 401

    def test_user_without_roles_cannot_submit(self, client, make_user, auth, idea_payload):
        nobody = make_user("nobody@example.com")
        res = client.post(BASE, json=idea_payload(), headers=auth(nobody))
        assert res.status_code == 403
        assert res.get_json()["required"] == "submit.ideas"

    def test_inactive_user_is_unauthenticated(self, client, author, auth):
        headers = auth(author)
        author.status = "inactive"
        db.session.commit()
        assert client.get(BASE, headers=headers).status_code == 401


# ═════════════════════════════════════════════════════════════════════════════
# CREATE
# ═════════════════════════════════════════════════════════════════════════════

class TestCreateIdea:
    def test_create_goes_to_stage1(self, client, author, auth, idea_payload):
        data = _create(client, auth(author), idea_payload())
        assert data["status"] == "stage 1 review"
        assert data["current_revision_number"] == 1
        assert data["author"]["id"] == author.id
        assert re.fullmatch(r"[a-z0-9]{4}-[a-z0-9]{4}", data["slug"])
        assert AuditLog.query.filter_by(action="idea.create", entity_id=str(data["id"])).count() == 1

    def test_save_as_draft(self, client, author, auth, idea_payload):
        data = _create(client, auth(author), idea_payload(save_as_draft=True))
        assert data["status"] == "draft"

    def test_validation_errors_are_400(self, client, author, auth, idea_payload):
        res = client.post(BASE, json=idea_payload(idea_title="short", abstract="tiny"), headers=auth(author))
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_INVALID"
        assert {"idea_title", "abstract"} <= set(body["details"])

    def test_unknown_thematic_area_is_422(self, client, author, auth, idea_payload):
        res = client.post(BASE, json=idea_payload(thematic_area_id=9999), headers=auth(author))
        assert res.status_code == 422
        assert "thematic_area_id" in res.get_json()["details"]

    def test_team_members_saved(self, client, author, auth, idea_payload):
        members = [{"name": "Jo Smith", "email": "jo@example.com", "role": "Analyst"}]
        data = _create(client, auth(author), idea_payload(team_effort=True, team_members=members))
        assert [m["email"] for m in data["team_members"]] == ["jo@example.com"]

    def test_multipart_with_pdf(self, client, author, auth, idea_payload):
        form = idea_payload(original_idea_disclaimer="on")
        form["attachment"] = (io.BytesIO(b"%PDF-1.4 test"), "plan.pdf", "application/pdf")
        res = client.post(BASE, data=form, headers=auth(author), content_type="multipart/form-data")
        assert res.status_code == 201, res.get_json()
        data = res.get_json()
        assert data["has_attachment"] is True
        assert data["attachment_filename"] == "plan.pdf"

        download = client.get(f"{BASE}/{data['slug']}/attachment", headers=auth(author))
        assert download.status_code == 200
        assert download.data == b"%PDF-1.4 test"

    def test_multipart_rejects_non_pdf(self, client, author, auth, idea_payload):
        form = idea_payload()
        form["attachment"] = (io.BytesIO(b"hello"), "notes.txt", "text/plain")
        res = client.post(BASE, data=form, headers=auth(author), content_type="multipart/form-data")
        assert res.status_code == 400
        assert "attachment" in res.get_json()["details"]

    def test_plain_text_body_is_415(self, client, author, auth):
        res = client.post(BASE, data="hello", headers=auth(author), content_type="text/plain")
        assert res.status_code == 415


# ═════════════════════════════════════════════════════════════════════════════
# LIST & VIEW
# ═════════════════════════════════════════════════════════════════════════════

class TestListAndView:
    def test_mine_includes_drafts_public_does_not(self, client, author, other_author, auth, idea_payload):
        _create(client, auth(author), idea_payload(save_as_draft=True))
        _create(client, auth(author), idea_payload(idea_title="Submitted right away"))

        mine = client.get(BASE, headers=auth(author)).get_json()
        assert mine["total"] == 2

        public = client.get(f"{BASE}/public", headers=auth(other_author)).get_json()
        assert public["total"] == 1
        assert public["items"][0]["idea_title"] == "Submitted right away"
        assert public["items"][0]["likes_count"] == 0
        assert public["items"][0]["liked_by_me"] is False

    def test_filters_and_pagination(self, client, author, auth, idea_payload):
        for i in range(3):
            _create(client, auth(author), idea_payload(idea_title=f"Numbered idea {i}"))
        res = client.get(BASE, query_string={"q": "idea 1"}, headers=auth(author)).get_json()
        assert [i["idea_title"] for i in res["items"]] == ["Numbered idea 1"]

        page = client.get(f"{BASE}?limit=2&offset=0", headers=auth(author)).get_json()
        assert page["total"] == 3
        assert len(page["items"]) == 2

        drafts = client.get(f"{BASE}?status=draft", headers=auth(author)).get_json()
        assert drafts["total"] == 0

    def test_draft_hidden_from_others(self, client, author, other_author, admin, dd, auth, idea_payload):
        draft = _create(client, auth(author), idea_payload(save_as_draft=True))
        for viewer in (other_author, admin, dd):
            assert client.get(f"{BASE}/{draft['slug']}", headers=auth(viewer)).status_code == 404
        assert client.get(f"{BASE}/{draft['slug']}", headers=auth(author)).status_code == 200

    def test_detail_has_team_and_likes(self, client, author, auth, submitted_idea):
        data = client.get(f"{BASE}/{submitted_idea['slug']}", headers=auth(author)).get_json()
        assert data["team_members"] == []
        assert data["collaboration_members"] == []
        assert data["likes_count"] == 0

    def test_unknown_slug_404(self, client, author, auth):
        assert client.get(f"{BASE}/zzzz-0000", headers=auth(author)).status_code == 404

    def test_missing_attachment_404(self, client, author, auth, submitted_idea):
        res = client.get(f"{BASE}/{submitted_idea['slug']}/attachment", headers=auth(author))
        assert res.status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# UPDATE
# ═════════════════════════════════════════════════════════════════════════════

class TestUpdateIdea:
    def test_author_cannot_edit_during_review(self, client, author, auth, submitted_idea):
        res = client.put(
            f"{BASE}/{submitted_idea['slug']}", json={"idea_title": "A fresher title"}, headers=auth(author),
        )
        assert res.status_code == 403

    def test_partial_update_of_draft(self, client, author, auth, idea_payload):
        draft = _create(client, auth(author), idea_payload(save_as_draft=True))
        res = client.put(f"{BASE}/{draft['slug']}", json={"idea_title": "A fresher title"}, headers=auth(author))
        assert res.status_code == 200, res.get_json()
        data = res.get_json()
        assert data["idea_title"] == "A fresher title"
        assert data["abstract"] == draft["abstract"]
        assert data["status"] == "draft"

    def test_update_keeps_team_when_omitted(self, client, author, auth, idea_payload):
        members = [{"name": "Jo Smith", "email": "jo@example.com", "role": "Analyst"}]
        draft = _create(client, auth(author), idea_payload(save_as_draft=True, team_effort=True, team_members=members))
        res = client.put(f"{BASE}/{draft['slug']}", json={"idea_title": "Team idea renamed"}, headers=auth(author))
        assert res.status_code == 200, res.get_json()
        assert len(res.get_json()["team_members"]) == 1

    def test_update_replaces_team(self, client, author, auth, idea_payload):
        members = [{"name": "Jo Smith", "email": "jo@example.com", "role": "Analyst"}]
        draft = _create(client, auth(author), idea_payload(save_as_draft=True, team_effort=True, team_members=members))
        new_members = [
            {"name": "Al Green", "email": "al@example.com", "role": "Lead"},
            {"name": "Bea Blue", "email": "bea@example.com", "role": "Designer"},
        ]
        res = client.put(f"{BASE}/{draft['slug']}", json={"team_members": new_members}, headers=auth(author))
        assert [m["name"] for m in res.get_json()["team_members"]] == ["Al Green", "Bea Blue"]

    def test_other_user_cannot_edit(self, client, author, other_author, auth, idea_payload):
        draft = _create(client, auth(author), idea_payload(save_as_draft=True))
        # drafts are invisible to others, so the edit looks like a missing idea
        res = client.put(f"{BASE}/{draft['slug']}", json={"idea_title": "Hijacked title"}, headers=auth(other_author))
        assert res.status_code == 404

    def test_manager_can_edit_in_review(self, client, admin, auth, submitted_idea):
        res = client.put(
            f"{BASE}/{submitted_idea['slug']}", json={"idea_title": "Admin corrected"}, headers=auth(admin),
        )
        assert res.status_code == 200
        assert res.get_json()["status"] == "stage 1 review"

    def test_revise_with_lapsed_collaboration_deadline(self, client, author, auth, submitted_idea):
        idea = db.session.get(Idea, submitted_idea["id"])
        idea.status = STATUS_STAGE1_REVISE
        idea.collaboration_enabled = True
        idea.collaboration_deadline = date.today() - timedelta(days=3)
        db.session.commit()

        url = f"{BASE}/{submitted_idea['slug']}"
        res = client.put(url, json={"idea_title": "A revised title"}, headers=auth(author))
        assert res.status_code == 200, res.get_json()
        assert res.get_json()["idea_title"] == "A revised title"

        past = (date.today() - timedelta(days=1)).isoformat()
        res = client.put(url, json={"collaboration_deadline": past}, headers=auth(author))
        assert res.status_code == 400
        assert "future" in res.get_json()["details"]["collaboration_deadline"]


# ═════════════════════════════════════════════════════════════════════════════
# DELETE
# ═════════════════════════════════════════════════════════════════════════════

class TestDeleteIdea:
    def test_draft_is_hard_deleted(self, client, author, auth, idea_payload):
        draft = _create(client, auth(author), idea_payload(save_as_draft=True))
        res = client.delete(f"{BASE}/{draft['id']}", headers=auth(author))
        assert res.status_code == 200
        assert res.get_json()["mode"] == "hard"
        assert db.session.get(Idea, draft["id"]) is None

    def test_author_cannot_delete_in_review(self, client, author, auth, submitted_idea):
        assert client.delete(f"{BASE}/{submitted_idea['id']}", headers=auth(author)).status_code == 403

    def test_other_users_draft_is_404(self, client, author, other_author, admin, auth, idea_payload):
        draft = _create(client, auth(author), idea_payload(save_as_draft=True))
        for user in (other_author, admin):
            assert client.delete(f"{BASE}/{draft['id']}", headers=auth(user)).status_code == 404
        assert db.session.get(Idea, draft["id"]) is not None

    def test_manager_soft_deletes(self, client, author, admin, auth, submitted_idea):
        res = client.delete(f"{BASE}/{submitted_idea['id']}", headers=auth(admin))
        assert res.get_json()["mode"] == "soft"
        idea = db.session.get(Idea, submitted_idea["id"])
        assert idea is not None and idea.is_deleted
        assert client.get(f"{BASE}/{submitted_idea['slug']}", headers=auth(author)).status_code == 404
        assert client.get(BASE, headers=auth(author)).get_json()["total"] == 0

    def test_delete_selected(self, client, author, other_author, auth, idea_payload):
        mine = _create(client, auth(author), idea_payload(save_as_draft=True))
        in_review = _create(client, auth(author), idea_payload(idea_title="Already in review"))
        theirs = _create(client, auth(other_author), idea_payload(save_as_draft=True))

        res = client.post(
            f"{BASE}/delete-selected",
            json={"ids": [mine["id"], in_review["id"], theirs["id"], 9999]},
            headers=auth(author),
        )
        assert res.status_code == 200
        body = res.get_json()
        assert body["deleted"] == [mine["id"]]
        assert sorted(body["skipped"]) == sorted([in_review["id"], theirs["id"], 9999])

    def test_delete_selected_requires_ids(self, client, author, auth):
        res = client.post(f"{BASE}/delete-selected", json={"ids": []}, headers=auth(author))
        assert res.status_code == 400


# ═════════════════════════════════════════════════════════════════════════════
# SETTINGS, LIKES, COMMENTS
# ═════════════════════════════════════════════════════════════════════════════

class TestSettingsAndLikes:
    def test_owner_toggles(self, client, author, auth, submitted_idea):
        slug = submitted_idea["slug"]
        res = client.post(f"{BASE}/{slug}/toggle-comments", headers=auth(author))
        assert res.get_json() == {"slug": slug, "comments_enabled": False}
        res = client.post(f"{BASE}/{slug}/toggle-collaboration", headers=auth(author))
        assert res.get_json()["collaboration_enabled"] is True

    def test_non_owner_cannot_toggle(self, client, other_author, auth, submitted_idea):
        res = client.post(f"{BASE}/{submitted_idea['slug']}/toggle-comments", headers=auth(other_author))
        assert res.status_code == 403

    def test_like_unlike(self, client, other_author, auth, submitted_idea):
        url = f"{BASE}/{submitted_idea['slug']}/like"
        assert client.post(url, headers=auth(other_author)).get_json() == {"liked": True, "likes_count": 1}
        assert client.post(url, headers=auth(other_author)).get_json() == {"liked": False, "likes_count": 0}
        assert IdeaLike.query.count() == 0


class TestComments:
    def test_add_edit_delete(self, client, other_author, auth, submitted_idea):
        url = f"{BASE}/{submitted_idea['slug']}/comments"
        res = client.post(url, json={"content": "Love it"}, headers=auth(other_author))
        assert res.status_code == 201
        comment = res.get_json()

        res = client.put(f"{url}/{comment['id']}", json={"content": "Love it a lot"}, headers=auth(other_author))
        assert res.get_json()["content"] == "Love it a lot"

        res = client.delete(f"{url}/{comment['id']}", headers=auth(other_author))
        assert res.get_json()["content"] == "You deleted this comment"
        assert res.get_json()["is_deleted"] is True

        thread = client.get(url, headers=auth(other_author)).get_json()
        assert len(thread) == 1

        res = client.put(f"{url}/{comment['id']}", json={"content": "back again"}, headers=auth(other_author))
        assert res.status_code == 422

    def test_only_author_edits_comment(self, client, author, other_author, auth, submitted_idea):
        url = f"{BASE}/{submitted_idea['slug']}/comments"
        comment = client.post(url, json={"content": "First!"}, headers=auth(other_author)).get_json()
        res = client.put(f"{url}/{comment['id']}", json={"content": "Edited"}, headers=auth(author))
        assert res.status_code == 403

    def test_comments_disabled(self, client, author, other_author, make_user, auth, submitted_idea):
        slug = submitted_idea["slug"]
        client.post(f"{BASE}/{slug}/toggle-comments", headers=auth(author))
        url = f"{BASE}/{slug}/comments"
        assert client.post(url, json={"content": "Hi"}, headers=auth(other_author)).status_code == 403
        assert client.post(url, json={"content": "Owner note"}, headers=auth(author)).status_code == 201
        admin = make_user("second-admin@example.com", ROLE_ADMIN, ROLE_AUTHOR)
        assert client.post(url, json={"content": "Admin note"}, headers=auth(admin)).status_code == 201

    def test_comment_length(self, client, other_author, auth, submitted_idea):
        url = f"{BASE}/{submitted_idea['slug']}/comments"
        assert client.post(url, json={"content": "x" * 1001}, headers=auth(other_author)).status_code == 400
