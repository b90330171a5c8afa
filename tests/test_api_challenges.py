"""
Challenge API tests.

Tests cover:
  - Challenge CRUD and lifecycle (draft → active → closed, cancel)
  - Draft visibility, delete refused once submissions exist
  - Submissions: draft vs submit_now, one per user, closed challenges, edit gate
  - Reviews (stage labels "stage 1" / "stage 2"), DD decisions with explicit stage
  - Reviewer and DD dashboards (CHALLENGE_MIN_REVIEWS, decided-since-submitted rule)
"""

from datetime import datetime, timedelta, timezone

import pytest

from ideaportal.models import db
from ideaportal.models.auth import ROLE_CHALLENGE_REVIEWER
from ideaportal.models.challenge import Challenge, ChallengeSubmission

REVIEW = "Practical and cheap to pilot."


def _future(days=30):
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


def _challenge_body(**overrides):
    body = {
        "title": "Cut energy costs",
        "description": "Ideas to reduce the electricity bill of our buildings.",
        "deadline": _future(),
        "guidelines": "One page, with a rough cost estimate.",
        "reward": "Team lunch and a pilot budget",
    }
    body.update(overrides)
    return body


def _submission_body(**overrides):
    body = {
        "title": "LED retrofit",
        "description": "Replace fluorescent tubes with LEDs floor by floor.",
        "motivation": "Lower bills and less maintenance.",
        "original_disclaimer": "This is my own proposal.",
        "cost_of_implementation": "12500.00",
        "submit_now": True,
    }
    body.update(overrides)
    return body


@pytest.fixture()
def challenge(client, dd, auth):
    """An active challenge created by the Deputy Director."""
    res = client.post("/api/v1/challenges", json=_challenge_body(), headers=auth(dd))
    assert res.status_code == 201, res.get_json()
    cid = res.get_json()["id"]
    assert client.post(f"/api/v1/challenges/{cid}/activate", headers=auth(dd)).status_code == 200
    return res.get_json()


@pytest.fixture()
def submission(client, author, auth, challenge):
    """``author``'s submission, in stage 1 review."""
    res = client.post(f"/api/v1/challenges/{challenge['id']}/submissions", json=_submission_body(), headers=auth(author))
    assert res.status_code == 201, res.get_json()
    return res.get_json()


@pytest.fixture()
def challenge_reviewer(make_user):
    return make_user("expert@example.com", ROLE_CHALLENGE_REVIEWER, full_name="Exa Pert")


def _review(client, headers, submission_id, recommendation="approve", comments=REVIEW):
    return client.post(
        f"/api/v1/challenge-submissions/{submission_id}/reviews",
        json={"recommendation": recommendation, "comments": comments},
        headers=headers,
    )


def _decide(client, headers, submission_id, stage, decision="approve", **extra):
    body = {"stage": stage, "decision": decision, "compiled_comments": "Agreed."}
    body.update(extra)
    return client.post(f"/api/v1/challenge-submissions/{submission_id}/decision", json=body, headers=headers)


# ═════════════════════════════════════════════════════════════════════════════
# CHALLENGES
# ═════════════════════════════════════════════════════════════════════════════

class TestChallenges:
    def test_create_is_draft(self, client, dd, auth):
        res = client.post("/api/v1/challenges", json=_challenge_body(), headers=auth(dd))
        assert res.status_code == 201
        body = res.get_json()
        assert body["status"] == "draft"
        assert body["is_open"] is False
        assert body["creator"]["id"] == dd.id

    def test_create_requires_permission(self, client, author, auth):
        res = client.post("/api/v1/challenges", json=_challenge_body(), headers=auth(author))
        assert res.status_code == 403

    def test_deadline_must_be_future(self, client, dd, auth):
        past = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
        res = client.post("/api/v1/challenges", json=_challenge_body(deadline=past), headers=auth(dd))
        assert res.status_code == 400
        assert "deadline" in res.get_json()["details"]

    def test_draft_hidden_from_non_managers(self, client, dd, admin, author, auth):
        draft = client.post("/api/v1/challenges", json=_challenge_body(), headers=auth(dd)).get_json()
        assert client.get(f"/api/v1/challenges/{draft['id']}", headers=auth(author)).status_code == 404
        assert client.get(f"/api/v1/challenges/{draft['id']}", headers=auth(admin)).status_code == 200

    def test_lists(self, client, dd, author, auth, challenge):
        client.post("/api/v1/challenges", json=_challenge_body(title="Still a draft"), headers=auth(dd))

        managed = client.get("/api/v1/challenges", headers=auth(dd)).get_json()
        assert managed["total"] == 2

        public = client.get("/api/v1/challenges/public", headers=auth(author)).get_json()
        assert [c["id"] for c in public["items"]] == [challenge["id"]]
        assert public["items"][0]["submission_count"] == 0

        assert client.get("/api/v1/challenges", headers=auth(author)).status_code == 403

    def test_lifecycle(self, client, dd, auth, challenge):
        cid = challenge["id"]
        assert client.post(f"/api/v1/challenges/{cid}/activate", headers=auth(dd)).status_code == 409
        res = client.post(f"/api/v1/challenges/{cid}/close", headers=auth(dd))
        assert res.get_json()["status"] == "closed"
        assert client.post(f"/api/v1/challenges/{cid}/cancel", headers=auth(dd)).status_code == 409

    def test_cancel_draft(self, client, admin, auth):
        draft = client.post("/api/v1/challenges", json=_challenge_body(), headers=auth(admin)).get_json()
        res = client.post(f"/api/v1/challenges/{draft['id']}/cancel", headers=auth(admin))
        assert res.get_json()["status"] == "cancelled"

    def test_lifecycle_needs_manager(self, client, author, auth, challenge):
        assert client.post(f"/api/v1/challenges/{challenge['id']}/close", headers=auth(author)).status_code == 403

    def test_update(self, client, dd, author, auth, challenge):
        url = f"/api/v1/challenges/{challenge['id']}"
        res = client.put(url, json=_challenge_body(reward="Pilot budget"), headers=auth(dd))
        assert res.status_code == 200
        assert res.get_json()["reward"] == "Pilot budget"
        assert client.put(url, json=_challenge_body(), headers=auth(author)).status_code == 403

    def test_delete(self, client, dd, auth):
        draft = client.post("/api/v1/challenges", json=_challenge_body(), headers=auth(dd)).get_json()
        res = client.delete(f"/api/v1/challenges/{draft['id']}", headers=auth(dd))
        assert res.get_json() == {"deleted": True, "id": draft["id"]}
        assert db.session.get(Challenge, draft["id"]) is None

    def test_delete_refused_with_submissions(self, client, dd, auth, challenge, submission):
        res = client.delete(f"/api/v1/challenges/{challenge['id']}", headers=auth(dd))
        assert res.status_code == 409
        assert "submission" in res.get_json()["error"]


# ═════════════════════════════════════════════════════════════════════════════
# SUBMISSIONS
# ═════════════════════════════════════════════════════════════════════════════

class TestSubmissions:
    def test_submit_now(self, client, author, auth, submission):
        assert submission["status"] == "stage 1 review"
        assert submission["submitted_at"] is not None
        assert submission["cost_of_implementation"] == 12500.0
        assert submission["submitter"]["id"] == author.id

    def test_save_as_draft(self, client, author, auth, challenge):
        res = client.post(
            f"/api/v1/challenges/{challenge['id']}/submissions",
            json=_submission_body(submit_now=False), headers=auth(author),
        )
        assert res.get_json()["status"] == "draft"
        assert res.get_json()["submitted_at"] is None

    def test_one_submission_per_user(self, client, author, auth, challenge, submission):
        res = client.post(
            f"/api/v1/challenges/{challenge['id']}/submissions", json=_submission_body(), headers=auth(author),
        )
        assert res.status_code == 409

    def test_closed_challenge_refuses(self, client, dd, author, auth, challenge):
        client.post(f"/api/v1/challenges/{challenge['id']}/close", headers=auth(dd))
        res = client.post(
            f"/api/v1/challenges/{challenge['id']}/submissions", json=_submission_body(), headers=auth(author),
        )
        assert res.status_code == 409
        assert "no longer accepting" in res.get_json()["error"]

    def test_past_deadline_refuses(self, client, author, auth, challenge):
        row = db.session.get(Challenge, challenge["id"])
        row.deadline = datetime.now(timezone.utc) - timedelta(hours=1)
        db.session.commit()
        res = client.post(
            f"/api/v1/challenges/{challenge['id']}/submissions", json=_submission_body(), headers=auth(author),
        )
        assert res.status_code == 409

    def test_validation(self, client, author, auth, challenge):
        res = client.post(
            f"/api/v1/challenges/{challenge['id']}/submissions",
            json=_submission_body(motivation="", cost_of_implementation="-5"), headers=auth(author),
        )
        assert res.status_code == 400
        assert {"motivation", "cost_of_implementation"} <= set(res.get_json()["details"])

    def test_details_and_visibility(self, client, author, other_author, sme, auth, submission):
        url = f"/api/v1/challenge-submissions/{submission['id']}"
        mine = client.get(url, headers=auth(author)).get_json()
        assert mine["can_edit"] is False
        assert mine["can_review"] is False
        assert mine["challenge"]["title"] == "Cut energy costs"

        assert client.get(url, headers=auth(sme)).get_json()["can_review"] is True
        assert client.get(url, headers=auth(other_author)).status_code == 403

    def test_mine(self, client, author, auth, submission):
        mine = client.get("/api/v1/challenge-submissions/mine", headers=auth(author)).get_json()
        assert [s["id"] for s in mine] == [submission["id"]]

    def test_edit_draft_then_submit(self, client, author, auth, challenge):
        draft = client.post(
            f"/api/v1/challenges/{challenge['id']}/submissions",
            json=_submission_body(submit_now=False), headers=auth(author),
        ).get_json()
        url = f"/api/v1/challenge-submissions/{draft['id']}"
        res = client.put(url, json=_submission_body(title="LED retrofit, phase 1", submit_now=True), headers=auth(author))
        assert res.status_code == 200, res.get_json()
        assert res.get_json()["title"] == "LED retrofit, phase 1"
        assert res.get_json()["status"] == "stage 1 review"

    def test_edit_refused_in_review(self, client, author, auth, submission):
        res = client.put(
            f"/api/v1/challenge-submissions/{submission['id']}", json=_submission_body(), headers=auth(author),
        )
        assert res.status_code == 403


# ═════════════════════════════════════════════════════════════════════════════
# REVIEWS & DECISIONS
# ═════════════════════════════════════════════════════════════════════════════

class TestChallengeReviews:
    def test_stage1_reviewers(self, client, sme, challenge_reviewer, board, auth, submission):
        res = _review(client, auth(sme), submission["id"])
        assert res.status_code == 201, res.get_json()
        assert res.get_json()["review_stage"] == "stage 1"
        assert _review(client, auth(challenge_reviewer), submission["id"]).status_code == 201
        assert _review(client, auth(board), submission["id"]).status_code == 403

    def test_review_rules(self, client, author, sme, auth, submission):
        assert _review(client, auth(author), submission["id"]).status_code == 403
        assert _review(client, auth(sme), submission["id"], comments="Too short").status_code == 400
        assert _review(client, auth(sme), submission["id"]).status_code == 201
        assert _review(client, auth(sme), submission["id"]).status_code == 409

    def test_full_path(self, client, author, sme, board, dd, auth, submission):
        sid = submission["id"]
        _review(client, auth(sme), sid)
        res = _decide(client, auth(dd), sid, 1)
        assert res.status_code == 200, res.get_json()
        assert res.get_json()["new_status"] == "stage 2 review"

        assert _review(client, auth(board), sid).get_json()["review_stage"] == "stage 2"
        assert _decide(client, auth(dd), sid, 2).get_json()["new_status"] == "approved"

        row = db.session.get(ChallengeSubmission, sid)
        assert row.status == "approved"
        details = client.get(f"/api/v1/challenge-submissions/{sid}", headers=auth(author)).get_json()
        assert [d["review_stage"] for d in details["submission"]["decisions"]] == ["stage 1", "stage 2"]

    def test_stage_must_match(self, client, dd, auth, submission):
        res = _decide(client, auth(dd), submission["id"], 2)
        assert res.status_code == 409
        assert "not stage 2" in res.get_json()["error"]

    def test_stage_required(self, client, dd, auth, submission):
        res = client.post(
            f"/api/v1/challenge-submissions/{submission['id']}/decision",
            json={"decision": "approve", "compiled_comments": "ok"}, headers=auth(dd),
        )
        assert res.status_code == 400
        assert "stage" in res.get_json()["details"]

    def test_stage_label_form(self, client, sme, dd, auth, submission):
        sid = submission["id"]
        _review(client, auth(sme), sid)
        res = _decide(client, auth(dd), sid, "stage 3")
        assert res.status_code == 400
        assert "stage" in res.get_json()["details"]

        res = _decide(client, auth(dd), sid, "Stage 1")
        assert res.status_code == 200, res.get_json()
        assert res.get_json()["new_status"] == "stage 2 review"

    def test_non_object_body_is_400(self, client, dd, auth, submission):
        res = client.post(
            f"/api/v1/challenge-submissions/{submission['id']}/decision",
            json=[{"stage": 1, "decision": "approve"}], headers=auth(dd),
        )
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_decision_permission(self, client, sme, auth, submission):
        assert _decide(client, auth(sme), submission["id"], 1).status_code == 403

    def test_revise_and_resubmit(self, client, author, dd, auth, submission):
        sid = submission["id"]
        assert _decide(client, auth(dd), sid, 1, "revise").get_json()["new_status"] == "stage 1 revise"

        details = client.get(f"/api/v1/challenge-submissions/{sid}", headers=auth(author)).get_json()
        assert details["can_edit"] is True

        res = client.put(f"/api/v1/challenge-submissions/{sid}", json=_submission_body(), headers=auth(author))
        assert res.get_json()["status"] == "stage 1 review"


class TestChallengeDashboards:
    def test_reviewer_dashboard(self, client, sme, auth, submission):
        url = "/api/v1/challenge-reviews/dashboard/sme"
        body = client.get(url, headers=auth(sme)).get_json()
        assert body["stage"] == "stage 1"
        assert [s["id"] for s in body["pending"]] == [submission["id"]]
        assert body["stats"]["pending_reviews"] == 1

        _review(client, auth(sme), submission["id"])
        body = client.get(url, headers=auth(sme)).get_json()
        assert body["pending"] == []
        assert [s["id"] for s in body["reviewed"]] == [submission["id"]]
        assert body["stats"]["completed_reviews"] == 1
        assert body["stats"]["total_submissions"] == 1

    def test_dashboard_permission(self, client, author, auth):
        assert client.get("/api/v1/challenge-reviews/dashboard/board", headers=auth(author)).status_code == 403
        assert client.get("/api/v1/challenge-reviews/dashboard/dd", headers=auth(author)).status_code == 403

    def test_dd_needs_minimum_reviews(self, client, sme, challenge_reviewer, dd, auth, submission):
        url = "/api/v1/challenge-reviews/dashboard/dd"
        _review(client, auth(sme), submission["id"])
        assert client.get(url, headers=auth(dd)).get_json()["stage1_pending"] == []

        _review(client, auth(challenge_reviewer), submission["id"])
        body = client.get(url, headers=auth(dd)).get_json()
        assert [s["id"] for s in body["stage1_pending"]] == [submission["id"]]
        assert body["stage1_pending"][0]["review_count"] == 2
        assert body["stats"]["stage1_pending"] == 1

    def test_decided_submission_leaves_queue(self, client, author, sme, challenge_reviewer, dd, auth, submission):
        url = "/api/v1/challenge-reviews/dashboard/dd"
        sid = submission["id"]
        _review(client, auth(sme), sid)
        _review(client, auth(challenge_reviewer), sid)
        _decide(client, auth(dd), sid, 1, "revise")

        body = client.get(url, headers=auth(dd)).get_json()
        assert body["stage1_pending"] == []
        assert [s["id"] for s in body["completed"]] == [sid]
        assert body["stats"]["decisions_made"] == 1

        # resubmitted after the decision: ready again on the existing reviews
        client.put(f"/api/v1/challenge-submissions/{sid}", json=_submission_body(), headers=auth(author))
        body = client.get(url, headers=auth(dd)).get_json()
        assert [s["id"] for s in body["stage1_pending"]] == [sid]
