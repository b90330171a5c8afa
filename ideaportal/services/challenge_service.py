"""
Challenge Service — challenges and the submissions made against them.

Challenge lifecycle (manager actions, see ``CHALLENGE_TRANSITIONS``):
    draft → active → closed
    draft | active → cancelled

Submissions share the idea review workflow: a submission sent with
``submit_now`` enters ``stage 1 review``; a revised submission goes back
through ``review_workflow.resubmit``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from ideaportal.core.exceptions import ConflictError, NotFoundError, PermissionDenied, TransitionError
from ideaportal.models import db
from ideaportal.models.audit import write_audit
from ideaportal.models.challenge import (
    CHALLENGE_ACTIVE,
    CHALLENGE_DRAFT,
    CHALLENGE_TRANSITIONS,
    Challenge,
    ChallengeSubmission,
)
from ideaportal.models.workflow import STATUS_DRAFT
from ideaportal.services import review_workflow as wf
from ideaportal.services.permission_service import has_permission
from ideaportal.services.policy import allows, authorize

logger = logging.getLogger(__name__)

CHALLENGE_FIELDS = ("title", "description", "deadline", "guidelines", "reward")
SUBMISSION_FIELDS = ("title", "description", "motivation", "cost_of_implementation", "original_disclaimer")


def _set_attachment(obj, upload: dict | None) -> None:
    obj.attachment = upload["content"] if upload else None
    obj.attachment_filename = upload["filename"] if upload else None
    obj.attachment_mime = upload["mime"] if upload else None
    obj.attachment_size = upload["size"] if upload else None


# ═════════════════════════════════════════════════════════════════════════════
# Challenges
# ═════════════════════════════════════════════════════════════════════════════

def get_challenge(challenge_id: int) -> Challenge:
    challenge = db.session.get(Challenge, challenge_id)
    if challenge is None:
        raise NotFoundError("Challenge", challenge_id)
    return challenge


def get_visible_challenge(challenge_id: int, user) -> Challenge:
    """Draft challenges exist only for the managers preparing them."""
    challenge = get_challenge(challenge_id)
    if challenge.status == CHALLENGE_DRAFT and not allows("manage-challenge", user, challenge):
        raise NotFoundError("Challenge", challenge_id)
    return challenge


def create_challenge(user, data: dict, attachment: dict | None = None) -> Challenge:
    challenge = Challenge(created_by=user.id, status=CHALLENGE_DRAFT,
                          **{f: data[f] for f in CHALLENGE_FIELDS})
    if attachment:
        _set_attachment(challenge, attachment)
    db.session.add(challenge)
    db.session.flush()
    logger.info("Challenge %s created by user %s", challenge.id, user.id)
    return challenge


def update_challenge(challenge: Challenge, user, data: dict, attachment: dict | None = None,
                     remove_attachment: bool = False) -> Challenge:
    authorize("manage-challenge", user, challenge)
    for field in CHALLENGE_FIELDS:
        setattr(challenge, field, data[field])
    if attachment:
        _set_attachment(challenge, attachment)
    elif remove_attachment:
        _set_attachment(challenge, None)
    db.session.flush()
    return challenge


def delete_challenge(challenge: Challenge, user) -> None:
    authorize("manage-challenge", user, challenge)
    count = challenge.submissions.count()
    if count:
        raise TransitionError("challenge", "delete", challenge.status,
                              f"challenge has {count} submission(s)")
    db.session.delete(challenge)
    db.session.flush()
    logger.info("Challenge %s deleted by user %s", challenge.id, user.id)


def change_status(challenge: Challenge, user, action: str) -> Challenge:
    """Apply a lifecycle action (activate / close / cancel)."""
    authorize("manage-challenge", user, challenge)
    rule = CHALLENGE_TRANSITIONS.get(action)
    if rule is None:
        raise TransitionError("challenge", action, challenge.status, "unknown action")
    if challenge.status not in rule["from"]:
        raise TransitionError(
            "challenge", action, challenge.status,
            f"allowed from: {', '.join(rule['from'])}",
        )
    previous = challenge.status
    challenge.status = rule["to"]
    db.session.flush()
    write_audit(
        entity_type="challenge", entity_id=challenge.id, action=f"challenge.{action}",
        actor_user_id=user.id, diff={"status": {"old": previous, "new": challenge.status}},
    )
    logger.info(
        "Challenge %s %s → %s by user %s", challenge.id, previous, challenge.status, user.id,
        extra={"event_type": f"challenge.{action}", "entity_type": "challenge", "entity_id": challenge.id},
    )
    return challenge


def list_challenges():
    """Manager view: every challenge, newest first."""
    return Challenge.query.order_by(Challenge.created_at.desc(), Challenge.id.desc())


def list_public_challenges():
    """Active challenges, closest deadline first."""
    return (
        Challenge.query.filter(Challenge.status == CHALLENGE_ACTIVE)
        .order_by(Challenge.deadline.asc(), Challenge.id.asc())
    )


def attachment_for(obj):
    if obj.attachment is None:
        raise NotFoundError("Attachment", obj.id)
    return obj


# ═════════════════════════════════════════════════════════════════════════════
# Submissions
# ═════════════════════════════════════════════════════════════════════════════

def get_submission(submission_id: int) -> ChallengeSubmission:
    submission = db.session.get(ChallengeSubmission, submission_id)
    if submission is None:
        raise NotFoundError("ChallengeSubmission", submission_id)
    return submission


def submit(challenge: Challenge, user, data: dict, attachment: dict | None = None,
           submit_now: bool = False) -> ChallengeSubmission:
    """Create the user's (single) submission to ``challenge``."""
    if not challenge.is_open:
        raise TransitionError("challenge", "submit", challenge.status,
                              "This challenge is no longer accepting submissions")
    if challenge.submissions.filter(ChallengeSubmission.submitted_by == user.id).first():
        raise ConflictError("ChallengeSubmission", "challenge_id/submitted_by", f"{challenge.id}/{user.id}")

    submission = ChallengeSubmission(
        challenge_id=challenge.id,
        submitted_by=user.id,
        status=STATUS_DRAFT,
        **{f: data[f] for f in SUBMISSION_FIELDS},
    )
    if attachment:
        _set_attachment(submission, attachment)
    db.session.add(submission)
    try:
        db.session.flush()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("ChallengeSubmission", "challenge_id/submitted_by",
                            f"{challenge.id}/{user.id}") from exc

    if submit_now:
        _send_to_review(submission, user)
    return submission


def _send_to_review(submission: ChallengeSubmission, user) -> None:
    previous, new = wf.resubmit(submission)
    submission.submitted_at = datetime.now(timezone.utc)
    db.session.flush()
    write_audit(
        entity_type="challenge_submission", entity_id=submission.id, action="submission.submit",
        actor_user_id=user.id, diff={"status": {"old": previous, "new": new}},
    )
    logger.info(
        "Challenge submission %s sent to review by user %s (%s → %s)", submission.id, user.id, previous, new,
        extra={"event_type": "submission.submit", "entity_type": "challenge_submission",
               "entity_id": submission.id},
    )


def update_submission(submission: ChallengeSubmission, user, data: dict, attachment: dict | None = None,
                      remove_attachment: bool = False, submit_now: bool = False) -> ChallengeSubmission:
    authorize("edit-challenge-submission", user, submission)
    for field in SUBMISSION_FIELDS:
        setattr(submission, field, data[field])
    if attachment:
        _set_attachment(submission, attachment)
    elif remove_attachment:
        _set_attachment(submission, None)
    db.session.flush()

    if submit_now:
        _send_to_review(submission, user)
    return submission


def my_submissions(user) -> list[ChallengeSubmission]:
    return (
        ChallengeSubmission.query.filter_by(submitted_by=user.id)
        .order_by(ChallengeSubmission.created_at.desc(), ChallengeSubmission.id.desc())
        .all()
    )


def get_visible_submission(submission_id: int, user) -> ChallengeSubmission:
    """The submitter and challenge reviewers may read a submission."""
    submission = get_submission(submission_id)
    if submission.submitted_by != user.id and not has_permission(user.id, "review.challenge-submissions"):
        raise PermissionDenied("view-submission", user_id=user.id)
    return submission


def submission_details(submission_id: int, user) -> dict:
    submission = get_visible_submission(submission_id, user)
    d = submission.to_dict()
    d["reviews"] = wf.reviews_by_stage(submission)
    d["decisions"] = wf.decisions_for(submission)
    d["available_decisions"] = wf.available_decisions(submission.status)
    return {
        "submission": d,
        "challenge": submission.challenge.to_dict(),
        "can_edit": allows("edit-challenge-submission", user, submission),
        "can_review": wf.can_be_reviewed_by(submission, user),
    }
