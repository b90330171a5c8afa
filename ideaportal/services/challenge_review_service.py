"""
Challenge Submission Review Service.

Same engine as idea reviews (``review_workflow.CHALLENGE_TRACK``); stage
labels on the rows are ``stage 1`` / ``stage 2``. A submission is ready
for a DD decision once it has CHALLENGE_MIN_REVIEWS reviews at its stage
and no decision at that stage since it was last submitted.
"""

from __future__ import annotations

import logging
from datetime import timezone

from flask import current_app
from sqlalchemy import func, select

from ideaportal.core.exceptions import NotFoundError
from ideaportal.models import db
from ideaportal.models.audit import write_audit
from ideaportal.models.auth import ROLE_DEPUTY_DIRECTOR
from ideaportal.models.challenge import (
    ChallengeSubmission,
    ChallengeSubmissionReview,
    ChallengeSubmissionReviewDecision,
)
from ideaportal.models.workflow import (
    STATUS_APPROVED,
    STATUS_REJECTED,
    STATUS_STAGE1_REVIEW,
    STATUS_STAGE1_REVISE,
    STATUS_STAGE2_REVIEW,
    STATUS_STAGE2_REVISE,
)
from ideaportal.services import review_workflow as wf
from ideaportal.services.notification import NotificationService

logger = logging.getLogger(__name__)

TRACK = wf.CHALLENGE_TRACK
RECENT_LIMIT = 10

REVIEW_STATUS_BY_STAGE = {1: STATUS_STAGE1_REVIEW, 2: STATUS_STAGE2_REVIEW}

# Statuses counted as "seen by" each stage's reviewers
_STAGE_TOTAL_STATUSES = {
    1: (STATUS_STAGE1_REVIEW, STATUS_STAGE2_REVIEW, STATUS_APPROVED, STATUS_REJECTED),
    2: (STATUS_STAGE2_REVIEW, STATUS_APPROVED, STATUS_REJECTED),
}
_DECIDED_STATUSES = (STATUS_APPROVED, STATUS_REJECTED, STATUS_STAGE1_REVISE, STATUS_STAGE2_REVISE)


def _as_aware(value):
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _locked_submission(submission_id: int) -> ChallengeSubmission:
    submission = wf.lock_for_update(ChallengeSubmission, submission_id)
    if submission is None:
        raise NotFoundError("ChallengeSubmission", submission_id)
    return submission


# ═════════════════════════════════════════════════════════════════════════════
# Writes
# ═════════════════════════════════════════════════════════════════════════════

def submit_review(submission_id: int, reviewer, recommendation: str, comments: str) -> ChallengeSubmissionReview:
    submission = _locked_submission(submission_id)
    review = wf.record_review(submission, reviewer, recommendation, comments)
    write_audit(
        entity_type="challenge_submission", entity_id=submission.id, action="review.submit",
        actor_user_id=reviewer.id,
        diff={"review_stage": review.review_stage, "recommendation": recommendation},
    )
    NotificationService.notify_role(
        ROLE_DEPUTY_DIRECTOR,
        title=f"New {review.review_stage} review on submission '{submission.title}'",
        message=f"{reviewer.full_name} recommended '{recommendation}'.",
        category="review",
        entity_type="challenge_submission",
        entity_id=submission.id,
        exclude=[reviewer.id],
    )
    return review


def make_decision(submission_id: int, deputy_director, stage: int, decision: str,
                  compiled_comments: str, dd_comments: str | None = None) -> dict:
    """DD decision on a challenge submission; ``stage`` must be its current stage."""
    submission = _locked_submission(submission_id)
    row = wf.record_decision(
        submission, deputy_director, decision, compiled_comments, dd_comments, expected_stage=stage,
    )
    write_audit(
        entity_type="challenge_submission", entity_id=submission.id, action="review.decide",
        actor_user_id=deputy_director.id,
        diff={
            "review_stage": row.review_stage,
            "decision": decision,
            "status": {"old": row.previous_status, "new": row.new_status},
        },
    )
    NotificationService.notify(
        recipient_ids=[submission.submitted_by],
        title=f"Decision on submission '{submission.title}': {decision}",
        message=f"Your submission moved from '{row.previous_status}' to '{row.new_status}'.",
        category="decision",
        severity="success" if decision == "approve" else "info",
        entity_type="challenge_submission",
        entity_id=submission.id,
    )
    return {"new_status": row.new_status, "previous_status": row.previous_status, "decision": decision}


# ═════════════════════════════════════════════════════════════════════════════
# Dashboards
# ═════════════════════════════════════════════════════════════════════════════

def reviewer_dashboard(user, stage: int) -> dict:
    """SME (stage 1) or Board (stage 2) view of challenge submissions."""
    label = TRACK.stage_label(stage)
    reviewed_ids = select(ChallengeSubmissionReview.challenge_submission_id).where(
        ChallengeSubmissionReview.reviewer_id == user.id,
        ChallengeSubmissionReview.review_stage == label,
    )
    pending = (
        ChallengeSubmission.query.filter(
            ChallengeSubmission.status == REVIEW_STATUS_BY_STAGE[stage],
            ChallengeSubmission.submitted_by != user.id,
            ~ChallengeSubmission.id.in_(reviewed_ids),
        )
        .order_by(ChallengeSubmission.submitted_at.asc(), ChallengeSubmission.id.asc())
        .all()
    )
    reviewed = (
        ChallengeSubmission.query.filter(ChallengeSubmission.id.in_(reviewed_ids))
        .order_by(ChallengeSubmission.updated_at.desc(), ChallengeSubmission.id.desc())
        .limit(RECENT_LIMIT)
        .all()
    )
    stats = {
        "pending_reviews": len(pending),
        "completed_reviews": ChallengeSubmissionReview.query.filter_by(
            reviewer_id=user.id, review_stage=label,
        ).count(),
        "total_submissions": ChallengeSubmission.query.filter(
            ChallengeSubmission.status.in_(_STAGE_TOTAL_STATUSES[stage])
        ).count(),
    }
    return {
        "stage": label,
        "pending": [s.to_dict() for s in pending],
        "reviewed": [s.to_dict() for s in reviewed],
        "stats": stats,
    }


def ready_for_decision(stage: int) -> list[dict]:
    label = TRACK.stage_label(stage)
    minimum = current_app.config["CHALLENGE_MIN_REVIEWS"]

    candidates = (
        ChallengeSubmission.query.filter(ChallengeSubmission.status == REVIEW_STATUS_BY_STAGE[stage])
        .order_by(ChallengeSubmission.submitted_at.asc(), ChallengeSubmission.id.asc())
        .all()
    )
    if not candidates:
        return []
    ids = [s.id for s in candidates]
    counts = dict(
        db.session.query(ChallengeSubmissionReview.challenge_submission_id, func.count(ChallengeSubmissionReview.id))
        .filter(
            ChallengeSubmissionReview.challenge_submission_id.in_(ids),
            ChallengeSubmissionReview.review_stage == label,
        )
        .group_by(ChallengeSubmissionReview.challenge_submission_id)
        .all()
    )
    last_decided = dict(
        db.session.query(
            ChallengeSubmissionReviewDecision.challenge_submission_id,
            func.max(ChallengeSubmissionReviewDecision.decided_at),
        )
        .filter(
            ChallengeSubmissionReviewDecision.challenge_submission_id.in_(ids),
            ChallengeSubmissionReviewDecision.review_stage == label,
        )
        .group_by(ChallengeSubmissionReviewDecision.challenge_submission_id)
        .all()
    )

    ready = []
    for s in candidates:
        n = counts.get(s.id, 0)
        if n < minimum:
            continue
        decided_at = _as_aware(last_decided.get(s.id))
        submitted_at = _as_aware(s.submitted_at)
        if decided_at is not None and (submitted_at is None or decided_at >= submitted_at):
            continue
        d = s.to_dict()
        d["review_count"] = n
        d["reviews"] = wf.reviews_by_stage(s)[f"stage{stage}"]
        ready.append(d)
    return ready


def dd_dashboard(user) -> dict:
    stage1 = ready_for_decision(1)
    stage2 = ready_for_decision(2)
    completed = (
        ChallengeSubmission.query.filter(ChallengeSubmission.status.in_(_DECIDED_STATUSES))
        .order_by(ChallengeSubmission.updated_at.desc(), ChallengeSubmission.id.desc())
        .limit(RECENT_LIMIT)
        .all()
    )
    stats = {
        "stage1_pending": len(stage1),
        "stage2_pending": len(stage2),
        "decisions_made": ChallengeSubmissionReviewDecision.query.filter_by(
            deputy_director_id=user.id,
        ).count(),
        "total_processed": ChallengeSubmission.query.filter(
            ChallengeSubmission.status.in_((STATUS_APPROVED, STATUS_REJECTED))
        ).count(),
    }
    return {
        "stage1_pending": stage1,
        "stage2_pending": stage2,
        "completed": [dict(s.to_dict(), decisions=wf.decisions_for(s)) for s in completed],
        "stats": stats,
    }
