"""
Review Workflow Engine — the two-stage review state machine.

Shared by ideas and challenge submissions. Every status change goes
through the tables in ``ideaportal.models.workflow``:

    DECISION_TRANSITIONS   (stage, decision) → new status   (Deputy Director)
    RESUBMIT_TRANSITIONS   status → review status           (author)

Anything not in a table raises ``TransitionError``; there is no fallback
status. Reviews and decisions are appended with ``flush`` so the calling
service owns the transaction; the decision row and the status change are
always written in the same unit of work.

Usage:
    from ideaportal.services import review_workflow as wf

    wf.validate_decision(idea.status, "approve")
    # {"valid": True, "from": "stage 1 review", "to": "stage 2 review", "stage": 1, "reason": None}

    decision = wf.record_decision(idea, dd_user, "approve", compiled_comments="...")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from ideaportal.core.exceptions import ConflictError, PermissionDenied, TransitionError
from ideaportal.models import db
from ideaportal.models.auth import ROLE_BOARD, ROLE_CHALLENGE_REVIEWER, ROLE_SME
from ideaportal.models.challenge import (
    ChallengeSubmission,
    ChallengeSubmissionReview,
    ChallengeSubmissionReviewDecision,
)
from ideaportal.models.idea import Idea
from ideaportal.models.review import IdeaReview, IdeaReviewDecision
from ideaportal.models.workflow import (
    CHALLENGE_STAGE_LABELS,
    DECISION_TRANSITIONS,
    DECISIONS,
    IDEA_STAGE_LABELS,
    RESUBMIT_TRANSITIONS,
    REVISION_BUMP_STATUSES,
    STAGE_BY_STATUS,
)
from ideaportal.services.permission_service import has_role

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Review tracks: what differs between ideas and challenge submissions
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ReviewTrack:
    entity: str
    model: type
    review_model: type
    decision_model: type
    fk: str
    stage_labels: dict
    reviewer_roles: dict
    bumps_revision: bool

    def stage_label(self, stage: int) -> str:
        return self.stage_labels[stage]


IDEA_TRACK = ReviewTrack(
    entity="idea",
    model=Idea,
    review_model=IdeaReview,
    decision_model=IdeaReviewDecision,
    fk="idea_id",
    stage_labels=IDEA_STAGE_LABELS,
    reviewer_roles={1: (ROLE_SME,), 2: (ROLE_BOARD,)},
    bumps_revision=True,
)

CHALLENGE_TRACK = ReviewTrack(
    entity="challenge_submission",
    model=ChallengeSubmission,
    review_model=ChallengeSubmissionReview,
    decision_model=ChallengeSubmissionReviewDecision,
    fk="challenge_submission_id",
    stage_labels=CHALLENGE_STAGE_LABELS,
    reviewer_roles={1: (ROLE_SME, ROLE_CHALLENGE_REVIEWER), 2: (ROLE_BOARD,)},
    bumps_revision=False,
)


def track_for(obj) -> ReviewTrack:
    if isinstance(obj, Idea):
        return IDEA_TRACK
    if isinstance(obj, ChallengeSubmission):
        return CHALLENGE_TRACK
    raise TypeError(f"{type(obj).__name__} is not reviewable")


# ═════════════════════════════════════════════════════════════════════════════
# Pure table lookups
# ═════════════════════════════════════════════════════════════════════════════

def stage_for_status(status: str | None) -> int | None:
    """1 for 'stage 1 review', 2 for 'stage 2 review', else None."""
    return STAGE_BY_STATUS.get(status)


def determine_new_status(stage: int, decision: str) -> str:
    """Look up the status a DD decision leads to. Raises TransitionError."""
    new_status = DECISION_TRANSITIONS.get((stage, decision))
    if new_status is None:
        raise TransitionError(
            "submission", decision, None,
            f"no transition for stage={stage!r} decision={decision!r}",
        )
    return new_status


def validate_decision(status: str, decision: str) -> dict:
    """
    Validate whether a DD decision is legal from ``status``.

    Returns:
        {"valid": bool, "from": str, "to": str|None, "stage": int|None, "reason": str|None}
    """
    if decision not in DECISIONS:
        return {"valid": False, "from": status, "to": None, "stage": None,
                "reason": f"Unknown decision: {decision}"}

    stage = stage_for_status(status)
    if stage is None:
        return {"valid": False, "from": status, "to": None, "stage": None,
                "reason": f"Cannot decide from status '{status}'"}

    return {"valid": True, "from": status, "to": DECISION_TRANSITIONS[(stage, decision)],
            "stage": stage, "reason": None}


def available_decisions(status: str) -> list[dict]:
    """Decisions legal from ``status`` with their target status."""
    stage = stage_for_status(status)
    if stage is None:
        return []
    return [
        {"decision": d, "to": DECISION_TRANSITIONS[(stage, d)]}
        for d in DECISIONS
    ]


def resubmit_target(status: str) -> str:
    """Review status an author resubmission leads to. Raises TransitionError."""
    target = RESUBMIT_TRANSITIONS.get(status)
    if target is None:
        raise TransitionError("submission", "resubmit", status, "only drafts and revisions can be submitted")
    return target


def increments_revision(new_status: str) -> bool:
    return new_status in REVISION_BUMP_STATUSES


# ═════════════════════════════════════════════════════════════════════════════
# Reviewer guards
# ═════════════════════════════════════════════════════════════════════════════

def has_reviewed(obj, user_id: int, stage: int) -> bool:
    track = track_for(obj)
    rm = track.review_model
    return db.session.query(
        rm.query.filter(
            getattr(rm, track.fk) == obj.id,
            rm.reviewer_id == user_id,
            rm.review_stage == track.stage_label(stage),
        ).exists()
    ).scalar()


def review_block_reason(obj, user) -> str | None:
    """Why ``user`` may not review ``obj`` right now, or None if they may."""
    if obj.owner_id == user.id:
        return "authors cannot review their own submission"
    stage = stage_for_status(obj.status)
    if stage is None:
        return f"status '{obj.status}' is not under review"
    if has_reviewed(obj, user.id, stage):
        return f"already reviewed at stage {stage}"
    track = track_for(obj)
    if not has_role(user.id, *track.reviewer_roles[stage]):
        return f"stage {stage} reviews require role {' or '.join(track.reviewer_roles[stage])}"
    return None


def can_be_reviewed_by(obj, user) -> bool:
    return review_block_reason(obj, user) is None


# ═════════════════════════════════════════════════════════════════════════════
# Writes (flush only, caller commits)
# ═════════════════════════════════════════════════════════════════════════════

def lock_for_update(model, pk):
    """Load a row with SELECT … FOR UPDATE (no-op on SQLite)."""
    return db.session.query(model).filter(model.id == pk).with_for_update().first()


def record_review(obj, reviewer, recommendation: str, comments: str):
    """
    Append a reviewer recommendation for the submission's current stage.

    Raises:
        PermissionDenied: reviewer fails ``can_be_reviewed_by``
        ConflictError: reviewer already reviewed this stage
    """
    track = track_for(obj)
    stage = stage_for_status(obj.status)
    if stage is not None and has_reviewed(obj, reviewer.id, stage):
        raise ConflictError(track.review_model.__name__, "reviewer_id/review_stage",
                            f"{reviewer.id}/{track.stage_label(stage)}")

    reason = review_block_reason(obj, reviewer)
    if reason:
        raise PermissionDenied("review", reason, user_id=reviewer.id)

    review = track.review_model(
        reviewer_id=reviewer.id,
        review_stage=track.stage_label(stage),
        recommendation=recommendation,
        comments=comments,
    )
    setattr(review, track.fk, obj.id)
    db.session.add(review)
    try:
        db.session.flush()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(track.review_model.__name__, "reviewer_id/review_stage",
                            f"{reviewer.id}/{track.stage_label(stage)}") from exc

    logger.info(
        "Review recorded on %s %s stage=%s by user %s: %s",
        track.entity, obj.id, stage, reviewer.id, recommendation,
        extra={"event_type": "review.submit", "entity_type": track.entity, "entity_id": obj.id},
    )
    return review


def record_decision(obj, deputy_director, decision: str, compiled_comments: str,
                    dd_comments: str | None = None, *, expected_stage: int | None = None):
    """
    Append the Deputy Director's decision and apply the status transition.

    ``expected_stage`` guards against deciding on a stage the submission has
    already left (a second decision for the same stage visit is refused
    because the status no longer matches).

    Raises:
        TransitionError: decision not legal from the current status
    """
    track = track_for(obj)
    validation = validate_decision(obj.status, decision)
    if not validation["valid"]:
        raise TransitionError(track.entity, decision, obj.status, validation["reason"])
    stage = validation["stage"]
    if expected_stage is not None and expected_stage != stage:
        raise TransitionError(
            track.entity, decision, obj.status,
            f"submission is at stage {stage}, not stage {expected_stage}",
        )

    previous_status = obj.status
    new_status = validation["to"]

    row = track.decision_model(
        deputy_director_id=deputy_director.id,
        review_stage=track.stage_label(stage),
        decision=decision,
        compiled_comments=compiled_comments,
        dd_comments=dd_comments,
        previous_status=previous_status,
        new_status=new_status,
        decided_at=datetime.now(timezone.utc),
    )
    setattr(row, track.fk, obj.id)
    db.session.add(row)

    obj.status = new_status
    if track.bumps_revision and increments_revision(new_status):
        obj.current_revision_number = (obj.current_revision_number or 0) + 1
    db.session.flush()

    logger.info(
        "Decision on %s %s: %s (%s → %s) by user %s",
        track.entity, obj.id, decision, previous_status, new_status, deputy_director.id,
        extra={"event_type": "review.decide", "entity_type": track.entity, "entity_id": obj.id},
    )
    return row


def resubmit(obj) -> tuple[str, str]:
    """Move a draft / revision back into review. Returns (previous, new)."""
    previous = obj.status
    obj.status = resubmit_target(previous)
    db.session.flush()
    return previous, obj.status


# ═════════════════════════════════════════════════════════════════════════════
# Read helpers
# ═════════════════════════════════════════════════════════════════════════════

def reviews_by_stage(obj) -> dict:
    """{"stage1": [...], "stage2": [...]} (keys use the track's labels)."""
    track = track_for(obj)
    rm = track.review_model
    out = {}
    for stage, label in track.stage_labels.items():
        rows = (
            rm.query.filter(getattr(rm, track.fk) == obj.id, rm.review_stage == label)
            .order_by(rm.created_at.asc(), rm.id.asc())
            .all()
        )
        out[f"stage{stage}"] = [r.to_dict() for r in rows]
    return out


def decisions_for(obj) -> list[dict]:
    track = track_for(obj)
    dm = track.decision_model
    rows = (
        dm.query.filter(getattr(dm, track.fk) == obj.id)
        .order_by(dm.decided_at.asc(), dm.id.asc())
        .all()
    )
    return [r.to_dict() for r in rows]
