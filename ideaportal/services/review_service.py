"""
Idea Review Service — reviewer recommendations, DD decisions and dashboards.

Status changes go through ``review_workflow``; this module adds the
idea-specific surroundings: row locking, audit rows, notifications and
the dashboard queries.

DD "ready for decision" rule (per stage):
    at least one review of that stage, AND
    reviews ≥ REVIEW_QUORUM_RATIO × active holders of the stage's reviewer role
    OR the idea was last updated more than REVIEW_STALE_DAYS days ago.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy import func, select

from ideaportal.core.exceptions import NotFoundError, PermissionDenied
from ideaportal.models import db
from ideaportal.models.audit import write_audit
from ideaportal.models.auth import ROLE_ADMIN, ROLE_DEPUTY_DIRECTOR
from ideaportal.models.idea import Idea
from ideaportal.models.review import IdeaReview
from ideaportal.models.workflow import (
    REVIEW_STATUSES,
    REVISE_STATUSES,
    STATUS_STAGE1_REVIEW,
    STATUS_STAGE1_REVISE,
    STATUS_STAGE2_REVIEW,
    STATUS_STAGE2_REVISE,
)
from ideaportal.services import review_workflow as wf
from ideaportal.services.notification import NotificationService
from ideaportal.services.permission_service import count_role_holders, has_role
from ideaportal.services.policy import authorize

logger = logging.getLogger(__name__)

REVIEW_STATUS_BY_STAGE = {1: STATUS_STAGE1_REVIEW, 2: STATUS_STAGE2_REVIEW}
REVISE_STATUS_BY_STAGE = {1: STATUS_STAGE1_REVISE, 2: STATUS_STAGE2_REVISE}


def _as_aware(value):
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _locked_idea(idea_id: int) -> Idea:
    idea = wf.lock_for_update(Idea, idea_id)
    if idea is None or idea.is_deleted:
        raise NotFoundError("Idea", idea_id)
    return idea


# ═════════════════════════════════════════════════════════════════════════════
# Writes
# ═════════════════════════════════════════════════════════════════════════════

def submit_review(idea_id: int, reviewer, recommendation: str, comments: str) -> IdeaReview:
    """Record a reviewer's recommendation at the idea's current stage."""
    idea = _locked_idea(idea_id)
    review = wf.record_review(idea, reviewer, recommendation, comments)

    write_audit(
        entity_type="idea", entity_id=idea.id, action="review.submit", actor_user_id=reviewer.id,
        diff={"review_stage": review.review_stage, "recommendation": recommendation},
    )
    NotificationService.notify_role(
        ROLE_DEPUTY_DIRECTOR,
        title=f"New {review.review_stage} review on '{idea.idea_title}'",
        message=f"{reviewer.full_name} recommended '{recommendation}'.",
        category="review",
        entity_type="idea",
        entity_id=idea.id,
        exclude=[reviewer.id],
    )
    return review


def make_decision(idea_id: int, deputy_director, decision: str, compiled_comments: str,
                  dd_comments: str | None = None) -> dict:
    """
    Record the Deputy Director's decision and move the idea on.

    Decision row, status change, revision bump, audit row and author
    notification share one unit of work.

    Returns:
        {"new_status", "previous_status", "decision"}
    """
    idea = _locked_idea(idea_id)
    authorize("manage-idea-workflow", deputy_director, idea)

    row = wf.record_decision(idea, deputy_director, decision, compiled_comments, dd_comments)

    write_audit(
        entity_type="idea", entity_id=idea.id, action="review.decide", actor_user_id=deputy_director.id,
        diff={
            "review_stage": row.review_stage,
            "decision": decision,
            "status": {"old": row.previous_status, "new": row.new_status},
            "current_revision_number": idea.current_revision_number,
        },
    )
    NotificationService.notify(
        recipient_ids=[idea.user_id],
        title=f"Decision on '{idea.idea_title}': {decision}",
        message=f"Your idea moved from '{row.previous_status}' to '{row.new_status}'.",
        category="decision",
        severity="success" if decision == "approve" else "info",
        entity_type="idea",
        entity_id=idea.id,
    )
    return {"new_status": row.new_status, "previous_status": row.previous_status, "decision": decision}


def resubmit_idea(idea_id: int, user) -> dict:
    """Send a draft or a revised idea (back) into review."""
    idea = _locked_idea(idea_id)
    if idea.user_id != user.id and not has_role(user.id, ROLE_ADMIN):
        raise PermissionDenied("resubmit-idea", "only the author may resubmit", user_id=user.id)

    previous, new = wf.resubmit(idea)
    write_audit(
        entity_type="idea", entity_id=idea.id, action="idea.resubmit", actor_user_id=user.id,
        diff={"status": {"old": previous, "new": new}},
    )
    logger.info(
        "Idea %s resubmitted by user %s (%s → %s)", idea.slug, user.id, previous, new,
        extra={"event_type": "idea.resubmit", "entity_type": "idea", "entity_id": idea.id},
    )
    return {"previous_status": previous, "new_status": new}


# ═════════════════════════════════════════════════════════════════════════════
# Dashboards
# ═════════════════════════════════════════════════════════════════════════════

def _reviewed_ids_subquery(user_id: int, stage: int):
    label = wf.IDEA_TRACK.stage_label(stage)
    return select(IdeaReview.idea_id).where(
        IdeaReview.reviewer_id == user_id, IdeaReview.review_stage == label,
    )


def reviewer_dashboard(user, stage: int) -> dict:
    """SME (stage 1) or Board (stage 2) queue for ``user``."""
    reviewed_ids = _reviewed_ids_subquery(user.id, stage)
    for_review = (
        Idea.query_active()
        .filter(
            Idea.status == REVIEW_STATUS_BY_STAGE[stage],
            Idea.user_id != user.id,
            ~Idea.id.in_(reviewed_ids),
        )
        .order_by(Idea.created_at.asc(), Idea.id.asc())
        .all()
    )
    reviewed = (
        Idea.query_active()
        .filter(Idea.id.in_(reviewed_ids))
        .order_by(Idea.updated_at.desc(), Idea.id.desc())
        .all()
    )
    label = wf.IDEA_TRACK.stage_label(stage)
    my_reviews = {
        r.idea_id: r.to_dict()
        for r in IdeaReview.query.filter_by(reviewer_id=user.id, review_stage=label).all()
    }
    return {
        "stage": label,
        "for_review": [i.to_dict() for i in for_review],
        "reviewed": [dict(i.to_dict(), my_review=my_reviews.get(i.id)) for i in reviewed],
    }


def _review_counts(idea_ids: list[int], label: str) -> dict:
    if not idea_ids:
        return {}
    return dict(
        db.session.query(IdeaReview.idea_id, func.count(IdeaReview.id))
        .filter(IdeaReview.idea_id.in_(idea_ids), IdeaReview.review_stage == label)
        .group_by(IdeaReview.idea_id)
        .all()
    )


def ready_for_decision(stage: int, now: datetime | None = None) -> list[dict]:
    """Ideas at ``stage`` whose reviews reached quorum or that went stale."""
    now = now or datetime.now(timezone.utc)
    ratio = current_app.config["REVIEW_QUORUM_RATIO"]
    stale_before = now - timedelta(days=current_app.config["REVIEW_STALE_DAYS"])
    label = wf.IDEA_TRACK.stage_label(stage)
    role = wf.IDEA_TRACK.reviewer_roles[stage][0]
    holders = count_role_holders(role)

    candidates = (
        Idea.query_active()
        .filter(Idea.status == REVIEW_STATUS_BY_STAGE[stage])
        .order_by(Idea.updated_at.asc(), Idea.id.asc())
        .all()
    )
    counts = _review_counts([i.id for i in candidates], label)

    ready = []
    for idea in candidates:
        n = counts.get(idea.id, 0)
        if n == 0:
            continue
        stale = _as_aware(idea.updated_at) < stale_before
        if n >= ratio * holders or stale:
            d = idea.to_dict()
            d["review_count"] = n
            d["reviewer_pool"] = holders
            d["stale"] = stale
            d["reviews"] = wf.reviews_by_stage(idea)[f"stage{stage}"]
            ready.append(d)
    return ready


def dd_dashboard(now: datetime | None = None) -> dict:
    def revising(stage):
        return [
            dict(i.to_dict(), decisions=wf.decisions_for(i))
            for i in Idea.query_active()
            .filter(Idea.status == REVISE_STATUS_BY_STAGE[stage])
            .order_by(Idea.updated_at.desc(), Idea.id.desc())
            .all()
        ]

    return {
        "stage1_pending": ready_for_decision(1, now),
        "stage2_pending": ready_for_decision(2, now),
        "stage1_revision": revising(1),
        "stage2_revision": revising(2),
    }


def author_dashboard(user) -> list[dict]:
    """The user's ideas that are in review or revision, with their review history."""
    ideas = (
        Idea.query_active()
        .filter(Idea.user_id == user.id, Idea.status.in_(REVIEW_STATUSES | REVISE_STATUSES))
        .order_by(Idea.updated_at.desc(), Idea.id.desc())
        .all()
    )
    return [
        dict(i.to_dict(), reviews=wf.reviews_by_stage(i), decisions=wf.decisions_for(i))
        for i in ideas
    ]


def review_details(idea_id: int, user) -> dict:
    idea = db.session.get(Idea, idea_id)
    if idea is None or idea.is_deleted:
        raise NotFoundError("Idea", idea_id)
    stage = wf.stage_for_status(idea.status)
    d = idea.to_dict(include_team=True)
    d["reviews"] = wf.reviews_by_stage(idea)
    d["decisions"] = wf.decisions_for(idea)
    d["available_decisions"] = wf.available_decisions(idea.status)
    return {
        "idea": d,
        "can_review": wf.can_be_reviewed_by(idea, user),
        "review_stage": wf.IDEA_TRACK.stage_label(stage) if stage else None,
    }
