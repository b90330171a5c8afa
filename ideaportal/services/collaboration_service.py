"""
Collaboration Request Service.

A user asks an idea owner to join the idea. Requests are only accepted
while the idea is still taking shape (draft or stage 1); approval adds
the requester to the idea's collaboration members.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from ideaportal.core.exceptions import ConflictError, NotFoundError, PermissionDenied
from ideaportal.models import db
from ideaportal.models.collaboration import (
    REQUEST_APPROVED,
    REQUEST_REJECTED,
    CollaborationRequest,
)
from ideaportal.models.idea import CollaborationMember, Idea
from ideaportal.models.workflow import STATUS_DRAFT, STATUS_STAGE1_REVIEW, STATUS_STAGE1_REVISE
from ideaportal.services.notification import NotificationService

logger = logging.getLogger(__name__)

# Idea statuses in which collaboration requests are accepted
REQUESTABLE_STATUSES = (STATUS_DRAFT, STATUS_STAGE1_REVIEW, STATUS_STAGE1_REVISE)

RESPONSE_ACTIONS = {"approve": REQUEST_APPROVED, "reject": REQUEST_REJECTED}

COLLABORATOR_ROLE = "collaborator"


def _open_for_requests(idea: Idea) -> bool:
    return idea.collaboration_enabled and idea.status in REQUESTABLE_STATUSES


def get_request(request_id: int) -> CollaborationRequest:
    req = db.session.get(CollaborationRequest, request_id)
    if req is None:
        raise NotFoundError("CollaborationRequest", request_id)
    return req


def send_request(idea: Idea, user, message: str | None = None) -> CollaborationRequest:
    if not _open_for_requests(idea):
        raise PermissionDenied("request-collaboration", "Collaboration not available for this idea", user_id=user.id)
    if idea.user_id == user.id:
        raise PermissionDenied(
            "request-collaboration", "You cannot request collaboration on your own idea", user_id=user.id,
        )
    if CollaborationRequest.query.filter_by(idea_id=idea.id, requester_id=user.id).first():
        raise ConflictError("CollaborationRequest", "idea_id/requester_id", f"{idea.id}/{user.id}")

    req = CollaborationRequest(
        idea_id=idea.id, requester_id=user.id, owner_id=idea.user_id, message=message,
    )
    db.session.add(req)
    try:
        db.session.flush()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("CollaborationRequest", "idea_id/requester_id", f"{idea.id}/{user.id}") from exc

    NotificationService.notify(
        recipient_ids=[idea.user_id],
        title=f"Collaboration request on '{idea.idea_title}'",
        message=f"{user.full_name} would like to collaborate.",
        category="collaboration",
        entity_type="idea",
        entity_id=idea.id,
    )
    logger.info(
        "Collaboration request %s sent by user %s on idea %s", req.id, user.id, idea.slug,
        extra={"event_type": "collaboration.request", "entity_type": "idea", "entity_id": idea.id},
    )
    return req


def cancel_request(request_id: int, user) -> None:
    req = get_request(request_id)
    if not req.can_be_cancelled_by(user.id):
        raise PermissionDenied("cancel-collaboration-request", "You cannot cancel this request", user_id=user.id)
    db.session.delete(req)
    db.session.flush()


def respond_request(request_id: int, user, action: str) -> CollaborationRequest:
    """Approve or reject a pending request. ``action`` is pre-validated by the caller."""
    req = get_request(request_id)
    if not req.can_be_responded_by(user.id):
        raise PermissionDenied("respond-collaboration-request", "You cannot respond to this request", user_id=user.id)

    req.status = RESPONSE_ACTIONS[action]
    req.responded_at = datetime.now(timezone.utc)

    if req.status == REQUEST_APPROVED:
        requester = req.requester
        req.idea.collaboration_members.append(
            CollaborationMember(name=requester.full_name, email=requester.email, role=COLLABORATOR_ROLE)
        )
    db.session.flush()

    NotificationService.notify(
        recipient_ids=[req.requester_id],
        title=f"Collaboration request {req.status}",
        message=f"Your request to collaborate on '{req.idea.idea_title}' was {req.status}.",
        category="collaboration",
        severity="success" if req.status == REQUEST_APPROVED else "info",
        entity_type="idea",
        entity_id=req.idea_id,
    )
    logger.info(
        "Collaboration request %s %s by user %s", req.id, req.status, user.id,
        extra={"event_type": "collaboration.respond", "entity_type": "idea", "entity_id": req.idea_id},
    )
    return req


def inbox(user) -> list[CollaborationRequest]:
    return (
        CollaborationRequest.query.filter_by(owner_id=user.id)
        .order_by(CollaborationRequest.created_at.desc(), CollaborationRequest.id.desc())
        .all()
    )


def outbox(user) -> list[CollaborationRequest]:
    return (
        CollaborationRequest.query.filter_by(requester_id=user.id)
        .order_by(CollaborationRequest.created_at.desc(), CollaborationRequest.id.desc())
        .all()
    )


def collaboration_index(user) -> list[dict]:
    """Ideas open for collaboration with the user's own request status, if any."""
    ideas = (
        Idea.query_active()
        .filter(
            Idea.collaboration_enabled.is_(True),
            Idea.status.in_(REQUESTABLE_STATUSES),
            Idea.user_id != user.id,
        )
        .order_by(Idea.created_at.desc(), Idea.id.desc())
        .all()
    )
    mine = {
        r.idea_id: r
        for r in CollaborationRequest.query.filter(
            CollaborationRequest.requester_id == user.id,
            CollaborationRequest.idea_id.in_([i.id for i in ideas]),
        ).all()
    } if ideas else {}

    out = []
    for idea in ideas:
        req = mine.get(idea.id)
        d = idea.to_dict()
        d["existing_request_id"] = req.id if req else None
        d["request_status"] = req.status if req else None
        d["has_pending_request"] = bool(req and req.is_pending)
        out.append(d)
    return out
