"""
Collaboration Proposal & Version Service.

A collaborator proposes new values for an idea's content fields; the
original author accepts (applying them), rejects, or asks for a revision.
Accepting a proposal and rolling back both snapshot the idea into a new
``IdeaVersion`` first, in the same unit of work as the change:

    accept    → snapshot "Collaboration proposal accepted" → apply values → revision + 1
    rollback  → snapshot "Rolled back to version N"        → restore content → revision + 1

Rollback restores content fields only; ``status`` moves exclusively
through the review workflow.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ideaportal.core.exceptions import ConflictError, NotFoundError, PermissionDenied, TransitionError, ValidationError
from ideaportal.models import db
from ideaportal.models.audit import write_audit
from ideaportal.models.auth import ROLE_ADMIN, ROLE_DEPUTY_DIRECTOR
from ideaportal.models.collaboration import (
    PROPOSAL_ACCEPTED,
    PROPOSAL_PENDING,
    PROPOSAL_REJECTED,
    PROPOSAL_REVISION_REQUESTED,
    PROPOSED_FIELD_MAP,
    CollaborationProposal,
)
from ideaportal.models.idea import IDEA_CONTENT_FIELDS, Idea, IdeaVersion, ThematicArea
from ideaportal.services.notification import NotificationService
from ideaportal.services.permission_service import has_role
from ideaportal.services.policy import authorize

logger = logging.getLogger(__name__)

PROPOSAL_ACTIONS = {
    "accept": PROPOSAL_ACCEPTED,
    "reject": PROPOSAL_REJECTED,
    "request_revision": PROPOSAL_REVISION_REQUESTED,
}

ACCEPTED_CHANGE_DESCRIPTION = "Collaboration proposal accepted"


def get_proposal(proposal_id: int) -> CollaborationProposal:
    proposal = db.session.get(CollaborationProposal, proposal_id)
    if proposal is None:
        raise NotFoundError("CollaborationProposal", proposal_id)
    return proposal


def _require_thematic_area(values: dict) -> None:
    area_id = values.get("thematic_area_id")
    if area_id is not None and db.session.get(ThematicArea, area_id) is None:
        raise ValidationError(
            "Unknown thematic area",
            details={"thematic_area_id": f"Thematic area {area_id} does not exist"},
        )


# ═════════════════════════════════════════════════════════════════════════════
# Versions
# ═════════════════════════════════════════════════════════════════════════════

def next_version_number(idea: Idea) -> int:
    current = (
        db.session.query(func.max(IdeaVersion.version_number))
        .filter(IdeaVersion.idea_id == idea.id)
        .scalar()
    )
    return (current or 0) + 1


def snapshot_idea(idea: Idea, user, change_description: str,
                  proposal_id: int | None = None) -> IdeaVersion:
    """Store the idea's current content as the next version. Flushes only."""
    version = IdeaVersion(
        idea_id=idea.id,
        version_number=next_version_number(idea),
        current_revision_number=idea.current_revision_number,
        status=idea.status,
        change_description=change_description,
        changed_by=user.id,
        collaboration_proposal_id=proposal_id,
        **idea.content_snapshot(),
    )
    db.session.add(version)
    try:
        db.session.flush()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("IdeaVersion", "idea_id/version_number",
                            f"{idea.id}/{version.version_number}") from exc
    return version


def list_versions(idea: Idea) -> list[IdeaVersion]:
    return idea.versions.order_by(IdeaVersion.version_number.desc()).all()


def rollback(idea: Idea, user, version_number: int) -> IdeaVersion:
    """Restore the content of ``version_number``; returns the pre-rollback snapshot."""
    if idea.user_id != user.id:
        raise PermissionDenied("rollback-idea", "only the author may roll back", user_id=user.id)
    target = idea.versions.filter(IdeaVersion.version_number == version_number).first()
    if target is None:
        raise NotFoundError("IdeaVersion", version_number)

    snapshot = snapshot_idea(idea, user, f"Rolled back to version {version_number}")
    for field, value in target.content_snapshot().items():
        setattr(idea, field, value)
    idea.current_revision_number += 1
    db.session.flush()

    write_audit(
        entity_type="idea", entity_id=idea.id, action="idea.rollback", actor_user_id=user.id,
        diff={"to_version": version_number, "snapshot_version": snapshot.version_number},
    )
    logger.info(
        "Idea %s rolled back to version %s by user %s", idea.slug, version_number, user.id,
        extra={"event_type": "idea.rollback", "entity_type": "idea", "entity_id": idea.id},
    )
    return snapshot


# ═════════════════════════════════════════════════════════════════════════════
# Proposals
# ═════════════════════════════════════════════════════════════════════════════

def compute_changed_fields(idea: Idea, proposed: dict) -> list[str]:
    """Idea fields whose proposed value is present and differs from the idea."""
    return [
        field for field in IDEA_CONTENT_FIELDS
        if proposed.get(field) is not None and proposed[field] != getattr(idea, field)
    ]


def create_proposal(idea: Idea, user, data: dict) -> CollaborationProposal:
    """``data`` holds collaboration_notes, change_summary and ``proposed`` (field → value)."""
    authorize("collaborate-on-idea", user, idea)
    proposed = data.get("proposed") or {}
    _require_thematic_area(proposed)

    proposal = CollaborationProposal(
        idea_id=idea.id,
        collaborator_id=user.id,
        original_author_id=idea.user_id,
        collaboration_notes=data["collaboration_notes"],
        change_summary=data["change_summary"],
        changed_fields=compute_changed_fields(idea, proposed),
        status=PROPOSAL_PENDING,
    )
    for field, value in proposed.items():
        setattr(proposal, PROPOSED_FIELD_MAP[field], value)
    db.session.add(proposal)
    db.session.flush()

    NotificationService.notify(
        recipient_ids=[idea.user_id],
        title=f"New proposal on '{idea.idea_title}'",
        message=data["change_summary"],
        category="proposal",
        entity_type="collaboration_proposal",
        entity_id=proposal.id,
    )
    logger.info(
        "Proposal %s created on idea %s by user %s", proposal.id, idea.slug, user.id,
        extra={"event_type": "proposal.create", "entity_type": "idea", "entity_id": idea.id},
    )
    return proposal


def _apply(idea: Idea, values: dict) -> list[str]:
    applied = []
    for field, value in values.items():
        if value is not None and field in IDEA_CONTENT_FIELDS:
            setattr(idea, field, value)
            applied.append(field)
    return applied


def respond_proposal(proposal_id: int, user, action: str, review_notes: str | None = None,
                     edited_values: dict | None = None) -> CollaborationProposal:
    """
    Accept, reject or send back a pending proposal.

    ``edited_values`` (field → value) replaces the proposal's own values
    when the author tweaked them before accepting.
    """
    proposal = get_proposal(proposal_id)
    if proposal.original_author_id != user.id:
        raise PermissionDenied("respond-proposal", "only the idea's author may respond", user_id=user.id)
    if not proposal.is_pending:
        raise TransitionError("collaboration_proposal", action, proposal.status, "proposal is not pending")

    idea = proposal.idea
    new_status = PROPOSAL_ACTIONS[action]
    diff = {"status": {"old": proposal.status, "new": new_status}}

    if new_status == PROPOSAL_ACCEPTED:
        values = edited_values if edited_values is not None else proposal.proposed_values()
        _require_thematic_area(values)
        version = snapshot_idea(idea, user, ACCEPTED_CHANGE_DESCRIPTION, proposal_id=proposal.id)
        diff["applied_fields"] = _apply(idea, values)
        diff["snapshot_version"] = version.version_number
        idea.current_revision_number += 1

    proposal.status = new_status
    proposal.review_notes = review_notes
    proposal.reviewed_at = datetime.now(timezone.utc)
    proposal.reviewed_by = user.id
    db.session.flush()

    write_audit(
        entity_type="collaboration_proposal", entity_id=proposal.id,
        action=f"proposal.{action}", actor_user_id=user.id, diff=diff,
    )
    NotificationService.notify(
        recipient_ids=[proposal.collaborator_id],
        title=f"Your proposal on '{idea.idea_title}' was {new_status.replace('_', ' ')}",
        message=review_notes or "",
        category="proposal",
        severity="success" if new_status == PROPOSAL_ACCEPTED else "info",
        entity_type="collaboration_proposal",
        entity_id=proposal.id,
    )
    logger.info(
        "Proposal %s %s by user %s", proposal.id, new_status, user.id,
        extra={"event_type": f"proposal.{action}", "entity_type": "idea", "entity_id": idea.id},
    )
    return proposal


# ═════════════════════════════════════════════════════════════════════════════
# Views
# ═════════════════════════════════════════════════════════════════════════════

def my_proposals(user) -> list[CollaborationProposal]:
    return (
        CollaborationProposal.query.filter_by(collaborator_id=user.id)
        .order_by(CollaborationProposal.created_at.desc(), CollaborationProposal.id.desc())
        .all()
    )


def received_proposals(user) -> list[dict]:
    """Proposals on the user's ideas, grouped per idea (newest proposal first)."""
    rows = (
        CollaborationProposal.query.filter_by(original_author_id=user.id)
        .order_by(CollaborationProposal.created_at.desc(), CollaborationProposal.id.desc())
        .all()
    )
    groups: OrderedDict[int, list] = OrderedDict()
    for p in rows:
        groups.setdefault(p.idea_id, []).append(p)

    out = []
    for proposals in groups.values():
        idea = proposals[0].idea
        out.append({
            "idea": {"id": idea.id, "slug": idea.slug, "idea_title": idea.idea_title},
            "total_count": len(proposals),
            "pending_count": sum(1 for p in proposals if p.status == PROPOSAL_PENDING),
            "accepted_count": sum(1 for p in proposals if p.status == PROPOSAL_ACCEPTED),
            "rejected_count": sum(1 for p in proposals if p.status == PROPOSAL_REJECTED),
            "proposals": [p.to_dict() for p in proposals],
        })
    return out


def proposal_details(proposal_id: int, user) -> dict:
    proposal = get_proposal(proposal_id)
    involved = user.id in (proposal.collaborator_id, proposal.original_author_id)
    if not involved and not has_role(user.id, ROLE_ADMIN, ROLE_DEPUTY_DIRECTOR):
        raise PermissionDenied("view-proposal", user_id=user.id)
    return {
        "proposal": proposal.to_dict(),
        "idea": proposal.idea.to_dict(),
        "is_author": proposal.original_author_id == user.id,
    }


def pending_for_idea(idea: Idea, user) -> list[CollaborationProposal]:
    authorize("manage-collaboration-proposal", user, idea)
    return (
        CollaborationProposal.query.filter_by(idea_id=idea.id, status=PROPOSAL_PENDING)
        .order_by(CollaborationProposal.created_at.asc(), CollaborationProposal.id.asc())
        .all()
    )


def manage(idea: Idea, user) -> dict:
    """Versions and every proposal of an idea, for its management view."""
    authorize("manage-collaboration-proposal", user, idea)
    proposals = (
        CollaborationProposal.query.filter_by(idea_id=idea.id)
        .order_by(CollaborationProposal.created_at.desc(), CollaborationProposal.id.desc())
        .all()
    )
    return {
        "idea": idea.to_dict(),
        "versions": [v.to_dict() for v in list_versions(idea)],
        "proposals": [p.to_dict() for p in proposals],
    }
