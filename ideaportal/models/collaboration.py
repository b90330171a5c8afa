"""
Innovation Review Portal
Collaboration domain models.

Models:
    - CollaborationRequest: a user asks an idea owner to join the idea
    - CollaborationProposal: a suggested edit ("shadow copy" of idea fields)
"""

from datetime import datetime, timezone

from ideaportal.models import db
from ideaportal.models.idea import IDEA_CONTENT_FIELDS


# ── Constants ────────────────────────────────────────────────────────────────

REQUEST_PENDING = "pending"
REQUEST_APPROVED = "approved"
REQUEST_REJECTED = "rejected"
REQUEST_STATUSES = {REQUEST_PENDING, REQUEST_APPROVED, REQUEST_REJECTED}

PROPOSAL_PENDING = "pending"
PROPOSAL_ACCEPTED = "accepted"
PROPOSAL_REJECTED = "rejected"
PROPOSAL_REVISION_REQUESTED = "revision_requested"
PROPOSAL_STATUSES = {
    PROPOSAL_PENDING, PROPOSAL_ACCEPTED, PROPOSAL_REJECTED, PROPOSAL_REVISION_REQUESTED,
}

# "idea_title" → "proposed_idea_title"; proposed_solution keeps its own name
PROPOSED_FIELD_MAP = {
    f: (f if f == "proposed_solution" else f"proposed_{f}") for f in IDEA_CONTENT_FIELDS
}


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# 1. CollaborationRequest
# ═════════════════════════════════════════════════════════════════════════════

class CollaborationRequest(db.Model):
    __tablename__ = "collaboration_requests"
    __table_args__ = (
        db.UniqueConstraint("idea_id", "requester_id", name="uq_collab_request_idea_requester"),
        db.Index("ix_collab_requests_owner_status", "owner_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    idea_id = db.Column(db.Integer, db.ForeignKey("ideas.id", ondelete="CASCADE"), nullable=False)
    requester_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status = db.Column(db.String(20), default=REQUEST_PENDING, nullable=False)
    message = db.Column(db.Text)
    responded_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    idea = db.relationship("Idea")
    requester = db.relationship("User", foreign_keys=[requester_id])
    owner = db.relationship("User", foreign_keys=[owner_id])

    @property
    def is_pending(self):
        return self.status == REQUEST_PENDING

    def can_be_cancelled_by(self, user_id):
        return self.requester_id == user_id and self.is_pending

    def can_be_responded_by(self, user_id):
        return self.owner_id == user_id and self.is_pending

    def to_dict(self):
        return {
            "id": self.id,
            "idea_id": self.idea_id,
            "idea_slug": self.idea.slug if self.idea else None,
            "idea_title": self.idea.idea_title if self.idea else None,
            "requester": self.requester.to_summary() if self.requester else None,
            "owner": self.owner.to_summary() if self.owner else None,
            "status": self.status,
            "message": self.message,
            "responded_at": _iso(self.responded_at),
            "created_at": _iso(self.created_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# 2. CollaborationProposal
# ═════════════════════════════════════════════════════════════════════════════

class CollaborationProposal(db.Model):
    """
    Suggested edit to someone else's idea.

    Each ``proposed_*`` column mirrors an idea content field; NULL means
    "leave unchanged". ``changed_fields`` lists the idea field names whose
    proposed value differs from the idea at proposal time.
    """

    __tablename__ = "collaboration_proposals"
    __table_args__ = (
        db.Index("ix_collab_proposals_idea_status", "idea_id", "status"),
        db.Index("ix_collab_proposals_author_status", "original_author_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    idea_id = db.Column(db.Integer, db.ForeignKey("ideas.id", ondelete="CASCADE"), nullable=False)
    collaborator_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    original_author_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    proposed_idea_title = db.Column(db.String(255))
    proposed_thematic_area_id = db.Column(db.Integer, db.ForeignKey("thematic_areas.id", ondelete="SET NULL"))
    proposed_abstract = db.Column(db.Text)
    proposed_problem_statement = db.Column(db.Text)
    proposed_solution = db.Column(db.Text)
    proposed_cost_benefit_analysis = db.Column(db.Text)
    proposed_declaration_of_interests = db.Column(db.Text)
    proposed_original_idea_disclaimer = db.Column(db.Boolean)
    proposed_collaboration_enabled = db.Column(db.Boolean)
    proposed_team_effort = db.Column(db.Boolean)
    proposed_comments_enabled = db.Column(db.Boolean)
    proposed_collaboration_deadline = db.Column(db.Date)

    collaboration_notes = db.Column(db.Text, nullable=False)
    change_summary = db.Column(db.String(500), nullable=False)
    changed_fields = db.Column(db.JSON, default=list)

    status = db.Column(db.String(30), default=PROPOSAL_PENDING, nullable=False)
    review_notes = db.Column(db.Text)
    reviewed_at = db.Column(db.DateTime(timezone=True))
    reviewed_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    idea = db.relationship("Idea")
    collaborator = db.relationship("User", foreign_keys=[collaborator_id])
    original_author = db.relationship("User", foreign_keys=[original_author_id])
    reviewer = db.relationship("User", foreign_keys=[reviewed_by])

    @property
    def is_pending(self):
        return self.status == PROPOSAL_PENDING

    def proposed_values(self):
        """Idea field name → proposed value (None = unchanged)."""
        return {field: getattr(self, col) for field, col in PROPOSED_FIELD_MAP.items()}

    def to_dict(self):
        d = {
            "id": self.id,
            "idea_id": self.idea_id,
            "idea_slug": self.idea.slug if self.idea else None,
            "idea_title": self.idea.idea_title if self.idea else None,
            "collaborator": self.collaborator.to_summary() if self.collaborator else None,
            "original_author": self.original_author.to_summary() if self.original_author else None,
            "collaboration_notes": self.collaboration_notes,
            "change_summary": self.change_summary,
            "changed_fields": self.changed_fields or [],
            "status": self.status,
            "review_notes": self.review_notes,
            "reviewed_at": _iso(self.reviewed_at),
            "reviewed_by": self.reviewed_by,
            "created_at": _iso(self.created_at),
        }
        for col in PROPOSED_FIELD_MAP.values():
            value = getattr(self, col)
            d[col] = _iso(value) if col == "proposed_collaboration_deadline" else value
        return d
