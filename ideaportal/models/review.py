"""
Innovation Review Portal
Review domain models — append-only review and decision logs.

Models:
    - IdeaReview: one reviewer recommendation per (idea, reviewer, stage)
    - IdeaReviewDecision: the Deputy Director's compiled decision per stage visit

Both tables are APPEND-ONLY. The service layer never updates or deletes
rows; the decision row records the status transition it caused.
"""

from datetime import datetime, timezone

from sqlalchemy.orm import declared_attr

from ideaportal.models import db


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class ReviewMixin:
    """Columns and serialisation shared by idea and challenge reviews."""

    id = db.Column(db.Integer, primary_key=True)

    @declared_attr
    def reviewer_id(cls):
        return db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    review_stage = db.Column(db.String(10), nullable=False)
    recommendation = db.Column(db.String(10), nullable=False)  # approve | revise | reject
    comments = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "reviewer": self.reviewer.to_summary() if self.reviewer else None,
            "review_stage": self.review_stage,
            "recommendation": self.recommendation,
            "comments": self.comments,
            "created_at": _iso(self.created_at),
        }


class DecisionMixin:
    """Columns and serialisation shared by idea and challenge decisions."""

    id = db.Column(db.Integer, primary_key=True)

    @declared_attr
    def deputy_director_id(cls):
        return db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    review_stage = db.Column(db.String(10), nullable=False)
    decision = db.Column(db.String(10), nullable=False)  # approve | revise | reject
    compiled_comments = db.Column(db.Text, nullable=False)
    dd_comments = db.Column(db.Text)
    previous_status = db.Column(db.String(20), nullable=False)
    new_status = db.Column(db.String(20), nullable=False)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "deputy_director": self.deputy_director.to_summary() if self.deputy_director else None,
            "review_stage": self.review_stage,
            "decision": self.decision,
            "compiled_comments": self.compiled_comments,
            "dd_comments": self.dd_comments,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "decided_at": _iso(self.decided_at),
        }


class IdeaReview(ReviewMixin, db.Model):
    __tablename__ = "idea_reviews"
    __table_args__ = (
        db.UniqueConstraint("idea_id", "reviewer_id", "review_stage", name="uq_idea_review_reviewer_stage"),
        db.Index("ix_idea_reviews_idea_stage", "idea_id", "review_stage"),
    )

    idea_id = db.Column(db.Integer, db.ForeignKey("ideas.id", ondelete="CASCADE"), nullable=False)

    idea = db.relationship("Idea", back_populates="reviews")
    reviewer = db.relationship("User")

    def to_dict(self):
        d = super().to_dict()
        d["idea_id"] = self.idea_id
        return d


class IdeaReviewDecision(DecisionMixin, db.Model):
    __tablename__ = "idea_review_decisions"
    __table_args__ = (
        db.Index("ix_idea_decisions_idea_stage", "idea_id", "review_stage"),
    )

    idea_id = db.Column(db.Integer, db.ForeignKey("ideas.id", ondelete="CASCADE"), nullable=False)

    idea = db.relationship("Idea", back_populates="decisions")
    deputy_director = db.relationship("User")

    def to_dict(self):
        d = super().to_dict()
        d["idea_id"] = self.idea_id
        return d
