"""
Innovation Review Portal
Challenge domain models.

Models:
    - Challenge: a time-boxed call for submissions
    - ChallengeSubmission: one user's response, reviewed like an idea
    - ChallengeSubmissionReview: reviewer recommendation per stage (append-only)
    - ChallengeSubmissionReviewDecision: DD decision per stage visit (append-only)
"""

from datetime import datetime, timezone

from ideaportal.models import db
from ideaportal.models.review import DecisionMixin, ReviewMixin
from ideaportal.models.workflow import STATUS_DRAFT


# ── Constants ────────────────────────────────────────────────────────────────

CHALLENGE_DRAFT = "draft"
CHALLENGE_ACTIVE = "active"
CHALLENGE_CLOSED = "closed"
CHALLENGE_CANCELLED = "cancelled"
CHALLENGE_STATUSES = {CHALLENGE_DRAFT, CHALLENGE_ACTIVE, CHALLENGE_CLOSED, CHALLENGE_CANCELLED}

# Manager actions on a challenge: action → {"from": [...], "to": ...}
CHALLENGE_TRANSITIONS = {
    "activate": {"from": [CHALLENGE_DRAFT], "to": CHALLENGE_ACTIVE},
    "close": {"from": [CHALLENGE_ACTIVE], "to": CHALLENGE_CLOSED},
    "cancel": {"from": [CHALLENGE_DRAFT, CHALLENGE_ACTIVE], "to": CHALLENGE_CANCELLED},
}


def _utcnow():
    return datetime.now(timezone.utc)


def _as_aware(value):
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _iso(value):
    return value.isoformat() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# 1. Challenge
# ═════════════════════════════════════════════════════════════════════════════

class Challenge(db.Model):
    __tablename__ = "challenges"
    __table_args__ = (
        db.Index("ix_challenges_status_deadline", "status", "deadline"),
    )

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    deadline = db.Column(db.DateTime(timezone=True), nullable=False)
    guidelines = db.Column(db.Text, nullable=False)
    reward = db.Column(db.Text, nullable=False)

    attachment = db.Column(db.LargeBinary, nullable=True)
    attachment_filename = db.Column(db.String(255))
    attachment_mime = db.Column(db.String(100))
    attachment_size = db.Column(db.Integer)

    status = db.Column(db.String(20), default=CHALLENGE_DRAFT, nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    creator = db.relationship("User")
    submissions = db.relationship(
        "ChallengeSubmission", back_populates="challenge", lazy="dynamic", cascade="all, delete-orphan",
    )

    @property
    def is_open(self):
        """Accepting submissions: active and the deadline has not passed."""
        return self.status == CHALLENGE_ACTIVE and _as_aware(self.deadline) > _utcnow()

    def to_dict(self, include_counts=False):
        d = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "deadline": _iso(self.deadline),
            "guidelines": self.guidelines,
            "reward": self.reward,
            "status": self.status,
            "is_open": self.is_open,
            "has_attachment": self.attachment is not None,
            "attachment_filename": self.attachment_filename,
            "attachment_mime": self.attachment_mime,
            "creator": self.creator.to_summary() if self.creator else None,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_counts:
            d["submission_count"] = self.submissions.filter(
                ChallengeSubmission.status != STATUS_DRAFT
            ).count()
        return d


# ═════════════════════════════════════════════════════════════════════════════
# 2. ChallengeSubmission
# ═════════════════════════════════════════════════════════════════════════════

class ChallengeSubmission(db.Model):
    __tablename__ = "challenge_submissions"
    __table_args__ = (
        db.UniqueConstraint("challenge_id", "submitted_by", name="uq_challenge_submission_user"),
        db.Index("ix_challenge_submissions_challenge_status", "challenge_id", "status"),
        db.Index("ix_challenge_submissions_status", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    challenge_id = db.Column(db.Integer, db.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    motivation = db.Column(db.Text, nullable=False)
    cost_of_implementation = db.Column(db.Numeric(15, 2), nullable=True)
    original_disclaimer = db.Column(db.Text, nullable=False)

    attachment = db.Column(db.LargeBinary, nullable=True)
    attachment_filename = db.Column(db.String(255))
    attachment_mime = db.Column(db.String(100))
    attachment_size = db.Column(db.Integer)

    status = db.Column(db.String(20), default=STATUS_DRAFT, nullable=False)
    submitted_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    submitted_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    challenge = db.relationship("Challenge", back_populates="submissions")
    submitter = db.relationship("User")
    reviews = db.relationship(
        "ChallengeSubmissionReview", back_populates="submission", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    decisions = db.relationship(
        "ChallengeSubmissionReviewDecision", back_populates="submission", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    @property
    def owner_id(self):
        return self.submitted_by

    def to_dict(self):
        cost = self.cost_of_implementation
        return {
            "id": self.id,
            "challenge_id": self.challenge_id,
            "challenge_title": self.challenge.title if self.challenge else None,
            "title": self.title,
            "description": self.description,
            "motivation": self.motivation,
            "cost_of_implementation": float(cost) if cost is not None else None,
            "original_disclaimer": self.original_disclaimer,
            "has_attachment": self.attachment is not None,
            "attachment_filename": self.attachment_filename,
            "attachment_mime": self.attachment_mime,
            "status": self.status,
            "submitter": self.submitter.to_summary() if self.submitter else None,
            "submitted_at": _iso(self.submitted_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# 3. Reviews & decisions
# ═════════════════════════════════════════════════════════════════════════════

class ChallengeSubmissionReview(ReviewMixin, db.Model):
    __tablename__ = "challenge_submission_reviews"
    __table_args__ = (
        db.UniqueConstraint(
            "challenge_submission_id", "reviewer_id", "review_stage",
            name="uq_challenge_review_reviewer_stage",
        ),
    )

    challenge_submission_id = db.Column(
        db.Integer, db.ForeignKey("challenge_submissions.id", ondelete="CASCADE"), nullable=False,
    )

    submission = db.relationship("ChallengeSubmission", back_populates="reviews")
    reviewer = db.relationship("User")

    def to_dict(self):
        d = super().to_dict()
        d["challenge_submission_id"] = self.challenge_submission_id
        return d


class ChallengeSubmissionReviewDecision(DecisionMixin, db.Model):
    __tablename__ = "challenge_submission_review_decisions"
    __table_args__ = (
        db.Index("ix_challenge_decisions_submission_stage", "challenge_submission_id", "review_stage"),
    )

    challenge_submission_id = db.Column(
        db.Integer, db.ForeignKey("challenge_submissions.id", ondelete="CASCADE"), nullable=False,
    )

    submission = db.relationship("ChallengeSubmission", back_populates="decisions")
    deputy_director = db.relationship("User")

    def to_dict(self):
        d = super().to_dict()
        d["challenge_submission_id"] = self.challenge_submission_id
        return d
