"""
Innovation Review Portal
Idea domain models.

Models:
    - ThematicArea: category an idea is filed under
    - Idea: the submission itself (soft-deletable, attachment blob in-row)
    - TeamMember: named contributors declared by the author
    - CollaborationMember: collaborators admitted through an approved request
    - IdeaLike: one like per (idea, user)
    - Comment: flat comment thread, "deleted" comments keep their row
    - IdeaVersion: snapshot of the idea's content fields
"""

from datetime import datetime, timezone

from ideaportal.models import db
from ideaportal.models.soft_delete import SoftDeleteMixin
from ideaportal.models.workflow import STATUS_DRAFT


# ── Constants ────────────────────────────────────────────────────────────────

# Editable content fields shared by Idea, IdeaVersion and CollaborationProposal
IDEA_CONTENT_FIELDS = (
    "idea_title",
    "thematic_area_id",
    "abstract",
    "problem_statement",
    "proposed_solution",
    "cost_benefit_analysis",
    "declaration_of_interests",
    "original_idea_disclaimer",
    "collaboration_enabled",
    "team_effort",
    "comments_enabled",
    "collaboration_deadline",
)

DELETED_COMMENT_TEXT = "You deleted this comment"


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# 1. ThematicArea
# ═════════════════════════════════════════════════════════════════════════════

class ThematicArea(db.Model):
    __tablename__ = "thematic_areas"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    slug = db.Column(db.String(160), unique=True, nullable=False)
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    sort_order = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @classmethod
    def query_active_ordered(cls):
        return cls.query.filter_by(is_active=True).order_by(cls.sort_order, cls.name)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
        }


# ═════════════════════════════════════════════════════════════════════════════
# 2. Idea
# ═════════════════════════════════════════════════════════════════════════════

class Idea(SoftDeleteMixin, db.Model):
    """
    An innovation idea moving through the two-stage review workflow.

    ``status`` only changes through ``services.review_workflow``;
    ``current_revision_number`` starts at 1 and is bumped on stage-2 entry,
    approval, accepted collaboration proposals and rollbacks.
    """

    __tablename__ = "ideas"
    __table_args__ = (
        db.Index("ix_ideas_status", "status"),
        db.Index("ix_ideas_user_status", "user_id", "status"),
        db.Index("ix_ideas_collaboration_enabled", "collaboration_enabled"),
        db.Index("ix_ideas_thematic_area", "thematic_area_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    idea_title = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(20), unique=True, nullable=False)
    thematic_area_id = db.Column(
        db.Integer, db.ForeignKey("thematic_areas.id", ondelete="SET NULL"), nullable=True,
    )
    abstract = db.Column(db.Text)
    problem_statement = db.Column(db.Text)
    proposed_solution = db.Column(db.Text)
    cost_benefit_analysis = db.Column(db.Text)
    declaration_of_interests = db.Column(db.Text)
    original_idea_disclaimer = db.Column(db.Boolean, default=False, nullable=False)
    collaboration_enabled = db.Column(db.Boolean, default=False, nullable=False)
    team_effort = db.Column(db.Boolean, default=False, nullable=False)
    comments_enabled = db.Column(db.Boolean, default=True, nullable=False)

    current_revision_number = db.Column(db.Integer, default=1, nullable=False)
    collaboration_deadline = db.Column(db.Date, nullable=True)

    status = db.Column(db.String(20), default=STATUS_DRAFT, nullable=False)

    # Attachment stored in the row
    attachment = db.Column(db.LargeBinary, nullable=True)
    attachment_filename = db.Column(db.String(255))
    attachment_mime = db.Column(db.String(100))
    attachment_size = db.Column(db.Integer)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Relationships
    user = db.relationship("User", foreign_keys=[user_id])
    thematic_area = db.relationship("ThematicArea")
    team_members = db.relationship(
        "TeamMember", back_populates="idea", cascade="all, delete-orphan",
        order_by="TeamMember.id",
    )
    collaboration_members = db.relationship(
        "CollaborationMember", back_populates="idea", cascade="all, delete-orphan",
        order_by="CollaborationMember.id",
    )
    likes = db.relationship("IdeaLike", back_populates="idea", lazy="dynamic", cascade="all, delete-orphan")
    comments = db.relationship(
        "Comment", back_populates="idea", lazy="dynamic", cascade="all, delete-orphan",
    )
    reviews = db.relationship(
        "IdeaReview", back_populates="idea", lazy="dynamic", cascade="all, delete-orphan",
    )
    decisions = db.relationship(
        "IdeaReviewDecision", back_populates="idea", lazy="dynamic", cascade="all, delete-orphan",
    )
    versions = db.relationship(
        "IdeaVersion", back_populates="idea", lazy="dynamic", cascade="all, delete-orphan",
    )

    @property
    def owner_id(self):
        return self.user_id

    @property
    def has_attachment(self):
        return self.attachment is not None

    def content_snapshot(self):
        """Current values of the editable content fields."""
        return {f: getattr(self, f) for f in IDEA_CONTENT_FIELDS}

    def to_dict(self, include_team=False):
        d = {
            "id": self.id,
            "slug": self.slug,
            "idea_title": self.idea_title,
            "thematic_area_id": self.thematic_area_id,
            "thematic_area": self.thematic_area.name if self.thematic_area else None,
            "abstract": self.abstract,
            "problem_statement": self.problem_statement,
            "proposed_solution": self.proposed_solution,
            "cost_benefit_analysis": self.cost_benefit_analysis,
            "declaration_of_interests": self.declaration_of_interests,
            "original_idea_disclaimer": self.original_idea_disclaimer,
            "collaboration_enabled": self.collaboration_enabled,
            "team_effort": self.team_effort,
            "comments_enabled": self.comments_enabled,
            "collaboration_deadline": _iso(self.collaboration_deadline),
            "current_revision_number": self.current_revision_number,
            "status": self.status,
            "has_attachment": self.has_attachment,
            "attachment_filename": self.attachment_filename,
            "attachment_mime": self.attachment_mime,
            "attachment_size": self.attachment_size,
            "user_id": self.user_id,
            "author": self.user.to_summary() if self.user else None,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_team:
            d["team_members"] = [m.to_dict() for m in self.team_members]
            d["collaboration_members"] = [m.to_dict() for m in self.collaboration_members]
        return d

    def __repr__(self):
        return f"<Idea {self.id}: {self.slug} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. TeamMember / CollaborationMember
# ═════════════════════════════════════════════════════════════════════════════

class TeamMember(db.Model):
    __tablename__ = "team_members"

    id = db.Column(db.Integer, primary_key=True)
    idea_id = db.Column(db.Integer, db.ForeignKey("ideas.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(255))
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    idea = db.relationship("Idea", back_populates="team_members")

    def to_dict(self):
        return {"id": self.id, "name": self.name, "email": self.email, "role": self.role}


class CollaborationMember(db.Model):
    __tablename__ = "collaboration_members"

    id = db.Column(db.Integer, primary_key=True)
    idea_id = db.Column(db.Integer, db.ForeignKey("ideas.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(255))
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    idea = db.relationship("Idea", back_populates="collaboration_members")

    def to_dict(self):
        return {"id": self.id, "name": self.name, "email": self.email, "role": self.role}


# ═════════════════════════════════════════════════════════════════════════════
# 4. IdeaLike / Comment
# ═════════════════════════════════════════════════════════════════════════════

class IdeaLike(db.Model):
    __tablename__ = "idea_likes"
    __table_args__ = (
        db.UniqueConstraint("idea_id", "user_id", name="uq_idea_like_user"),
    )

    id = db.Column(db.Integer, primary_key=True)
    idea_id = db.Column(db.Integer, db.ForeignKey("ideas.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    idea = db.relationship("Idea", back_populates="likes")


class Comment(db.Model):
    __tablename__ = "comments"

    id = db.Column(db.Integer, primary_key=True)
    idea_id = db.Column(db.Integer, db.ForeignKey("ideas.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content = db.Column(db.Text, nullable=False)
    is_deleted = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    idea = db.relationship("Idea", back_populates="comments")
    user = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "idea_id": self.idea_id,
            "user_id": self.user_id,
            "user": self.user.to_summary() if self.user else None,
            "content": self.content,
            "is_deleted": self.is_deleted,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# 5. IdeaVersion
# ═════════════════════════════════════════════════════════════════════════════

class IdeaVersion(db.Model):
    """Immutable snapshot of an idea's content, numbered per idea."""

    __tablename__ = "idea_versions"
    __table_args__ = (
        db.UniqueConstraint("idea_id", "version_number", name="uq_idea_version_number"),
    )

    id = db.Column(db.Integer, primary_key=True)
    idea_id = db.Column(db.Integer, db.ForeignKey("ideas.id", ondelete="CASCADE"), nullable=False, index=True)
    version_number = db.Column(db.Integer, nullable=False)

    idea_title = db.Column(db.String(255), nullable=False)
    thematic_area_id = db.Column(db.Integer, db.ForeignKey("thematic_areas.id", ondelete="SET NULL"))
    abstract = db.Column(db.Text)
    problem_statement = db.Column(db.Text)
    proposed_solution = db.Column(db.Text)
    cost_benefit_analysis = db.Column(db.Text)
    declaration_of_interests = db.Column(db.Text)
    original_idea_disclaimer = db.Column(db.Boolean, default=False)
    collaboration_enabled = db.Column(db.Boolean, default=False)
    team_effort = db.Column(db.Boolean, default=False)
    comments_enabled = db.Column(db.Boolean, default=True)
    collaboration_deadline = db.Column(db.Date)
    current_revision_number = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False)

    change_description = db.Column(db.Text)
    changed_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    collaboration_proposal_id = db.Column(
        db.Integer, db.ForeignKey("collaboration_proposals.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    idea = db.relationship("Idea", back_populates="versions")
    changed_by_user = db.relationship("User", foreign_keys=[changed_by])

    def content_snapshot(self):
        return {f: getattr(self, f) for f in IDEA_CONTENT_FIELDS}

    def to_dict(self):
        d = {
            "id": self.id,
            "idea_id": self.idea_id,
            "version_number": self.version_number,
            "current_revision_number": self.current_revision_number,
            "status": self.status,
            "change_description": self.change_description,
            "changed_by": self.changed_by_user.to_summary() if self.changed_by_user else None,
            "collaboration_proposal_id": self.collaboration_proposal_id,
            "created_at": _iso(self.created_at),
        }
        for field, value in self.content_snapshot().items():
            d[field] = _iso(value) if field == "collaboration_deadline" else value
        return d
