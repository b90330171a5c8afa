"""initial_schema

Users / RBAC, thematic areas, ideas (team, collaboration members, likes,
comments, versions), collaboration requests and proposals, idea reviews
and decisions, challenges and submissions with their reviews and
decisions, notifications and the audit log.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def _attachment_columns():
    return [
        sa.Column("attachment", sa.LargeBinary(), nullable=True),
        sa.Column("attachment_filename", sa.String(length=255), nullable=True),
        sa.Column("attachment_mime", sa.String(length=100), nullable=True),
        sa.Column("attachment_size", sa.Integer(), nullable=True),
    ]


def _review_columns(fk_name, fk_table):
    return [
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(fk_name, sa.Integer(), nullable=False),
        sa.Column("reviewer_id", sa.Integer(), nullable=False),
        sa.Column("review_stage", sa.String(length=10), nullable=False),
        sa.Column("recommendation", sa.String(length=10), nullable=False),
        sa.Column("comments", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint([fk_name], [f"{fk_table}.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["reviewer_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    ]


def _decision_columns(fk_name, fk_table):
    return [
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(fk_name, sa.Integer(), nullable=False),
        sa.Column("deputy_director_id", sa.Integer(), nullable=True),
        sa.Column("review_stage", sa.String(length=10), nullable=False),
        sa.Column("decision", sa.String(length=10), nullable=False),
        sa.Column("compiled_comments", sa.Text(), nullable=False),
        sa.Column("dd_comments", sa.Text(), nullable=True),
        sa.Column("previous_status", sa.String(length=20), nullable=False),
        sa.Column("new_status", sa.String(length=20), nullable=False),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint([fk_name], [f"{fk_table}.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["deputy_director_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    ]


def upgrade():
    # ── Users / RBAC ─────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=200), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("display_name", sa.String(length=200), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_table(
        "permissions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("codename", sa.String(length=100), nullable=False),
        sa.Column("category", sa.String(length=50), nullable=False),
        sa.Column("display_name", sa.String(length=200), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("codename"),
    )
    op.create_table(
        "role_permissions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("role_id", sa.Integer(), nullable=False),
        sa.Column("permission_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["permission_id"], ["permissions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),
    )
    op.create_table(
        "user_roles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("role_id", sa.Integer(), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "role_id", name="uq_user_role"),
    )

    # ── Thematic areas & ideas ───────────────────────────────────────────
    op.create_table(
        "thematic_areas",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=150), nullable=False),
        sa.Column("slug", sa.String(length=160), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )
    op.create_table(
        "ideas",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("idea_title", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=20), nullable=False),
        sa.Column("thematic_area_id", sa.Integer(), nullable=True),
        sa.Column("abstract", sa.Text(), nullable=True),
        sa.Column("problem_statement", sa.Text(), nullable=True),
        sa.Column("proposed_solution", sa.Text(), nullable=True),
        sa.Column("cost_benefit_analysis", sa.Text(), nullable=True),
        sa.Column("declaration_of_interests", sa.Text(), nullable=True),
        sa.Column("original_idea_disclaimer", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("collaboration_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("team_effort", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("comments_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("current_revision_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("collaboration_deadline", sa.Date(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        *_attachment_columns(),
        sa.Column("user_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["thematic_area_id"], ["thematic_areas.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )
    op.create_index("ix_ideas_status", "ideas", ["status"])
    op.create_index("ix_ideas_user_status", "ideas", ["user_id", "status"])
    op.create_index("ix_ideas_collaboration_enabled", "ideas", ["collaboration_enabled"])
    op.create_index("ix_ideas_thematic_area", "ideas", ["thematic_area_id"])
    op.create_index("ix_ideas_deleted_at", "ideas", ["deleted_at"])

    for table in ("team_members", "collaboration_members"):
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("idea_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("role", sa.String(length=255), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["idea_id"], ["ideas.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(f"ix_{table}_idea_id", table, ["idea_id"])

    op.create_table(
        "idea_likes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("idea_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["idea_id"], ["ideas.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("idea_id", "user_id", name="uq_idea_like_user"),
    )
    op.create_index("ix_idea_likes_idea_id", "idea_likes", ["idea_id"])

    op.create_table(
        "comments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("idea_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.ForeignKeyConstraint(["idea_id"], ["ideas.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_comments_idea_id", "comments", ["idea_id"])

    # ── Collaboration ────────────────────────────────────────────────────
    op.create_table(
        "collaboration_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("idea_id", sa.Integer(), nullable=False),
        sa.Column("requester_id", sa.Integer(), nullable=False),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["idea_id"], ["ideas.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["requester_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("idea_id", "requester_id", name="uq_collab_request_idea_requester"),
    )
    op.create_index("ix_collab_requests_owner_status", "collaboration_requests", ["owner_id", "status"])

    op.create_table(
        "collaboration_proposals",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("idea_id", sa.Integer(), nullable=False),
        sa.Column("collaborator_id", sa.Integer(), nullable=False),
        sa.Column("original_author_id", sa.Integer(), nullable=False),
        sa.Column("proposed_idea_title", sa.String(length=255), nullable=True),
        sa.Column("proposed_thematic_area_id", sa.Integer(), nullable=True),
        sa.Column("proposed_abstract", sa.Text(), nullable=True),
        sa.Column("proposed_problem_statement", sa.Text(), nullable=True),
        sa.Column("proposed_solution", sa.Text(), nullable=True),
        sa.Column("proposed_cost_benefit_analysis", sa.Text(), nullable=True),
        sa.Column("proposed_declaration_of_interests", sa.Text(), nullable=True),
        sa.Column("proposed_original_idea_disclaimer", sa.Boolean(), nullable=True),
        sa.Column("proposed_collaboration_enabled", sa.Boolean(), nullable=True),
        sa.Column("proposed_team_effort", sa.Boolean(), nullable=True),
        sa.Column("proposed_comments_enabled", sa.Boolean(), nullable=True),
        sa.Column("proposed_collaboration_deadline", sa.Date(), nullable=True),
        sa.Column("collaboration_notes", sa.Text(), nullable=False),
        sa.Column("change_summary", sa.String(length=500), nullable=False),
        sa.Column("changed_fields", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="pending"),
        sa.Column("review_notes", sa.Text(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["idea_id"], ["ideas.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["collaborator_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["original_author_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["proposed_thematic_area_id"], ["thematic_areas.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["reviewed_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_collab_proposals_idea_status", "collaboration_proposals", ["idea_id", "status"])
    op.create_index(
        "ix_collab_proposals_author_status", "collaboration_proposals", ["original_author_id", "status"],
    )

    op.create_table(
        "idea_versions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("idea_id", sa.Integer(), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("idea_title", sa.String(length=255), nullable=False),
        sa.Column("thematic_area_id", sa.Integer(), nullable=True),
        sa.Column("abstract", sa.Text(), nullable=True),
        sa.Column("problem_statement", sa.Text(), nullable=True),
        sa.Column("proposed_solution", sa.Text(), nullable=True),
        sa.Column("cost_benefit_analysis", sa.Text(), nullable=True),
        sa.Column("declaration_of_interests", sa.Text(), nullable=True),
        sa.Column("original_idea_disclaimer", sa.Boolean(), nullable=True),
        sa.Column("collaboration_enabled", sa.Boolean(), nullable=True),
        sa.Column("team_effort", sa.Boolean(), nullable=True),
        sa.Column("comments_enabled", sa.Boolean(), nullable=True),
        sa.Column("collaboration_deadline", sa.Date(), nullable=True),
        sa.Column("current_revision_number", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("change_description", sa.Text(), nullable=True),
        sa.Column("changed_by", sa.Integer(), nullable=True),
        sa.Column("collaboration_proposal_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["idea_id"], ["ideas.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["thematic_area_id"], ["thematic_areas.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["changed_by"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(
            ["collaboration_proposal_id"], ["collaboration_proposals.id"], ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("idea_id", "version_number", name="uq_idea_version_number"),
    )
    op.create_index("ix_idea_versions_idea_id", "idea_versions", ["idea_id"])

    # ── Idea reviews ─────────────────────────────────────────────────────
    op.create_table(
        "idea_reviews",
        *_review_columns("idea_id", "ideas"),
        sa.UniqueConstraint("idea_id", "reviewer_id", "review_stage", name="uq_idea_review_reviewer_stage"),
    )
    op.create_index("ix_idea_reviews_idea_stage", "idea_reviews", ["idea_id", "review_stage"])
    op.create_table("idea_review_decisions", *_decision_columns("idea_id", "ideas"))
    op.create_index("ix_idea_decisions_idea_stage", "idea_review_decisions", ["idea_id", "review_stage"])

    # ── Challenges ───────────────────────────────────────────────────────
    op.create_table(
        "challenges",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("guidelines", sa.Text(), nullable=False),
        sa.Column("reward", sa.Text(), nullable=False),
        *_attachment_columns(),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        sa.Column("created_by", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_challenges_status_deadline", "challenges", ["status", "deadline"])
    op.create_index("ix_challenges_created_by", "challenges", ["created_by"])

    op.create_table(
        "challenge_submissions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("challenge_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("motivation", sa.Text(), nullable=False),
        sa.Column("cost_of_implementation", sa.Numeric(15, 2), nullable=True),
        sa.Column("original_disclaimer", sa.Text(), nullable=False),
        *_attachment_columns(),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        sa.Column("submitted_by", sa.Integer(), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["challenge_id"], ["challenges.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["submitted_by"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("challenge_id", "submitted_by", name="uq_challenge_submission_user"),
    )
    op.create_index(
        "ix_challenge_submissions_challenge_status", "challenge_submissions", ["challenge_id", "status"],
    )
    op.create_index("ix_challenge_submissions_status", "challenge_submissions", ["status"])
    op.create_index("ix_challenge_submissions_submitted_by", "challenge_submissions", ["submitted_by"])

    op.create_table(
        "challenge_submission_reviews",
        *_review_columns("challenge_submission_id", "challenge_submissions"),
        sa.UniqueConstraint(
            "challenge_submission_id", "reviewer_id", "review_stage",
            name="uq_challenge_review_reviewer_stage",
        ),
    )
    op.create_table(
        "challenge_submission_review_decisions",
        *_decision_columns("challenge_submission_id", "challenge_submissions"),
    )
    op.create_index(
        "ix_challenge_decisions_submission_stage", "challenge_submission_review_decisions",
        ["challenge_submission_id", "review_stage"],
    )

    # ── Notifications & audit ────────────────────────────────────────────
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("recipient_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=300), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=30), nullable=True),
        sa.Column("severity", sa.String(length=20), nullable=True),
        sa.Column("entity_type", sa.String(length=30), nullable=True),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["recipient_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_recipient_id", "notifications", ["recipient_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("entity_type", sa.String(length=30), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=False),
        sa.Column("action", sa.String(length=60), nullable=False),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("diff_json", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("idx_audit_actor", "audit_logs", ["actor_user_id"])
    op.create_index("idx_audit_action", "audit_logs", ["action"])
    op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])


def downgrade():
    for table in (
        "audit_logs",
        "notifications",
        "challenge_submission_review_decisions",
        "challenge_submission_reviews",
        "challenge_submissions",
        "challenges",
        "idea_review_decisions",
        "idea_reviews",
        "idea_versions",
        "collaboration_proposals",
        "collaboration_requests",
        "comments",
        "idea_likes",
        "collaboration_members",
        "team_members",
        "ideas",
        "thematic_areas",
        "user_roles",
        "role_permissions",
        "permissions",
        "roles",
        "users",
    ):
        op.drop_table(table)
