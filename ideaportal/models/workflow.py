"""
Innovation Review Portal
Review workflow vocabulary — statuses, decisions and transition tables.

Shared by ideas and challenge submissions. The tables are the single source
of truth for every status change; ``ideaportal.services.review_workflow``
interprets them.
"""

# ── Statuses ─────────────────────────────────────────────────────────────────

STATUS_DRAFT = "draft"
STATUS_STAGE1_REVIEW = "stage 1 review"
STATUS_STAGE1_REVISE = "stage 1 revise"
STATUS_STAGE2_REVIEW = "stage 2 review"
STATUS_STAGE2_REVISE = "stage 2 revise"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"

SUBMISSION_STATUSES = (
    STATUS_DRAFT,
    STATUS_STAGE1_REVIEW,
    STATUS_STAGE1_REVISE,
    STATUS_STAGE2_REVIEW,
    STATUS_STAGE2_REVISE,
    STATUS_APPROVED,
    STATUS_REJECTED,
)

REVIEW_STATUSES = frozenset({STATUS_STAGE1_REVIEW, STATUS_STAGE2_REVIEW})
REVISE_STATUSES = frozenset({STATUS_STAGE1_REVISE, STATUS_STAGE2_REVISE})
TERMINAL_STATUSES = frozenset({STATUS_APPROVED, STATUS_REJECTED})

# Review status → stage number
STAGE_BY_STATUS = {
    STATUS_STAGE1_REVIEW: 1,
    STATUS_STAGE2_REVIEW: 2,
}

# ── Decisions / recommendations ──────────────────────────────────────────────

DECISION_APPROVE = "approve"
DECISION_REVISE = "revise"
DECISION_REJECT = "reject"

DECISIONS = (DECISION_APPROVE, DECISION_REVISE, DECISION_REJECT)

# ── Transition tables ────────────────────────────────────────────────────────

# (stage, decision) → new status
DECISION_TRANSITIONS = {
    (1, DECISION_APPROVE): STATUS_STAGE2_REVIEW,
    (1, DECISION_REVISE): STATUS_STAGE1_REVISE,
    (1, DECISION_REJECT): STATUS_REJECTED,
    (2, DECISION_APPROVE): STATUS_APPROVED,
    (2, DECISION_REVISE): STATUS_STAGE2_REVISE,
    (2, DECISION_REJECT): STATUS_REJECTED,
}

# Author resubmission: current status → review status
RESUBMIT_TRANSITIONS = {
    STATUS_DRAFT: STATUS_STAGE1_REVIEW,
    STATUS_STAGE1_REVISE: STATUS_STAGE1_REVIEW,
    STATUS_STAGE2_REVISE: STATUS_STAGE2_REVIEW,
}

# Entering these statuses bumps an idea's current_revision_number
REVISION_BUMP_STATUSES = frozenset({STATUS_STAGE2_REVIEW, STATUS_APPROVED})

# ── Stage labels persisted on review / decision rows ─────────────────────────

IDEA_STAGE_LABELS = {1: "stage1", 2: "stage2"}
CHALLENGE_STAGE_LABELS = {1: "stage 1", 2: "stage 2"}
