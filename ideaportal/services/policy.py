"""
Authorization gates — object-level rules that roles alone cannot express.

Each gate is a predicate ``(user, obj) -> bool``. ``authorize`` raises
``PermissionDenied`` when a gate fails so services can guard in one line:

    authorize("edit-idea", user, idea)

Route-level permission codenames are checked by the decorators in
``ideaportal.middleware.permission_required``; gates cover ownership and
status-dependent rules.
"""

from ideaportal.core.exceptions import PermissionDenied
from ideaportal.models.auth import ROLE_ADMIN, ROLE_DEPUTY_DIRECTOR, ROLE_SME
from ideaportal.models.challenge import ChallengeSubmission
from ideaportal.models.workflow import (
    REVIEW_STATUSES,
    REVISE_STATUSES,
    STATUS_APPROVED,
    STATUS_DRAFT,
    STATUS_STAGE1_REVIEW,
)
from ideaportal.services import review_workflow
from ideaportal.services.permission_service import has_role

# Statuses in which a challenge submission may still be edited by its author
SUBMISSION_EDITABLE_STATUSES = frozenset({STATUS_DRAFT}) | REVISE_STATUSES


def _is_manager(user) -> bool:
    return has_role(user.id, ROLE_ADMIN, ROLE_DEPUTY_DIRECTOR)


def can_edit_idea(user, idea) -> bool:
    if _is_manager(user):
        return True
    if idea.user_id == user.id:
        return idea.status not in REVIEW_STATUSES
    return False


def can_delete_idea(user, idea) -> bool:
    if _is_manager(user):
        return True
    if idea.user_id == user.id:
        return idea.status not in REVIEW_STATUSES | {STATUS_APPROVED}
    return False


def can_manage_idea_workflow(user, obj=None) -> bool:
    return has_role(user.id, ROLE_DEPUTY_DIRECTOR)


def can_collaborate_on_idea(user, idea) -> bool:
    if idea.user_id == user.id:
        return False
    if not idea.collaboration_enabled:
        return False
    # SMEs review stage 1; they may not also shape the idea during it
    if idea.status == STATUS_STAGE1_REVIEW and has_role(user.id, ROLE_SME):
        return False
    return True


def can_manage_collaboration_proposal(user, idea) -> bool:
    return _is_manager(user) or idea.user_id == user.id


def can_toggle_idea_setting(user, idea) -> bool:
    return idea.user_id == user.id or has_role(user.id, ROLE_ADMIN)


def can_comment_on_idea(user, idea) -> bool:
    if idea.comments_enabled:
        return True
    return idea.user_id == user.id or has_role(user.id, ROLE_ADMIN)


def can_manage_challenge(user, challenge=None) -> bool:
    return _is_manager(user)


def can_edit_challenge_submission(user, submission: ChallengeSubmission) -> bool:
    return (
        submission.submitted_by == user.id
        and submission.status in SUBMISSION_EDITABLE_STATUSES
        and submission.challenge.is_open
    )


GATES = {
    "edit-idea": can_edit_idea,
    "delete-idea": can_delete_idea,
    "manage-idea-workflow": can_manage_idea_workflow,
    "review-idea": review_workflow.can_be_reviewed_by,
    "collaborate-on-idea": can_collaborate_on_idea,
    "manage-collaboration-proposal": can_manage_collaboration_proposal,
    "toggle-idea-setting": can_toggle_idea_setting,
    "comment-on-idea": can_comment_on_idea,
    "manage-challenge": can_manage_challenge,
    "edit-challenge-submission": can_edit_challenge_submission,
}


def allows(gate: str, user, obj=None) -> bool:
    check = GATES.get(gate)
    if check is None:
        raise KeyError(f"Unknown gate: {gate}")
    if gate == "review-idea":
        return check(obj, user)
    return check(user, obj)


def authorize(gate: str, user, obj=None) -> None:
    """Raise PermissionDenied unless ``gate`` allows ``user`` on ``obj``."""
    if not allows(gate, user, obj):
        raise PermissionDenied(gate, user_id=user.id)
