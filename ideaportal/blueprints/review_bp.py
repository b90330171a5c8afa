"""
Innovation Review Portal
Idea Review Blueprint — reviewer recommendations, DD decisions, dashboards.

Endpoints:
    POST /api/v1/ideas/<id>/reviews            — SME (stage 1) / Board (stage 2) review
    POST /api/v1/ideas/<id>/decision           — Deputy Director decision
    GET  /api/v1/ideas/<id>/decision/preview   — dry-run a decision (?decision=approve)
    POST /api/v1/ideas/<id>/resubmit           — author sends draft / revision back to review
    GET  /api/v1/ideas/<id>/review             — review details (reviews, decisions, can_review)
    GET  /api/v1/reviews/dashboard/sme
    GET  /api/v1/reviews/dashboard/board
    GET  /api/v1/reviews/dashboard/dd
    GET  /api/v1/reviews/dashboard/author
"""

from flask import Blueprint, g, jsonify, request

import ideaportal.services.idea_service as ideas
import ideaportal.services.review_service as reviews
from ideaportal.blueprints import register_service_error_handlers
from ideaportal.core.exceptions import NotFoundError
from ideaportal.middleware.permission_required import (
    login_required,
    require_any_permission,
    require_permission,
)
from ideaportal.services import review_workflow as wf
from ideaportal.utils.errors import E, api_error
from ideaportal.utils.helpers import db_commit_or_error, json_object
from ideaportal.utils.validators import validate_decision, validate_review


review_bp = Blueprint("review", __name__, url_prefix="/api/v1")
register_service_error_handlers(review_bp)

REVIEW_COMMENTS_LENGTH = (50, 2000)


@review_bp.route("/ideas/<int:idea_id>/reviews", methods=["POST"])
@require_any_permission("review.ideas-stage1", "review.ideas-stage2")
def submit_review(idea_id):
    """Body: {recommendation: approve|revise|reject, comments: 50-2000 chars}"""
    lo, hi = REVIEW_COMMENTS_LENGTH
    clean, errors = validate_review(json_object(), min_len=lo, max_len=hi)
    if errors:
        return api_error(E.VALIDATION_INVALID, "Validation failed", details=errors)

    review = reviews.submit_review(idea_id, g.current_user, clean["recommendation"], clean["comments"])
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(review.to_dict()), 201


@review_bp.route("/ideas/<int:idea_id>/decision", methods=["POST"])
@require_permission("manage.idea-workflow")
def make_decision(idea_id):
    """
    Body: {decision, compiled_comments (≥50 chars), dd_comments? (≤1000)}

    Returns: {new_status, previous_status, decision}
    """
    clean, errors = validate_decision(json_object())
    if errors:
        return api_error(E.VALIDATION_INVALID, "Validation failed", details=errors)

    result = reviews.make_decision(
        idea_id, g.current_user, clean["decision"], clean["compiled_comments"], clean["dd_comments"],
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result)


@review_bp.route("/ideas/<int:idea_id>/decision/preview", methods=["GET"])
@require_permission("manage.idea-workflow")
def preview_decision(idea_id):
    idea = ideas.get_idea_by_id(idea_id)
    decision = request.args.get("decision", "")
    return jsonify(wf.validate_decision(idea.status, decision))


@review_bp.route("/ideas/<int:idea_id>/resubmit", methods=["POST"])
@login_required
def resubmit(idea_id):
    if not ideas.can_view(g.current_user, ideas.get_idea_by_id(idea_id)):
        raise NotFoundError("Idea", idea_id)
    result = reviews.resubmit_idea(idea_id, g.current_user)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result)


@review_bp.route("/ideas/<int:idea_id>/review", methods=["GET"])
@login_required
def review_details(idea_id):
    idea = ideas.get_idea_by_id(idea_id)
    if not ideas.can_view(g.current_user, idea):
        raise NotFoundError("Idea", idea_id)
    return jsonify(reviews.review_details(idea_id, g.current_user))


# ═════════════════════════════════════════════════════════════════════════════
# Dashboards
# ═════════════════════════════════════════════════════════════════════════════

@review_bp.route("/reviews/dashboard/sme", methods=["GET"])
@require_permission("review.ideas-stage1")
def sme_dashboard():
    return jsonify(reviews.reviewer_dashboard(g.current_user, 1))


@review_bp.route("/reviews/dashboard/board", methods=["GET"])
@require_permission("review.ideas-stage2")
def board_dashboard():
    return jsonify(reviews.reviewer_dashboard(g.current_user, 2))


@review_bp.route("/reviews/dashboard/dd", methods=["GET"])
@require_permission("manage.idea-workflow")
def dd_dashboard():
    return jsonify(reviews.dd_dashboard())


@review_bp.route("/reviews/dashboard/author", methods=["GET"])
@login_required
def author_dashboard():
    return jsonify(reviews.author_dashboard(g.current_user))
