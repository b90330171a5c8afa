"""
Innovation Review Portal
Challenge Review Blueprint — reviews and DD decisions on challenge submissions.

Endpoints:
    POST /api/v1/challenge-submissions/<id>/reviews    — {recommendation, comments (≥10)}
    POST /api/v1/challenge-submissions/<id>/decision   — {stage, decision, compiled_comments, dd_comments?}
    GET  /api/v1/challenge-reviews/dashboard/sme
    GET  /api/v1/challenge-reviews/dashboard/board
    GET  /api/v1/challenge-reviews/dashboard/dd
"""

from flask import Blueprint, g, jsonify

import ideaportal.services.challenge_review_service as challenge_reviews
from ideaportal.blueprints import register_service_error_handlers
from ideaportal.middleware.permission_required import require_permission
from ideaportal.models.workflow import CHALLENGE_STAGE_LABELS
from ideaportal.utils.errors import E, api_error
from ideaportal.utils.helpers import db_commit_or_error, json_object
from ideaportal.utils.validators import validate_decision, validate_review


challenge_review_bp = Blueprint("challenge_review", __name__, url_prefix="/api/v1")
register_service_error_handlers(challenge_review_bp)

REVIEW_COMMENTS_MIN = 10
STAGE_BY_LABEL = {label: stage for stage, label in CHALLENGE_STAGE_LABELS.items()}


def _parse_stage(raw):
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int) and raw in (1, 2):
        return raw
    if isinstance(raw, str):
        return STAGE_BY_LABEL.get(raw.strip().lower())
    return None


@challenge_review_bp.route("/challenge-submissions/<int:submission_id>/reviews", methods=["POST"])
@require_permission("review.challenge-submissions")
def submit_review(submission_id):
    clean, errors = validate_review(json_object(), min_len=REVIEW_COMMENTS_MIN)
    if errors:
        return api_error(E.VALIDATION_INVALID, "Validation failed", details=errors)

    review = challenge_reviews.submit_review(
        submission_id, g.current_user, clean["recommendation"], clean["comments"],
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(review.to_dict()), 201


@challenge_review_bp.route("/challenge-submissions/<int:submission_id>/decision", methods=["POST"])
@require_permission("manage.review-decisions")
def make_decision(submission_id):
    """``stage`` must name the submission's current review stage: 1, 2, "stage 1" or "stage 2"."""
    data = json_object()
    clean, errors = validate_decision(data, compiled_min=None)
    stage = _parse_stage(data.get("stage"))
    if stage is None:
        errors["stage"] = "stage must be 1, 2, 'stage 1' or 'stage 2'"
    if errors:
        return api_error(E.VALIDATION_INVALID, "Validation failed", details=errors)

    result = challenge_reviews.make_decision(
        submission_id, g.current_user, stage, clean["decision"],
        clean["compiled_comments"], clean["dd_comments"],
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result)


@challenge_review_bp.route("/challenge-reviews/dashboard/sme", methods=["GET"])
@require_permission("review.challenge-submissions")
def sme_dashboard():
    return jsonify(challenge_reviews.reviewer_dashboard(g.current_user, 1))


@challenge_review_bp.route("/challenge-reviews/dashboard/board", methods=["GET"])
@require_permission("review.challenge-submissions")
def board_dashboard():
    return jsonify(challenge_reviews.reviewer_dashboard(g.current_user, 2))


@challenge_review_bp.route("/challenge-reviews/dashboard/dd", methods=["GET"])
@require_permission("manage.review-decisions")
def dd_dashboard():
    return jsonify(challenge_reviews.dd_dashboard(g.current_user))
