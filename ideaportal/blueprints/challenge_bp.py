"""
Innovation Review Portal
Challenge Blueprint — challenges and the submissions made against them.

Endpoints:
  Challenges
    GET    /api/v1/challenges                          — manager list (all statuses)
    GET    /api/v1/challenges/public                   — active challenges
    POST   /api/v1/challenges                          — create (draft)
    GET    /api/v1/challenges/<id>
    PUT    /api/v1/challenges/<id>
    DELETE /api/v1/challenges/<id>                     — refused once submissions exist
    POST   /api/v1/challenges/<id>/activate | close | cancel
    GET    /api/v1/challenges/<id>/attachment
  Submissions
    POST   /api/v1/challenges/<id>/submissions         — {..., submit_now?}
    GET    /api/v1/challenge-submissions/mine
    GET    /api/v1/challenge-submissions/<id>
    PUT    /api/v1/challenge-submissions/<id>          — {..., submit_now?}
    GET    /api/v1/challenge-submissions/<id>/attachment

Attachments may be of any type for challenges and submissions.
"""

import io
import logging

from flask import Blueprint, g, jsonify, request, send_file

import ideaportal.services.challenge_service as challenges
from ideaportal.blueprints import paginate_query, register_service_error_handlers
from ideaportal.middleware.permission_required import login_required, require_permission
from ideaportal.utils.errors import E, api_error
from ideaportal.utils.helpers import db_commit_or_error, parse_bool, read_upload, request_payload
from ideaportal.utils.validators import validate_challenge, validate_submission

logger = logging.getLogger(__name__)

challenge_bp = Blueprint("challenge", __name__, url_prefix="/api/v1")
register_service_error_handlers(challenge_bp)


def _validated(validator, data):
    """Run ``validator`` and read the optional upload; returns (clean, upload, error response)."""
    clean, errors = validator(data)
    upload, upload_error = read_upload(pdf_only=False)
    if upload_error:
        errors["attachment"] = upload_error
    for flag in ("submit_now", "remove_attachment"):
        try:
            clean[flag] = parse_bool(data.get(flag))
        except ValueError:
            errors[flag] = f"{flag} must be a boolean"
    if errors:
        return None, None, api_error(E.VALIDATION_INVALID, "Validation failed", details=errors)
    return clean, upload, None


def _download(obj, fallback_name):
    obj = challenges.attachment_for(obj)
    return send_file(
        io.BytesIO(obj.attachment),
        mimetype=obj.attachment_mime or "application/octet-stream",
        as_attachment=True,
        download_name=obj.attachment_filename or fallback_name,
    )


# ═════════════════════════════════════════════════════════════════════════════
# Challenges
# ═════════════════════════════════════════════════════════════════════════════

@challenge_bp.route("/challenges", methods=["GET"])
@require_permission("manage.challenges")
def list_challenges():
    items, total = paginate_query(challenges.list_challenges())
    return jsonify({"items": [c.to_dict(include_counts=True) for c in items], "total": total})


@challenge_bp.route("/challenges/public", methods=["GET"])
@login_required
def list_public_challenges():
    items, total = paginate_query(challenges.list_public_challenges())
    return jsonify({"items": [c.to_dict(include_counts=True) for c in items], "total": total})


@challenge_bp.route("/challenges", methods=["POST"])
@require_permission("create.challenges")
def create_challenge():
    """Body: {title, description, deadline (future), guidelines, reward} + optional "attachment"."""
    clean, upload, err = _validated(validate_challenge, request_payload())
    if err:
        return err
    data = {k: clean[k] for k in challenges.CHALLENGE_FIELDS}
    challenge = challenges.create_challenge(g.current_user, data, upload)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(challenge.to_dict()), 201


@challenge_bp.route("/challenges/<int:challenge_id>", methods=["GET"])
@login_required
def get_challenge(challenge_id):
    challenge = challenges.get_visible_challenge(challenge_id, g.current_user)
    return jsonify(challenge.to_dict(include_counts=True))


@challenge_bp.route("/challenges/<int:challenge_id>", methods=["PUT"])
@login_required
def update_challenge(challenge_id):
    challenge = challenges.get_challenge(challenge_id)
    clean, upload, err = _validated(validate_challenge, request_payload())
    if err:
        return err
    data = {k: clean[k] for k in challenges.CHALLENGE_FIELDS}
    challenges.update_challenge(
        challenge, g.current_user, data, upload, remove_attachment=clean["remove_attachment"],
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(challenge.to_dict())


@challenge_bp.route("/challenges/<int:challenge_id>", methods=["DELETE"])
@login_required
def delete_challenge(challenge_id):
    challenges.delete_challenge(challenges.get_challenge(challenge_id), g.current_user)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"deleted": True, "id": challenge_id})


@challenge_bp.route("/challenges/<int:challenge_id>/<any(activate, close, cancel):action>", methods=["POST"])
@login_required
def change_status(challenge_id, action):
    challenge = challenges.change_status(challenges.get_challenge(challenge_id), g.current_user, action)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(challenge.to_dict())


@challenge_bp.route("/challenges/<int:challenge_id>/attachment", methods=["GET"])
@login_required
def download_challenge_attachment(challenge_id):
    challenge = challenges.get_visible_challenge(challenge_id, g.current_user)
    return _download(challenge, f"challenge-{challenge.id}")


# ═════════════════════════════════════════════════════════════════════════════
# Submissions
# ═════════════════════════════════════════════════════════════════════════════

@challenge_bp.route("/challenges/<int:challenge_id>/submissions", methods=["POST"])
@require_permission("submit.challenge-responses")
def submit(challenge_id):
    """
    Body: {title, description, motivation, cost_of_implementation?, original_disclaimer, submit_now?}

    Without submit_now the submission is saved as a draft.
    """
    challenge = challenges.get_visible_challenge(challenge_id, g.current_user)
    clean, upload, err = _validated(validate_submission, request_payload())
    if err:
        return err
    data = {k: clean[k] for k in challenges.SUBMISSION_FIELDS}
    submission = challenges.submit(challenge, g.current_user, data, upload, submit_now=clean["submit_now"])
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(submission.to_dict()), 201


@challenge_bp.route("/challenge-submissions/mine", methods=["GET"])
@login_required
def my_submissions():
    return jsonify([s.to_dict() for s in challenges.my_submissions(g.current_user)])


@challenge_bp.route("/challenge-submissions/<int:submission_id>", methods=["GET"])
@login_required
def submission_details(submission_id):
    return jsonify(challenges.submission_details(submission_id, g.current_user))


@challenge_bp.route("/challenge-submissions/<int:submission_id>", methods=["PUT"])
@login_required
def update_submission(submission_id):
    submission = challenges.get_submission(submission_id)
    clean, upload, err = _validated(validate_submission, request_payload())
    if err:
        return err
    data = {k: clean[k] for k in challenges.SUBMISSION_FIELDS}
    challenges.update_submission(
        submission, g.current_user, data, upload,
        remove_attachment=clean["remove_attachment"], submit_now=clean["submit_now"],
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(submission.to_dict())


@challenge_bp.route("/challenge-submissions/<int:submission_id>/attachment", methods=["GET"])
@login_required
def download_submission_attachment(submission_id):
    submission = challenges.get_visible_submission(submission_id, g.current_user)
    return _download(submission, f"submission-{submission.id}")
