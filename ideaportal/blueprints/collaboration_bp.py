"""
Innovation Review Portal
Collaboration Blueprint — collaboration requests, proposals and idea versions.

Endpoints:
  Requests
    GET    /api/v1/collaboration/ideas                      — ideas open for collaboration
    POST   /api/v1/ideas/<slug>/collaboration-requests      — ask to collaborate
    DELETE /api/v1/collaboration-requests/<id>              — requester cancels (pending only)
    POST   /api/v1/collaboration-requests/<id>/respond      — owner: {action: approve|reject}
    GET    /api/v1/collaboration-requests/inbox
    GET    /api/v1/collaboration-requests/outbox
  Proposals
    POST   /api/v1/ideas/<slug>/proposals                   — propose changes
    POST   /api/v1/proposals/<id>/respond                   — author: accept|reject|request_revision
    GET    /api/v1/proposals/mine
    GET    /api/v1/proposals/received
    GET    /api/v1/proposals/<id>
    GET    /api/v1/ideas/<slug>/proposals/pending
    GET    /api/v1/ideas/<slug>/manage                      — versions + proposals
  Versions
    GET    /api/v1/ideas/<slug>/versions
    POST   /api/v1/ideas/<slug>/rollback                    — {version_number}
"""

import logging

from flask import Blueprint, g, jsonify

import ideaportal.services.collaboration_service as requests_svc
import ideaportal.services.idea_service as ideas
import ideaportal.services.proposal_service as proposals
from ideaportal.blueprints import register_service_error_handlers
from ideaportal.middleware.permission_required import login_required, require_permission
from ideaportal.utils.errors import E, api_error
from ideaportal.utils.helpers import db_commit_or_error, json_object
from ideaportal.utils.validators import parse_proposed_values, validate_proposal

logger = logging.getLogger(__name__)

collaboration_bp = Blueprint("collaboration", __name__, url_prefix="/api/v1")
register_service_error_handlers(collaboration_bp)

REQUEST_MESSAGE_MAX = 1000
REVIEW_NOTES_MAX = 1000


def _invalid(errors):
    return api_error(E.VALIDATION_INVALID, "Validation failed", details=errors)


# ═════════════════════════════════════════════════════════════════════════════
# Collaboration requests
# ═════════════════════════════════════════════════════════════════════════════

@collaboration_bp.route("/collaboration/ideas", methods=["GET"])
@login_required
def collaboration_index():
    return jsonify(requests_svc.collaboration_index(g.current_user))


@collaboration_bp.route("/ideas/<slug>/collaboration-requests", methods=["POST"])
@login_required
def send_request(slug):
    """Body: {message?}"""
    data = json_object()
    message = data.get("message")
    if message is not None and not isinstance(message, str):
        return api_error(E.VALIDATION_INVALID, "message must be a string")
    if message and len(message) > REQUEST_MESSAGE_MAX:
        return api_error(E.VALIDATION_CONSTRAINT, f"message must be at most {REQUEST_MESSAGE_MAX} characters")

    idea = ideas.get_visible_idea(slug, g.current_user)
    req = requests_svc.send_request(idea, g.current_user, (message or "").strip() or None)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(req.to_dict()), 201


@collaboration_bp.route("/collaboration-requests/<int:request_id>", methods=["DELETE"])
@login_required
def cancel_request(request_id):
    requests_svc.cancel_request(request_id, g.current_user)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"deleted": True, "id": request_id})


@collaboration_bp.route("/collaboration-requests/<int:request_id>/respond", methods=["POST"])
@login_required
def respond_request(request_id):
    action = json_object().get("action")
    if action not in requests_svc.RESPONSE_ACTIONS:
        return api_error(
            E.VALIDATION_INVALID,
            f"action must be one of: {', '.join(requests_svc.RESPONSE_ACTIONS)}",
        )
    req = requests_svc.respond_request(request_id, g.current_user, action)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(req.to_dict())


@collaboration_bp.route("/collaboration-requests/inbox", methods=["GET"])
@login_required
def inbox():
    return jsonify([r.to_dict() for r in requests_svc.inbox(g.current_user)])


@collaboration_bp.route("/collaboration-requests/outbox", methods=["GET"])
@login_required
def outbox():
    return jsonify([r.to_dict() for r in requests_svc.outbox(g.current_user)])


# ═════════════════════════════════════════════════════════════════════════════
# Proposals
# ═════════════════════════════════════════════════════════════════════════════

@collaboration_bp.route("/ideas/<slug>/proposals", methods=["POST"])
@require_permission("submit.collaboration-proposals")
def create_proposal(slug):
    """
    Body: {collaboration_notes, change_summary (≤500), proposed_<field>?...}

    ``proposed_*`` keys cover every editable idea field, e.g.
    proposed_idea_title, proposed_abstract, proposed_thematic_area_id.
    """
    clean, errors = validate_proposal(json_object())
    if errors:
        return _invalid(errors)
    idea = ideas.get_visible_idea(slug, g.current_user)
    proposal = proposals.create_proposal(idea, g.current_user, clean)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(proposal.to_dict()), 201


@collaboration_bp.route("/proposals/<int:proposal_id>/respond", methods=["POST"])
@login_required
def respond_proposal(proposal_id):
    """Body: {action, review_notes?, edited_proposal?: {idea_field: value}}"""
    data = json_object()
    action = data.get("action")
    if action not in proposals.PROPOSAL_ACTIONS:
        return api_error(
            E.VALIDATION_INVALID,
            f"action must be one of: {', '.join(proposals.PROPOSAL_ACTIONS)}",
        )
    errors = {}
    notes = data.get("review_notes")
    if notes is not None and (not isinstance(notes, str) or len(notes) > REVIEW_NOTES_MAX):
        errors["review_notes"] = f"review_notes must be a string of at most {REVIEW_NOTES_MAX} characters"
    edited = None
    if data.get("edited_proposal") is not None:
        if not isinstance(data["edited_proposal"], dict):
            errors["edited_proposal"] = "edited_proposal must be an object"
        else:
            edited = parse_proposed_values(data["edited_proposal"], errors, prefixed=False)
    if errors:
        return _invalid(errors)

    proposal = proposals.respond_proposal(proposal_id, g.current_user, action, notes, edited)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(proposal.to_dict())


@collaboration_bp.route("/proposals/mine", methods=["GET"])
@login_required
def my_proposals():
    return jsonify([p.to_dict() for p in proposals.my_proposals(g.current_user)])


@collaboration_bp.route("/proposals/received", methods=["GET"])
@login_required
def received_proposals():
    return jsonify(proposals.received_proposals(g.current_user))


@collaboration_bp.route("/proposals/<int:proposal_id>", methods=["GET"])
@login_required
def proposal_details(proposal_id):
    return jsonify(proposals.proposal_details(proposal_id, g.current_user))


@collaboration_bp.route("/ideas/<slug>/proposals/pending", methods=["GET"])
@login_required
def pending_for_idea(slug):
    idea = ideas.get_idea(slug)
    return jsonify([p.to_dict() for p in proposals.pending_for_idea(idea, g.current_user)])


@collaboration_bp.route("/ideas/<slug>/manage", methods=["GET"])
@login_required
def manage(slug):
    return jsonify(proposals.manage(ideas.get_idea(slug), g.current_user))


# ═════════════════════════════════════════════════════════════════════════════
# Versions
# ═════════════════════════════════════════════════════════════════════════════

@collaboration_bp.route("/ideas/<slug>/versions", methods=["GET"])
@login_required
def list_versions(slug):
    idea = ideas.get_visible_idea(slug, g.current_user)
    return jsonify([v.to_dict() for v in proposals.list_versions(idea)])


@collaboration_bp.route("/ideas/<slug>/rollback", methods=["POST"])
@login_required
def rollback(slug):
    """Body: {version_number}"""
    version_number = json_object().get("version_number")
    if not isinstance(version_number, int) or isinstance(version_number, bool) or version_number < 1:
        return api_error(E.VALIDATION_INVALID, "version_number must be a positive integer")

    idea = ideas.get_idea(slug)
    snapshot = proposals.rollback(idea, g.current_user, version_number)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({
        "idea": idea.to_dict(),
        "snapshot_version": snapshot.version_number,
        "restored_version": version_number,
    })
