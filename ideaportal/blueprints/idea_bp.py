"""
Innovation Review Portal
Idea Blueprint — idea CRUD, attachments, settings, likes and comments.

Endpoints:
    GET    /api/v1/ideas                          — the caller's ideas (filters, paginated)
    GET    /api/v1/ideas/public                   — non-draft ideas with like info
    POST   /api/v1/ideas                          — create (JSON or multipart with "attachment")
    GET    /api/v1/ideas/<slug>                   — detail with team members
    PUT    /api/v1/ideas/<slug>                   — update (gate edit-idea)
    GET    /api/v1/ideas/<slug>/attachment        — download the PDF
    DELETE /api/v1/ideas/<id>                     — hard delete drafts, soft delete others
    POST   /api/v1/ideas/delete-selected          — bulk delete {"ids": [...]}
    POST   /api/v1/ideas/<slug>/toggle-collaboration
    POST   /api/v1/ideas/<slug>/toggle-comments
    POST   /api/v1/ideas/<slug>/like              — like / unlike
    GET    /api/v1/ideas/<slug>/comments
    POST   /api/v1/ideas/<slug>/comments
    PUT    /api/v1/ideas/<slug>/comments/<id>
    DELETE /api/v1/ideas/<slug>/comments/<id>

Service layer flushes; every write is committed here with db_commit_or_error.
"""

import io
import logging

from flask import Blueprint, g, jsonify, request, send_file

import ideaportal.services.idea_service as ideas
from ideaportal.blueprints import paginate_query, register_service_error_handlers
from ideaportal.middleware.permission_required import login_required, require_permission
from ideaportal.utils.errors import E, api_error
from ideaportal.utils.helpers import db_commit_or_error, json_object, parse_bool, read_upload, request_payload
from ideaportal.utils.validators import validate_comment, validate_idea

logger = logging.getLogger(__name__)

idea_bp = Blueprint("idea", __name__, url_prefix="/api/v1")
register_service_error_handlers(idea_bp)


def _invalid(errors):
    return api_error(E.VALIDATION_INVALID, "Validation failed", details=errors)


def _filters():
    return {
        "status": request.args.get("status"),
        "thematic_area_id": request.args.get("thematic_area_id", type=int),
        "q": request.args.get("q"),
    }


def _flag_arg(data, field):
    """Boolean flag from the payload; returns (value, error response)."""
    try:
        return parse_bool(data.get(field)), None
    except ValueError:
        return None, api_error(E.VALIDATION_INVALID, f"{field} must be a boolean")


# ═════════════════════════════════════════════════════════════════════════════
# Listing & detail
# ═════════════════════════════════════════════════════════════════════════════

@idea_bp.route("/ideas", methods=["GET"])
@login_required
def list_my_ideas():
    """The caller's ideas, drafts included. Query: status, thematic_area_id, q, limit, offset."""
    items, total = paginate_query(ideas.list_my_ideas(g.current_user, _filters()))
    return jsonify({"items": [i.to_dict() for i in items], "total": total})


@idea_bp.route("/ideas/public", methods=["GET"])
@require_permission("view.ideas")
def list_public_ideas():
    items, total = paginate_query(ideas.list_public_ideas(_filters()))
    return jsonify({"items": ideas.with_like_info(items, g.current_user), "total": total})


@idea_bp.route("/ideas/<slug>", methods=["GET"])
@login_required
def get_idea(slug):
    idea = ideas.get_visible_idea(slug, g.current_user)
    d = idea.to_dict(include_team=True)
    d["likes_count"] = ideas.likes_count(idea)
    return jsonify(d)


@idea_bp.route("/ideas/<slug>/attachment", methods=["GET"])
@login_required
def download_attachment(slug):
    idea = ideas.attachment_for(ideas.get_visible_idea(slug, g.current_user))
    return send_file(
        io.BytesIO(idea.attachment),
        mimetype=idea.attachment_mime or "application/pdf",
        as_attachment=True,
        download_name=idea.attachment_filename or f"{idea.slug}.pdf",
    )


# ═════════════════════════════════════════════════════════════════════════════
# Create / update
# ═════════════════════════════════════════════════════════════════════════════

@idea_bp.route("/ideas", methods=["POST"])
@require_permission("submit.ideas")
def create_idea():
    """
    Create an idea.

    Body: idea fields, team_members (list or JSON string), save_as_draft.
    Multipart posts carry the PDF in the "attachment" field.
    """
    data = request_payload()
    clean, errors = validate_idea(data)
    save_as_draft, err = _flag_arg(data, "save_as_draft")
    if err:
        return err
    upload, upload_error = read_upload()
    if upload_error:
        errors["attachment"] = upload_error
    if errors:
        return _invalid(errors)

    idea = ideas.create_idea(g.current_user, clean, upload, save_as_draft=save_as_draft)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(idea.to_dict(include_team=True)), 201


@idea_bp.route("/ideas/<slug>", methods=["PUT"])
@login_required
def update_idea(slug):
    """Fields left out of the payload keep their current values."""
    idea = ideas.get_visible_idea(slug, g.current_user)
    data = request_payload()

    current = idea.content_snapshot()
    merged = dict(current)
    merged["team_members"] = [
        {"name": m.name, "email": m.email, "role": m.role} for m in idea.team_members
    ]
    merged.update(data)
    clean, errors = validate_idea(merged, current=current)
    if "team_members" not in data:
        clean["team_members"] = None
    remove_attachment, err = _flag_arg(data, "remove_attachment")
    if err:
        return err
    upload, upload_error = read_upload()
    if upload_error:
        errors["attachment"] = upload_error
    if errors:
        return _invalid(errors)

    ideas.update_idea(idea, g.current_user, clean, upload, remove_attachment=remove_attachment)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(idea.to_dict(include_team=True))


# ═════════════════════════════════════════════════════════════════════════════
# Delete
# ═════════════════════════════════════════════════════════════════════════════

@idea_bp.route("/ideas/<int:idea_id>", methods=["DELETE"])
@login_required
def delete_idea(idea_id):
    mode = ideas.delete_idea(idea_id, g.current_user)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"deleted": True, "id": idea_id, "mode": mode})


@idea_bp.route("/ideas/delete-selected", methods=["POST"])
@login_required
def delete_selected():
    data = json_object()
    ids = data.get("ids")
    if not isinstance(ids, list) or not ids:
        return api_error(E.VALIDATION_REQUIRED, "ids must be a non-empty list")
    if not all(isinstance(i, int) and not isinstance(i, bool) for i in ids):
        return api_error(E.VALIDATION_INVALID, "ids must be integers")

    result = ideas.delete_selected(ids, g.current_user)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result)


# ═════════════════════════════════════════════════════════════════════════════
# Settings & likes
# ═════════════════════════════════════════════════════════════════════════════

def _toggle(slug, field):
    idea = ideas.get_visible_idea(slug, g.current_user)
    value = ideas.toggle_setting(idea, g.current_user, field)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"slug": idea.slug, field: value})


@idea_bp.route("/ideas/<slug>/toggle-collaboration", methods=["POST"])
@login_required
def toggle_collaboration(slug):
    return _toggle(slug, "collaboration_enabled")


@idea_bp.route("/ideas/<slug>/toggle-comments", methods=["POST"])
@login_required
def toggle_comments(slug):
    return _toggle(slug, "comments_enabled")


@idea_bp.route("/ideas/<slug>/like", methods=["POST"])
@login_required
def toggle_like(slug):
    idea = ideas.get_visible_idea(slug, g.current_user)
    result = ideas.toggle_like(idea, g.current_user)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result)


# ═════════════════════════════════════════════════════════════════════════════
# Comments
# ═════════════════════════════════════════════════════════════════════════════

@idea_bp.route("/ideas/<slug>/comments", methods=["GET"])
@login_required
def list_comments(slug):
    idea = ideas.get_visible_idea(slug, g.current_user)
    return jsonify([c.to_dict() for c in ideas.list_comments(idea)])


@idea_bp.route("/ideas/<slug>/comments", methods=["POST"])
@login_required
def add_comment(slug):
    idea = ideas.get_visible_idea(slug, g.current_user)
    clean, errors = validate_comment(json_object())
    if errors:
        return _invalid(errors)
    comment = ideas.add_comment(idea, g.current_user, clean["content"])
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(comment.to_dict()), 201


@idea_bp.route("/ideas/<slug>/comments/<int:comment_id>", methods=["PUT"])
@login_required
def update_comment(slug, comment_id):
    idea = ideas.get_visible_idea(slug, g.current_user)
    clean, errors = validate_comment(json_object())
    if errors:
        return _invalid(errors)
    comment = ideas.update_comment(idea, comment_id, g.current_user, clean["content"])
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(comment.to_dict())


@idea_bp.route("/ideas/<slug>/comments/<int:comment_id>", methods=["DELETE"])
@login_required
def delete_comment(slug, comment_id):
    idea = ideas.get_visible_idea(slug, g.current_user)
    comment = ideas.delete_comment(idea, comment_id, g.current_user)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(comment.to_dict())
