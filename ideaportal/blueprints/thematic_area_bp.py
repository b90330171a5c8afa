"""
Innovation Review Portal
Thematic Area Blueprint.

Endpoints:
    GET  /api/v1/thematic-areas            — active areas (?all=true for managers: inactive too)
    POST /api/v1/thematic-areas
    PUT  /api/v1/thematic-areas/<id>
"""

import logging

from flask import Blueprint, g, jsonify, request

import ideaportal.services.thematic_area_service as areas
from ideaportal.blueprints import register_service_error_handlers
from ideaportal.middleware.permission_required import login_required, require_permission
from ideaportal.services.permission_service import has_permission
from ideaportal.utils.errors import E, api_error
from ideaportal.utils.helpers import db_commit_or_error, json_object
from ideaportal.utils.validators import validate_thematic_area

logger = logging.getLogger(__name__)

thematic_area_bp = Blueprint("thematic_area", __name__, url_prefix="/api/v1")
register_service_error_handlers(thematic_area_bp)


@thematic_area_bp.route("/thematic-areas", methods=["GET"])
@login_required
def list_areas():
    show_all = request.args.get("all") == "true" and has_permission(g.current_user.id, "manage.thematic-areas")
    rows = areas.list_all() if show_all else areas.list_active()
    return jsonify([a.to_dict() for a in rows])


@thematic_area_bp.route("/thematic-areas", methods=["POST"])
@require_permission("manage.thematic-areas")
def create_area():
    clean, errors = validate_thematic_area(json_object())
    if errors:
        return api_error(E.VALIDATION_INVALID, "Validation failed", details=errors)
    area = areas.create_area(clean)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(area.to_dict()), 201


@thematic_area_bp.route("/thematic-areas/<int:area_id>", methods=["PUT"])
@require_permission("manage.thematic-areas")
def update_area(area_id):
    area = areas.get_area(area_id)
    clean, errors = validate_thematic_area(json_object())
    if errors:
        return api_error(E.VALIDATION_INVALID, "Validation failed", details=errors)
    areas.update_area(area, clean)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(area.to_dict())
