"""
Innovation Review Portal
Notification Blueprint — the caller's in-app notifications.

Endpoints:
    GET  /api/v1/notifications                 — ?unread_only=true, limit/offset
    GET  /api/v1/notifications/unread-count
    POST /api/v1/notifications/<id>/read
    POST /api/v1/notifications/read-all
"""

import logging

from flask import Blueprint, g, jsonify, request

from ideaportal.blueprints import paginate_query, register_service_error_handlers
from ideaportal.middleware.permission_required import login_required
from ideaportal.services.notification import NotificationService
from ideaportal.utils.errors import E, api_error
from ideaportal.utils.helpers import db_commit_or_error, parse_bool

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification", __name__, url_prefix="/api/v1")
register_service_error_handlers(notification_bp)


@notification_bp.route("/notifications", methods=["GET"])
@login_required
def list_notifications():
    try:
        unread_only = parse_bool(request.args.get("unread_only"))
    except ValueError:
        return api_error(E.VALIDATION_INVALID, "unread_only must be a boolean")
    items, total = paginate_query(
        NotificationService.list_for_user(g.current_user.id, unread_only=unread_only),
        default_limit=50, max_limit=200,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(g.current_user.id),
    })


@notification_bp.route("/notifications/unread-count", methods=["GET"])
@login_required
def unread_count():
    return jsonify({"unread_count": NotificationService.unread_count(g.current_user.id)})


@notification_bp.route("/notifications/<int:notification_id>/read", methods=["POST"])
@login_required
def mark_read(notification_id):
    notif = NotificationService.mark_read(notification_id, g.current_user.id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/read-all", methods=["POST"])
@login_required
def mark_all_read():
    count = NotificationService.mark_all_read(g.current_user.id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"marked_read": count})
