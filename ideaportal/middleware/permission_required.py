"""
Permission Decorators — JWT-aware RBAC decorators for route protection.

Usage:
    @bp.route("/ideas", methods=["POST"])
    @login_required
    def create_idea():
        user = g.current_user
        ...

    @bp.route("/challenges", methods=["POST"])
    @require_permission("create.challenges")
    def create_challenge():
        ...

``require_permission`` / ``require_any_permission`` imply ``login_required``.
Unlike a pass-through legacy mode, every decorated route needs an acting
user: 401 without one, 403 when the permission is missing.
"""

import functools
import logging

from flask import g, jsonify

from ideaportal.models import db
from ideaportal.models.auth import User
from ideaportal.services.permission_service import has_any_permission, has_permission

logger = logging.getLogger(__name__)


def _resolve_user():
    """Load the acting user into g.current_user. Returns the user or None."""
    user_id = getattr(g, "jwt_user_id", None)
    if user_id is None:
        return None
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None
    g.current_user = user
    return user


def _unauthenticated():
    return jsonify({"error": "Authentication required"}), 401


def login_required(f):
    """Decorator: require a valid bearer token for an existing, active user."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if _resolve_user() is None:
            return _unauthenticated()
        return f(*args, **kwargs)
    return decorated


def require_permission(codename: str):
    """
    Decorator: require the acting user to hold a specific permission.

    Args:
        codename: Permission codename, e.g. "create.challenges"
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = _resolve_user()
            if user is None:
                return _unauthenticated()

            if not has_permission(user.id, codename):
                logger.warning(
                    "User %d denied: missing permission '%s' on %s",
                    user.id, codename, f.__name__,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required": codename,
                }), 403

            return f(*args, **kwargs)
        return decorated
    return decorator


def require_any_permission(*codenames: str):
    """
    Decorator: require the acting user to hold at least ONE of the listed permissions.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = _resolve_user()
            if user is None:
                return _unauthenticated()

            if not has_any_permission(user.id, list(codenames)):
                logger.warning(
                    "User %d denied: missing any of %s on %s",
                    user.id, codenames, f.__name__,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_any": list(codenames),
                }), 403

            return f(*args, **kwargs)
        return decorated
    return decorator
