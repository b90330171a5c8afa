"""
Innovation Review Portal
Flask Application Factory.

Usage:
    from ideaportal import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from ideaportal.config import config
from ideaportal.middleware.jwt_auth import init_jwt_middleware
from ideaportal.middleware.logging_config import configure_logging
from ideaportal.middleware.rate_limiter import init_rate_limits
from ideaportal.middleware.timing import init_request_timing
from ideaportal.models import db

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine  # noqa: E402


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, applied per-blueprint
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing & bearer tokens ───────────────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)

    # ── Request guard (Content-Type) ─────────────────────────────────────
    @app.before_request
    def _guard_request():
        from flask import abort
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.content_length and "json" not in ct and "multipart/form-data" not in ct \
                    and "application/x-www-form-urlencoded" not in ct:
                abort(415, description="Content-Type must be application/json or multipart/form-data")

    # ── Import all models so Alembic can detect them ─────────────────────
    from ideaportal.models import audit as _audit_models                 # noqa: F401
    from ideaportal.models import auth as _auth_models                   # noqa: F401
    from ideaportal.models import challenge as _challenge_models         # noqa: F401
    from ideaportal.models import collaboration as _collaboration_models  # noqa: F401
    from ideaportal.models import idea as _idea_models                   # noqa: F401
    from ideaportal.models import notification as _notification_models   # noqa: F401
    from ideaportal.models import review as _review_models               # noqa: F401

    # ── Auto-create tables in development (migrations own production) ────
    if config_name == "development":
        with app.app_context():
            try:
                db.create_all()
                app.logger.info("db.create_all() completed successfully")
            except Exception as e:
                app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from ideaportal.blueprints.challenge_bp import challenge_bp
    from ideaportal.blueprints.challenge_review_bp import challenge_review_bp
    from ideaportal.blueprints.collaboration_bp import collaboration_bp
    from ideaportal.blueprints.health_bp import health_bp
    from ideaportal.blueprints.idea_bp import idea_bp
    from ideaportal.blueprints.notification_bp import notification_bp
    from ideaportal.blueprints.review_bp import review_bp
    from ideaportal.blueprints.thematic_area_bp import thematic_area_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(idea_bp)
    app.register_blueprint(review_bp)
    app.register_blueprint(collaboration_bp)
    app.register_blueprint(challenge_bp)
    app.register_blueprint(challenge_review_bp)
    app.register_blueprint(thematic_area_bp)
    app.register_blueprint(notification_bp)

    _register_cli(app)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Request body too large"}, 413

    @app.errorhandler(415)
    def unsupported_media_type(e):
        return {"error": e.description}, 415

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app


def _register_cli(app):
    """Operator commands: ``flask seed-roles`` etc."""

    @app.cli.command("seed-roles")
    def seed_roles_cmd():
        """Create roles, permissions and grants (idempotent)."""
        from ideaportal.services.permission_service import seed_roles_and_permissions
        created = seed_roles_and_permissions()
        db.session.commit()
        click.echo(f"Seeded {created['roles']} roles, {created['permissions']} permissions, "
                   f"{created['grants']} grants.")

    @app.cli.command("seed-thematic-areas")
    def seed_thematic_areas_cmd():
        """Create the default thematic areas (idempotent)."""
        from ideaportal.services.thematic_area_service import seed_defaults
        count = seed_defaults()
        db.session.commit()
        click.echo(f"Seeded {count} new thematic areas.")

    @app.cli.command("create-user")
    @click.argument("email")
    @click.argument("full_name")
    @click.option("--role", "roles", multiple=True, help="Role name; repeatable.")
    def create_user_cmd(email, full_name, roles):
        """Create a user (or add roles to an existing one)."""
        from ideaportal.models.auth import User
        from ideaportal.services.permission_service import assign_role
        user = User.query.filter_by(email=email).first()
        if user is None:
            user = User(email=email, full_name=full_name)
            db.session.add(user)
            db.session.flush()
        for role in roles:
            try:
                assign_role(user, role)
            except ValueError as exc:
                db.session.rollback()
                raise click.ClickException(str(exc)) from exc
        db.session.commit()
        click.echo(f"User {user.id} <{user.email}> roles: {', '.join(user.role_names) or '-'}")

    @app.cli.command("issue-token")
    @click.argument("email")
    @click.option("--expires-in", type=int, default=None, help="Lifetime in seconds.")
    def issue_token_cmd(email, expires_in):
        """Print a bearer token for an existing user."""
        from ideaportal.models.auth import User
        from ideaportal.services.jwt_service import generate_access_token
        user = User.query.filter_by(email=email).first()
        if user is None:
            raise click.ClickException(f"No user with email {email}")
        click.echo(generate_access_token(user.id, user.role_names, expires_in=expires_in))
