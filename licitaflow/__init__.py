"""
Licitaflow — Bidding Process Tracker
Flask Application Factory.

Usage:
    from licitaflow import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from licitaflow.config import config
from licitaflow.middleware.jwt_auth import init_jwt_middleware
from licitaflow.middleware.logging_config import configure_logging
from licitaflow.middleware.rate_limiter import init_rate_limits
from licitaflow.middleware.security_headers import init_security_headers
from licitaflow.middleware.timing import init_request_timing
from licitaflow.models import db

logger = logging.getLogger(__name__)


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
    default_limits=[],                     # per-blueprint limits only
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
    # Instantiated so ProductionConfig can refuse to start without its env vars
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

    # ── Middleware ───────────────────────────────────────────────────────
    init_security_headers(app)
    init_request_timing(app)
    init_jwt_middleware(app)

    @app.before_request
    def _guard_request():
        # Content-Type validation for mutating methods
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so Alembic can detect them ─────────────────────
    from licitaflow.models import auth as _auth_models                # noqa: F401
    from licitaflow.models import notification as _notification_models  # noqa: F401
    from licitaflow.models import process as _process_models          # noqa: F401
    from licitaflow.models import reference as _reference_models      # noqa: F401

    if app.config.get("AUTO_CREATE_TABLES"):
        if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") and ":memory:" not in \
                app.config["SQLALCHEMY_DATABASE_URI"]:
            os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from licitaflow.blueprints.analytics_bp import analytics_bp
    from licitaflow.blueprints.auth_bp import auth_bp
    from licitaflow.blueprints.health_bp import health_bp
    from licitaflow.blueprints.notification_bp import notification_bp
    from licitaflow.blueprints.process_bp import process_bp
    from licitaflow.blueprints.reference_bp import reference_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(reference_bp)
    app.register_blueprint(process_bp)
    app.register_blueprint(analytics_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(health_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-reference-data")
    @click.option("--admin-password", envvar="SEED_ADMIN_PASSWORD", default=None,
                  help="Also create the 'admin' account with this password.")
    def seed_reference_data_cmd(admin_password):
        """Load default departments, modalities (with step templates) and sources."""
        from licitaflow.services.reference_service import seed_reference_data
        created = seed_reference_data(admin_password)
        click.echo(", ".join(f"{k}={v}" for k, v in created.items()))

    @app.cli.command("mark-overdue")
    def mark_overdue_cmd():
        """Mark active processes whose deadline has passed as overdue."""
        from licitaflow.services.status_service import refresh_overdue
        summary = refresh_overdue()
        click.echo(f"checked={summary['checked']} marked_overdue={summary['marked_overdue']}")

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": "ERR_NOT_FOUND", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Request body too large"}, 413

    @app.errorhandler(415)
    def unsupported_media(e):
        return {"error": e.description}, 415

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": "ERR_INTERNAL"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
