"""
Timeflow Process Tracking
Flask Application Factory.

Usage:
    from timeflow import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from timeflow.config import config
from timeflow.middleware.jwt_auth import init_jwt_middleware
from timeflow.middleware.logging_config import configure_logging
from timeflow.middleware.rate_limiter import init_rate_limits
from timeflow.middleware.timing import init_request_timing
from timeflow.models import db
from timeflow.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
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
    default_limits=[],                     # no global limit, limits are applied per blueprint
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
    os.makedirs(app.instance_path, exist_ok=True)

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

    # ── Request timing (before auth so 401s are timed too) ───────────────
    init_request_timing(app)

    # ── JWT auth middleware (sets g.caller) ──────────────────────────────
    init_jwt_middleware(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from timeflow.models import activity as _activity_models        # noqa: F401
    from timeflow.models import incident as _incident_models        # noqa: F401
    from timeflow.models import process as _process_models          # noqa: F401
    from timeflow.models import project as _project_models          # noqa: F401
    from timeflow.models import requirement as _requirement_models  # noqa: F401
    from timeflow.models import user as _user_models                # noqa: F401

    # ── Blueprints ───────────────────────────────────────────────────────
    from timeflow.blueprints.assignment_bp import assignment_bp
    from timeflow.blueprints.health_bp import health_bp
    from timeflow.blueprints.process_activity_bp import process_activity_bp
    from timeflow.blueprints.process_bp import process_bp
    from timeflow.blueprints.user_bp import user_bp

    app.register_blueprint(process_bp)
    app.register_blueprint(process_activity_bp)
    app.register_blueprint(assignment_bp)
    app.register_blueprint(user_bp)
    app.register_blueprint(health_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    # Domain errors escaping a blueprint, then plain HTTP errors, share one body shape
    register_error_handlers(app)

    @app.errorhandler(404)
    def _route_not_found(e):
        return api_error(E.NOT_FOUND, f"No route for {request.path}")

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return api_error(E.METHOD_NOT_ALLOWED, f"{request.method} not allowed on {request.path}")

    @app.errorhandler(429)
    def _rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests", details={"limit": str(e.description)})

    @app.errorhandler(500)
    def _server_error(e):
        db.session.rollback()
        logger.error("Unhandled error on %s %s: %s", request.method, request.path, e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("create-tables")
    def create_tables_cmd():
        """Create all tables directly (local SQLite convenience; use migrations elsewhere)."""
        db.create_all()
        logger.info("Tables created for %s", app.config["SQLALCHEMY_DATABASE_URI"])

    return app
