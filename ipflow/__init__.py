"""
IP Portfolio Workflow Service
Flask Application Factory.

Usage:
    from ipflow import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from ipflow.config import config
from ipflow.models import db
from ipflow.middleware.logging_config import configure_logging
from ipflow.middleware.timing import init_request_timing
from ipflow.middleware.rate_limiter import init_rate_limits
from ipflow.middleware.jwt_auth import init_jwt_middleware
from ipflow.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine
from sqlalchemy.exc import SQLAlchemyError


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
    storage_uri=os.getenv("REDIS_URL") or "memory://",  # Redis in production, memory for dev
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
    config_cls = config[config_name]
    # ProductionConfig validates required env vars on instantiation
    app.config.from_object(config_cls() if config_name == "production" else config_cls)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)
    os.makedirs(app.instance_path, exist_ok=True)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware (first, so 401s are timed too) ─────────
    init_request_timing(app)

    # ── JWT auth middleware (sets g.actor) ───────────────────────────────
    init_jwt_middleware(app)

    # ── Rate limit check (after auth, so buckets are keyed by g.actor) ────
    limiter.init_app(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    @app.before_request
    def _guard_request():
        from flask import request as _req, abort
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        if max_len and _req.content_length and _req.content_length > max_len:
            abort(413, description="Request body too large")
        if _req.method in ("POST", "PUT", "PATCH") and _req.path.startswith("/api/"):
            ct = _req.content_type or ""
            if _req.get_data(cache=True) and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so Alembic can detect them ─────────────────────
    from ipflow.models import workflow as _workflow_models          # noqa: F401
    from ipflow.models import notification as _notification_models  # noqa: F401

    # ── Auto-create tables in dev / tests; production runs `flask db upgrade` ──
    if app.config.get("AUTO_CREATE_TABLES"):
        with app.app_context():
            try:
                db.create_all()
                app.logger.debug("db.create_all() completed successfully")
            except SQLAlchemyError as e:
                app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from ipflow.blueprints.health_bp import health_bp
    from ipflow.blueprints.workflow_bp import workflow_bp
    from ipflow.blueprints.template_bp import workflow_template_bp
    from ipflow.blueprints.notification_bp import notification_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(workflow_bp)
    app.register_blueprint(workflow_template_bp)
    app.register_blueprint(notification_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    register_error_handlers(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-workflow-templates")
    def seed_workflow_templates_cmd():
        """Seed the default IP workflow templates."""
        from ipflow.services.template_service import seed_default_templates
        count = seed_default_templates()
        click.echo(f"Seeded {count} new workflow templates.")

    @app.cli.command("issue-token")
    @click.argument("user_id")
    @click.option("--role", default="user", type=click.Choice(["admin", "user", "reviewer"]))
    @click.option("--expires", default=None, type=int, help="Lifetime in seconds.")
    def issue_token_cmd(user_id, role, expires):
        """Mint an access token for local development."""
        from ipflow.services.jwt_service import generate_access_token
        click.echo(generate_access_token(user_id, role, expires_in=expires))

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
