"""
Smart Clearance
Flask Application Factory.

Usage:
    from clearance import create_app
    app = create_app()           # defaults to APP_ENV, then "development"
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

from clearance.config import config
from clearance.models import db
from clearance.middleware.logging_config import configure_logging
from clearance.middleware.rate_limiter import init_rate_limits
from clearance.middleware.timing import init_request_timing
from clearance.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


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
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def create_app(config_name=None, classifier=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        classifier: Optional RequestClassifier replacing the rule-based one.

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

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Request guards ───────────────────────────────────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 1 * 1024 * 1024)

    # ── Pluggable request classifier ─────────────────────────────────────
    from clearance.services.classification import init_classifier
    init_classifier(app, classifier)

    # ── Blueprints ───────────────────────────────────────────────────────
    from clearance.blueprints.admin_bp import admin_bp
    from clearance.blueprints.auth_bp import auth_bp
    from clearance.blueprints.certificate_bp import certificate_bp
    from clearance.blueprints.comment_bp import comment_bp
    from clearance.blueprints.escalation_bp import escalation_bp
    from clearance.blueprints.graduation_bp import graduation_bp
    from clearance.blueprints.health_bp import health_bp
    from clearance.blueprints.notification_bp import notification_bp
    from clearance.blueprints.request_bp import request_bp

    app.register_blueprint(request_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(certificate_bp)
    app.register_blueprint(comment_bp)
    app.register_blueprint(escalation_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(graduation_bp)
    app.register_blueprint(health_bp)

    # ── Import all models so create_all sees every table ─────────────────
    from clearance.models import catalog as _catalog_models            # noqa: F401
    from clearance.models import certificate as _certificate_models    # noqa: F401
    from clearance.models import comment as _comment_models            # noqa: F401
    from clearance.models import escalation as _escalation_models      # noqa: F401
    from clearance.models import graduation as _graduation_models      # noqa: F401
    from clearance.models import notification as _notification_models  # noqa: F401
    from clearance.models import profile as _profile_models            # noqa: F401
    from clearance.models import request as _request_models            # noqa: F401
    from clearance.models import routing as _routing_models            # noqa: F401
    from clearance.models import scheduling as _scheduling_models      # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-stages")
    def seed_stages_cmd():
        """Seed the library / cashier / registrar stage mappings and graduation clearance."""
        from clearance.services.graduation_service import seed_graduation
        from clearance.services.stage_registry import seed_default_stages
        count = seed_default_stages()
        graduation_added = seed_graduation()
        logger.info("Seeded %s new stage mappings (graduation clearance %s).",
                    count, "added" if graduation_added else "already present")

    @app.cli.command("run-job")
    @click.argument("job_name")
    def run_job_cmd(job_name):
        """Run one registered job under its lease (for cron / CronJob triggers)."""
        from clearance.services.scheduler_service import SchedulerService
        result = SchedulerService.run_job(job_name)
        logger.info("Job %s: %s", job_name, result.get("status"))
        if result.get("status") in ("failed", "error"):
            raise SystemExit(1)

    @app.cli.command("create-admin-code")
    @click.argument("role")
    @click.option("--max-uses", type=int, default=None, help="Usage cap (unlimited if omitted).")
    @click.option("--expires-days", type=int, default=None, help="Days until the code expires.")
    def create_admin_code_cmd(role, max_uses, expires_days):
        """Provision an admin signup secret code for ROLE."""
        from datetime import timedelta

        from clearance.models.profile import AdminSecretCode
        from clearance.utils.crypto import random_code
        from clearance.utils.helpers import commit_or_raise, utcnow

        code = AdminSecretCode(
            code=random_code(12),
            role=role,
            max_uses=max_uses,
            expires_at=utcnow() + timedelta(days=expires_days) if expires_days else None,
        )
        db.session.add(code)
        commit_or_raise(f"create admin code for {role}")
        click.echo(code.code)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, f"Not found: {request.path}")

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests",
                         details={"retry_after": e.description})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── Scheduler initialization (import jobs to register them) ──────────
    import importlib
    importlib.import_module("clearance.services.scheduled_jobs")  # registers @register_job handlers
    from clearance.services.scheduler_service import SchedulerService as _SchedulerSvc
    _SchedulerSvc.init_app(app)

    return app
