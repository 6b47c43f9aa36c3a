"""
Checklist Automation Service
Flask Application Factory.

Usage:
    from checklist_automation import create_app
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

from checklist_automation.config import config
from checklist_automation.models import db
from checklist_automation.middleware.logging_config import configure_logging
from checklist_automation.middleware.rate_limiter import init_rate_limits
from checklist_automation.middleware.timing import init_request_timing

logger = logging.getLogger(__name__)

migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
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

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from checklist_automation.models import work_item as _work_item_models        # noqa: F401
    from checklist_automation.models import checklist as _checklist_models        # noqa: F401
    from checklist_automation.models import completion_rule as _rule_models       # noqa: F401
    from checklist_automation.models import status_history as _history_models     # noqa: F401
    from checklist_automation.models import notification as _notification_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if not app.config.get("TESTING"):
        os.makedirs(app.instance_path, exist_ok=True)  # default SQLite lives here
        with app.app_context():
            try:
                db.create_all()
                app.logger.info("db.create_all() completed successfully")
            except Exception as e:
                app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from checklist_automation.blueprints.completion_bp import completion_bp

    app.register_blueprint(completion_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("reevaluate-checklist")
    @click.argument("checklist_id", type=int)
    def reevaluate_checklist_cmd(checklist_id):
        """Run status automation for one checklist and print the outcome."""
        from checklist_automation.services.status_automation import evaluate_checklist

        run = evaluate_checklist(checklist_id)
        if run.error is not None:
            raise click.ClickException(f"Automation failed: {run.error}")
        if run.result is None:
            click.echo(f"Checklist {checklist_id}: no status change")
        else:
            r = run.result
            click.echo(
                f"{r.entity_type} {r.entity_id}: {r.old_status} → {r.new_status} "
                f"({r.completion.percentage}% complete, rule {r.rule.id})"
            )

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "Checklist Automation Service"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        from flask import request
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
