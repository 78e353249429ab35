"""
Print Production Workflow
Flask Application Factory.

Usage:
    from printflow import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_migrate import Migrate

from printflow.config import config
from printflow.core.exceptions import WorkflowError
from printflow.middleware.logging_config import configure_logging
from printflow.models import db
from printflow.utils.errors import E, api_error, status_for

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
    cfg = config[config_name]
    app.config.from_object(cfg() if config_name == "production" else cfg)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Models (register tables on the metadata) ─────────────────────────
    from printflow.models import audit, auth, department, file, note, time_tracking  # noqa: F401

    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from printflow.blueprints.files_bp import files_bp

    app.register_blueprint(files_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-departments")
    def seed_departments_cmd():
        """Insert the canonical department directory (idempotent)."""
        from printflow.services.department_service import seed_departments
        count = seed_departments()
        logger.info("Seeded %s new departments.", count)

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "Print Production Workflow"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(WorkflowError)
    def workflow_error(e):
        status = status_for(e.code)
        log = logger.warning if status == 403 else logger.info
        log(
            "%s %s → %s: %s", request.method, request.path, e.code, e.message,
            extra={"method": request.method, "path": request.path,
                   "status": status, "error_code": e.code},
        )
        return api_error(e.code, e.message, status=status, details=e.details)

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")

    return app
