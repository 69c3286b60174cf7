"""Reverie application factory and bootstrap."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from flask import Flask

from reverie.config import config_by_name
from reverie.extensions import init_extensions


def create_app(config_name: Optional[str] = None) -> Flask:
    """Create and configure the Reverie Flask application."""
    env_name = (config_name or os.environ.get("APP_ENV") or "development").lower()
    project_root = Path(__file__).resolve().parent.parent
    instance_root = project_root / "instance"

    app = Flask(
        __name__,
        instance_path=str(instance_root),
        instance_relative_config=True,
    )
    config_cls = config_by_name.get(env_name, config_by_name["development"])
    app.config.from_object(config_cls)

    # Normalize file-backed sqlite path to absolute to avoid "unable to open database file"
    db_uri = app.config.get("SQLALCHEMY_DATABASE_URI") or ""
    if db_uri.startswith("sqlite:///"):
        db_path = Path(db_uri.replace("sqlite:///", "", 1))
        if not db_path.is_absolute():
            db_path = project_root / db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{db_path}"
    elif not db_uri.startswith("sqlite:"):
        # sqlite-only connect_args break Postgres/MySQL drivers
        engine_opts = app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {})
        connect_args = engine_opts.get("connect_args") or {}
        connect_args.pop("detect_types", None)
        connect_args.pop("timeout", None)
        if connect_args:
            engine_opts["connect_args"] = connect_args
        else:
            engine_opts.pop("connect_args", None)

    init_extensions(app)
    _import_models()
    _init_pattern_analysis(app)
    _register_blueprints(app)
    _register_error_handlers(app)

    @app.get("/health")
    def health():
        return {"ok": True}, 200

    from reverie.scripts.reset_credits import register_commands

    register_commands(app)

    return app


def _import_models() -> None:
    """Make every mapped table known to the shared metadata."""
    from reverie.core.audit import models as audit_models  # noqa: F401
    from reverie.core.users import models as user_models  # noqa: F401
    from reverie.domains.billing.models import credit_models  # noqa: F401
    from reverie.domains.journal.models import entry_analysis, journal_entry  # noqa: F401
    from reverie.domains.patterns.models import aggregate_analysis  # noqa: F401
    from reverie.platform.outbox import models as outbox_models  # noqa: F401


def _init_pattern_analysis(app: Flask) -> None:
    """Pipeline service shared by the pattern endpoints; tests may replace it."""
    from reverie.core.utils.cancellation import CancellationRegistry
    from reverie.domains.patterns.services.pattern_service import build_pattern_service

    app.extensions["pattern_analysis"] = build_pattern_service(app.config)
    app.extensions["pattern_cancellations"] = CancellationRegistry()


def _register_blueprints(app: Flask) -> None:
    """Lazy import and register all controllers."""
    from reverie.domains.billing.controllers.billing_api import billing_api_bp
    from reverie.domains.patterns.controllers.pattern_api import pattern_api_bp

    app.register_blueprint(pattern_api_bp, url_prefix="/api/patterns")
    app.register_blueprint(billing_api_bp, url_prefix="/api/billing")


def _register_error_handlers(app: Flask) -> None:
    """Basic JSON error responses."""
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        return {"ok": False, "error": exc.description}, exc.code

    @app.errorhandler(Exception)
    def _generic_error(exc: Exception):
        app.logger.exception("Unhandled error: %s", exc)
        # In debug/testing, surface the exception message to speed up diagnosis
        if app.debug or app.testing:
            return {"ok": False, "error": str(exc)}, 500
        return {"ok": False, "error": "unexpected_error"}, 500
