"""Shared extensions for the Reverie application."""

from pathlib import Path

from flask import jsonify
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

# Core persistence and auth primitives
db = SQLAlchemy(session_options={"expire_on_commit": False})
migrate = Migrate()
jwt = JWTManager()
limiter = Limiter(
    key_func=get_remote_address, enabled=True, default_limits=["200 per hour"]
)


def init_extensions(app) -> None:
    """Initialize all extensions with the Flask app."""
    db.init_app(app)
    migrations_dir = Path(__file__).resolve().parent / "migrations"
    migrate.init_app(app, db, directory=str(migrations_dir))
    jwt.init_app(app)
    _register_jwt_callbacks()
    limiter.enabled = app.config.get("RATELIMIT_ENABLED", True)
    limiter.default_limits = [app.config.get("RATELIMIT_DEFAULT", "200 per hour")]
    limiter.storage_uri = app.config.get("RATELIMIT_STORAGE_URI", "memory://")
    limiter.init_app(app)


def _auth_error(message: str):
    return jsonify({"ok": False, "error": message, "errorCode": "AuthError"}), 401


def _register_jwt_callbacks() -> None:
    """Every bearer-credential failure answers with the AuthError envelope."""

    @jwt.unauthorized_loader
    def _missing_token(reason: str):
        return _auth_error(reason)

    @jwt.invalid_token_loader
    def _invalid_token(reason: str):
        return _auth_error(reason)

    @jwt.expired_token_loader
    def _expired_token(jwt_header, jwt_payload):
        return _auth_error("Token has expired")

    @jwt.revoked_token_loader
    def _revoked_token(jwt_header, jwt_payload):
        return _auth_error("Token has been revoked")
