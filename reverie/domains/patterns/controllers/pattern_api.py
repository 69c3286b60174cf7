"""Pattern analysis JSON API."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required
from flask_limiter.errors import RateLimitExceeded
from pydantic import ValidationError

from reverie.core.users.models import User
from reverie.core.utils.cancellation import CancellationRegistry
from reverie.domains.patterns.errors import (
    AuthError,
    ModelRateLimited,
    PatternPipelineError,
    PipelineCancelled,
)
from reverie.domains.patterns.schemas.pattern_schemas import PatternAnalysisRequest
from reverie.domains.patterns.services.pattern_service import PatternAnalysisService
from reverie.extensions import db, limiter

pattern_api_bp = Blueprint("pattern_api", __name__)

# Client closed the request (nginx convention).
CLIENT_CLOSED_REQUEST = 499


def _service() -> PatternAnalysisService:
    return current_app.extensions["pattern_analysis"]


def _cancellations() -> CancellationRegistry:
    return current_app.extensions["pattern_cancellations"]


def _current_user_id() -> int:
    try:
        user_id = int(get_jwt_identity())
    except (TypeError, ValueError):
        raise AuthError("Invalid token identity")
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise AuthError("Unknown or inactive user")
    return user_id


@pattern_api_bp.errorhandler(PatternPipelineError)
def _pipeline_error(exc: PatternPipelineError):
    return jsonify(exc.to_dict()), exc.http_status


@pattern_api_bp.errorhandler(RateLimitExceeded)
def _request_rate_limited(exc: RateLimitExceeded):
    error = ModelRateLimited("Too many pattern analysis requests, retry shortly", limit=exc.description)
    return jsonify(error.to_dict()), error.http_status


@pattern_api_bp.post("/analyze")
@jwt_required()
@limiter.limit(lambda: current_app.config.get("PATTERN_ANALYZE_RATE_LIMIT", "10/minute"))
def analyze_patterns():
    user_id = _current_user_id()
    payload = request.get_json(silent=True) or {}
    try:
        data = PatternAnalysisRequest.model_validate(payload)
    except ValidationError as exc:
        return (
            jsonify(
                {
                    "ok": False,
                    "error": "validation_error",
                    "errorCode": "InvalidRequest",
                    "details": exc.errors(include_url=False, include_context=False),
                }
            ),
            400,
        )
    try:
        with _cancellations().track(user_id) as token:
            result = _service().analyze(
                user_id,
                force_refresh=data.force_refresh,
                entry_ids=data.selected_entry_ids(),
                cancel_token=token,
            )
    except PipelineCancelled as exc:
        return jsonify({"ok": False, "error": str(exc), "errorCode": "Cancelled"}), CLIENT_CLOSED_REQUEST
    return jsonify(result.to_dict())


@pattern_api_bp.get("/current")
@jwt_required()
def current_patterns():
    user_id = _current_user_id()
    result = _service().current(user_id)
    if result is None:
        return jsonify({"ok": True, "analysis": None})
    return jsonify(result.to_dict())


@pattern_api_bp.post("/cancel")
@jwt_required()
def cancel_analysis():
    """Abort the caller's in-flight analyses; their requests answer 499."""
    user_id = _current_user_id()
    cancelled = _cancellations().cancel(user_id)
    return jsonify({"ok": True, "cancelled": cancelled})
