"""Failure taxonomy of the pattern-analysis pipeline.

Each subclass maps to exactly one error code and HTTP status; the controller
renders any ``PatternPipelineError`` as the failure envelope.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

INSUFFICIENT_ELIGIBLE_ENTRIES = "InsufficientEligibleEntries"
INSUFFICIENT_CREDITS = "InsufficientCredits"
MODEL_TIMEOUT = "ModelTimeout"
MODEL_RATE_LIMITED = "ModelRateLimited"
MODEL_QUOTA_EXCEEDED = "ModelQuotaExceeded"
MODEL_PROVIDER_ERROR = "ModelProviderError"
SCHEMA_VALIDATION_FAILED = "SchemaValidationFailed"
SETTLEMENT_ERROR = "SettlementError"
PERSISTENCE_ERROR = "PersistenceError"
AUTH_ERROR = "AuthError"

ERROR_CODES = (
    INSUFFICIENT_ELIGIBLE_ENTRIES,
    INSUFFICIENT_CREDITS,
    MODEL_TIMEOUT,
    MODEL_RATE_LIMITED,
    MODEL_QUOTA_EXCEEDED,
    MODEL_PROVIDER_ERROR,
    SCHEMA_VALIDATION_FAILED,
    SETTLEMENT_ERROR,
    PERSISTENCE_ERROR,
    AUTH_ERROR,
)


class PatternPipelineError(Exception):
    error_code: str = MODEL_PROVIDER_ERROR
    http_status: int = 500

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": False, "error": self.message, "errorCode": self.error_code, **self.context}


class InsufficientEligibleEntries(PatternPipelineError):
    error_code = INSUFFICIENT_ELIGIBLE_ENTRIES
    http_status = 400


class InsufficientCredits(PatternPipelineError):
    error_code = INSUFFICIENT_CREDITS
    http_status = 402


class ModelTimeout(PatternPipelineError):
    error_code = MODEL_TIMEOUT
    http_status = 500


class ModelRateLimited(PatternPipelineError):
    error_code = MODEL_RATE_LIMITED
    http_status = 429


class ModelQuotaExceeded(PatternPipelineError):
    error_code = MODEL_QUOTA_EXCEEDED
    http_status = 500


class ModelProviderError(PatternPipelineError):
    error_code = MODEL_PROVIDER_ERROR
    http_status = 500


class SchemaValidationFailed(PatternPipelineError):
    error_code = SCHEMA_VALIDATION_FAILED
    http_status = 500

    def __init__(self, rule: str, field: Optional[str] = None, **context: Any) -> None:
        super().__init__(f"Model output rejected: {rule}", rule=rule, field=field, **context)
        self.rule = rule
        self.field = field


class SettlementError(PatternPipelineError):
    error_code = SETTLEMENT_ERROR
    http_status = 500


class PersistenceError(PatternPipelineError):
    error_code = PERSISTENCE_ERROR
    http_status = 500


class AuthError(PatternPipelineError):
    error_code = AUTH_ERROR
    http_status = 401


class PipelineCancelled(Exception):
    """The caller aborted the request; nothing was persisted or billed."""


__all__ = [
    "ERROR_CODES",
    "AuthError",
    "InsufficientCredits",
    "InsufficientEligibleEntries",
    "ModelProviderError",
    "ModelQuotaExceeded",
    "ModelRateLimited",
    "ModelTimeout",
    "PatternPipelineError",
    "PersistenceError",
    "PipelineCancelled",
    "SchemaValidationFailed",
    "SettlementError",
]
