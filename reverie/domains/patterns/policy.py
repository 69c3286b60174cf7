"""Tunable policy for the pattern-analysis pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from types import MappingProxyType
from typing import Mapping

CURRENT_SCHEMA_VERSION = 2

SETTLEMENT_POLICY_KEEP = "keep"
SETTLEMENT_POLICY_REVERT = "revert"

DEFAULT_ARRAY_MINIMUMS: Mapping[str, int] = MappingProxyType(
    {
        "themes": 8,
        "emotions": 5,
        "symbols": 10,
        "recommendations": 12,
        "exercises": 3,
        "reflection_questions": 5,
    }
)


@dataclass(frozen=True)
class PatternPolicy:
    """Every threshold the eligibility gate, estimator, cache and validator apply."""

    min_required_entries: int = 10
    max_bundle_entries: int = 30
    chars_per_token: int = 4
    tokens_per_credit: int = 15000
    min_cost: int = 2
    max_cache_age: timedelta = timedelta(days=30)
    min_coverage: float = 0.80
    current_schema_version: int = CURRENT_SCHEMA_VERSION
    model_timeout_seconds: float = 180.0
    min_long_text_chars: int = 500
    array_minimums: Mapping[str, int] = field(default_factory=lambda: DEFAULT_ARRAY_MINIMUMS)
    fallback_language: str = "en"
    language_min_matches: int = 10
    settlement_failure_policy: str = SETTLEMENT_POLICY_KEEP

    def __post_init__(self) -> None:
        if self.chars_per_token <= 0 or self.tokens_per_credit <= 0:
            raise ValueError("chars_per_token and tokens_per_credit must be positive")
        if not 0 < self.min_coverage <= 1:
            raise ValueError("min_coverage must be in (0, 1]")
        if self.settlement_failure_policy not in (SETTLEMENT_POLICY_KEEP, SETTLEMENT_POLICY_REVERT):
            raise ValueError(f"unknown settlement failure policy: {self.settlement_failure_policy}")

    @classmethod
    def from_config(cls, config: Mapping) -> "PatternPolicy":
        """Build the policy from a Flask config mapping, defaults for missing keys."""
        defaults = cls()
        return cls(
            min_required_entries=int(config.get("PATTERN_MIN_REQUIRED_ENTRIES", defaults.min_required_entries)),
            max_bundle_entries=int(config.get("PATTERN_MAX_BUNDLE_ENTRIES", defaults.max_bundle_entries)),
            chars_per_token=int(config.get("PATTERN_CHARS_PER_TOKEN", defaults.chars_per_token)),
            tokens_per_credit=int(config.get("PATTERN_TOKENS_PER_CREDIT", defaults.tokens_per_credit)),
            min_cost=int(config.get("PATTERN_MIN_COST", defaults.min_cost)),
            max_cache_age=timedelta(days=int(config.get("PATTERN_MAX_CACHE_AGE_DAYS", defaults.max_cache_age.days))),
            min_coverage=float(config.get("PATTERN_MIN_COVERAGE", defaults.min_coverage)),
            model_timeout_seconds=float(
                config.get("PATTERN_MODEL_TIMEOUT_SECONDS", defaults.model_timeout_seconds)
            ),
            min_long_text_chars=int(config.get("PATTERN_MIN_LONG_TEXT_CHARS", defaults.min_long_text_chars)),
            fallback_language=str(config.get("PATTERN_FALLBACK_LANGUAGE", defaults.fallback_language)),
            language_min_matches=int(config.get("PATTERN_LANGUAGE_MIN_MATCHES", defaults.language_min_matches)),
            settlement_failure_policy=str(
                config.get("PATTERN_SETTLEMENT_FAILURE_POLICY", defaults.settlement_failure_policy)
            ).lower(),
        )


__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "DEFAULT_ARRAY_MINIMUMS",
    "PatternPolicy",
    "SETTLEMENT_POLICY_KEEP",
    "SETTLEMENT_POLICY_REVERT",
]
