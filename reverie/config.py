"""Application configuration for Reverie."""

from __future__ import annotations

import os
from datetime import timedelta
from typing import Dict, Type

from dotenv import load_dotenv
from sqlalchemy.engine.url import make_url

load_dotenv()


def _engine_options_from_uri(uri: str) -> dict:
    url = make_url(uri)
    # Always keep pool_pre_ping, vary connect_args by dialect.
    if url.get_backend_name() == "sqlite":
        return {
            "pool_pre_ping": True,
            "connect_args": {"detect_types": 0, "timeout": 30},
        }
    if url.get_backend_name() in {"postgresql", "postgres"}:
        timeout = int(os.environ.get("DB_CONNECT_TIMEOUT_SECONDS", "10"))
        return {"pool_pre_ping": True, "connect_args": {"connect_timeout": timeout}}
    return {"pool_pre_ping": True}


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


class BaseConfig:
    """Base configuration loaded for all environments."""

    SECRET_KEY = os.environ.get("SECRET_KEY", "change-me")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///instance/reverie.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options_from_uri(SQLALCHEMY_DATABASE_URI)

    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", SECRET_KEY)
    JWT_TOKEN_LOCATION = ["headers"]
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=int(os.environ.get("JWT_ACCESS_MINUTES", "30")))

    RATELIMIT_DEFAULT = "200/hour"
    RATELIMIT_STORAGE_URI = os.environ.get("REDIS_URL", "memory://")
    RATELIMIT_ENABLED = _env_flag("RATELIMIT_ENABLED", "true")
    PATTERN_ANALYZE_RATE_LIMIT = os.environ.get("PATTERN_ANALYZE_RATE_LIMIT", "10/minute")

    # Pattern analysis policy (see reverie.domains.patterns.policy.PatternPolicy)
    PATTERN_MIN_REQUIRED_ENTRIES = int(os.environ.get("PATTERN_MIN_REQUIRED_ENTRIES", "10"))
    PATTERN_MAX_BUNDLE_ENTRIES = int(os.environ.get("PATTERN_MAX_BUNDLE_ENTRIES", "30"))
    PATTERN_CHARS_PER_TOKEN = int(os.environ.get("PATTERN_CHARS_PER_TOKEN", "4"))
    PATTERN_TOKENS_PER_CREDIT = int(os.environ.get("PATTERN_TOKENS_PER_CREDIT", "15000"))
    PATTERN_MIN_COST = int(os.environ.get("PATTERN_MIN_COST", "2"))
    PATTERN_MAX_CACHE_AGE_DAYS = int(os.environ.get("PATTERN_MAX_CACHE_AGE_DAYS", "30"))
    PATTERN_MIN_COVERAGE = float(os.environ.get("PATTERN_MIN_COVERAGE", "0.80"))
    PATTERN_MIN_LONG_TEXT_CHARS = int(os.environ.get("PATTERN_MIN_LONG_TEXT_CHARS", "500"))
    PATTERN_FALLBACK_LANGUAGE = os.environ.get("PATTERN_FALLBACK_LANGUAGE", "en")
    PATTERN_LANGUAGE_MIN_MATCHES = int(os.environ.get("PATTERN_LANGUAGE_MIN_MATCHES", "10"))
    # keep | revert
    PATTERN_SETTLEMENT_FAILURE_POLICY = os.environ.get("PATTERN_SETTLEMENT_FAILURE_POLICY", "keep")

    # Generative model provider (OpenAI-compatible chat completions)
    PATTERN_MODEL_API_URL = os.environ.get(
        "PATTERN_MODEL_API_URL", "https://api.openai.com/v1/chat/completions"
    )
    PATTERN_MODEL_API_KEY = os.environ.get("PATTERN_MODEL_API_KEY", "")
    PATTERN_MODEL_NAME = os.environ.get("PATTERN_MODEL_NAME", "gpt-4o-mini")
    PATTERN_MODEL_TEMPERATURE = float(os.environ.get("PATTERN_MODEL_TEMPERATURE", "0.7"))
    PATTERN_MODEL_MAX_TOKENS = int(os.environ.get("PATTERN_MODEL_MAX_TOKENS", "8000"))
    PATTERN_MODEL_TIMEOUT_SECONDS = float(os.environ.get("PATTERN_MODEL_TIMEOUT_SECONDS", "180"))

    CREDITS_FREE_MONTHLY = int(os.environ.get("CREDITS_FREE_MONTHLY", "5"))


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    ENV = "development"


class TestingConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URL", "sqlite://")
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options_from_uri(SQLALCHEMY_DATABASE_URI)
    RATELIMIT_ENABLED = False
    JWT_SECRET_KEY = "testing-secret-key-with-enough-length-for-hs256"
    PATTERN_MODEL_API_KEY = "test-key"


class ProductionConfig(BaseConfig):
    ENV = "production"


config_by_name: Dict[str, Type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    # CI pipelines set APP_ENV=ci; map to testing defaults.
    "ci": TestingConfig,
}
