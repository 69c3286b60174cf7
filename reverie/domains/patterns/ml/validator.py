"""Strict acceptance check for model output.

A response either satisfies every rule and becomes a ``PatternReportV2`` or
is rejected whole with ``SchemaValidationFailed``. Nothing is coerced or
filled in.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, List, Optional

from pydantic import ValidationError

from reverie.domains.patterns.errors import SchemaValidationFailed
from reverie.domains.patterns.policy import PatternPolicy
from reverie.domains.patterns.schemas.report_schemas import (
    ARRAY_ELEMENT_MODELS,
    ARRAY_FIELDS,
    LONG_TEXT_FIELDS,
    PatternReportV2,
)

logger = logging.getLogger(__name__)

CODE_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*|\s*```\s*$", re.IGNORECASE)
MAX_REPORTED_VIOLATIONS = 20


@dataclass(frozen=True)
class Violation:
    rule: str
    field: Optional[str] = None


def strip_code_fences(text: str) -> str:
    """Remove a Markdown code fence wrapping the whole answer."""
    return CODE_FENCE_RE.sub("", text or "").strip()


def parse_json_object(raw: str) -> dict:
    try:
        data = json.loads(strip_code_fences(raw))
    except json.JSONDecodeError as e:
        raise SchemaValidationFailed("response is not valid JSON", detail=str(e)) from e
    if not isinstance(data, dict):
        raise SchemaValidationFailed("response must be a single JSON object")
    return data


def _array_violations(data: dict, policy: PatternPolicy) -> List[Violation]:
    found = []
    for name in ARRAY_FIELDS:
        if name not in data:
            found.append(Violation(f"{name}: missing", name))
            continue
        value = data[name]
        if not isinstance(value, list):
            found.append(Violation(f"{name}: must be an array", name))
            continue
        minimum = policy.array_minimums[name]
        if len(value) < minimum:
            found.append(Violation(f"{name}: expected at least {minimum} items, got {len(value)}", name))
    return found


def _element_violations(data: dict) -> List[Violation]:
    found = []
    for name in ARRAY_FIELDS:
        items = data.get(name)
        if not isinstance(items, list):
            continue
        model = ARRAY_ELEMENT_MODELS[name]
        for index, item in enumerate(items):
            where = f"{name}[{index}]"
            if model is None:
                if not isinstance(item, str) or not item.strip():
                    found.append(Violation(f"{where}: must be a non-empty string", name))
                continue
            if not isinstance(item, dict):
                found.append(Violation(f"{where}: must be an object", name))
                continue
            missing = [key for key in model.model_fields if key not in item]
            if missing:
                found.append(Violation(f"{where}: missing keys {', '.join(missing)}", name))
                continue
            try:
                model.model_validate(item)
            except ValidationError as e:
                err = e.errors()[0]
                key = ".".join(str(part) for part in err["loc"][:1])
                found.append(Violation(f"{where}.{key}: {err['msg']}", name))
    return found


def _text_violations(data: dict, policy: PatternPolicy) -> List[Violation]:
    found = []
    minimum = policy.min_long_text_chars
    for name in LONG_TEXT_FIELDS:
        value = data.get(name)
        if not isinstance(value, str):
            found.append(Violation(f"{name}: must be a string", name))
            continue
        length = len(value.strip())
        if length < minimum:
            found.append(Violation(f"{name}: expected at least {minimum} characters, got {length}", name))
    return found


def collect_violations(data: dict, policy: PatternPolicy) -> List[Violation]:
    """Every broken rule, cardinalities first, then element keys, then long texts."""
    return _array_violations(data, policy) + _element_violations(data) + _text_violations(data, policy)


def validate_report(raw: Any, policy: PatternPolicy) -> PatternReportV2:
    """Accept ``raw`` model text as a current-version report or raise."""
    if not isinstance(raw, str):
        raise SchemaValidationFailed("response is not text")
    data = parse_json_object(raw)
    violations = collect_violations(data, policy)
    if violations:
        first = violations[0]
        logger.warning(
            "pattern_validation_failed rule=%r violations=%s", first.rule, len(violations)
        )
        raise SchemaValidationFailed(
            first.rule,
            first.field,
            violations=[v.rule for v in violations[:MAX_REPORTED_VIOLATIONS]],
        )
    data["schema_version"] = policy.current_schema_version
    try:
        return PatternReportV2.model_validate(data)
    except ValidationError as e:
        raise SchemaValidationFailed("response does not match the report contract", detail=str(e)) from e


__all__ = [
    "Violation",
    "collect_violations",
    "parse_json_object",
    "strip_code_fences",
    "validate_report",
]
