"""Model output validation."""

from __future__ import annotations

import json

import pytest

from reverie.domains.patterns.errors import SchemaValidationFailed
from reverie.domains.patterns.ml.validator import strip_code_fences, validate_report
from reverie.domains.patterns.schemas.report_schemas import PatternReportV2

pytestmark = pytest.mark.unit


def _raw(payload) -> str:
    return json.dumps(payload)


def test_accepts_complete_payload(policy, report_payload):
    report = validate_report(_raw(report_payload()), policy)
    assert isinstance(report, PatternReportV2)
    assert report.schema_version == 2
    assert len(report.recommendations) == 12


def test_accepts_fenced_payload(policy, report_payload):
    raw = "```json\n" + _raw(report_payload()) + "\n```"
    assert isinstance(validate_report(raw, policy), PatternReportV2)


def test_strip_code_fences_keeps_plain_text():
    assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'
    assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'


def test_rejects_non_json(policy):
    with pytest.raises(SchemaValidationFailed) as exc_info:
        validate_report("Here is your analysis: you are doing great.", policy)
    assert exc_info.value.rule == "response is not valid JSON"
    assert exc_info.value.http_status == 500


def test_rejects_json_array(policy):
    with pytest.raises(SchemaValidationFailed) as exc_info:
        validate_report("[1, 2, 3]", policy)
    assert exc_info.value.rule == "response must be a single JSON object"


def test_rejects_short_theme_list_even_if_all_else_valid(policy, report_payload):
    payload = report_payload()
    payload["themes"] = payload["themes"][:5]

    with pytest.raises(SchemaValidationFailed) as exc_info:
        validate_report(_raw(payload), policy)

    assert exc_info.value.field == "themes"
    assert exc_info.value.rule == "themes: expected at least 8 items, got 5"
    assert exc_info.value.to_dict()["errorCode"] == "SchemaValidationFailed"


@pytest.mark.parametrize(
    "field,minimum",
    [("emotions", 5), ("symbols", 10), ("recommendations", 12), ("exercises", 3), ("reflection_questions", 5)],
)
def test_rejects_each_short_array(policy, report_payload, field, minimum):
    payload = report_payload()
    payload[field] = payload[field][: minimum - 1]

    with pytest.raises(SchemaValidationFailed) as exc_info:
        validate_report(_raw(payload), policy)

    assert exc_info.value.field == field


def test_rejects_missing_array(policy, report_payload):
    payload = report_payload()
    del payload["symbols"]
    with pytest.raises(SchemaValidationFailed) as exc_info:
        validate_report(_raw(payload), policy)
    assert exc_info.value.rule == "symbols: missing"


def test_rejects_element_missing_required_key(policy, report_payload):
    payload = report_payload()
    del payload["themes"][3]["evolution"]

    with pytest.raises(SchemaValidationFailed) as exc_info:
        validate_report(_raw(payload), policy)

    assert exc_info.value.rule == "themes[3]: missing keys evolution"


def test_rejects_element_with_blank_value(policy, report_payload):
    payload = report_payload()
    payload["recommendations"][0]["rationale"] = "   "

    with pytest.raises(SchemaValidationFailed) as exc_info:
        validate_report(_raw(payload), policy)

    assert exc_info.value.rule.startswith("recommendations[0].rationale")


def test_rejects_blank_reflection_question(policy, report_payload):
    payload = report_payload()
    payload["reflection_questions"][2] = ""
    with pytest.raises(SchemaValidationFailed) as exc_info:
        validate_report(_raw(payload), policy)
    assert exc_info.value.rule == "reflection_questions[2]: must be a non-empty string"


def test_rejects_short_long_text(policy, report_payload):
    payload = report_payload(personal_growth="x" * 499)

    with pytest.raises(SchemaValidationFailed) as exc_info:
        validate_report(_raw(payload), policy)

    assert exc_info.value.field == "personal_growth"
    assert exc_info.value.rule == "personal_growth: expected at least 500 characters, got 499"


def test_accepts_long_text_at_minimum(policy, report_payload):
    payload = report_payload(integration_guidance="x" * 500)
    assert validate_report(_raw(payload), policy).integration_guidance == "x" * 500


def test_reports_every_violation_in_context(policy, report_payload):
    payload = report_payload(overall_insights="short")
    payload["themes"] = payload["themes"][:2]

    with pytest.raises(SchemaValidationFailed) as exc_info:
        validate_report(_raw(payload), policy)

    violations = exc_info.value.context["violations"]
    assert violations[0].startswith("themes:")
    assert any(v.startswith("overall_insights:") for v in violations)
