"""Pattern and billing JSON API.

- POST /api/patterns/analyze
- GET /api/patterns/current
- POST /api/patterns/cancel
- GET /api/billing/credits
"""

from __future__ import annotations

import json

import pytest
from flask_jwt_extended import create_access_token

pytestmark = pytest.mark.integration

from reverie import create_app
from reverie.config import TestingConfig
from reverie.core.users.models import User
from reverie.domains.billing.models.credit_models import UsageLogEntry
from reverie.domains.patterns.errors import ModelQuotaExceeded, ModelRateLimited, ModelTimeout
from reverie.domains.patterns.ml.model_client import ModelClient
from reverie.domains.patterns.models import AggregateAnalysis
from reverie.domains.patterns.services.pattern_service import PatternAnalysisService
from reverie.extensions import db


# ==================== Auth ====================


def test_analyze_requires_token(client, pattern_service):
    resp = client.post("/api/patterns/analyze", json={})
    assert resp.status_code == 401
    assert resp.get_json()["errorCode"] == "AuthError"


def test_analyze_rejects_garbage_token(client, pattern_service):
    resp = client.post("/api/patterns/analyze", json={}, headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401
    assert resp.get_json()["errorCode"] == "AuthError"


def test_analyze_rejects_unknown_user(app, client, pattern_service):
    token = create_access_token(identity="9999")
    resp = client.post("/api/patterns/analyze", json={}, headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.get_json()["errorCode"] == "AuthError"


# ==================== Analyze ====================


def test_analyze_fresh_success(client, user, auth_headers, make_entries, pattern_service):
    make_entries(user.id, 12)

    resp = client.post("/api/patterns/analyze", json={"forceRefresh": False}, headers=auth_headers)

    assert resp.status_code == 200
    data = resp.get_json()
    assert data["ok"] is True
    assert data["cached"] is False
    assert data["creditsUsed"] == 2
    assert data["entriesAnalyzed"] == 12
    assert len(data["analysis"]["themes"]) == 8
    assert data["language"] == "en"


def test_second_call_is_cached(client, user, auth_headers, make_entries, pattern_service, fake_model):
    make_entries(user.id, 12)
    client.post("/api/patterns/analyze", json={}, headers=auth_headers)

    resp = client.post("/api/patterns/analyze", json={}, headers=auth_headers)

    data = resp.get_json()
    assert data["cached"] is True
    assert data["creditsUsed"] == 0
    assert data["upgradeAvailable"] is False
    assert len(fake_model.calls) == 1


def test_analyze_uses_request_selection(client, user, other_user, auth_headers, make_entries, pattern_service):
    mine = make_entries(user.id, 12)
    theirs = make_entries(other_user.id, 3)
    ids = [e.id for e in mine[:10]] + [e.id for e in theirs]
    body = {
        "entries": [{"id": i, "title": "forged", "content": "forged text"} for i in ids],
        "perEntryAnalyses": [{"entryId": i} for i in ids],
    }

    resp = client.post("/api/patterns/analyze", json=body, headers=auth_headers)

    assert resp.status_code == 200
    assert resp.get_json()["entriesAnalyzed"] == 10


def test_analyze_not_enough_entries(client, user, auth_headers, make_entries, pattern_service):
    make_entries(user.id, 9)

    resp = client.post("/api/patterns/analyze", json={}, headers=auth_headers)

    assert resp.status_code == 400
    data = resp.get_json()
    assert data["ok"] is False
    assert data["errorCode"] == "InsufficientEligibleEntries"
    assert data["analyzedCount"] == 9


def test_analyze_insufficient_credits(client, user, auth_headers, make_entries, pattern_service):
    from reverie.domains.billing.services import credit_service

    make_entries(user.id, 12)
    credit_service.get_or_create_balance(user.id).credits_remaining = 0
    db.session.commit()

    resp = client.post("/api/patterns/analyze", json={}, headers=auth_headers)

    assert resp.status_code == 402
    assert resp.get_json()["errorCode"] == "InsufficientCredits"
    assert resp.get_json()["creditsRequired"] == 2


def test_analyze_invalid_body(client, user, auth_headers, pattern_service):
    resp = client.post("/api/patterns/analyze", json={"forceRefresh": "maybe"}, headers=auth_headers)

    assert resp.status_code == 400
    data = resp.get_json()
    assert data["error"] == "validation_error"
    assert data["details"]


@pytest.mark.parametrize(
    "error,status,code",
    [
        (ModelTimeout("slow"), 500, "ModelTimeout"),
        (ModelRateLimited("busy"), 429, "ModelRateLimited"),
        (ModelQuotaExceeded("empty"), 500, "ModelQuotaExceeded"),
    ],
)
def test_provider_failures_map_to_status(app, client, user, auth_headers, make_entries, policy, model_factory, error, status, code):
    app.extensions["pattern_analysis"] = PatternAnalysisService(model_factory(error=error), policy)
    make_entries(user.id, 12)

    resp = client.post("/api/patterns/analyze", json={}, headers=auth_headers)

    assert resp.status_code == status
    assert resp.get_json()["errorCode"] == code


def test_invalid_model_output_maps_to_500(client, user, auth_headers, make_entries, pattern_service, fake_model):
    fake_model.response = "not json at all"
    make_entries(user.id, 12)

    resp = client.post("/api/patterns/analyze", json={}, headers=auth_headers)

    assert resp.status_code == 500
    data = resp.get_json()
    assert data["errorCode"] == "SchemaValidationFailed"
    assert data["rule"] == "response is not valid JSON"



def test_analyze_rate_limit_answers_with_error_code(monkeypatch):
    monkeypatch.setattr(TestingConfig, "RATELIMIT_ENABLED", True)
    monkeypatch.setattr(TestingConfig, "PATTERN_ANALYZE_RATE_LIMIT", "1/minute")
    limited = create_app("testing")
    with limited.app_context():
        db.create_all()
        writer = User(email="limited@example.com", display_name="Limited")
        db.session.add(writer)
        db.session.commit()
        headers = {"Authorization": f"Bearer {create_access_token(identity=str(writer.id))}"}
        client = limited.test_client()

        first = client.post("/api/patterns/analyze", json={}, headers=headers)
        resp = client.post("/api/patterns/analyze", json={}, headers=headers)
        db.session.remove()
        db.drop_all()

    assert first.status_code == 400
    assert resp.status_code == 429
    data = resp.get_json()
    assert data["ok"] is False
    assert data["errorCode"] == "ModelRateLimited"



# ==================== Cancel ====================


class _CancelledMidCall(ModelClient):
    """Asks the API to cancel the caller's analysis while the model call is in flight."""

    def __init__(self, client, headers):
        self.client = client
        self.headers = headers
        self.cancel_response = None

    def complete(self, prompt, *, timeout, cancel_token=None):
        self.cancel_response = self.client.post("/api/patterns/cancel", headers=self.headers)
        cancel_token.raise_if_cancelled()
        return json.dumps({})


def test_cancel_aborts_in_flight_analysis(app, client, user, auth_headers, make_entries, policy):
    model = _CancelledMidCall(client, auth_headers)
    app.extensions["pattern_analysis"] = PatternAnalysisService(model, policy)
    make_entries(user.id, 12)

    resp = client.post("/api/patterns/analyze", json={}, headers=auth_headers)

    assert model.cancel_response.get_json() == {"ok": True, "cancelled": 1}
    assert resp.status_code == 499
    assert resp.get_json()["errorCode"] == "Cancelled"
    assert AggregateAnalysis.query.count() == 0
    assert UsageLogEntry.query.count() == 0
    assert app.extensions["pattern_cancellations"].in_flight(user.id) == 0


def test_cancel_without_analysis_in_flight(client, user, auth_headers, pattern_service):
    resp = client.post("/api/patterns/cancel", headers=auth_headers)

    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True, "cancelled": 0}


def test_cancel_requires_token(client, pattern_service):
    resp = client.post("/api/patterns/cancel")
    assert resp.status_code == 401
    assert resp.get_json()["errorCode"] == "AuthError"


# ==================== Current ====================


def test_current_without_report(client, user, auth_headers, pattern_service):
    resp = client.get("/api/patterns/current", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True, "analysis": None}


def test_current_after_generation(client, user, auth_headers, make_entries, pattern_service, fake_model):
    make_entries(user.id, 12)
    client.post("/api/patterns/analyze", json={}, headers=auth_headers)

    resp = client.get("/api/patterns/current", headers=auth_headers)

    data = resp.get_json()
    assert data["cached"] is True
    assert data["schemaVersion"] == 2
    assert len(fake_model.calls) == 1


# ==================== Billing ====================


def test_credits_endpoint_reports_usage(client, user, auth_headers, make_entries, pattern_service):
    make_entries(user.id, 12)
    client.post("/api/patterns/analyze", json={}, headers=auth_headers)

    resp = client.get("/api/billing/credits", headers=auth_headers)

    data = resp.get_json()
    assert data["credits"]["remaining"] == 3
    assert data["credits"]["plan"] == "free"
    assert data["usage"][0]["actionKind"] == "pattern_analysis"
    assert data["usage"][0]["creditsCharged"] == 2


def test_reset_credits_cli(app, user):
    from datetime import date

    from reverie.domains.billing.services import credit_service

    balance = credit_service.get_or_create_balance(user.id)
    balance.credits_remaining = 0
    balance.last_reset_date = date(2000, 1, 1)
    db.session.commit()

    result = app.test_cli_runner().invoke(args=["reset-credits", "--user", str(user.id)])

    assert result.exit_code == 0
    assert "allowance restored" in result.output
    assert credit_service.get_or_create_balance(user.id).credits_remaining == 5
