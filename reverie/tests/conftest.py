import json
import sys
from datetime import date, timedelta
from pathlib import Path

import pytest
from flask_jwt_extended import create_access_token

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from reverie import create_app
from reverie.core.users.models import User
from reverie.domains.journal.services import journal_service
from reverie.domains.patterns.ml.model_client import ModelClient
from reverie.domains.patterns.policy import PatternPolicy
from reverie.domains.patterns.services.pattern_service import PatternAnalysisService
from reverie.extensions import db


# ==================== Pytest Markers ====================
def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (database, API)")


# ==================== Model doubles ====================

LONG_TEXT = (
    "You keep returning to the same questions about where you belong and what you want "
    "your days to feel like. Across these weeks your writing moves between restlessness "
    "and a quieter kind of attention, and the moments you describe most vividly are the "
    "ones where you allowed yourself to slow down. "
) * 3


def valid_report_payload(**overrides) -> dict:
    """A model answer that satisfies every validator rule."""
    payload = {
        "overall_insights": LONG_TEXT,
        "temporal_patterns": LONG_TEXT,
        "emotional_landscape": LONG_TEXT,
        "personal_growth": LONG_TEXT,
        "integration_guidance": LONG_TEXT,
        "themes": [
            {
                "name": f"Theme {i}",
                "frequency": i + 1,
                "significance": "It shows up when you feel stretched thin.",
                "evolution": "It grows quieter in your later entries.",
            }
            for i in range(8)
        ],
        "emotions": [
            {
                "emotion": f"Emotion {i}",
                "frequency": i + 1,
                "trend": "stable",
                "context": "Mostly in the evenings after work.",
            }
            for i in range(5)
        ],
        "symbols": [
            {
                "symbol": f"Symbol {i}",
                "frequency": 2,
                "interpretation": "A threshold between two phases of your life.",
                "personal_meaning": "You link it to your grandmother's house.",
            }
            for i in range(10)
        ],
        "recommendations": [
            {
                "area": "rest",
                "action": f"Try step {i} before bed.",
                "rationale": "Your calmest entries follow unhurried evenings.",
            }
            for i in range(12)
        ],
        "exercises": [
            {
                "title": f"Exercise {i}",
                "instructions": "Write for five minutes without stopping.",
                "duration": "10 minutes",
            }
            for i in range(3)
        ],
        "reflection_questions": [f"What would change if you trusted moment {i}?" for i in range(5)],
    }
    payload.update(overrides)
    return payload


class FakeModelClient(ModelClient):
    """Records prompts and answers with a canned response (or raises one)."""

    def __init__(self, response=None, error: Exception | None = None):
        self.response = response if response is not None else valid_report_payload()
        self.error = error
        self.calls = []

    def complete(self, prompt, *, timeout, cancel_token=None):
        self.calls.append({"prompt": prompt, "timeout": timeout, "cancel_token": cancel_token})
        if self.error is not None:
            raise self.error
        if isinstance(self.response, str):
            return self.response
        return json.dumps(self.response)


# ==================== App fixtures ====================


@pytest.fixture()
def app():
    """Per-test app on a fresh in-memory database."""
    app = create_app("testing")
    ctx = app.app_context()
    ctx.push()
    db.create_all()
    try:
        yield app
    finally:
        db.session.remove()
        db.drop_all()
        ctx.pop()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def user(app):
    user = User(email="writer@example.com", display_name="Writer")
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture()
def other_user(app):
    user = User(email="other@example.com", display_name="Other")
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture()
def auth_headers(app, user):
    token = create_access_token(identity=str(user.id))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def policy():
    return PatternPolicy()


@pytest.fixture()
def fake_model():
    return FakeModelClient()


@pytest.fixture()
def pattern_service(app, fake_model, policy):
    service = PatternAnalysisService(fake_model, policy)
    app.extensions["pattern_analysis"] = service
    return service


ENTRY_BODY = (
    "I walked along the river this morning and the fog was so thick that the bridge "
    "seemed to float. I was thinking about the move and whether I am ready for it. "
    "The conversation with my sister stayed with me all day and I felt lighter after "
    "writing it down. Later the old house came back in a dream, with the door open "
    "and the garden full of tall grass that I could not walk through. "
)


def seed_entries(user_id: int, count: int, *, analyzed: bool = True, start: date | None = None, body: str = ENTRY_BODY):
    """Create ``count`` entries on consecutive days, each with an analysis by default."""
    start = start or date.today() - timedelta(days=count)
    entries = []
    for i in range(count):
        entry = journal_service.create_entry(
            user_id,
            title=f"Day {i + 1}",
            body=body,
            entry_date=start + timedelta(days=i),
            mood="calm",
            tags=["walk"],
        )
        if analyzed:
            journal_service.record_entry_analysis(
                user_id,
                entry.id,
                themes=["change", "family"],
                emotions=["calm", "worry"],
                symbols=["bridge", "house"],
                analysis_text="You are working through a transition and looking for steadiness.",
            )
        entries.append(entry)
    return entries


@pytest.fixture()
def make_entries(app):
    return seed_entries


@pytest.fixture()
def report_payload():
    return valid_report_payload


@pytest.fixture()
def model_factory():
    return FakeModelClient
