"""Cache resolver outcomes and the current-report index."""

from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from reverie.domains.patterns.models import AggregateAnalysis, CurrentAggregateAnalysis
from reverie.domains.patterns.schemas.report_schemas import PatternReportV1, PatternReportV2, load_report
from reverie.domains.patterns.services import cache_service
from reverie.domains.patterns.services.cache_service import CacheOutcome
from reverie.extensions import db

pytestmark = pytest.mark.integration

NOW = datetime(2026, 10, 19, 12, 0, 0)


def _row(user_id, *, covered=40, age=timedelta(days=1), version=2, payload=None, current=True):
    row = AggregateAnalysis(
        user_id=user_id,
        payload=payload or {},
        entries_covered=covered,
        latest_source_date=date(2026, 10, 1),
        schema_version=version,
        language="en",
        credits_cost=2,
        created_at=NOW - age,
    )
    db.session.add(row)
    db.session.flush()
    if current:
        pointer = db.session.get(CurrentAggregateAnalysis, user_id)
        if pointer is None:
            db.session.add(CurrentAggregateAnalysis(user_id=user_id, aggregate=row))
        else:
            pointer.aggregate = row
    db.session.commit()
    return row


# ==================== Outcomes ====================


def test_no_current_row_is_a_miss(app, user, policy):
    resolution = cache_service.resolve(user.id, 20, policy, NOW)
    assert resolution.outcome is CacheOutcome.MISS
    assert not resolution.is_hit


def test_recent_well_covered_current_version_is_fresh_hit(app, user, policy):
    row = _row(user.id, covered=38)

    resolution = cache_service.resolve(user.id, 40, policy, NOW)

    assert resolution.outcome is CacheOutcome.FRESH_HIT
    assert resolution.aggregate.id == row.id
    assert resolution.coverage == pytest.approx(0.95)
    assert not resolution.upgrade_available


def test_coverage_at_threshold_is_still_a_hit(app, user, policy):
    _row(user.id, covered=8)
    assert cache_service.resolve(user.id, 10, policy, NOW).outcome is CacheOutcome.FRESH_HIT


def test_low_coverage_is_stale_miss(app, user, policy):
    _row(user.id, covered=31)

    resolution = cache_service.resolve(user.id, 40, policy, NOW)

    assert resolution.outcome is CacheOutcome.STALE_MISS
    assert resolution.reasons == (cache_service.REASON_LOW_COVERAGE,)


def test_expired_row_is_stale_miss_regardless_of_coverage(app, user, policy):
    _row(user.id, covered=40, age=timedelta(days=30))

    resolution = cache_service.resolve(user.id, 40, policy, NOW)

    assert resolution.outcome is CacheOutcome.STALE_MISS
    assert cache_service.REASON_EXPIRED in resolution.reasons


def test_old_schema_version_offers_upgrade(app, user, policy):
    _row(user.id, covered=40, version=1)

    resolution = cache_service.resolve(user.id, 40, policy, NOW)

    assert resolution.outcome is CacheOutcome.VERSION_HIT
    assert resolution.is_hit
    assert resolution.upgrade_available


def test_old_schema_version_that_is_also_stale_is_a_miss(app, user, policy):
    _row(user.id, covered=10, version=1)
    assert cache_service.resolve(user.id, 40, policy, NOW).outcome is CacheOutcome.STALE_MISS


def test_unknown_future_version_is_regenerated(app, user, policy):
    _row(user.id, covered=40, version=policy.current_schema_version + 1)

    resolution = cache_service.resolve(user.id, 40, policy, NOW)

    assert resolution.outcome is CacheOutcome.STALE_MISS
    assert cache_service.REASON_UNKNOWN_VERSION in resolution.reasons


# ==================== Current index ====================


def test_reads_follow_the_index_not_recency(app, user, policy):
    indexed = _row(user.id, covered=40, age=timedelta(days=2))
    _row(user.id, covered=40, age=timedelta(hours=1), current=False)

    assert cache_service.current_aggregate(user.id).id == indexed.id


def test_index_is_per_user(app, user, other_user, policy):
    _row(user.id)
    assert cache_service.current_aggregate(other_user.id) is None


# ==================== Versioned payloads ====================


def test_legacy_payload_loads_as_v1(app):
    report = load_report(
        {
            "overall_insights": "You dream of water.",
            "theme_patterns": [{"theme": "water", "frequency": 3, "significance": "change"}],
            "recommendations": ["Keep a notebook by the bed."],
        },
        1,
    )
    assert isinstance(report, PatternReportV1)
    assert report.theme_patterns[0].theme == "water"


def test_current_payload_loads_as_v2(app, report_payload):
    report = load_report(report_payload(), 2)
    assert isinstance(report, PatternReportV2)
    assert len(report.themes) == 8
