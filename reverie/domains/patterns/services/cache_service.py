"""Cache resolution for aggregate reports.

Validity is derived on every read from the row's age, its coverage of the
currently eligible entries and its schema version. The outcome is one of:

- ``FRESH_HIT``: reuse as is, free.
- ``VERSION_HIT``: recent and well covered but written under an older
  contract; reuse, free, and offer a paid upgrade.
- ``STALE_MISS``: too old or too thin; regenerate.
- ``MISS``: the user has no current report.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Tuple

from reverie.domains.patterns.models import AggregateAnalysis, CurrentAggregateAnalysis
from reverie.domains.patterns.policy import PatternPolicy
from reverie.extensions import db

logger = logging.getLogger(__name__)

REASON_EXPIRED = "expired"
REASON_LOW_COVERAGE = "low_coverage"
REASON_UNKNOWN_VERSION = "unknown_schema_version"


class CacheOutcome(str, enum.Enum):
    FRESH_HIT = "fresh_hit"
    VERSION_HIT = "version_hit"
    STALE_MISS = "stale_miss"
    MISS = "miss"


@dataclass(frozen=True)
class CacheResolution:
    outcome: CacheOutcome
    aggregate: Optional[AggregateAnalysis] = None
    coverage: Optional[float] = None
    age: Optional[timedelta] = None
    reasons: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_hit(self) -> bool:
        return self.outcome in (CacheOutcome.FRESH_HIT, CacheOutcome.VERSION_HIT)

    @property
    def upgrade_available(self) -> bool:
        return self.outcome is CacheOutcome.VERSION_HIT


def current_aggregate(user_id: int) -> Optional[AggregateAnalysis]:
    """The row the current index points at, if any."""
    pointer = (
        db.session.query(CurrentAggregateAnalysis)
        .filter_by(user_id=user_id)
        .populate_existing()
        .first()
    )
    return pointer.aggregate if pointer is not None else None


def coverage_of(aggregate: AggregateAnalysis, total_eligible: int) -> float:
    if total_eligible <= 0:
        return 0.0
    return aggregate.entries_covered / total_eligible


def evaluate(
    aggregate: Optional[AggregateAnalysis],
    total_eligible: int,
    policy: PatternPolicy,
    now: Optional[datetime] = None,
) -> CacheResolution:
    if aggregate is None:
        return CacheResolution(CacheOutcome.MISS)
    now = now or datetime.utcnow()
    age = now - aggregate.created_at
    coverage = coverage_of(aggregate, total_eligible)
    reasons = []
    if age >= policy.max_cache_age:
        reasons.append(REASON_EXPIRED)
    if coverage < policy.min_coverage:
        reasons.append(REASON_LOW_COVERAGE)
    # A row newer than this code cannot be read back; regenerate it.
    if aggregate.schema_version > policy.current_schema_version:
        reasons.append(REASON_UNKNOWN_VERSION)
    if reasons:
        outcome = CacheOutcome.STALE_MISS
    elif aggregate.schema_version != policy.current_schema_version:
        outcome = CacheOutcome.VERSION_HIT
    else:
        outcome = CacheOutcome.FRESH_HIT
    return CacheResolution(outcome, aggregate, coverage, age, tuple(reasons))


def resolve(
    user_id: int,
    total_eligible: int,
    policy: PatternPolicy,
    now: Optional[datetime] = None,
) -> CacheResolution:
    resolution = evaluate(current_aggregate(user_id), total_eligible, policy, now)
    logger.info(
        "pattern_cache outcome=%s user_id=%s aggregate_id=%s coverage=%s reasons=%s",
        resolution.outcome.value,
        user_id,
        resolution.aggregate.id if resolution.aggregate is not None else None,
        f"{resolution.coverage:.2f}" if resolution.coverage is not None else None,
        ",".join(resolution.reasons) or "-",
    )
    return resolution
