"""Aggregate report persistence and the current-row index.

``persist_report`` is the only writer that can make a row current. The new
row, the index update and the outbox event commit together.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from reverie.domains.patterns.errors import PersistenceError
from reverie.domains.patterns.events import PATTERNS_ANALYSIS_GENERATED
from reverie.domains.patterns.models import AggregateAnalysis, CurrentAggregateAnalysis
from reverie.domains.patterns.schemas.report_schemas import PatternReportV2, dump_report
from reverie.extensions import db
from reverie.platform.outbox import discard_pending
from reverie.platform.outbox import enqueue as enqueue_outbox

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PersistedReport:
    aggregate: AggregateAnalysis
    previous_aggregate_id: Optional[int]


def persist_report(
    user_id: int,
    report: PatternReportV2,
    *,
    entries_covered: int,
    latest_source_date: date,
    language: str,
    credits_cost: int,
) -> PersistedReport:
    try:
        aggregate = AggregateAnalysis(
            user_id=user_id,
            payload=dump_report(report),
            entries_covered=entries_covered,
            latest_source_date=latest_source_date,
            schema_version=report.schema_version,
            language=language,
            credits_cost=credits_cost,
        )
        db.session.add(aggregate)
        db.session.flush()

        pointer = (
            CurrentAggregateAnalysis.query.filter_by(user_id=user_id).with_for_update().first()
        )
        previous_id = pointer.aggregate_id if pointer is not None else None
        if pointer is None:
            db.session.add(CurrentAggregateAnalysis(user_id=user_id, aggregate=aggregate))
        else:
            pointer.aggregate = aggregate

        enqueue_outbox(
            PATTERNS_ANALYSIS_GENERATED,
            {
                "aggregate_id": aggregate.id,
                "user_id": user_id,
                "schema_version": aggregate.schema_version,
                "entries_covered": entries_covered,
                "language": language,
            },
            user_id=user_id,
        )
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error("pattern_persistence_failed user_id=%s error=%s", user_id, e)
        raise PersistenceError("Failed to store the pattern analysis") from e

    logger.info(
        "pattern_persisted user_id=%s aggregate_id=%s previous_id=%s entries_covered=%s",
        user_id,
        aggregate.id,
        previous_id,
        entries_covered,
    )
    return PersistedReport(aggregate=aggregate, previous_aggregate_id=previous_id)


def revert_report(user_id: int, persisted: PersistedReport) -> None:
    """Drop ``persisted.aggregate``, its undelivered event, and point the index back."""
    aggregate_id = persisted.aggregate.id
    try:
        pointer = (
            CurrentAggregateAnalysis.query.filter_by(user_id=user_id).with_for_update().first()
        )
        if pointer is not None and pointer.aggregate_id == aggregate_id:
            if persisted.previous_aggregate_id is None:
                db.session.delete(pointer)
            else:
                pointer.aggregate = db.session.get(AggregateAnalysis, persisted.previous_aggregate_id)
        db.session.flush()
        row = db.session.get(AggregateAnalysis, aggregate_id)
        if row is not None:
            db.session.delete(row)
        discard_pending(user_id, PATTERNS_ANALYSIS_GENERATED, aggregate_id=aggregate_id)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(
            "pattern_revert_failed user_id=%s aggregate_id=%s error=%s",
            user_id,
            aggregate_id,
            e,
        )
        raise PersistenceError("Failed to revert the pattern analysis") from e
    logger.warning(
        "pattern_reverted user_id=%s aggregate_id=%s restored_id=%s",
        user_id,
        aggregate_id,
        persisted.previous_aggregate_id,
    )
