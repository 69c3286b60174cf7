"""Credit settlement for freshly generated reports."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from reverie.domains.billing.models.credit_models import UsageLogEntry
from reverie.domains.billing.services import credit_service
from reverie.domains.patterns.errors import SettlementError
from reverie.domains.patterns.models import AggregateAnalysis
from reverie.domains.patterns.policy import PatternPolicy
from reverie.domains.patterns.services import cost_service

logger = logging.getLogger(__name__)

ACTION_PATTERN_ANALYSIS = "pattern_analysis"


@dataclass(frozen=True)
class Settlement:
    credits_charged: int
    usage_entry: Optional[UsageLogEntry]

    @property
    def already_settled(self) -> bool:
        return self.usage_entry is None


def settlement_reference(aggregate: AggregateAnalysis) -> str:
    return f"aggregate:{aggregate.id}"


def settle(
    user_id: int,
    aggregate: AggregateAnalysis,
    bundle: List[dict],
    policy: PatternPolicy,
    *,
    admitted_cost: int,
) -> Settlement:
    """Charge the cost of ``aggregate``, re-derived from the bundle it was built from.

    Charging is keyed on the aggregate id: settling the same row twice is a no-op.
    """
    cost = cost_service.estimate_for_bundle(bundle, policy)
    reference = settlement_reference(aggregate)
    if cost != admitted_cost:
        logger.error(
            "settlement_error user_id=%s reference=%s reason=cost_mismatch admitted=%s settled=%s",
            user_id,
            reference,
            admitted_cost,
            cost,
        )
        raise SettlementError(
            "Settled cost differs from the admitted estimate",
            aggregateId=aggregate.id,
            creditsAdmitted=admitted_cost,
            creditsSettled=cost,
        )
    try:
        entry = credit_service.charge_credits(
            user_id,
            cost,
            action_kind=ACTION_PATTERN_ANALYSIS,
            reference=reference,
        )
    except SQLAlchemyError as e:
        logger.error("settlement_error user_id=%s reference=%s cost=%s error=%s", user_id, reference, cost, e)
        raise SettlementError(
            "Credits could not be deducted for this analysis",
            aggregateId=aggregate.id,
            creditsDue=cost,
        ) from e
    if entry is None:
        logger.info("settlement_skipped user_id=%s reference=%s already settled", user_id, reference)
    else:
        logger.info("settlement_ok user_id=%s reference=%s credits=%s", user_id, reference, cost)
    return Settlement(credits_charged=cost, usage_entry=entry)
