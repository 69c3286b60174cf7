"""Aggregate pattern analysis pipeline.

Order of steps for one request:

1. load the caller's analyzed entries and apply the eligibility gate
2. build the bundle and estimate its cost
3. resolve the cache (skipped for forced refreshes)
4. under the per-user lock: resolve again, reset the monthly allowance if
   due, admit, detect language, build the prompt, call the model, validate,
   persist, settle
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Optional, Union

from reverie.core.audit.services import (
    AUDIT_AGGREGATE_REVERTED,
    AUDIT_REVERT_FAILED,
    AUDIT_SETTLEMENT_FAILED,
    record_audit,
)
from reverie.core.utils.cancellation import CancellationToken, OperationCancelled
from reverie.core.utils.locks import KeyedLocks
from reverie.domains.billing.services import credit_service
from reverie.domains.journal.services import journal_service
from reverie.domains.patterns.errors import PersistenceError, PipelineCancelled, SettlementError
from reverie.domains.patterns.ml.language import FunctionWordLanguageDetector, LanguageDetector
from reverie.domains.patterns.ml.model_client import ModelClient
from reverie.domains.patterns.ml.prompts import build_prompt
from reverie.domains.patterns.ml.validator import validate_report
from reverie.domains.patterns.models import AggregateAnalysis
from reverie.domains.patterns.policy import SETTLEMENT_POLICY_REVERT, PatternPolicy
from reverie.domains.patterns.schemas.report_schemas import (
    PatternReportV1,
    PatternReportV2,
    dump_report,
    load_report,
)
from reverie.domains.patterns.services import (
    cache_service,
    cost_service,
    eligibility,
    persistence_service,
    settlement_service,
)
from reverie.extensions import db

logger = logging.getLogger(__name__)

# Shared by every service instance in the process.
_user_locks = KeyedLocks()


@dataclass
class PatternAnalysisResult:
    report: Union[PatternReportV1, PatternReportV2]
    aggregate: AggregateAnalysis
    cached: bool
    credits_used: int
    entries_analyzed: int
    upgrade_available: bool = False
    upgrade_cost: Optional[int] = None
    coverage: Optional[float] = None
    settlement_error: Optional[SettlementError] = None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "ok": True,
            "analysis": dump_report(self.report),
            "cached": self.cached,
            "creditsUsed": self.credits_used,
            "entriesAnalyzed": self.entries_analyzed,
            "schemaVersion": self.aggregate.schema_version,
            "language": self.aggregate.language,
            "generatedAt": self.aggregate.created_at.isoformat() if self.aggregate.created_at else None,
        }
        if self.cached:
            body["upgradeAvailable"] = self.upgrade_available
            body["coverage"] = round(self.coverage, 4) if self.coverage is not None else None
        if self.upgrade_available:
            body["upgradeCost"] = self.upgrade_cost
        if self.settlement_error is not None:
            body["warning"] = {
                "error": self.settlement_error.message,
                "errorCode": self.settlement_error.error_code,
            }
        return body


class PatternAnalysisService:
    def __init__(
        self,
        model_client: ModelClient,
        policy: Optional[PatternPolicy] = None,
        *,
        language_detector: Optional[LanguageDetector] = None,
        locks: Optional[KeyedLocks] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.policy = policy or PatternPolicy()
        self.model_client = model_client
        self.language_detector = language_detector or FunctionWordLanguageDetector(
            fallback=self.policy.fallback_language,
            min_matches=self.policy.language_min_matches,
        )
        self.locks = locks or _user_locks
        self.clock = clock

    def analyze(
        self,
        user_id: int,
        *,
        force_refresh: bool = False,
        entry_ids: Optional[Iterable[int]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> PatternAnalysisResult:
        policy = self.policy
        started_at = self.clock()
        token = cancel_token or CancellationToken()

        pairs = journal_service.list_analyzed_entries(user_id, entry_ids)
        total = eligibility.check_eligibility(pairs, policy, user_id=user_id)
        bundle = cost_service.build_bundle(pairs, policy)
        bundle_text = cost_service.serialize_bundle(bundle)
        cost = cost_service.estimate_cost(len(bundle_text), policy)
        latest_source_date = max(entry.entry_date for entry, _ in pairs)
        corpus = "\n".join(f"{entry.title or ''}\n{entry.body}" for entry, _ in pairs)
        logger.info(
            "pattern_request user_id=%s eligible=%s bundle_chars=%s cost=%s force_refresh=%s",
            user_id,
            total,
            len(bundle_text),
            cost,
            force_refresh,
        )

        if not force_refresh:
            resolution = cache_service.resolve(user_id, total, policy, started_at)
            if resolution.is_hit:
                return self._cached_result(resolution, cost)

        with self.locks.hold(user_id):
            # Drop the read snapshot taken before the lock.
            db.session.rollback()
            resolution = cache_service.resolve(user_id, total, policy, self.clock())
            if self._served_by_concurrent_request(resolution, force_refresh, started_at):
                logger.info(
                    "pattern_single_flight user_id=%s aggregate_id=%s",
                    user_id,
                    resolution.aggregate.id,
                )
                return self._cached_result(resolution, cost)

            credit_service.reset_if_due(user_id)
            balance = credit_service.get_or_create_balance(user_id)
            cost_service.admit(balance, cost)

            language = self.language_detector.detect(corpus)
            prompt = build_prompt(language, bundle_text, policy)
            report = self._generate(user_id, prompt, token)
            if token.cancelled:
                raise PipelineCancelled("pattern analysis cancelled before persistence")

            persisted = persistence_service.persist_report(
                user_id,
                report,
                entries_covered=total,
                latest_source_date=latest_source_date,
                language=prompt.language,
                credits_cost=cost,
            )
            return self._settle(user_id, persisted, bundle, cost, total)

    def current(self, user_id: int) -> Optional[PatternAnalysisResult]:
        """The current report without generating or billing anything."""
        aggregate = cache_service.current_aggregate(user_id)
        if aggregate is None:
            return None
        pairs = journal_service.list_analyzed_entries(user_id)
        total = eligibility.count_analyzed(pairs)
        resolution = cache_service.evaluate(aggregate, total, self.policy, self.clock())
        upgrade_cost = None
        if resolution.upgrade_available:
            upgrade_cost = cost_service.estimate_for_bundle(cost_service.build_bundle(pairs, self.policy), self.policy)
        return PatternAnalysisResult(
            report=load_report(aggregate.payload, aggregate.schema_version),
            aggregate=aggregate,
            cached=True,
            credits_used=0,
            entries_analyzed=aggregate.entries_covered,
            upgrade_available=resolution.upgrade_available,
            upgrade_cost=upgrade_cost,
            coverage=resolution.coverage,
        )

    def _served_by_concurrent_request(self, resolution, force_refresh: bool, started_at: datetime) -> bool:
        if not force_refresh:
            return resolution.is_hit
        # A forced refresh still collapses onto a row generated after it arrived.
        aggregate = resolution.aggregate
        return (
            resolution.outcome is cache_service.CacheOutcome.FRESH_HIT
            and aggregate is not None
            and aggregate.created_at >= started_at
        )

    def _generate(self, user_id: int, prompt, token: CancellationToken) -> PatternReportV2:
        logger.info(
            "pattern_model_call user_id=%s language=%s prompt_chars=%s",
            user_id,
            prompt.language,
            prompt.size,
        )
        try:
            token.raise_if_cancelled()
            raw = self.model_client.complete(
                prompt,
                timeout=self.policy.model_timeout_seconds,
                cancel_token=token,
            )
            token.raise_if_cancelled()
        except OperationCancelled as e:
            logger.info("pattern_cancelled user_id=%s", user_id)
            raise PipelineCancelled("pattern analysis cancelled") from e
        logger.info("pattern_model_answered user_id=%s response_chars=%s", user_id, len(raw or ""))
        return validate_report(raw, self.policy)

    def _settle(
        self,
        user_id: int,
        persisted: persistence_service.PersistedReport,
        bundle: list,
        cost: int,
        total: int,
    ) -> PatternAnalysisResult:
        aggregate = persisted.aggregate
        try:
            settlement = settlement_service.settle(
                user_id, aggregate, bundle, self.policy, admitted_cost=cost
            )
        except SettlementError as e:
            details = {"aggregate_id": aggregate.id, "credits_due": cost, "error": e.message}
            if self.policy.settlement_failure_policy == SETTLEMENT_POLICY_REVERT:
                self._revert(user_id, persisted, e, details)
                raise
            record_audit(AUDIT_SETTLEMENT_FAILED, details, user_id=user_id)
            return self._fresh_result(aggregate, total, credits_used=0, settlement_error=e)
        return self._fresh_result(aggregate, total, credits_used=settlement.credits_charged)

    def _revert(
        self,
        user_id: int,
        persisted: persistence_service.PersistedReport,
        error: SettlementError,
        details: Dict[str, Any],
    ) -> None:
        """Undo the unbilled report. A failed undo is audited and attached to ``error``."""
        try:
            persistence_service.revert_report(user_id, persisted)
        except PersistenceError as revert_error:
            error.context["revertError"] = revert_error.message
            record_audit(AUDIT_REVERT_FAILED, {**details, "revert_error": revert_error.message}, user_id=user_id)
            return
        record_audit(AUDIT_AGGREGATE_REVERTED, details, user_id=user_id)

    def _fresh_result(
        self,
        aggregate: AggregateAnalysis,
        total: int,
        *,
        credits_used: int,
        settlement_error: Optional[SettlementError] = None,
    ) -> PatternAnalysisResult:
        return PatternAnalysisResult(
            report=load_report(aggregate.payload, aggregate.schema_version),
            aggregate=aggregate,
            cached=False,
            credits_used=credits_used,
            entries_analyzed=total,
            settlement_error=settlement_error,
        )

    def _cached_result(self, resolution: cache_service.CacheResolution, cost: int) -> PatternAnalysisResult:
        aggregate = resolution.aggregate
        return PatternAnalysisResult(
            report=load_report(aggregate.payload, aggregate.schema_version),
            aggregate=aggregate,
            cached=True,
            credits_used=0,
            entries_analyzed=aggregate.entries_covered,
            upgrade_available=resolution.upgrade_available,
            upgrade_cost=cost if resolution.upgrade_available else None,
            coverage=resolution.coverage,
        )


def build_pattern_service(config, model_client: Optional[ModelClient] = None) -> PatternAnalysisService:
    from reverie.domains.patterns.ml.model_client import ChatCompletionsClient

    return PatternAnalysisService(
        model_client or ChatCompletionsClient.from_config(config),
        PatternPolicy.from_config(config),
    )
