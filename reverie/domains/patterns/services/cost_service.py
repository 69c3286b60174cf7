"""Bundle serialization, cost estimate and credit admission.

The estimate depends only on the serialized bundle, so admission and
settlement compute the same number for the same input set.
"""

from __future__ import annotations

import json
import math
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from reverie.domains.billing.models.credit_models import CreditBalance
from reverie.domains.billing.services import credit_service
from reverie.domains.journal.models import EntryAnalysis, JournalEntry
from reverie.domains.patterns.errors import InsufficientCredits
from reverie.domains.patterns.policy import PatternPolicy

ENTRY_CONTENT_CHARS = 200
ANALYSIS_SUMMARY_CHARS = 300


def _recency_key(pair: Tuple[JournalEntry, EntryAnalysis]):
    entry = pair[0]
    return (entry.entry_date, entry.created_at or datetime.min, entry.id)


def bundle_item(entry: JournalEntry, analysis: EntryAnalysis) -> dict:
    summary = analysis.analysis_text[:ANALYSIS_SUMMARY_CHARS] if analysis.analysis_text else None
    return {
        "title": entry.title,
        "content": (entry.body or "")[:ENTRY_CONTENT_CHARS],
        "mood": entry.mood,
        "entry_date": entry.entry_date.isoformat(),
        "themes": list(analysis.themes or []),
        "emotions": list(analysis.emotions or []),
        "symbols": list(analysis.symbols or []),
        "analysis_summary": summary,
    }


def select_recent(
    pairs: Iterable[Tuple[JournalEntry, Optional[EntryAnalysis]]], policy: PatternPolicy
) -> List[Tuple[JournalEntry, EntryAnalysis]]:
    """The ``max_bundle_entries`` most recent analyzed pairs, oldest first."""
    analyzed = [(e, a) for e, a in pairs if a is not None and not e.is_deleted]
    recent = sorted(analyzed, key=_recency_key, reverse=True)[: policy.max_bundle_entries]
    return list(reversed(recent))


def build_bundle(
    pairs: Iterable[Tuple[JournalEntry, Optional[EntryAnalysis]]], policy: PatternPolicy
) -> List[dict]:
    return [bundle_item(entry, analysis) for entry, analysis in select_recent(pairs, policy)]


def serialize_bundle(bundle: List[dict]) -> str:
    """Canonical text form; its length is what the estimate is priced on."""
    return json.dumps(bundle, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def estimate_tokens(length: int, policy: PatternPolicy) -> int:
    return math.ceil(max(0, length) / policy.chars_per_token)


def estimate_cost(length: int, policy: PatternPolicy) -> int:
    """``max(min_cost, ceil(ceil(L / chars_per_token) / tokens_per_credit))``."""
    tokens = estimate_tokens(length, policy)
    return max(policy.min_cost, math.ceil(tokens / policy.tokens_per_credit))


def estimate_for_bundle(bundle: List[dict], policy: PatternPolicy) -> int:
    return estimate_cost(len(serialize_bundle(bundle)), policy)


def admit(balance: CreditBalance, cost: int) -> None:
    """Raise ``InsufficientCredits`` unless ``balance`` covers ``cost``."""
    if credit_service.can_use_credits(balance, cost):
        return
    raise InsufficientCredits(
        "Not enough credits for pattern analysis",
        creditsRequired=cost,
        creditsRemaining=balance.credits_remaining,
    )
