"""Minimum-volume gate in front of every other pipeline step."""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Tuple

from reverie.domains.journal.models import EntryAnalysis, JournalEntry
from reverie.domains.patterns.errors import InsufficientEligibleEntries
from reverie.domains.patterns.policy import PatternPolicy

logger = logging.getLogger(__name__)


def count_analyzed(pairs: Iterable[Tuple[JournalEntry, Optional[EntryAnalysis]]]) -> int:
    return sum(1 for entry, analysis in pairs if analysis is not None and not entry.is_deleted)


def check_eligibility(
    pairs: Iterable[Tuple[JournalEntry, Optional[EntryAnalysis]]],
    policy: PatternPolicy,
    *,
    user_id: Optional[int] = None,
) -> int:
    """Return the analyzed-entry count or raise ``InsufficientEligibleEntries``."""
    analyzed = count_analyzed(pairs)
    if analyzed < policy.min_required_entries:
        logger.info(
            "pattern_eligibility_rejected user_id=%s analyzed=%s required=%s",
            user_id,
            analyzed,
            policy.min_required_entries,
        )
        raise InsufficientEligibleEntries(
            f"At least {policy.min_required_entries} analyzed entries are required",
            analyzedCount=analyzed,
            requiredCount=policy.min_required_entries,
        )
    return analyzed
