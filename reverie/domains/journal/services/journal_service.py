"""Journal services: the entry/analysis store the pattern pipeline reads from."""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, List, Optional, Tuple

from reverie.domains.journal.events import (
    JOURNAL_ANALYSIS_INVALIDATED,
    JOURNAL_ENTRY_CREATED,
    JOURNAL_ENTRY_DELETED,
    JOURNAL_ENTRY_UPDATED,
)
from reverie.domains.journal.models import EntryAnalysis, JournalEntry
from reverie.extensions import db
from reverie.platform.outbox import enqueue as enqueue_outbox

# Editing any of these makes the entry's analysis stale.
ANALYZED_FIELDS = ("title", "body", "mood", "tags")
EDITABLE_FIELDS = ANALYZED_FIELDS + ("entry_date",)

AnalyzedPair = Tuple[JournalEntry, EntryAnalysis]


def create_entry(
    user_id: int,
    *,
    title: Optional[str],
    body: str,
    entry_date: Optional[date] = None,
    mood: Optional[str] = None,
    tags: Optional[List[str]] = None,
) -> JournalEntry:
    body_text = (body or "").strip()
    if not body_text:
        raise ValueError("validation_error")
    entry = JournalEntry(
        user_id=user_id,
        title=(title or "").strip() or None,
        body=body_text,
        entry_date=entry_date or date.today(),
        mood=(mood or "").strip() or None,
        tags=tags or [],
    )
    db.session.add(entry)
    db.session.flush()
    enqueue_outbox(
        JOURNAL_ENTRY_CREATED,
        {"entry_id": entry.id, "user_id": user_id, "entry_date": entry.entry_date.isoformat()},
        user_id=user_id,
    )
    db.session.commit()
    return entry


def update_entry(user_id: int, entry_id: int, **fields) -> Optional[JournalEntry]:
    """Apply an explicit edit. Content edits delete the entry's analysis."""
    entry = _owned_entry(user_id, entry_id)
    if not entry:
        return None
    changed = []
    for key in EDITABLE_FIELDS:
        if key not in fields:
            continue
        val = fields[key]
        if isinstance(val, str):
            val = val.strip()
        if key == "body" and not val:
            raise ValueError("validation_error")
        if getattr(entry, key) != val:
            setattr(entry, key, val)
            changed.append(key)
    if not changed:
        return entry
    if any(key in ANALYZED_FIELDS for key in changed):
        _invalidate_analysis(entry)
    enqueue_outbox(
        JOURNAL_ENTRY_UPDATED,
        {"entry_id": entry.id, "user_id": user_id, "fields": changed},
        user_id=user_id,
    )
    db.session.commit()
    return entry


def soft_delete_entry(user_id: int, entry_id: int) -> bool:
    entry = _owned_entry(user_id, entry_id)
    if not entry:
        return False
    entry.is_deleted = True
    enqueue_outbox(
        JOURNAL_ENTRY_DELETED,
        {"entry_id": entry_id, "user_id": user_id},
        user_id=user_id,
    )
    db.session.commit()
    return True


def record_entry_analysis(
    user_id: int,
    entry_id: int,
    *,
    themes: Iterable[str] = (),
    emotions: Iterable[str] = (),
    symbols: Iterable = (),
    analysis_text: str = "",
    recommendations: Optional[str] = None,
    reflection_questions: Iterable[str] = (),
    language: str = "en",
) -> Optional[EntryAnalysis]:
    """Upsert the single analysis row of an entry."""
    entry = _owned_entry(user_id, entry_id)
    if not entry:
        return None
    analysis = EntryAnalysis.query.filter_by(entry_id=entry.id).first()
    if analysis is None:
        analysis = EntryAnalysis(entry_id=entry.id)
        db.session.add(analysis)
    analysis.themes = list(themes)
    analysis.emotions = list(emotions)
    analysis.symbols = list(symbols)
    analysis.analysis_text = analysis_text or ""
    analysis.recommendations = recommendations
    analysis.reflection_questions = list(reflection_questions)
    analysis.language = language
    analysis.created_at = datetime.utcnow()
    db.session.commit()
    return analysis


def get_entry_analysis(entry_id: int) -> Optional[EntryAnalysis]:
    return EntryAnalysis.query.filter_by(entry_id=entry_id).first()


def list_analyzed_entries(user_id: int, entry_ids: Optional[Iterable[int]] = None) -> List[AnalyzedPair]:
    """Non-deleted entries that carry an analysis, most recent first.

    ``entry_ids`` restricts the result to that subset of the user's entries.
    """
    query = (
        db.session.query(JournalEntry, EntryAnalysis)
        .join(EntryAnalysis, EntryAnalysis.entry_id == JournalEntry.id)
        .filter(JournalEntry.user_id == user_id, JournalEntry.is_deleted.is_(False))
    )
    if entry_ids is not None:
        ids = list(entry_ids)
        if not ids:
            return []
        query = query.filter(JournalEntry.id.in_(ids))
    rows = query.order_by(
        JournalEntry.entry_date.desc(), JournalEntry.created_at.desc(), JournalEntry.id.desc()
    ).all()
    return [(entry, analysis) for entry, analysis in rows]


def _owned_entry(user_id: int, entry_id: int) -> Optional[JournalEntry]:
    return JournalEntry.query.filter_by(id=entry_id, user_id=user_id, is_deleted=False).first()


def _invalidate_analysis(entry: JournalEntry) -> None:
    analysis = EntryAnalysis.query.filter_by(entry_id=entry.id).first()
    if analysis is None:
        return
    db.session.delete(analysis)
    enqueue_outbox(
        JOURNAL_ANALYSIS_INVALIDATED,
        {"entry_id": entry.id, "user_id": entry.user_id},
        user_id=entry.user_id,
    )
