"""Journal domain event catalog."""

from __future__ import annotations

JOURNAL_ENTRY_CREATED = "journal.entry.created"
JOURNAL_ENTRY_UPDATED = "journal.entry.updated"
JOURNAL_ENTRY_DELETED = "journal.entry.deleted"
JOURNAL_ANALYSIS_INVALIDATED = "journal.analysis.invalidated"

EVENT_CATALOG = {
    JOURNAL_ENTRY_CREATED: {
        "version": "v1",
        "payload": {"entry_id": "int", "user_id": "int", "entry_date": "date"},
    },
    JOURNAL_ENTRY_UPDATED: {
        "version": "v1",
        "payload": {"entry_id": "int", "user_id": "int", "fields": "list[str]"},
    },
    JOURNAL_ENTRY_DELETED: {
        "version": "v1",
        "payload": {"entry_id": "int", "user_id": "int"},
    },
    JOURNAL_ANALYSIS_INVALIDATED: {
        "version": "v1",
        "payload": {"entry_id": "int", "user_id": "int"},
    },
}

__all__ = [
    "EVENT_CATALOG",
    "JOURNAL_ENTRY_CREATED",
    "JOURNAL_ENTRY_UPDATED",
    "JOURNAL_ENTRY_DELETED",
    "JOURNAL_ANALYSIS_INVALIDATED",
]
