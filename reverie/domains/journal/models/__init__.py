from reverie.domains.journal.models.entry_analysis import EntryAnalysis
from reverie.domains.journal.models.journal_entry import JournalEntry

__all__ = ["EntryAnalysis", "JournalEntry"]
