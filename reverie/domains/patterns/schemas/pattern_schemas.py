"""Pattern analysis request schemas."""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class EntryRef(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int
    title: Optional[str] = None
    body: Optional[str] = Field(default=None, alias="content")
    entry_date: Optional[date] = Field(default=None, alias="date")


class EntryAnalysisRef(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    entry_id: int = Field(alias="entryId")


class PatternAnalysisRequest(BaseModel):
    """Body of POST /api/patterns/analyze.

    ``entries``/``perEntryAnalyses`` only select which of the caller's stored
    entries take part; stored text is what gets analyzed. Omit both to use
    every analyzed entry.
    """

    model_config = ConfigDict(populate_by_name=True)

    entries: Optional[List[EntryRef]] = None
    per_entry_analyses: Optional[List[EntryAnalysisRef]] = Field(default=None, alias="perEntryAnalyses")
    force_refresh: bool = Field(default=False, alias="forceRefresh")

    def selected_entry_ids(self) -> Optional[List[int]]:
        """Ids present in both lists, or None when the request selects nothing."""
        if self.entries is None and self.per_entry_analyses is None:
            return None
        entry_ids = {e.id for e in self.entries or []}
        analyzed_ids = {a.entry_id for a in self.per_entry_analyses or []}
        if self.entries is None:
            return sorted(analyzed_ids)
        if self.per_entry_analyses is None:
            return sorted(entry_ids)
        return sorted(entry_ids & analyzed_ids)
