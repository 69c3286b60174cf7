"""Per-entry AI analysis; at most one per journal entry."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column

from reverie.extensions import db


class EntryAnalysis(db.Model):
    __tablename__ = "entry_analysis"

    id: Mapped[int] = mapped_column(primary_key=True)
    entry_id: Mapped[int] = mapped_column(
        db.ForeignKey("journal_entry.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    themes: Mapped[list] = mapped_column(db.JSON, default=list)
    emotions: Mapped[list] = mapped_column(db.JSON, default=list)
    symbols: Mapped[list] = mapped_column(db.JSON, default=list)
    analysis_text: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    recommendations: Mapped[str | None] = mapped_column(db.Text)
    reflection_questions: Mapped[list] = mapped_column(db.JSON, default=list)
    language: Mapped[str] = mapped_column(db.String(8), nullable=False, default="en")
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
