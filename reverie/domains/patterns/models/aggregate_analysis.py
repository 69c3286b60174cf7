"""Per-user aggregate pattern reports and the explicit "current" index."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy.orm import Mapped, mapped_column, relationship

from reverie.extensions import db


class AggregateAnalysis(db.Model):
    """One generated report. Rows are never refreshed in place."""

    __tablename__ = "aggregate_analysis"
    __table_args__ = (
        db.Index("ix_aggregate_analysis_user_created_at", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(db.ForeignKey("user.id"), index=True, nullable=False)
    payload: Mapped[dict] = mapped_column(db.JSON, nullable=False)
    entries_covered: Mapped[int] = mapped_column(nullable=False)
    latest_source_date: Mapped[date] = mapped_column(nullable=False)
    schema_version: Mapped[int] = mapped_column(nullable=False)
    language: Mapped[str] = mapped_column(db.String(8), nullable=False, default="en")
    credits_cost: Mapped[int] = mapped_column(nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)


class CurrentAggregateAnalysis(db.Model):
    """Which aggregate row is current for a user."""

    __tablename__ = "aggregate_analysis_current"

    user_id: Mapped[int] = mapped_column(db.ForeignKey("user.id"), primary_key=True)
    aggregate_id: Mapped[int] = mapped_column(db.ForeignKey("aggregate_analysis.id"), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, onupdate=datetime.utcnow)

    aggregate: Mapped[AggregateAnalysis] = relationship("AggregateAnalysis", lazy="joined")
