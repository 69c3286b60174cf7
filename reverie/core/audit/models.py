"""Append-only audit trail for actions that may need reconciliation."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column

from reverie.extensions import db


class AuditLogEntry(db.Model):
    __tablename__ = "audit_log"
    __table_args__ = (
        db.Index("ix_audit_log_user_created_at", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int | None] = mapped_column(db.ForeignKey("user.id"), index=True)
    action: Mapped[str] = mapped_column(db.String(128), nullable=False, index=True)
    details: Mapped[dict] = mapped_column(db.JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, index=True)
