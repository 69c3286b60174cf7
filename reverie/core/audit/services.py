"""Audit log writes. Never allowed to interrupt the calling flow."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from reverie.core.audit.models import AuditLogEntry
from reverie.extensions import db

logger = logging.getLogger(__name__)

AUDIT_SETTLEMENT_FAILED = "patterns.settlement_failed"
AUDIT_AGGREGATE_REVERTED = "patterns.aggregate_reverted"
AUDIT_REVERT_FAILED = "patterns.aggregate_revert_failed"


def record_audit(action: str, details: dict, user_id: Optional[int] = None) -> Optional[AuditLogEntry]:
    """Persist an audit entry; on failure log locally and return None."""
    try:
        entry = AuditLogEntry(user_id=user_id, action=action, details=details or {})
        db.session.add(entry)
        db.session.commit()
        return entry
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("audit_log_write_failed action=%s user_id=%s error=%s", action, user_id, exc)
        return None


def list_audit(action: Optional[str] = None, user_id: Optional[int] = None, limit: int = 50) -> list[AuditLogEntry]:
    query = AuditLogEntry.query
    if action:
        query = query.filter(AuditLogEntry.action == action)
    if user_id is not None:
        query = query.filter(AuditLogEntry.user_id == user_id)
    return query.order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc()).limit(limit).all()
