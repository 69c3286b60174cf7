"""Outbox staging. Delivery to brokers is handled by a separate worker."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from reverie.extensions import db
from reverie.platform.outbox.models import OutboxMessage

STATUS_PENDING = "pending"


def enqueue(
    event_name: str,
    payload: dict,
    user_id: Optional[int],
    available_at: Optional[datetime] = None,
) -> OutboxMessage:
    """
    Stage an event in the outbox. Caller should commit alongside domain changes.
    """
    message = OutboxMessage(
        event_type=event_name,
        payload=payload or {},
        user_id=user_id,
        available_at=available_at or datetime.utcnow(),
        status=STATUS_PENDING,
        attempts=0,
    )
    db.session.add(message)
    return message


def pending_for_user(user_id: int, event_name: Optional[str] = None) -> List[OutboxMessage]:
    query = OutboxMessage.query.filter_by(user_id=user_id, status=STATUS_PENDING)
    if event_name:
        query = query.filter(OutboxMessage.event_type == event_name)
    return query.order_by(OutboxMessage.id).all()


def discard_pending(user_id: int, event_name: str, **match: Any) -> int:
    """
    Delete undelivered messages whose payload carries every ``match`` pair.
    Caller commits. Messages already picked up by the worker are left alone.
    """
    removed = 0
    for message in pending_for_user(user_id, event_name):
        payload = message.payload or {}
        if all(payload.get(key) == value for key, value in match.items()):
            db.session.delete(message)
            removed += 1
    return removed
