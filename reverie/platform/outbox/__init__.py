"""Transactional outbox models and helpers."""

from reverie.platform.outbox.models import OutboxMessage
from reverie.platform.outbox.services import discard_pending, enqueue, pending_for_user

__all__ = [
    "OutboxMessage",
    "discard_pending",
    "enqueue",
    "pending_for_user",
]
