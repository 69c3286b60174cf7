"""Metering state: plans, per-user balances, usage audit and processed billing events."""

from __future__ import annotations

from datetime import date, datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reverie.extensions import db

UNLIMITED_CREDITS = -1


class SubscriptionPlan(db.Model):
    __tablename__ = "subscription_plan"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(db.String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(db.String(128), nullable=False)
    ai_credits_monthly: Mapped[int] = mapped_column(nullable=False, default=5)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)

    @property
    def is_unlimited(self) -> bool:
        return self.ai_credits_monthly == UNLIMITED_CREDITS


class CreditBalance(db.Model):
    __tablename__ = "credit_balance"
    __table_args__ = (
        db.CheckConstraint("credits_remaining >= 0", name="ck_credit_balance_remaining_non_negative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(db.ForeignKey("user.id"), unique=True, nullable=False)
    plan_id: Mapped[int | None] = mapped_column(db.ForeignKey("subscription_plan.id"))
    credits_remaining: Mapped[int] = mapped_column(nullable=False, default=0)
    credits_used_this_period: Mapped[int] = mapped_column(nullable=False, default=0)
    last_reset_date: Mapped[date] = mapped_column(default=date.today, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, onupdate=datetime.utcnow)

    plan: Mapped[SubscriptionPlan | None] = relationship("SubscriptionPlan", lazy="joined")

    @property
    def is_unlimited(self) -> bool:
        return bool(self.plan and self.plan.is_unlimited)


class UsageLogEntry(db.Model):
    """Write-once record of a billable action."""

    __tablename__ = "usage_log"
    __table_args__ = (
        db.Index("ix_usage_log_user_created_at", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(db.ForeignKey("user.id"), index=True, nullable=False)
    action_kind: Mapped[str] = mapped_column(db.String(64), nullable=False)
    credits_charged: Mapped[int] = mapped_column(nullable=False)
    # Settlement idempotency key, e.g. "aggregate:42"
    reference: Mapped[str | None] = mapped_column(db.String(128), unique=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)


class BillingEvent(db.Model):
    """Webhook events already applied to balances (replays are no-ops)."""

    __tablename__ = "billing_event"

    id: Mapped[int] = mapped_column(primary_key=True)
    event_id: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False)
    event_type: Mapped[str] = mapped_column(db.String(64), nullable=False)
    user_id: Mapped[int | None] = mapped_column(db.ForeignKey("user.id"), index=True)
    payload: Mapped[dict] = mapped_column(db.JSON, nullable=False, default=dict)
    processed_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)


@sa.event.listens_for(UsageLogEntry, "before_update")
def _usage_log_is_write_once(mapper, connection, target):
    raise RuntimeError("usage_log entries are write-once")


@sa.event.listens_for(UsageLogEntry, "before_delete")
def _usage_log_is_not_deletable(mapper, connection, target):
    raise RuntimeError("usage_log entries cannot be deleted")
