"""Credit balance services.

Two writers touch ``credit_balance``: settlement of billable actions
(``charge_credits``) and the payment-webhook side (``apply_plan_change``,
``reset_if_due``). Both are idempotent under retries: charges are keyed by a
unique usage-log reference, webhook events by their provider event id, and
resets by calendar month.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from reverie.domains.billing.models.credit_models import (
    BillingEvent,
    CreditBalance,
    SubscriptionPlan,
    UsageLogEntry,
)
from reverie.extensions import db

logger = logging.getLogger(__name__)

EVENT_PLAN_CHANGED = "plan_changed"
DEFAULT_FREE_MONTHLY = 5


def free_allowance() -> int:
    return int(current_app.config.get("CREDITS_FREE_MONTHLY", DEFAULT_FREE_MONTHLY))


def monthly_allowance(balance: CreditBalance) -> int:
    if balance.plan is not None:
        return balance.plan.ai_credits_monthly
    return free_allowance()


def get_or_create_balance(user_id: int, *, for_update: bool = False) -> CreditBalance:
    """Fetch the user's balance row, creating it with the free allowance."""
    query = CreditBalance.query.filter_by(user_id=user_id)
    if for_update:
        query = query.with_for_update()
    balance = query.first()
    if balance is not None:
        return balance
    balance = CreditBalance(
        user_id=user_id,
        credits_remaining=free_allowance(),
        credits_used_this_period=0,
        last_reset_date=date.today(),
    )
    db.session.add(balance)
    try:
        db.session.commit()
    except IntegrityError:
        # Created concurrently by another request.
        db.session.rollback()
        query = CreditBalance.query.filter_by(user_id=user_id)
        if for_update:
            query = query.with_for_update()
        return query.one()
    return balance


def can_use_credits(balance: CreditBalance, needed: int) -> bool:
    if balance.is_unlimited:
        return True
    return balance.credits_remaining >= needed


def _reset_due(balance: CreditBalance, today: date) -> bool:
    last = balance.last_reset_date
    return (last.year, last.month) < (today.year, today.month)


def _apply_reset(balance: CreditBalance, today: date) -> None:
    if not balance.is_unlimited:
        balance.credits_remaining = max(0, monthly_allowance(balance))
    balance.credits_used_this_period = 0
    balance.last_reset_date = today


def reset_if_due(user_id: int, today: Optional[date] = None) -> bool:
    """Restore the monthly allowance once per calendar month."""
    today = today or date.today()
    balance = get_or_create_balance(user_id, for_update=True)
    if not _reset_due(balance, today):
        return False
    _apply_reset(balance, today)
    db.session.commit()
    logger.info("credits_reset user_id=%s remaining=%s", user_id, balance.credits_remaining)
    return True


def reset_all_due(today: Optional[date] = None) -> int:
    today = today or date.today()
    count = 0
    for balance in CreditBalance.query.with_for_update().all():
        if _reset_due(balance, today):
            _apply_reset(balance, today)
            count += 1
    db.session.commit()
    return count


def apply_plan_change(
    user_id: int,
    plan_code: str,
    event_id: str,
    today: Optional[date] = None,
) -> bool:
    """Webhook writer: switch plan and refill the allowance.

    Returns False when ``event_id`` was already processed.
    """
    if BillingEvent.query.filter_by(event_id=event_id).first():
        logger.info("billing_event_replayed event_id=%s", event_id)
        return False
    plan = SubscriptionPlan.query.filter_by(code=plan_code).first()
    if plan is None:
        raise ValueError("unknown_plan")

    balance = get_or_create_balance(user_id, for_update=True)
    balance.plan_id = plan.id
    balance.plan = plan
    if not plan.is_unlimited:
        balance.credits_remaining = max(0, plan.ai_credits_monthly)
    balance.credits_used_this_period = 0
    balance.last_reset_date = today or date.today()
    db.session.add(
        BillingEvent(
            event_id=event_id,
            event_type=EVENT_PLAN_CHANGED,
            user_id=user_id,
            payload={"plan_code": plan_code},
        )
    )
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.info("billing_event_replayed event_id=%s", event_id)
        return False
    return True


def charge_credits(
    user_id: int,
    amount: int,
    *,
    action_kind: str,
    reference: str,
) -> Optional[UsageLogEntry]:
    """Deduct ``amount`` (floored at zero) and append the usage log entry.

    Returns None when ``reference`` was already charged. Database errors
    propagate to the caller after the session is rolled back.
    """
    try:
        if UsageLogEntry.query.filter_by(reference=reference).first():
            logger.info("charge_already_settled user_id=%s reference=%s", user_id, reference)
            return None
        balance = get_or_create_balance(user_id, for_update=True)
        if not balance.is_unlimited:
            balance.credits_remaining = max(0, balance.credits_remaining - amount)
        balance.credits_used_this_period = (balance.credits_used_this_period or 0) + amount
        entry = UsageLogEntry(
            user_id=user_id,
            action_kind=action_kind,
            credits_charged=amount,
            reference=reference,
        )
        db.session.add(entry)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        if UsageLogEntry.query.filter_by(reference=reference).first():
            # A concurrent settlement of the same reference won.
            return None
        raise
    except Exception:
        db.session.rollback()
        raise
    return entry


def recent_usage(user_id: int, limit: int = 20) -> List[UsageLogEntry]:
    return (
        UsageLogEntry.query.filter_by(user_id=user_id)
        .order_by(UsageLogEntry.created_at.desc(), UsageLogEntry.id.desc())
        .limit(limit)
        .all()
    )
