"""Billing JSON API (read-only balance view)."""

from __future__ import annotations

from flask import Blueprint, jsonify
from flask_jwt_extended import get_jwt_identity, jwt_required

from reverie.domains.billing.services import credit_service

billing_api_bp = Blueprint("billing_api", __name__)


@billing_api_bp.get("/credits")
@jwt_required()
def get_credits():
    user_id = int(get_jwt_identity())
    credit_service.reset_if_due(user_id)
    balance = credit_service.get_or_create_balance(user_id)
    usage = credit_service.recent_usage(user_id, limit=10)
    return jsonify(
        {
            "ok": True,
            "credits": {
                "remaining": balance.credits_remaining,
                "usedThisPeriod": balance.credits_used_this_period,
                "lastResetDate": balance.last_reset_date.isoformat(),
                "unlimited": balance.is_unlimited,
                "plan": balance.plan.code if balance.plan else "free",
            },
            "usage": [
                {
                    "actionKind": u.action_kind,
                    "creditsCharged": u.credits_charged,
                    "createdAt": u.created_at.isoformat() if u.created_at else None,
                }
                for u in usage
            ],
        }
    )
