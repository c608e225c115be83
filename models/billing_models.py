from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

BILLING_CYCLES = ("monthly", "yearly")


@dataclass(frozen=True)
class Plan:
    """Subscription plan with whole-dollar prices per billing cycle."""

    key: str
    name: str
    monthly_price: int
    yearly_price: int

    def price_for(self, billing_cycle: str) -> int:
        if billing_cycle == "monthly":
            return self.monthly_price
        if billing_cycle == "yearly":
            return self.yearly_price
        raise ValueError(f"Unsupported billing cycle {billing_cycle!r}")

    @staticmethod
    def interval_for(billing_cycle: str) -> str:
        return "month" if billing_cycle == "monthly" else "year"


PLANS: Dict[str, Plan] = {
    "basic": Plan(key="basic", name="Basic Plan", monthly_price=49, yearly_price=488),
    "pro": Plan(key="pro", name="Pro Plan", monthly_price=129, yearly_price=1285),
    "enterprise": Plan(key="enterprise", name="Enterprise Plan", monthly_price=249, yearly_price=2480),
}


@dataclass
class SubscriptionRecord:
    """Row in the `user_subscriptions` table.

    Attributes:
        user_id: Supabase auth user id (primary key of the row).
        stripe_subscription_id: Stripe subscription id, when known.
        plan: Plan key (basic, pro, enterprise).
        billing_cycle: monthly or yearly.
        status: Stripe-style status (active, past_due, cancelled, ...).
        current_period_end: End of the paid period.
        cancel_at_period_end: Whether the subscription stops renewing.
    """

    user_id: str
    stripe_subscription_id: Optional[str]
    plan: Optional[str]
    billing_cycle: Optional[str]
    status: str
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False

    def to_row(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "stripe_subscription_id": self.stripe_subscription_id,
            "plan": self.plan,
            "billing_cycle": self.billing_cycle,
            "status": self.status,
            "current_period_end": self.current_period_end.isoformat() if self.current_period_end else None,
            "cancel_at_period_end": self.cancel_at_period_end,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SubscriptionRecord":
        period_end = row.get("current_period_end")
        if isinstance(period_end, str):
            period_end = datetime.fromisoformat(period_end.replace("Z", "+00:00"))
        return cls(
            user_id=row["user_id"],
            stripe_subscription_id=row.get("stripe_subscription_id"),
            plan=row.get("plan"),
            billing_cycle=row.get("billing_cycle"),
            status=row.get("status") or "unknown",
            current_period_end=period_end,
            cancel_at_period_end=bool(row.get("cancel_at_period_end")),
        )

    @property
    def is_active(self) -> bool:
        return self.status in ("active", "trialing")
