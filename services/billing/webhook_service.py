"""Stripe webhook verification and subscription bookkeeping.

Only signature verification can fail a delivery. Once an event is verified
every handler error is logged and the event is still acknowledged, so Stripe
does not retry deliveries the database cannot absorb.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import stripe
from starlette.concurrency import run_in_threadpool

from dal.subscription_dal import SubscriptionDAL
from models.billing_models import SubscriptionRecord
from services.billing.stripe_payloads import as_plain_dict
from utils.errors import SignatureVerificationError

LOGGER = logging.getLogger(__name__)
CHECKOUT_PERIOD = timedelta(days=30)


def _timestamp(value: Any) -> Optional[str]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).isoformat()


def _period_end(subscription: Mapping[str, Any]) -> Optional[str]:
    """Read `current_period_end`, falling back to the first item for newer API versions."""
    value = subscription.get("current_period_end")
    if not value:
        items = (subscription.get("items") or {}).get("data") or []
        value = items[0].get("current_period_end") if items else None
    return _timestamp(value)


class WebhookService:
    """Verify Stripe events and mirror them into `user_subscriptions`."""

    def __init__(
        self,
        subscriptions: SubscriptionDAL,
        webhook_secret: str,
        *,
        api_key: Optional[str] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        if not webhook_secret:
            raise ValueError("Stripe webhook secret must be provided.")
        self.subscriptions = subscriptions
        self.webhook_secret = webhook_secret
        self.api_key = api_key
        self.clock = clock
        self._handlers: Dict[str, Callable[[Mapping[str, Any]], Awaitable[None]]] = {
            "checkout.session.completed": self.on_checkout_completed,
            "customer.subscription.created": self.on_subscription_created,
            "customer.subscription.updated": self.on_subscription_updated,
            "customer.subscription.deleted": self.on_subscription_deleted,
            "invoice.payment_succeeded": self.on_invoice_paid,
            "invoice.payment_failed": self.on_invoice_failed,
        }

    def verify(self, payload: bytes, signature: Optional[str]) -> Any:
        """Return the verified event or raise `SignatureVerificationError`."""
        if not signature:
            raise SignatureVerificationError("Missing stripe-signature header")
        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            LOGGER.warning("Webhook signature verification failed: %s", exc)
            raise SignatureVerificationError("Webhook signature verification failed", details=str(exc)) from exc

    async def handle(self, payload: bytes, signature: Optional[str]) -> Dict[str, bool]:
        event = as_plain_dict(self.verify(payload, signature))
        event_type = event["type"]
        data_object = event["data"]["object"]
        handler = self._handlers.get(event_type)
        if handler is None:
            LOGGER.info("Ignoring Stripe event %s", event_type)
            return {"received": True}
        try:
            await handler(data_object)
        except Exception:
            LOGGER.exception("Stripe %s handler failed", event_type)
        return {"received": True}

    async def on_checkout_completed(self, session: Mapping[str, Any]) -> None:
        metadata = session.get("metadata") or {}
        user_id = metadata.get("userId")
        plan = metadata.get("plan")
        if not user_id or not plan:
            LOGGER.warning("Missing userId or plan in checkout session metadata")
            return
        record = SubscriptionRecord(
            user_id=user_id,
            stripe_subscription_id=session.get("subscription"),
            plan=plan,
            billing_cycle=metadata.get("billingCycle"),
            status="active",
            current_period_end=self.clock() + CHECKOUT_PERIOD,
        )
        await self.subscriptions.upsert(record)
        LOGGER.info("Activated %s subscription for user %s", plan, user_id)

    async def on_subscription_created(self, subscription: Mapping[str, Any]) -> None:
        metadata = subscription.get("metadata") or {}
        user_id = metadata.get("userId")
        if not user_id or not metadata.get("plan"):
            LOGGER.warning("Missing userId or plan in subscription metadata")
            return
        await self.subscriptions.update_by_user(
            user_id,
            {
                "stripe_subscription_id": subscription.get("id"),
                "status": subscription.get("status"),
                "current_period_end": _period_end(subscription),
            },
        )

    async def on_subscription_updated(self, subscription: Mapping[str, Any]) -> None:
        await self.subscriptions.update_by_subscription(
            subscription.get("id"),
            {
                "status": subscription.get("status"),
                "current_period_end": _period_end(subscription),
                "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
            },
        )

    async def on_subscription_deleted(self, subscription: Mapping[str, Any]) -> None:
        await self.subscriptions.update_by_subscription(subscription.get("id"), {"status": "cancelled"})

    async def on_invoice_paid(self, invoice: Mapping[str, Any]) -> None:
        subscription_id = invoice.get("subscription")
        if not subscription_id:
            return
        subscription = as_plain_dict(
            await run_in_threadpool(stripe.Subscription.retrieve, subscription_id, api_key=self.api_key)
        )
        await self.subscriptions.update_by_subscription(
            subscription_id, {"current_period_end": _period_end(subscription)}
        )

    async def on_invoice_failed(self, invoice: Mapping[str, Any]) -> None:
        subscription_id = invoice.get("subscription")
        if subscription_id:
            await self.subscriptions.update_by_subscription(subscription_id, {"status": "past_due"})
