"""Controllers for Stripe checkout, Stripe webhooks, and subscription lookups."""

import logging
from typing import Any, Dict, Optional

from fastapi import Request

from dal.subscription_dal import SubscriptionDAL
from services.billing.checkout_service import CheckoutService
from services.billing.webhook_service import WebhookService
from utils.app_state import get_service
from utils.errors import ValidationError

LOGGER = logging.getLogger(__name__)


async def create_checkout_session(
    request: Request,
    plan: Optional[str],
    billing_cycle: Optional[str],
    email: Optional[str],
    user_id: Optional[str] = None,
) -> Dict[str, Any]:
    checkout: CheckoutService = get_service(request, "checkout_service", "Stripe")
    session = await checkout.create_session(plan, billing_cycle, email, user_id)
    return {"sessionId": session.session_id, "checkoutUrl": session.checkout_url}


async def receive_webhook(request: Request) -> Dict[str, bool]:
    webhooks: WebhookService = get_service(request, "webhook_service", "Stripe webhooks")
    payload = await request.body()
    return await webhooks.handle(payload, request.headers.get("stripe-signature"))


async def check_subscription(request: Request, user_id: Optional[str]) -> Dict[str, Any]:
    if not user_id:
        raise ValidationError("User ID is required")
    subscriptions: SubscriptionDAL = get_service(request, "subscriptions", "Supabase")
    record = await subscriptions.get_for_user(user_id)
    return {
        "success": True,
        "hasActiveSubscription": bool(record and record.is_active),
        "subscription": record.to_row() if record else None,
    }
