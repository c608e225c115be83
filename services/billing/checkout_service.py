"""Stripe checkout sessions for subscription plans."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import stripe
from starlette.concurrency import run_in_threadpool

from models.billing_models import BILLING_CYCLES, PLANS, Plan
from services.billing.stripe_payloads import as_plain_dict
from utils.errors import UpstreamProviderError, ValidationError

LOGGER = logging.getLogger(__name__)
PROVIDER = "stripe"
CURRENCY = "usd"


@dataclass
class CheckoutSession:
    session_id: str
    checkout_url: Optional[str]


def resolve_plan(plan: Optional[str], billing_cycle: Optional[str], email: Optional[str]) -> Plan:
    """Validate the checkout request fields and return the selected plan."""
    if not plan or not billing_cycle or not email:
        raise ValidationError("Missing required fields")
    selected = PLANS.get(plan)
    if selected is None:
        raise ValidationError("Invalid plan selected")
    if billing_cycle not in BILLING_CYCLES:
        raise ValidationError("Invalid billing cycle")
    return selected


class CheckoutService:
    """Find or create the Stripe product and price for a plan, then open a checkout session.

    The Stripe SDK is synchronous, so every call runs in the threadpool.
    """

    def __init__(self, api_key: str, public_base_url: str) -> None:
        if not api_key:
            raise ValueError("Stripe secret key must be provided.")
        self.api_key = api_key
        self.public_base_url = public_base_url.rstrip("/")

    def _find_or_create_product(self, plan: Plan, billing_cycle: str) -> Any:
        products = stripe.Product.list(limit=100, api_key=self.api_key)
        for product in products.data:
            if product.name == plan.name:
                return product
        LOGGER.info("Creating Stripe product %s", plan.name)
        return stripe.Product.create(
            name=plan.name,
            description=f"{plan.name} - {billing_cycle} billing",
            api_key=self.api_key,
        )

    def _find_or_create_price(self, product_id: str, plan: Plan, billing_cycle: str) -> Any:
        interval = Plan.interval_for(billing_cycle)
        unit_amount = plan.price_for(billing_cycle) * 100
        prices = stripe.Price.list(product=product_id, limit=100, api_key=self.api_key)
        for price in prices.data:
            fields = as_plain_dict(price)
            recurring = fields.get("recurring") or {}
            if recurring.get("interval") == interval and fields.get("unit_amount") == unit_amount:
                return price
        LOGGER.info("Creating Stripe %s price for %s", interval, plan.name)
        return stripe.Price.create(
            product=product_id,
            unit_amount=unit_amount,
            currency=CURRENCY,
            recurring={"interval": interval},
            api_key=self.api_key,
        )

    def _create_sync(self, plan: Plan, billing_cycle: str, email: str, user_id: Optional[str]) -> CheckoutSession:
        product = self._find_or_create_product(plan, billing_cycle)
        price = self._find_or_create_price(product.id, plan, billing_cycle)
        metadata: Dict[str, str] = {"userId": user_id or "", "plan": plan.key, "billingCycle": billing_cycle}
        session = stripe.checkout.Session.create(
            payment_method_types=["card"],
            line_items=[{"price": price.id, "quantity": 1}],
            mode="subscription",
            success_url=f"{self.public_base_url}/auth/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{self.public_base_url}/auth/signup-with-payment?canceled=true",
            customer_email=email,
            metadata=metadata,
            subscription_data={"metadata": metadata},
            billing_address_collection="auto",
            allow_promotion_codes=True,
            api_key=self.api_key,
        )
        return CheckoutSession(session_id=session.id, checkout_url=as_plain_dict(session).get("url"))

    async def create_session(
        self,
        plan: Optional[str],
        billing_cycle: Optional[str],
        email: Optional[str],
        user_id: Optional[str] = None,
    ) -> CheckoutSession:
        selected = resolve_plan(plan, billing_cycle, email)
        try:
            session = await run_in_threadpool(self._create_sync, selected, billing_cycle, email, user_id)
        except stripe.StripeError as exc:
            LOGGER.error("Stripe checkout error: %s", exc)
            raise UpstreamProviderError(PROVIDER, f"Failed to create checkout session: {exc}") from exc
        LOGGER.info("Created checkout session %s for plan %s (%s)", session.session_id, selected.key, billing_cycle)
        return session
