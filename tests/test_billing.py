"""
Tests for Stripe checkout, webhook verification, and subscription lookups.
"""

import asyncio
import hashlib
import hmac
import json
import time
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
import stripe

from models.billing_models import SubscriptionRecord
from services.billing.checkout_service import CheckoutService, resolve_plan
from services.billing.webhook_service import WebhookService
from utils.errors import SignatureVerificationError, ValidationError

FIXED_NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _event(event_type, data_object):
    return {"type": event_type, "data": {"object": data_object}}


def _webhooks(dal=None):
    return WebhookService(dal or AsyncMock(), "whsec_test", api_key="sk_test", clock=lambda: FIXED_NOW)


def _signed(event, secret="whsec_test"):
    """Serialize an event and sign it the way Stripe signs webhook deliveries."""
    payload = json.dumps({"object": "event", **event})
    timestamp = int(time.time())
    digest = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return payload, f"t={timestamp},v1={digest}"


class TestWebhookVerification:
    """Nothing is written unless the signature verifies."""

    def test_bad_signature_rejected_without_writes(self, client, app):
        dal = AsyncMock()
        app.state.webhook_service = _webhooks(dal)
        error = stripe.SignatureVerificationError("No signatures found", "t=1,v1=bad")
        with patch("stripe.Webhook.construct_event", side_effect=error):
            response = client.post("/api/stripe/webhook", content=b"{}", headers={"stripe-signature": "t=1,v1=bad"})
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid signature"}
        dal.upsert.assert_not_called()
        dal.update_by_user.assert_not_called()
        dal.update_by_subscription.assert_not_called()

    def test_missing_signature_header(self, client, app):
        dal = AsyncMock()
        app.state.webhook_service = _webhooks(dal)
        with patch("stripe.Webhook.construct_event") as construct:
            response = client.post("/api/stripe/webhook", content=b"{}")
        assert response.status_code == 400
        construct.assert_not_called()
        dal.upsert.assert_not_called()

    def test_malformed_payload(self):
        with patch("stripe.Webhook.construct_event", side_effect=ValueError("bad json")):
            with pytest.raises(SignatureVerificationError):
                _webhooks().verify(b"nope", "t=1,v1=x")

    def test_checkout_completed_upserts_once(self, client, app):
        dal = AsyncMock()
        app.state.webhook_service = _webhooks(dal)
        session = {"subscription": "sub_1", "metadata": {"userId": "u1", "plan": "pro", "billingCycle": "monthly"}}
        with patch("stripe.Webhook.construct_event", return_value=_event("checkout.session.completed", session)):
            response = client.post("/api/stripe/webhook", content=b"{}", headers={"stripe-signature": "t=1,v1=ok"})
        assert response.status_code == 200
        assert response.json() == {"received": True}
        dal.upsert.assert_awaited_once()
        record = dal.upsert.await_args.args[0]
        assert record.user_id == "u1"
        assert record.plan == "pro"
        assert record.status == "active"
        assert (record.current_period_end - FIXED_NOW).days == 30

    def test_handler_failure_still_acknowledged(self, client, app):
        dal = AsyncMock()
        dal.upsert.side_effect = RuntimeError("db down")
        app.state.webhook_service = _webhooks(dal)
        session = {"subscription": "sub_1", "metadata": {"userId": "u1", "plan": "basic"}}
        with patch("stripe.Webhook.construct_event", return_value=_event("checkout.session.completed", session)):
            response = client.post("/api/stripe/webhook", content=b"{}", headers={"stripe-signature": "sig"})
        assert response.status_code == 200

    def test_signed_checkout_event_upserts_once(self, client, app):
        dal = AsyncMock()
        app.state.webhook_service = _webhooks(dal)
        session = {
            "id": "cs_1",
            "object": "checkout.session",
            "subscription": "sub_1",
            "metadata": {"userId": "u1", "plan": "pro", "billingCycle": "monthly"},
        }
        payload, signature = _signed({"id": "evt_1", **_event("checkout.session.completed", session)})
        response = client.post("/api/stripe/webhook", content=payload, headers={"stripe-signature": signature})
        assert response.status_code == 200
        assert dal.upsert.await_count == 1
        record = dal.upsert.await_args.args[0]
        assert (record.user_id, record.plan, record.billing_cycle) == ("u1", "pro", "monthly")
        assert record.stripe_subscription_id == "sub_1"

    def test_signed_with_wrong_secret_is_rejected(self, client, app):
        dal = AsyncMock()
        app.state.webhook_service = _webhooks(dal)
        session = {"subscription": "sub_1", "metadata": {"userId": "u1", "plan": "pro"}}
        payload, signature = _signed({"id": "evt_2", **_event("checkout.session.completed", session)}, "whsec_other")
        response = client.post("/api/stripe/webhook", content=payload, headers={"stripe-signature": signature})
        assert response.status_code == 400
        dal.upsert.assert_not_called()

    def test_tampered_payload_is_rejected(self, client, app):
        dal = AsyncMock()
        app.state.webhook_service = _webhooks(dal)
        session = {"subscription": "sub_1", "metadata": {"userId": "u1", "plan": "basic"}}
        payload, signature = _signed({"id": "evt_3", **_event("checkout.session.completed", session)})
        tampered = payload.replace("basic", "pro")
        response = client.post("/api/stripe/webhook", content=tampered, headers={"stripe-signature": signature})
        assert response.status_code == 400
        dal.upsert.assert_not_called()

    def test_signed_subscription_update_reads_item_period(self):
        dal = AsyncMock()
        subscription = {
            "id": "sub_1",
            "object": "subscription",
            "status": "active",
            "cancel_at_period_end": False,
            "items": {"object": "list", "data": [{"object": "subscription_item", "current_period_end": 1735689600}]},
        }
        payload, signature = _signed({"id": "evt_4", **_event("customer.subscription.updated", subscription)})
        asyncio.run(_webhooks(dal).handle(payload.encode(), signature))
        subscription_id, changes = dal.update_by_subscription.await_args.args
        assert subscription_id == "sub_1"
        assert changes["status"] == "active"
        assert changes["current_period_end"].startswith("2025-01-01")

    def test_webhooks_unconfigured(self, client):
        response = client.post("/api/stripe/webhook", content=b"{}", headers={"stripe-signature": "sig"})
        assert response.status_code == 503


class TestWebhookHandlers:
    def _handle(self, service, event):
        with patch("stripe.Webhook.construct_event", return_value=event):
            return asyncio.run(service.handle(b"{}", "sig"))

    def test_missing_metadata_skips_write(self):
        dal = AsyncMock()
        self._handle(_webhooks(dal), _event("checkout.session.completed", {"metadata": {}}))
        dal.upsert.assert_not_called()

    def test_subscription_updated(self):
        dal = AsyncMock()
        subscription = {
            "id": "sub_1",
            "status": "active",
            "cancel_at_period_end": True,
            "items": {"data": [{"current_period_end": 1735689600}]},
        }
        self._handle(_webhooks(dal), _event("customer.subscription.updated", subscription))
        subscription_id, changes = dal.update_by_subscription.await_args.args
        assert subscription_id == "sub_1"
        assert changes["cancel_at_period_end"] is True
        assert changes["current_period_end"].startswith("2025-01-01")

    def test_subscription_deleted(self):
        dal = AsyncMock()
        self._handle(_webhooks(dal), _event("customer.subscription.deleted", {"id": "sub_9"}))
        dal.update_by_subscription.assert_awaited_once_with("sub_9", {"status": "cancelled"})

    def test_invoice_failed(self):
        dal = AsyncMock()
        self._handle(_webhooks(dal), _event("invoice.payment_failed", {"subscription": "sub_2"}))
        dal.update_by_subscription.assert_awaited_once_with("sub_2", {"status": "past_due"})

    def test_unknown_event_ignored(self):
        dal = AsyncMock()
        assert self._handle(_webhooks(dal), _event("charge.refunded", {})) == {"received": True}
        dal.update_by_subscription.assert_not_called()


class TestCheckout:
    """Plan validation and Stripe session creation."""

    @pytest.mark.parametrize(
        "plan,cycle,email,message",
        [
            (None, "monthly", "a@b.c", "Missing required fields"),
            ("gold", "monthly", "a@b.c", "Invalid plan selected"),
            ("pro", "weekly", "a@b.c", "Invalid billing cycle"),
        ],
    )
    def test_resolve_plan_rejects(self, plan, cycle, email, message):
        with pytest.raises(ValidationError) as info:
            resolve_plan(plan, cycle, email)
        assert info.value.message == message

    def test_creates_session_with_existing_product_and_price(self):
        product = stripe.Product.construct_from({"id": "prod_1", "object": "product", "name": "Pro Plan"}, "sk_test")
        monthly = stripe.Price.construct_from(
            {"id": "price_0", "object": "price", "recurring": {"interval": "month"}, "unit_amount": 12900}, "sk_test"
        )
        price = stripe.Price.construct_from(
            {"id": "price_1", "object": "price", "recurring": {"interval": "year"}, "unit_amount": 128500}, "sk_test"
        )
        created = stripe.checkout.Session.construct_from(
            {"id": "cs_1", "object": "checkout.session", "url": "https://checkout.stripe.test/cs_1"}, "sk_test"
        )
        with patch("stripe.Product.list", return_value=SimpleNamespace(data=[product])), patch(
            "stripe.Price.list", return_value=SimpleNamespace(data=[monthly, price])
        ), patch("stripe.Product.create") as product_create, patch("stripe.Price.create") as price_create, patch(
            "stripe.checkout.Session.create", return_value=created
        ) as session_create:
            service = CheckoutService("sk_test", "https://app.test/")
            session = asyncio.run(service.create_session("pro", "yearly", "a@b.c", "u1"))

        assert session.session_id == "cs_1"
        assert session.checkout_url == "https://checkout.stripe.test/cs_1"
        product_create.assert_not_called()
        price_create.assert_not_called()
        kwargs = session_create.call_args.kwargs
        assert kwargs["line_items"] == [{"price": "price_1", "quantity": 1}]
        assert kwargs["success_url"] == "https://app.test/auth/success?session_id={CHECKOUT_SESSION_ID}"
        assert kwargs["metadata"] == {"userId": "u1", "plan": "pro", "billingCycle": "yearly"}

    def test_checkout_route_validation(self, client, app):
        app.state.checkout_service = CheckoutService("sk_test", "https://app.test")
        response = client.post("/api/stripe/create-checkout-session", json={"plan": "pro"})
        assert response.status_code == 400
        assert response.json() == {"error": "Missing required fields"}

    def test_checkout_unconfigured(self, client):
        response = client.post(
            "/api/stripe/create-checkout-session",
            json={"plan": "pro", "billingCycle": "monthly", "email": "a@b.c"},
        )
        assert response.status_code == 503


class TestSubscriptionCheck:
    def test_requires_user_id(self, client):
        response = client.get("/api/subscription/check")
        assert response.status_code == 400
        assert response.json() == {"error": "User ID is required"}

    def test_active_subscription(self, client, app):
        dal = AsyncMock()
        dal.get_for_user.return_value = SubscriptionRecord(
            user_id="u1", stripe_subscription_id="sub_1", plan="pro", billing_cycle="monthly", status="active"
        )
        app.state.subscriptions = dal
        body = client.get("/api/subscription/check", params={"userId": "u1"}).json()
        assert body["hasActiveSubscription"] is True
        assert body["subscription"]["plan"] == "pro"

    def test_no_subscription(self, client, app):
        dal = AsyncMock()
        dal.get_for_user.return_value = None
        app.state.subscriptions = dal
        body = client.get("/api/subscription/check", params={"userId": "u1"}).json()
        assert body == {"success": True, "hasActiveSubscription": False, "subscription": None}
