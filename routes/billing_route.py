"""FastAPI routes for Stripe billing and subscription status."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from controllers.billing_controller import check_subscription, create_checkout_session, receive_webhook
from utils.errors import AppError

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["billing"])


class CheckoutPayload(BaseModel):
    plan: Optional[str] = None
    billingCycle: Optional[str] = None
    email: Optional[str] = None
    userId: Optional[str] = None


@router.post("/stripe/create-checkout-session")
async def checkout_route(request: Request, payload: CheckoutPayload):
    try:
        return await create_checkout_session(
            request, payload.plan, payload.billingCycle, payload.email, payload.userId
        )
    except (HTTPException, AppError):
        raise
    except Exception as exc:
        LOGGER.exception("Stripe checkout error")
        raise HTTPException(status_code=500, detail="Failed to create checkout session") from exc


@router.post("/stripe/webhook")
async def webhook_route(request: Request):
    return await receive_webhook(request)


@router.get("/subscription/check")
async def subscription_check_route(request: Request, userId: Optional[str] = None):
    try:
        return await check_subscription(request, userId)
    except (HTTPException, AppError):
        raise
    except Exception as exc:
        LOGGER.exception("Subscription check error")
        raise HTTPException(status_code=500, detail="Failed to check subscription status") from exc
