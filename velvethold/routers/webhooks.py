"""Stripe webhook receiver."""

import logging

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from typing import Optional

from velvethold.dependencies import get_engine, get_gateway
from velvethold.services.lifecycle import LifecycleEngine
from velvethold.services.payments import StripeGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    gateway: StripeGateway = Depends(get_gateway),
    engine: LifecycleEngine = Depends(get_engine)
):
    """Apply payment status changes reported by Stripe."""
    if not stripe_signature:
        raise HTTPException(status_code=400, detail="Missing stripe-signature header")

    payload = await request.body()
    try:
        event = gateway.construct_event(payload, stripe_signature)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.error(f"Webhook signature verification failed: {e}")
        raise HTTPException(status_code=400, detail="Invalid signature")

    event_type = event["type"]
    obj = event["data"]["object"]
    logger.info(f"Processing webhook event: {event_type}")

    if event_type == "payment_intent.succeeded":
        engine.mark_deposit_held(obj["id"])
    elif event_type in ("payment_intent.payment_failed", "payment_intent.canceled"):
        engine.mark_payment_failed(obj["id"])
    elif event_type == "charge.refunded":
        intent = obj.get("payment_intent")
        if not intent:
            logger.error("No payment intent associated with refunded charge")
        else:
            engine.mark_payment_refunded(intent if isinstance(intent, str) else intent["id"])
    else:
        logger.info(f"Unhandled event type: {event_type}")

    return {"received": True}
