"""Payment gateway adapter for deposit holds and refunds."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import stripe

from velvethold.exceptions import PaymentGatewayError
from velvethold.models.payment import HoldResult, RefundResult

logger = logging.getLogger(__name__)


class PaymentGateway(ABC):
    """
    Operations the lifecycle needs from a payment processor.

    Every mutation takes an idempotency key so a retried call after a lost
    response cannot charge or refund twice.
    """

    @abstractmethod
    async def create_hold(
        self,
        amount: int,
        currency: str,
        metadata: Dict[str, str],
        idempotency_key: str,
    ) -> HoldResult:
        ...

    @abstractmethod
    async def refund(
        self,
        hold_ref: str,
        amount: Optional[int] = None,
        idempotency_key: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> RefundResult:
        ...

    @abstractmethod
    async def get_hold_status(self, hold_ref: str) -> str:
        ...

    @abstractmethod
    async def cancel_hold(self, hold_ref: str) -> None:
        ...


@dataclass
class StripeConfig:
    """Configuration for the Stripe gateway."""
    secret_key: str
    webhook_secret: str
    api_version: str = "2023-10-16"
    max_retries: int = 2


class StripeGateway(PaymentGateway):
    """
    Stripe implementation backed by PaymentIntents.

    A deposit hold is a PaymentIntent; releasing or refunding it is a
    Refund against that intent.
    """

    def __init__(self, config: StripeConfig):
        self._config = config

        stripe.api_key = config.secret_key
        stripe.api_version = config.api_version
        stripe.max_network_retries = config.max_retries

    async def create_hold(
        self,
        amount: int,
        currency: str,
        metadata: Dict[str, str],
        idempotency_key: str,
    ) -> HoldResult:
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=currency.lower(),
                metadata=metadata,
                automatic_payment_methods={"enabled": True},
                idempotency_key=idempotency_key,
            )
        except stripe.CardError as e:
            logger.error(f"Card error creating deposit hold: {e.user_message}")
            raise PaymentGatewayError(
                e.user_message or "Card was declined",
                code="CARD_ERROR",
                retryable=True,
                request_id=metadata.get("request_id"),
                operation="create_hold",
            )
        except stripe.RateLimitError as e:
            logger.error(f"Rate limit error: {e}")
            raise PaymentGatewayError(
                "Too many requests. Please try again.",
                code="RATE_LIMIT",
                retryable=True,
                request_id=metadata.get("request_id"),
                operation="create_hold",
            )
        except stripe.InvalidRequestError as e:
            logger.error(f"Invalid hold request: {e}")
            raise PaymentGatewayError(
                str(e),
                code="INVALID_REQUEST",
                request_id=metadata.get("request_id"),
                operation="create_hold",
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating deposit hold: {e}")
            raise PaymentGatewayError(
                "Payment service temporarily unavailable",
                retryable=True,
                request_id=metadata.get("request_id"),
                operation="create_hold",
            )

        return HoldResult(
            hold_ref=intent.id,
            client_secret=intent.client_secret,
            status=intent.status,
        )

    async def refund(
        self,
        hold_ref: str,
        amount: Optional[int] = None,
        idempotency_key: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> RefundResult:
        params: Dict[str, Any] = {
            "payment_intent": hold_ref,
            "reason": "requested_by_customer",
        }
        if amount:
            params["amount"] = amount
        if metadata:
            params["metadata"] = metadata
        request_id = (metadata or {}).get("request_id")

        try:
            refund = stripe.Refund.create(**params, idempotency_key=idempotency_key)
        except stripe.InvalidRequestError as e:
            logger.error(f"Invalid refund request for {hold_ref}: {e}")
            raise PaymentGatewayError(
                str(e),
                code="INVALID_REFUND",
                request_id=request_id,
                operation="refund",
            )
        except stripe.StripeError as e:
            logger.error(f"Error creating refund for {hold_ref}: {e}")
            raise PaymentGatewayError(
                "Could not process refund",
                retryable=True,
                request_id=request_id,
                operation="refund",
            )

        return RefundResult(
            refund_id=refund.id,
            amount=refund.amount,
            status=refund.status,
        )

    async def get_hold_status(self, hold_ref: str) -> str:
        try:
            intent = stripe.PaymentIntent.retrieve(hold_ref)
        except stripe.StripeError as e:
            logger.error(f"Error retrieving hold {hold_ref}: {e}")
            raise PaymentGatewayError(
                "Could not retrieve payment status",
                retryable=True,
                operation="get_hold_status",
            )
        return intent.status

    async def cancel_hold(self, hold_ref: str) -> None:
        try:
            stripe.PaymentIntent.cancel(hold_ref)
        except stripe.InvalidRequestError as e:
            # Already cancelled or completed
            if "cannot be canceled" not in str(e).lower():
                raise PaymentGatewayError(str(e), code="CANCEL_FAILED", operation="cancel_hold")
        except stripe.StripeError as e:
            logger.error(f"Error cancelling hold {hold_ref}: {e}")
            raise PaymentGatewayError(
                "Could not cancel payment",
                retryable=True,
                operation="cancel_hold",
            )

    def construct_event(self, payload: bytes, signature: str) -> Any:
        """Verify and parse a webhook delivery."""
        return stripe.Webhook.construct_event(payload, signature, self._config.webhook_secret)
