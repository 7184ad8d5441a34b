"""Deposit payment models."""

from enum import Enum
from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class PaymentStatus(str, Enum):
    """Gateway-side payment status."""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


class Payment(BaseModel):
    """Payment record backing a request's deposit."""
    id: str
    request_id: str
    payment_intent_ref: Optional[str] = None
    amount: int
    status: PaymentStatus = PaymentStatus.PENDING
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class HoldResult(BaseModel):
    """Outcome of placing a deposit hold."""
    hold_ref: str
    client_secret: Optional[str] = None
    status: str


class RefundResult(BaseModel):
    """Outcome of a refund sent to the gateway."""
    refund_id: str
    amount: int
    status: str
