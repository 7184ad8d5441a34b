"""Date request models."""

from enum import Enum
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, Dict, List


class ApprovalStatus(str, Enum):
    """Invitee decision on a request."""
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


class DepositStatus(str, Enum):
    """Deposit lifecycle status."""
    PENDING = "pending"
    HELD = "held"
    REFUNDED = "refunded"
    RELEASED = "released"


class DateRequest(BaseModel):
    """Full date request record."""
    id: str
    requester_id: str
    invitee_id: str
    slot_id: Optional[str] = None
    screening_answers: Optional[Dict[str, str]] = None
    intro_message: str
    deposit_amount: int
    deposit_status: DepositStatus = DepositStatus.PENDING
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    expires_at: Optional[datetime] = None
    confirmed_date_time: Optional[datetime] = None
    confirmed_location: Optional[str] = None
    confirmed_details: Optional[str] = None
    invitee_confirmed: bool = False
    requester_confirmed: bool = False
    date_confirmed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

    def is_party(self, user_id: str) -> bool:
        return user_id in (self.requester_id, self.invitee_id)

    def has_proposal(self) -> bool:
        return bool(self.confirmed_date_time and self.confirmed_location)

    @property
    def both_confirmed(self) -> bool:
        return self.invitee_confirmed and self.requester_confirmed

    def is_expired(self, now: datetime) -> bool:
        """A request without an expiry never expires."""
        return self.expires_at is not None and now >= self.expires_at


class DateRequestCreate(BaseModel):
    """Payload to send a date request."""
    invitee_id: str
    intro_message: str = Field(min_length=10, max_length=1000)
    deposit_amount: int = Field(gt=0)
    slot_id: Optional[str] = None
    screening_answers: Optional[Dict[str, str]] = None


class DateProposal(BaseModel):
    """Payload to propose date details."""
    date_time: datetime
    location: str = Field(min_length=1, max_length=500)
    details: Optional[str] = None


class DepositReleaseRequest(BaseModel):
    """Payload to manually release a deposit."""
    request_id: str


class DateRequestWithExpiry(DateRequest):
    """Request annotated for listings."""
    expired: bool = False


class DateRequestList(BaseModel):
    requests: List[DateRequestWithExpiry]
    count: int


class ConfirmationStatus(BaseModel):
    """Mutual confirmation view for one request."""
    has_proposed_details: bool
    invitee_confirmed: bool
    requester_confirmed: bool
    both_confirmed: bool
    date_confirmed_at: Optional[datetime] = None
    confirmed_date_time: Optional[datetime] = None
    confirmed_location: Optional[str] = None
    confirmed_details: Optional[str] = None


class SweepResult(BaseModel):
    """Counters accumulated by one sweep pass."""
    processed: int = 0
    failed: int = 0
    refunds_processed: int = 0
    refunds_failed: int = 0
