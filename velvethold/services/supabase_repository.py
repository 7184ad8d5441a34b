"""Supabase-backed request repository."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from supabase import Client

from velvethold.models.date_request import ApprovalStatus, DateRequest, DepositStatus
from velvethold.models.payment import Payment, PaymentStatus
from velvethold.services.repository import RequestRepository, Transition


def _to_column(value: Any) -> Any:
    """Convert a model value into its JSON column form."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _to_filter(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(_to_column(value))


class SupabaseRequestRepository(RequestRepository):
    """
    Stores requests in the ``date_requests`` table.

    Conditional updates go out as one ``PATCH`` carrying the guard as
    filters, so Postgres evaluates guard and write under the same row lock.
    An empty ``RETURNING`` set means the guard no longer held.
    """

    def __init__(self, client: Client):
        self._client = client

    def _requests(self):
        return self._client.table("date_requests")

    def _payments(self):
        return self._client.table("payments")

    def create(
        self,
        requester_id: str,
        invitee_id: str,
        deposit_amount: int,
        intro_message: str,
        expires_at: Optional[datetime],
        now: datetime,
        slot_id: Optional[str] = None,
        screening_answers: Optional[Dict[str, str]] = None,
    ) -> DateRequest:
        result = self._requests().insert({
            "requester_id": requester_id,
            "invitee_id": invitee_id,
            "slot_id": slot_id,
            "screening_answers": screening_answers,
            "intro_message": intro_message,
            "deposit_amount": deposit_amount,
            "deposit_status": DepositStatus.PENDING.value,
            "approval_status": ApprovalStatus.PENDING.value,
            "expires_at": _to_column(expires_at),
            "created_at": now.isoformat(),
            "updated_at": now.isoformat(),
        }).execute()
        return DateRequest.model_validate(result.data[0])

    def get(self, request_id: str) -> Optional[DateRequest]:
        result = self._requests().select("*").eq("id", request_id).limit(1).execute()
        if not result.data:
            return None
        return DateRequest.model_validate(result.data[0])

    def compare_and_update(
        self, request_id: str, update: Transition, now: datetime
    ) -> Optional[DateRequest]:
        changes = {k: _to_column(v) for k, v in update.changes(now).items()}
        changes["updated_at"] = now.isoformat()

        query = self._requests().update(changes).eq("id", request_id)
        for field, expected in update.guard().items():
            if expected is None:
                query = query.is_(field, "null")
            else:
                query = query.eq(field, _to_filter(expected))

        result = query.execute()
        if not result.data:
            return None
        return DateRequest.model_validate(result.data[0])

    def query_expired_pending(self, now: datetime) -> List[DateRequest]:
        result = self._requests().select("*").eq(
            "approval_status", ApprovalStatus.PENDING.value
        ).lt("expires_at", now.isoformat()).execute()
        return [DateRequest.model_validate(row) for row in result.data]

    def query_confirmed_held(self) -> List[DateRequest]:
        result = self._requests().select("*").eq(
            "approval_status", ApprovalStatus.APPROVED.value
        ).eq("invitee_confirmed", "true").eq(
            "requester_confirmed", "true"
        ).eq("deposit_status", DepositStatus.HELD.value).execute()
        return [DateRequest.model_validate(row) for row in result.data]

    def query_declined_held(self) -> List[DateRequest]:
        result = self._requests().select("*").eq(
            "approval_status", ApprovalStatus.DECLINED.value
        ).eq("deposit_status", DepositStatus.HELD.value).execute()
        return [DateRequest.model_validate(row) for row in result.data]

    def list_for_user(
        self,
        user_id: str,
        as_invitee: bool = False,
        as_requester: bool = False,
        status: Optional[ApprovalStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[DateRequest]:
        query = self._requests().select("*")

        if as_invitee and not as_requester:
            query = query.eq("invitee_id", user_id)
        elif as_requester and not as_invitee:
            query = query.eq("requester_id", user_id)
        else:
            query = query.or_(f"invitee_id.eq.{user_id},requester_id.eq.{user_id}")

        if status:
            query = query.eq("approval_status", status.value)

        result = query.order("created_at", desc=True).range(
            offset, offset + limit - 1
        ).execute()
        return [DateRequest.model_validate(row) for row in result.data]

    def create_payment(
        self, request_id: str, payment_intent_ref: str, amount: int, now: datetime
    ) -> Payment:
        result = self._payments().insert({
            "request_id": request_id,
            "payment_intent_ref": payment_intent_ref,
            "amount": amount,
            "status": PaymentStatus.PENDING.value,
            "created_at": now.isoformat(),
            "updated_at": now.isoformat(),
        }).execute()
        return Payment.model_validate(result.data[0])

    def get_payment_for_request(self, request_id: str) -> Optional[Payment]:
        result = self._payments().select("*").eq(
            "request_id", request_id
        ).order("created_at", desc=True).limit(1).execute()
        if not result.data:
            return None
        return Payment.model_validate(result.data[0])

    def update_payment_status(
        self, payment_intent_ref: str, status: PaymentStatus, now: datetime
    ) -> Optional[Payment]:
        result = self._payments().update({
            "status": status.value,
            "updated_at": now.isoformat(),
        }).eq("payment_intent_ref", payment_intent_ref).execute()
        if not result.data:
            return None
        return Payment.model_validate(result.data[0])
