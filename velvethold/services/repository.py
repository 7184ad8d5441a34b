"""Request repository contract and in-memory adapter."""

import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Union

from velvethold.models.date_request import ApprovalStatus, DateRequest, DepositStatus
from velvethold.models.payment import Payment, PaymentStatus
from velvethold.models.transitions import (
    ApproveUpdate, ConfirmUpdate, DeclineUpdate, HoldUpdate, ProposeUpdate,
    RefundClaim, ReleaseClaim, RevertClaim,
)

Transition = Union[
    ApproveUpdate, DeclineUpdate, ProposeUpdate, ConfirmUpdate,
    HoldUpdate, RefundClaim, ReleaseClaim, RevertClaim,
]


class RequestRepository(ABC):
    """
    Durable store of date requests and their payments.

    ``compare_and_update`` is the only mutation path for an existing
    request: it applies a transition only if the transition's guard still
    matches the stored row, and returns ``None`` otherwise.
    """

    @abstractmethod
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
        ...

    @abstractmethod
    def get(self, request_id: str) -> Optional[DateRequest]:
        ...

    @abstractmethod
    def compare_and_update(
        self, request_id: str, update: Transition, now: datetime
    ) -> Optional[DateRequest]:
        ...

    @abstractmethod
    def query_expired_pending(self, now: datetime) -> List[DateRequest]:
        ...

    @abstractmethod
    def query_confirmed_held(self) -> List[DateRequest]:
        ...

    @abstractmethod
    def query_declined_held(self) -> List[DateRequest]:
        ...

    @abstractmethod
    def list_for_user(
        self,
        user_id: str,
        as_invitee: bool = False,
        as_requester: bool = False,
        status: Optional[ApprovalStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[DateRequest]:
        ...

    @abstractmethod
    def create_payment(
        self, request_id: str, payment_intent_ref: str, amount: int, now: datetime
    ) -> Payment:
        ...

    @abstractmethod
    def get_payment_for_request(self, request_id: str) -> Optional[Payment]:
        ...

    @abstractmethod
    def update_payment_status(
        self, payment_intent_ref: str, status: PaymentStatus, now: datetime
    ) -> Optional[Payment]:
        ...


class InMemoryRequestRepository(RequestRepository):
    """Lock-guarded dict store for tests and local runs."""

    def __init__(self):
        self._lock = threading.Lock()
        self._requests: Dict[str, DateRequest] = {}
        self._payments: Dict[str, Payment] = {}

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
        request = DateRequest(
            id=str(uuid.uuid4()),
            requester_id=requester_id,
            invitee_id=invitee_id,
            slot_id=slot_id,
            screening_answers=screening_answers,
            intro_message=intro_message,
            deposit_amount=deposit_amount,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._requests[request.id] = request
        return request

    def get(self, request_id: str) -> Optional[DateRequest]:
        with self._lock:
            return self._requests.get(request_id)

    def compare_and_update(
        self, request_id: str, update: Transition, now: datetime
    ) -> Optional[DateRequest]:
        with self._lock:
            current = self._requests.get(request_id)
            if current is None:
                return None

            for field, expected in update.guard().items():
                if getattr(current, field) != expected:
                    return None

            changes = update.changes(now)
            changes["updated_at"] = now
            updated = current.model_copy(update=changes)
            self._requests[request_id] = updated
            return updated

    def query_expired_pending(self, now: datetime) -> List[DateRequest]:
        with self._lock:
            return [
                r for r in self._requests.values()
                if r.approval_status == ApprovalStatus.PENDING
                and r.expires_at is not None
                and r.expires_at < now
            ]

    def query_confirmed_held(self) -> List[DateRequest]:
        with self._lock:
            return [
                r for r in self._requests.values()
                if r.approval_status == ApprovalStatus.APPROVED
                and r.invitee_confirmed
                and r.requester_confirmed
                and r.deposit_status == DepositStatus.HELD
            ]

    def query_declined_held(self) -> List[DateRequest]:
        with self._lock:
            return [
                r for r in self._requests.values()
                if r.approval_status == ApprovalStatus.DECLINED
                and r.deposit_status == DepositStatus.HELD
            ]

    def list_for_user(
        self,
        user_id: str,
        as_invitee: bool = False,
        as_requester: bool = False,
        status: Optional[ApprovalStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[DateRequest]:
        with self._lock:
            requests = list(self._requests.values())

        if as_invitee and not as_requester:
            requests = [r for r in requests if r.invitee_id == user_id]
        elif as_requester and not as_invitee:
            requests = [r for r in requests if r.requester_id == user_id]
        else:
            requests = [r for r in requests if r.is_party(user_id)]

        if status:
            requests = [r for r in requests if r.approval_status == status]

        requests.sort(key=lambda r: r.created_at, reverse=True)
        return requests[offset:offset + limit]

    def create_payment(
        self, request_id: str, payment_intent_ref: str, amount: int, now: datetime
    ) -> Payment:
        payment = Payment(
            id=str(uuid.uuid4()),
            request_id=request_id,
            payment_intent_ref=payment_intent_ref,
            amount=amount,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._payments[payment.id] = payment
        return payment

    def get_payment_for_request(self, request_id: str) -> Optional[Payment]:
        with self._lock:
            payments = [p for p in self._payments.values() if p.request_id == request_id]
        if not payments:
            return None
        return max(payments, key=lambda p: p.created_at)

    def update_payment_status(
        self, payment_intent_ref: str, status: PaymentStatus, now: datetime
    ) -> Optional[Payment]:
        with self._lock:
            for payment_id, payment in self._payments.items():
                if payment.payment_intent_ref == payment_intent_ref:
                    updated = payment.model_copy(update={"status": status, "updated_at": now})
                    self._payments[payment_id] = updated
                    return updated
        return None
