"""
Test configuration and fixtures.

Provides:
- In-memory repository, fake payment gateway, recording notifier and chat opener
- A controllable clock
- A ``flow`` helper that walks requests into a given lifecycle state
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from velvethold.exceptions import PaymentGatewayError
from velvethold.models.payment import HoldResult, RefundResult
from velvethold.services.lifecycle import LifecycleEngine
from velvethold.services.notifications import ChatOpener, Notifier
from velvethold.services.payments import PaymentGateway
from velvethold.services.repository import InMemoryRequestRepository
from velvethold.services.sweeper import Sweeper

REQUESTER = "user_requester"
INVITEE = "user_invitee"
STRANGER = "user_stranger"
INTRO = "Hi! I'd love to take you to dinner."


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeGateway(PaymentGateway):
    """Records calls; refunds yield to the event loop like a network call."""

    def __init__(self):
        self.holds: List[dict] = []
        self.refunds: List[dict] = []
        self.refund_attempts: List[tuple] = []
        self.cancelled: List[str] = []
        self.amounts: Dict[str, int] = {}
        self.fail_refunds = 0
        self.fail_holds = False

    async def create_hold(self, amount, currency, metadata, idempotency_key) -> HoldResult:
        if self.fail_holds:
            raise PaymentGatewayError("Card was declined", code="CARD_ERROR", retryable=True)
        hold_ref = f"pi_{metadata['request_id']}"
        self.amounts[hold_ref] = amount
        self.holds.append({
            "amount": amount,
            "currency": currency,
            "metadata": metadata,
            "idempotency_key": idempotency_key,
        })
        return HoldResult(hold_ref=hold_ref, client_secret=f"{hold_ref}_secret", status="requires_payment_method")

    async def refund(self, hold_ref, amount=None, idempotency_key=None, metadata=None) -> RefundResult:
        await asyncio.sleep(0)
        self.refund_attempts.append((idempotency_key, metadata))
        if self.fail_refunds:
            self.fail_refunds -= 1
            raise PaymentGatewayError("Could not process refund", retryable=True)
        refunded = amount or self.amounts[hold_ref]
        self.refunds.append({
            "hold_ref": hold_ref,
            "amount": refunded,
            "idempotency_key": idempotency_key,
            "metadata": metadata,
        })
        return RefundResult(refund_id=f"re_{len(self.refunds)}", amount=refunded, status="succeeded")

    async def get_hold_status(self, hold_ref) -> str:
        return "succeeded"

    async def cancel_hold(self, hold_ref) -> None:
        self.cancelled.append(hold_ref)


class RecordingNotifier(Notifier):
    def __init__(self):
        self.sent: List[tuple] = []

    async def notify(self, user_id, event_type, payload) -> None:
        self.sent.append((user_id, event_type, payload))

    def events_for(self, user_id: str) -> List[str]:
        return [event.value for uid, event, _ in self.sent if uid == user_id]


class RecordingChatOpener(ChatOpener):
    def __init__(self):
        self.opened: List[str] = []
        self.fail = False

    async def open_chat(self, request_id) -> None:
        if self.fail:
            raise RuntimeError("chats table unavailable")
        self.opened.append(request_id)


class LifecycleFlow:
    """Walks requests into lifecycle states through the engine."""

    def __init__(self, engine: LifecycleEngine):
        self.engine = engine

    async def pending(self, deposit_amount: int = 5000):
        return await self.engine.create_request(REQUESTER, INVITEE, deposit_amount, INTRO)

    async def held(self, deposit_amount: int = 5000):
        request = await self.pending(deposit_amount)
        hold = await self.engine.place_hold(request.id, REQUESTER)
        return self.engine.mark_deposit_held(hold.hold_ref)

    async def approved(self, deposit_amount: int = 5000):
        request = await self.held(deposit_amount)
        return await self.engine.approve(request.id, INVITEE)

    async def proposed(self, date_time: Optional[datetime] = None, location: str = "Cafe X"):
        request = await self.approved()
        date_time = date_time or datetime(2026, 3, 1, 19, 0, tzinfo=timezone.utc)
        return await self.engine.propose_date(request.id, INVITEE, date_time, location)

    async def confirmed(self):
        request = await self.proposed()
        await self.engine.confirm_date(request.id, REQUESTER)
        return await self.engine.confirm_date(request.id, INVITEE)


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 2, 20, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def repository():
    return InMemoryRequestRepository()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def chats():
    return RecordingChatOpener()


@pytest.fixture
def engine(repository, gateway, notifier, chats, clock):
    return LifecycleEngine(
        repository=repository,
        gateway=gateway,
        notifier=notifier,
        chats=chats,
        expiry_hours=48,
        clock=clock,
    )


@pytest.fixture
def sweeper(engine, repository, clock):
    return Sweeper(engine, repository, clock=clock)


@pytest.fixture
def flow(engine):
    return LifecycleFlow(engine)
