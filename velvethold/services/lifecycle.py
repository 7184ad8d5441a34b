"""
Date request lifecycle engine.

Drives a request from creation to the final disposition of its deposit:
approval or decline by the invitee, expiry, date proposal and mutual
confirmation, and the refund or release of the held deposit.

Every state change goes through ``RequestRepository.compare_and_update``
with a transition whose guard restates the precondition checked here, so
a manual action racing a sweep can never both succeed. Deposit refunds and
releases claim the terminal status *before* calling the gateway and hand
it back to ``held`` if the gateway fails.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from velvethold.exceptions import (
    AuthorizationError, ExpiredError, InvalidStateError, NotFoundError,
    PaymentGatewayError, ValidationError,
)
from velvethold.models.date_request import (
    ApprovalStatus, ConfirmationStatus, DateRequest, DepositStatus,
)
from velvethold.models.payment import HoldResult, PaymentStatus, RefundResult
from velvethold.models.transitions import (
    ApproveUpdate, ConfirmUpdate, DeclineUpdate, HoldUpdate, ProposeUpdate,
    RefundClaim, ReleaseClaim, RevertClaim,
)
from velvethold.services.notifications import ChatOpener, NotificationType, Notifier
from velvethold.services.payments import PaymentGateway
from velvethold.services.repository import RequestRepository

logger = logging.getLogger(__name__)

INTRO_MIN_LENGTH = 10
INTRO_MAX_LENGTH = 1000
LOCATION_MAX_LENGTH = 500
CONFIRM_ATTEMPTS = 3

# Gateway refund parameters must not vary between attempts under one idempotency key
REFUND_REASON = "request_declined"
RELEASE_REASON = "date_completed"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DeclineOutcome:
    """Result of declining a request, with what happened to its deposit."""
    request: DateRequest
    refund: Optional[RefundResult] = None
    refund_error: Optional[PaymentGatewayError] = None


class LifecycleEngine:
    """State machine over a request's approval and deposit status."""

    def __init__(
        self,
        repository: RequestRepository,
        gateway: PaymentGateway,
        notifier: Notifier,
        chats: ChatOpener,
        currency: str = "usd",
        expiry_hours: int = 48,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.gateway = gateway
        self.notifier = notifier
        self.chats = chats
        self.currency = currency
        self.expiry_hours = expiry_hours
        self.clock = clock

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def _load(self, request_id: str) -> DateRequest:
        request = self.repository.get(request_id)
        if request is None:
            raise NotFoundError("Request not found")
        return request

    def _load_for_party(self, request_id: str, actor_id: str) -> DateRequest:
        request = self._load(request_id)
        if not request.is_party(actor_id):
            raise AuthorizationError("You do not have access to this request")
        return request

    def get_request(self, request_id: str, actor_id: str) -> DateRequest:
        return self._load_for_party(request_id, actor_id)

    def list_requests(
        self,
        user_id: str,
        as_invitee: bool = False,
        as_requester: bool = False,
        status: Optional[ApprovalStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[DateRequest]:
        return self.repository.list_for_user(
            user_id,
            as_invitee=as_invitee,
            as_requester=as_requester,
            status=status,
            limit=limit,
            offset=offset,
        )

    def is_expired(self, request: DateRequest) -> bool:
        return request.is_expired(self.clock())

    def get_confirmation_status(self, request_id: str, actor_id: str) -> ConfirmationStatus:
        request = self._load_for_party(request_id, actor_id)
        return ConfirmationStatus(
            has_proposed_details=request.has_proposal(),
            invitee_confirmed=request.invitee_confirmed,
            requester_confirmed=request.requester_confirmed,
            both_confirmed=request.both_confirmed,
            date_confirmed_at=request.date_confirmed_at,
            confirmed_date_time=request.confirmed_date_time,
            confirmed_location=request.confirmed_location,
            confirmed_details=request.confirmed_details,
        )

    # ------------------------------------------------------------------ #
    # Creation and payment
    # ------------------------------------------------------------------ #

    async def create_request(
        self,
        requester_id: str,
        invitee_id: str,
        deposit_amount: int,
        intro_message: str,
        slot_id: Optional[str] = None,
        screening_answers: Optional[Dict[str, str]] = None,
    ) -> DateRequest:
        """Store a new request with its deposit still pending."""
        if requester_id == invitee_id:
            raise ValidationError("You cannot create a date request with yourself")
        if isinstance(deposit_amount, bool) or not isinstance(deposit_amount, int) or deposit_amount <= 0:
            raise ValidationError("Deposit amount must be a positive integer")
        if not INTRO_MIN_LENGTH <= len(intro_message) <= INTRO_MAX_LENGTH:
            raise ValidationError(
                f"Introduction message must be {INTRO_MIN_LENGTH}-{INTRO_MAX_LENGTH} characters"
            )

        now = self.clock()
        request = self.repository.create(
            requester_id=requester_id,
            invitee_id=invitee_id,
            deposit_amount=deposit_amount,
            intro_message=intro_message,
            expires_at=now + timedelta(hours=self.expiry_hours),
            now=now,
            slot_id=slot_id,
            screening_answers=screening_answers,
        )
        logger.info(f"Created request {request.id} from {requester_id} to {invitee_id}")

        await self._notify(invitee_id, NotificationType.REQUEST_RECEIVED, {
            "request_id": request.id,
            "requester_id": requester_id,
            "deposit_amount": deposit_amount,
        })
        return request

    async def place_hold(self, request_id: str, actor_id: str) -> HoldResult:
        """
        Ask the gateway to take the requester's deposit.

        Safe to call again: the idempotency key is derived from the request.
        """
        request = self._load(request_id)
        if actor_id != request.requester_id:
            raise AuthorizationError("Only the requester can pay the deposit")
        if request.approval_status != ApprovalStatus.PENDING:
            raise InvalidStateError(f"Request has already been {request.approval_status.value}")
        if request.deposit_status != DepositStatus.PENDING:
            raise InvalidStateError("Deposit has already been paid")

        try:
            hold = await self.gateway.create_hold(
                request.deposit_amount,
                self.currency,
                metadata={
                    "request_id": request.id,
                    "requester_id": request.requester_id,
                    "invitee_id": request.invitee_id,
                },
                idempotency_key=f"hold-{request.id}",
            )
        except PaymentGatewayError as e:
            e.request_id = request.id
            e.operation = "create_hold"
            logger.error(f"Deposit hold failed for request {request.id}: {e.message}")
            raise

        existing = self.repository.get_payment_for_request(request.id)
        if existing is None or existing.payment_intent_ref != hold.hold_ref:
            self.repository.create_payment(request.id, hold.hold_ref, request.deposit_amount, self.clock())
        logger.info(f"Placed deposit hold {hold.hold_ref} for request {request.id}")
        return hold

    def mark_deposit_held(self, hold_ref: str) -> Optional[DateRequest]:
        """Payment succeeded at the gateway: the deposit is now held."""
        now = self.clock()
        payment = self.repository.update_payment_status(hold_ref, PaymentStatus.SUCCEEDED, now)
        if payment is None:
            logger.error(f"Payment not found for hold {hold_ref}")
            return None

        updated = self.repository.compare_and_update(payment.request_id, HoldUpdate(), now)
        if updated is None:
            logger.warning(f"Deposit for request {payment.request_id} was not pending; hold {hold_ref} ignored")
            return self.repository.get(payment.request_id)

        logger.info(f"Deposit held for request {payment.request_id}")
        return updated

    def mark_payment_failed(self, hold_ref: str) -> None:
        if self.repository.update_payment_status(hold_ref, PaymentStatus.FAILED, self.clock()) is None:
            logger.error(f"Payment not found for hold {hold_ref}")

    def mark_payment_refunded(self, hold_ref: str) -> None:
        if self.repository.update_payment_status(hold_ref, PaymentStatus.REFUNDED, self.clock()) is None:
            logger.error(f"Payment not found for hold {hold_ref}")

    # ------------------------------------------------------------------ #
    # Approval
    # ------------------------------------------------------------------ #

    def _raise_approval_conflict(self, request_id: str) -> None:
        current = self._load(request_id)
        raise InvalidStateError(f"Request has already been {current.approval_status.value}")

    async def approve(self, request_id: str, actor_id: str) -> DateRequest:
        request = self._load(request_id)
        if actor_id != request.invitee_id:
            raise AuthorizationError("Only the invitee can approve a request")
        if request.approval_status != ApprovalStatus.PENDING:
            raise InvalidStateError(f"Request has already been {request.approval_status.value}")
        if self.is_expired(request):
            raise ExpiredError("Request has expired and can no longer be approved")

        updated = self.repository.compare_and_update(request_id, ApproveUpdate(), self.clock())
        if updated is None:
            self._raise_approval_conflict(request_id)
        logger.info(f"Request {request_id} approved")

        try:
            await self.chats.open_chat(request_id)
        except Exception as e:
            logger.error(f"Failed to open chat for request {request_id}: {e}")

        await self._notify(updated.requester_id, NotificationType.REQUEST_APPROVED, {
            "request_id": request_id,
        })
        return updated

    async def decline(self, request_id: str, actor_id: str) -> DateRequest:
        """
        Decline a pending request and refund its deposit.

        Expired requests may still be declined. A refund failure does not
        undo the decline; the deposit stays held for a later retry.
        """
        request = self._load(request_id)
        if actor_id != request.invitee_id:
            raise AuthorizationError("Only the invitee can decline a request")
        if request.approval_status != ApprovalStatus.PENDING:
            raise InvalidStateError(f"Request has already been {request.approval_status.value}")
        if self.is_expired(request):
            logger.info(f"Declining expired request {request_id}")

        outcome = await self._decline_and_refund(request_id, reason="declined")
        return outcome.request

    async def expire(self, request_id: str) -> DeclineOutcome:
        """Automatically decline a pending request past its expiry."""
        request = self._load(request_id)
        if request.approval_status != ApprovalStatus.PENDING:
            raise InvalidStateError(f"Request has already been {request.approval_status.value}")
        if not self.is_expired(request):
            raise InvalidStateError("Request has not expired yet")

        return await self._decline_and_refund(request_id, reason="expired")

    async def _decline_and_refund(self, request_id: str, reason: str) -> DeclineOutcome:
        declined = self.repository.compare_and_update(request_id, DeclineUpdate(), self.clock())
        if declined is None:
            self._raise_approval_conflict(request_id)
        logger.info(f"Request {request_id} declined ({reason})")

        outcome = DeclineOutcome(request=declined)
        if declined.deposit_status == DepositStatus.PENDING:
            await self._cancel_unpaid_hold(declined)
        else:
            try:
                outcome.refund = await self._refund_declined(declined, reason)
            except PaymentGatewayError as e:
                logger.error(f"Refund failed for declined request {request_id}, left held for retry: {e.message}")
                outcome.refund_error = e
            except InvalidStateError as e:
                logger.warning(f"Refund skipped for request {request_id}: {e.message}")

        await self._notify(declined.requester_id, NotificationType.REQUEST_DECLINED, {
            "request_id": request_id,
            "reason": reason,
        })
        outcome.request = self.repository.get(request_id) or declined
        return outcome

    async def _cancel_unpaid_hold(self, request: DateRequest) -> None:
        payment = self.repository.get_payment_for_request(request.id)
        if payment is None or not payment.payment_intent_ref:
            return
        try:
            await self.gateway.cancel_hold(payment.payment_intent_ref)
        except PaymentGatewayError as e:
            logger.warning(f"Could not cancel unpaid hold for request {request.id}: {e.message}")

    # ------------------------------------------------------------------ #
    # Date proposal and confirmation
    # ------------------------------------------------------------------ #

    async def propose_date(
        self,
        request_id: str,
        actor_id: str,
        date_time: datetime,
        location: str,
        details: Optional[str] = None,
    ) -> DateRequest:
        """Set date details; both parties must confirm them again."""
        request = self._load_for_party(request_id, actor_id)
        if request.approval_status != ApprovalStatus.APPROVED:
            raise InvalidStateError("Request must be approved before proposing date details")
        if not location or len(location) > LOCATION_MAX_LENGTH:
            raise ValidationError(f"Location must be 1-{LOCATION_MAX_LENGTH} characters")

        updated = self.repository.compare_and_update(
            request_id,
            ProposeUpdate(date_time=date_time, location=location, details=details or None),
            self.clock(),
        )
        if updated is None:
            raise InvalidStateError("Request must be approved before proposing date details")
        logger.info(f"Date proposed for request {request_id} by {actor_id}")

        other = request.requester_id if actor_id == request.invitee_id else request.invitee_id
        await self._notify(other, NotificationType.DATE_PROPOSED, {
            "request_id": request_id,
            "date_time": date_time.isoformat(),
            "location": location,
        })
        return updated

    async def confirm_date(self, request_id: str, actor_id: str) -> DateRequest:
        """Confirm the current proposal on behalf of one party."""
        updated = None
        stamped = False
        for _ in range(CONFIRM_ATTEMPTS):
            request = self._load_for_party(request_id, actor_id)
            if request.approval_status != ApprovalStatus.APPROVED:
                raise InvalidStateError("Request must be approved before confirming date details")
            if not request.has_proposal():
                raise InvalidStateError("No date details to confirm")

            as_invitee = actor_id == request.invitee_id
            other_confirmed = request.requester_confirmed if as_invitee else request.invitee_confirmed
            stamped = other_confirmed and request.date_confirmed_at is None
            updated = self.repository.compare_and_update(
                request_id,
                ConfirmUpdate(
                    as_invitee=as_invitee,
                    seen_date_time=request.confirmed_date_time,
                    seen_location=request.confirmed_location,
                    other_confirmed=other_confirmed,
                    stamp_confirmed_at=stamped,
                ),
                self.clock(),
            )
            if updated is not None:
                break
            logger.info(f"Confirmation for request {request_id} raced another update; retrying")

        if updated is None:
            raise InvalidStateError("Date details changed while confirming; review them and confirm again")
        logger.info(f"Request {request_id} date confirmed by {actor_id}")

        if stamped:
            payload = {"request_id": request_id, "date_confirmed_at": updated.date_confirmed_at.isoformat()}
            await self._notify(updated.requester_id, NotificationType.DATE_CONFIRMED, payload)
            await self._notify(updated.invitee_id, NotificationType.DATE_CONFIRMED, payload)
        return updated

    # ------------------------------------------------------------------ #
    # Deposit disposition
    # ------------------------------------------------------------------ #

    def _check_releasable(self, request: DateRequest) -> None:
        if request.approval_status != ApprovalStatus.APPROVED:
            raise InvalidStateError("Request must be approved to release deposit")
        if request.deposit_status == DepositStatus.REFUNDED:
            raise InvalidStateError("Deposit has already been refunded")
        if request.deposit_status == DepositStatus.RELEASED:
            raise InvalidStateError("Deposit has already been released")
        if not request.both_confirmed:
            raise InvalidStateError("Both parties must confirm the date before releasing deposit")
        if request.deposit_status == DepositStatus.PENDING:
            raise InvalidStateError("Payment is still pending")

    def _check_refundable(self, request: DateRequest) -> None:
        if request.approval_status != ApprovalStatus.DECLINED:
            raise InvalidStateError("Only declined requests can be refunded")
        if request.deposit_status == DepositStatus.REFUNDED:
            raise InvalidStateError("Deposit has already been refunded")
        if request.deposit_status == DepositStatus.RELEASED:
            raise InvalidStateError("Deposit has already been released")
        if request.deposit_status == DepositStatus.PENDING:
            raise InvalidStateError("Payment is still pending")

    def _hold_ref(self, request: DateRequest) -> str:
        payment = self.repository.get_payment_for_request(request.id)
        if payment is None or not payment.payment_intent_ref:
            raise InvalidStateError("No payment found for this request")
        return payment.payment_intent_ref

    def _revert_claim(self, request_id: str, claimed: DepositStatus, operation: str) -> None:
        try:
            self.repository.compare_and_update(request_id, RevertClaim(claimed), self.clock())
        except Exception:
            logger.exception(
                f"Could not return deposit of request {request_id} to held after failed {operation}; "
                f"row left {claimed.value} and needs manual repair"
            )

    async def _refund_declined(self, request: DateRequest, reason: str) -> RefundResult:
        self._check_refundable(request)
        hold_ref = self._hold_ref(request)

        claimed = self.repository.compare_and_update(request.id, RefundClaim(), self.clock())
        if claimed is None:
            self._check_refundable(self._load(request.id))
            raise InvalidStateError("Deposit state changed; try again")

        try:
            result = await self.gateway.refund(
                hold_ref,
                idempotency_key=f"refund-{request.id}",
                metadata={"request_id": request.id, "reason": REFUND_REASON},
            )
        except PaymentGatewayError as e:
            self._revert_claim(request.id, DepositStatus.REFUNDED, "refund")
            e.request_id = request.id
            e.operation = "refund"
            raise

        self.repository.update_payment_status(hold_ref, PaymentStatus.REFUNDED, self.clock())
        logger.info(f"Refunded deposit for request {request.id}: {result.refund_id}")
        await self._notify(request.requester_id, NotificationType.DEPOSIT_REFUNDED, {
            "request_id": request.id,
            "amount": result.amount,
            "reason": reason,
        })
        return result

    async def retry_refund(self, request_id: str) -> RefundResult:
        """Re-attempt the refund of a declined request still holding its deposit."""
        request = self._load(request_id)
        return await self._refund_declined(request, reason="retry")

    async def release_deposit(self, request_id: str, actor_id: Optional[str] = None) -> RefundResult:
        """
        Return the deposit to the requester after a mutually confirmed date.

        Called by either party or by the release sweep (no actor). Gateway
        failures are raised with the deposit left ``held``.

        The deposit is marked ``released`` before the gateway call, so a
        concurrent caller may be told it was already released while that
        release is still in flight. If the gateway then fails, the deposit
        returns to ``held`` and a later call can release it.
        """
        request = self._load(request_id)
        if actor_id is not None and not request.is_party(actor_id):
            raise AuthorizationError("You are not authorized to release this deposit")
        self._check_releasable(request)
        hold_ref = self._hold_ref(request)

        claimed = self.repository.compare_and_update(request_id, ReleaseClaim(), self.clock())
        if claimed is None:
            self._check_releasable(self._load(request_id))
            raise InvalidStateError("Deposit state changed; try again")

        try:
            result = await self.gateway.refund(
                hold_ref,
                idempotency_key=f"release-{request_id}",
                metadata={"request_id": request_id, "reason": RELEASE_REASON},
            )
        except PaymentGatewayError as e:
            self._revert_claim(request_id, DepositStatus.RELEASED, "release")
            e.request_id = request_id
            e.operation = "release"
            logger.error(f"Deposit release failed for request {request_id}: {e.message}")
            raise

        self.repository.update_payment_status(hold_ref, PaymentStatus.REFUNDED, self.clock())
        logger.info(
            f"Released deposit for request {request_id}: {result.refund_id}"
            + (f" (by {actor_id})" if actor_id else "")
        )
        payload = {"request_id": request_id, "amount": result.amount}
        await self._notify(claimed.requester_id, NotificationType.DEPOSIT_RELEASED, payload)
        await self._notify(claimed.invitee_id, NotificationType.DEPOSIT_RELEASED, payload)
        return result

    # ------------------------------------------------------------------ #

    async def _notify(self, user_id: str, event_type: NotificationType, payload: dict) -> None:
        try:
            await self.notifier.notify(user_id, event_type, payload)
        except Exception as e:
            logger.warning(f"Notification {event_type.value} to {user_id} failed: {e}")
