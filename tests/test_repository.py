"""Tests for the in-memory repository's conditional updates and queries."""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

from velvethold.models.date_request import ApprovalStatus, DepositStatus
from velvethold.models.payment import PaymentStatus
from velvethold.models.transitions import (
    ApproveUpdate, ConfirmUpdate, DeclineUpdate, HoldUpdate, ProposeUpdate,
    RefundClaim, ReleaseClaim, RevertClaim,
)
from velvethold.services.repository import InMemoryRequestRepository

NOW = datetime(2026, 2, 20, 12, 0, tzinfo=timezone.utc)
DATE = datetime(2026, 3, 1, 19, 0, tzinfo=timezone.utc)


def _create(repo, requester="a", invitee="b", expires_in_hours=48, now=NOW):
    return repo.create(
        requester_id=requester,
        invitee_id=invitee,
        deposit_amount=5000,
        intro_message="Hello there, nice profile",
        expires_at=now + timedelta(hours=expires_in_hours),
        now=now,
    )


def test_create_defaults():
    repo = InMemoryRequestRepository()
    request = _create(repo)

    assert request.approval_status == ApprovalStatus.PENDING
    assert request.deposit_status == DepositStatus.PENDING
    assert not request.invitee_confirmed and not request.requester_confirmed
    assert repo.get(request.id) == request


def test_guard_mismatch_returns_none_and_leaves_row():
    repo = InMemoryRequestRepository()
    request = _create(repo)
    repo.compare_and_update(request.id, DeclineUpdate(), NOW)

    assert repo.compare_and_update(request.id, ApproveUpdate(), NOW) is None
    assert repo.get(request.id).approval_status == ApprovalStatus.DECLINED


def test_unknown_id_returns_none():
    repo = InMemoryRequestRepository()
    assert repo.compare_and_update("missing", ApproveUpdate(), NOW) is None


def test_update_stamps_updated_at():
    repo = InMemoryRequestRepository()
    request = _create(repo)
    later = NOW + timedelta(minutes=5)

    updated = repo.compare_and_update(request.id, HoldUpdate(), later)

    assert updated.deposit_status == DepositStatus.HELD
    assert updated.updated_at == later
    assert updated.created_at == NOW


def test_release_claim_succeeds_once_across_threads():
    repo = InMemoryRequestRepository()
    request = _create(repo)
    repo.compare_and_update(request.id, HoldUpdate(), NOW)
    repo.compare_and_update(request.id, ApproveUpdate(), NOW)
    repo.compare_and_update(request.id, ProposeUpdate(DATE, "Cafe X"), NOW)
    for as_invitee in (True, False):
        current = repo.get(request.id)
        repo.compare_and_update(request.id, ConfirmUpdate(
            as_invitee=as_invitee,
            seen_date_time=DATE,
            seen_location="Cafe X",
            other_confirmed=current.requester_confirmed if as_invitee else current.invitee_confirmed,
            stamp_confirmed_at=not as_invitee,
        ), NOW)

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(
            lambda _: repo.compare_and_update(request.id, ReleaseClaim(), NOW), range(16)
        ))

    assert sum(1 for r in results if r is not None) == 1
    assert repo.get(request.id).deposit_status == DepositStatus.RELEASED


def test_refund_claim_requires_declined_and_held():
    repo = InMemoryRequestRepository()
    request = _create(repo)
    repo.compare_and_update(request.id, DeclineUpdate(), NOW)

    assert repo.compare_and_update(request.id, RefundClaim(), NOW) is None

    repo.compare_and_update(request.id, HoldUpdate(), NOW)
    assert repo.compare_and_update(request.id, RefundClaim(), NOW).deposit_status == DepositStatus.REFUNDED
    assert repo.compare_and_update(request.id, RefundClaim(), NOW) is None


def test_revert_claim_only_from_claimed_status():
    repo = InMemoryRequestRepository()
    request = _create(repo)
    repo.compare_and_update(request.id, HoldUpdate(), NOW)
    repo.compare_and_update(request.id, DeclineUpdate(), NOW)
    repo.compare_and_update(request.id, RefundClaim(), NOW)

    assert repo.compare_and_update(request.id, RevertClaim(DepositStatus.RELEASED), NOW) is None
    reverted = repo.compare_and_update(request.id, RevertClaim(DepositStatus.REFUNDED), NOW)
    assert reverted.deposit_status == DepositStatus.HELD


def test_confirm_guard_rejects_stale_proposal():
    repo = InMemoryRequestRepository()
    request = _create(repo)
    repo.compare_and_update(request.id, ApproveUpdate(), NOW)
    repo.compare_and_update(request.id, ProposeUpdate(DATE, "Cafe X"), NOW)
    repo.compare_and_update(request.id, ProposeUpdate(DATE, "Bar Y"), NOW)

    stale = ConfirmUpdate(
        as_invitee=True, seen_date_time=DATE, seen_location="Cafe X",
        other_confirmed=False, stamp_confirmed_at=False,
    )
    assert repo.compare_and_update(request.id, stale, NOW) is None


def test_queries():
    repo = InMemoryRequestRepository()
    expired = _create(repo, expires_in_hours=-1)
    fresh = _create(repo)
    declined_held = _create(repo)
    repo.compare_and_update(declined_held.id, HoldUpdate(), NOW)
    repo.compare_and_update(declined_held.id, DeclineUpdate(), NOW)

    assert [r.id for r in repo.query_expired_pending(NOW)] == [expired.id]
    assert [r.id for r in repo.query_declined_held()] == [declined_held.id]
    assert repo.query_confirmed_held() == []
    assert fresh.id not in [r.id for r in repo.query_expired_pending(NOW)]


def test_list_for_user_filters_and_orders():
    repo = InMemoryRequestRepository()
    older = _create(repo, requester="a", invitee="b", now=NOW)
    newer = _create(repo, requester="c", invitee="a", now=NOW + timedelta(hours=1))
    _create(repo, requester="c", invitee="d")

    assert [r.id for r in repo.list_for_user("a")] == [newer.id, older.id]
    assert [r.id for r in repo.list_for_user("a", as_invitee=True)] == [newer.id]
    assert [r.id for r in repo.list_for_user("a", as_requester=True)] == [older.id]
    assert repo.list_for_user("a", status=ApprovalStatus.APPROVED) == []
    assert [r.id for r in repo.list_for_user("a", limit=1, offset=1)] == [older.id]


def test_payments():
    repo = InMemoryRequestRepository()
    request = _create(repo)
    payment = repo.create_payment(request.id, "pi_123", 5000, NOW)

    assert repo.get_payment_for_request(request.id) == payment
    updated = repo.update_payment_status("pi_123", PaymentStatus.SUCCEEDED, NOW)
    assert updated.status == PaymentStatus.SUCCEEDED
    assert repo.update_payment_status("pi_unknown", PaymentStatus.FAILED, NOW) is None
