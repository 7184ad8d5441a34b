"""
Transition descriptors for conditional updates.

Each descriptor names the fields it expects to find (``guard``) and the
fields it writes (``changes``). Repositories apply the changes only when
every guard field still holds, in one atomic step.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from velvethold.models.date_request import ApprovalStatus, DepositStatus


@dataclass(frozen=True)
class ApproveUpdate:
    def guard(self) -> Dict[str, Any]:
        return {"approval_status": ApprovalStatus.PENDING}

    def changes(self, now: datetime) -> Dict[str, Any]:
        return {"approval_status": ApprovalStatus.APPROVED}


@dataclass(frozen=True)
class DeclineUpdate:
    def guard(self) -> Dict[str, Any]:
        return {"approval_status": ApprovalStatus.PENDING}

    def changes(self, now: datetime) -> Dict[str, Any]:
        return {"approval_status": ApprovalStatus.DECLINED}


@dataclass(frozen=True)
class ProposeUpdate:
    """New date details; always clears both confirmations."""
    date_time: datetime
    location: str
    details: Optional[str] = None

    def guard(self) -> Dict[str, Any]:
        return {"approval_status": ApprovalStatus.APPROVED}

    def changes(self, now: datetime) -> Dict[str, Any]:
        return {
            "confirmed_date_time": self.date_time,
            "confirmed_location": self.location,
            "confirmed_details": self.details,
            "invitee_confirmed": False,
            "requester_confirmed": False,
        }


@dataclass(frozen=True)
class ConfirmUpdate:
    """
    One party confirms the proposal they last saw.

    The guard pins the proposal and the other party's flag as read, so a
    re-proposal or a concurrent confirmation forces a fresh read.
    """
    as_invitee: bool
    seen_date_time: datetime
    seen_location: str
    other_confirmed: bool
    stamp_confirmed_at: bool

    @property
    def own_flag(self) -> str:
        return "invitee_confirmed" if self.as_invitee else "requester_confirmed"

    @property
    def other_flag(self) -> str:
        return "requester_confirmed" if self.as_invitee else "invitee_confirmed"

    def guard(self) -> Dict[str, Any]:
        guard = {
            "approval_status": ApprovalStatus.APPROVED,
            "confirmed_date_time": self.seen_date_time,
            "confirmed_location": self.seen_location,
            self.other_flag: self.other_confirmed,
        }
        if self.stamp_confirmed_at:
            guard["date_confirmed_at"] = None
        return guard

    def changes(self, now: datetime) -> Dict[str, Any]:
        changes: Dict[str, Any] = {self.own_flag: True}
        if self.stamp_confirmed_at:
            changes["date_confirmed_at"] = now
        return changes


@dataclass(frozen=True)
class HoldUpdate:
    """Payment succeeded; funds are now held."""

    def guard(self) -> Dict[str, Any]:
        return {"deposit_status": DepositStatus.PENDING}

    def changes(self, now: datetime) -> Dict[str, Any]:
        return {"deposit_status": DepositStatus.HELD}


@dataclass(frozen=True)
class RefundClaim:
    """Claims a held deposit of a declined request for refund."""

    def guard(self) -> Dict[str, Any]:
        return {
            "approval_status": ApprovalStatus.DECLINED,
            "deposit_status": DepositStatus.HELD,
        }

    def changes(self, now: datetime) -> Dict[str, Any]:
        return {"deposit_status": DepositStatus.REFUNDED}


@dataclass(frozen=True)
class ReleaseClaim:
    """Claims a held deposit of a mutually confirmed date for release."""

    def guard(self) -> Dict[str, Any]:
        return {
            "approval_status": ApprovalStatus.APPROVED,
            "deposit_status": DepositStatus.HELD,
            "invitee_confirmed": True,
            "requester_confirmed": True,
        }

    def changes(self, now: datetime) -> Dict[str, Any]:
        return {"deposit_status": DepositStatus.RELEASED}


@dataclass(frozen=True)
class RevertClaim:
    """Hands a claimed deposit back to ``held`` after a gateway failure."""
    claimed: DepositStatus

    def guard(self) -> Dict[str, Any]:
        return {"deposit_status": self.claimed}

    def changes(self, now: datetime) -> Dict[str, Any]:
        return {"deposit_status": DepositStatus.HELD}
