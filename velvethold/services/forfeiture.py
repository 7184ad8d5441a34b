"""
Deposit forfeiture policies.

Computes how much of a deposit is returned when a date is cancelled,
based on how long before the date the cancellation happens.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, List


class CancellationPolicy(str, Enum):
    """Cancellation policy tiers an invitee can choose."""
    FLEXIBLE = "flexible"
    MODERATE = "moderate"
    STRICT = "strict"


@dataclass(frozen=True)
class ForfeitureTier:
    policy: CancellationPolicy
    hours_before_date: float
    refund_percentage: int
    description: str


@dataclass(frozen=True)
class RefundBreakdown:
    refund_amount: int
    forfeiture_amount: int
    refund_percentage: int
    reason: str


# Tiers are listed in descending order of hours_before_date.
# The -1 tier covers cancellations after the scheduled time (no-shows).
FORFEITURE_POLICIES: Dict[CancellationPolicy, List[ForfeitureTier]] = {
    CancellationPolicy.FLEXIBLE: [
        ForfeitureTier(CancellationPolicy.FLEXIBLE, 24, 100,
                       "Full refund if cancelled 24+ hours before date"),
        ForfeitureTier(CancellationPolicy.FLEXIBLE, 0, 50,
                       "50% refund if cancelled within 24 hours"),
        ForfeitureTier(CancellationPolicy.FLEXIBLE, -1, 0,
                       "No refund for no-shows"),
    ],
    CancellationPolicy.MODERATE: [
        ForfeitureTier(CancellationPolicy.MODERATE, 48, 100,
                       "Full refund if cancelled 48+ hours before date"),
        ForfeitureTier(CancellationPolicy.MODERATE, 0, 0,
                       "No refund if cancelled within 48 hours"),
        ForfeitureTier(CancellationPolicy.MODERATE, -1, 0,
                       "No refund for no-shows"),
    ],
    CancellationPolicy.STRICT: [
        ForfeitureTier(CancellationPolicy.STRICT, 72, 100,
                       "Full refund if cancelled 72+ hours before date"),
        ForfeitureTier(CancellationPolicy.STRICT, 48, 50,
                       "50% refund if cancelled 48-72 hours before date"),
        ForfeitureTier(CancellationPolicy.STRICT, 0, 0,
                       "No refund if cancelled within 48 hours"),
        ForfeitureTier(CancellationPolicy.STRICT, -1, 0,
                       "No refund for no-shows"),
    ],
}

POLICY_TEMPLATES: Dict[CancellationPolicy, dict] = {
    CancellationPolicy.FLEXIBLE: {
        "name": "Flexible",
        "description": "User-friendly policy allowing last-minute cancellations with reduced penalties",
        "rules": [
            "Full refund if cancelled 24+ hours before",
            "50% refund if cancelled within 24 hours",
            "No refund for no-shows",
        ],
    },
    CancellationPolicy.MODERATE: {
        "name": "Moderate",
        "description": "Balanced policy encouraging commitment while allowing reasonable cancellations",
        "rules": [
            "Full refund if cancelled 48+ hours before",
            "No refund if cancelled within 48 hours",
            "No refund for no-shows",
        ],
    },
    CancellationPolicy.STRICT: {
        "name": "Strict",
        "description": "High commitment policy to ensure reliable date attendance",
        "rules": [
            "Full refund if cancelled 72+ hours before",
            "50% refund if cancelled 48-72 hours before",
            "No refund if cancelled within 48 hours",
            "No refund for no-shows",
        ],
    },
}


def get_forfeiture_policies(
    policy: CancellationPolicy = CancellationPolicy.MODERATE
) -> List[ForfeitureTier]:
    """Tier table for a policy, moderate when the policy is unknown."""
    return FORFEITURE_POLICIES.get(policy, FORFEITURE_POLICIES[CancellationPolicy.MODERATE])


def calculate_refund(
    deposit_amount: int,
    scheduled_date_time: datetime,
    cancellation_time: datetime,
    policy: CancellationPolicy = CancellationPolicy.MODERATE
) -> RefundBreakdown:
    """
    Split a deposit into refund and forfeiture for a cancellation.

    The first tier whose threshold the remaining hours meet wins; anything
    that matches no tier falls to the last one (no refund).
    """
    tiers = get_forfeiture_policies(policy)
    hours_until_date = (scheduled_date_time - cancellation_time).total_seconds() / 3600

    applicable = tiers[-1]
    for tier in tiers:
        if hours_until_date >= tier.hours_before_date:
            applicable = tier
            break

    # Half-up rounding on minor units
    refund_amount = int(math.floor(deposit_amount * applicable.refund_percentage / 100 + 0.5))

    return RefundBreakdown(
        refund_amount=refund_amount,
        forfeiture_amount=deposit_amount - refund_amount,
        refund_percentage=applicable.refund_percentage,
        reason=applicable.description,
    )


def parse_policy_type(policy_text: str) -> CancellationPolicy:
    """Map free-form policy text to a tier."""
    lowered = policy_text.lower()

    if "72" in lowered or "strict" in lowered:
        return CancellationPolicy.STRICT

    if "24" in lowered or "flexible" in lowered:
        return CancellationPolicy.FLEXIBLE

    return CancellationPolicy.MODERATE


def get_policy_template(policy: CancellationPolicy) -> dict:
    return POLICY_TEMPLATES.get(policy, POLICY_TEMPLATES[CancellationPolicy.MODERATE])
