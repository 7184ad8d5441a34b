"""Deposits router."""

from fastapi import APIRouter, Depends

from velvethold.config import get_settings
from velvethold.dependencies import get_engine
from velvethold.models.date_request import DepositReleaseRequest
from velvethold.models.user import CurrentUser
from velvethold.routers.auth import require_auth
from velvethold.services.forfeiture import (
    CancellationPolicy, get_forfeiture_policies, get_policy_template, parse_policy_type,
)
from velvethold.services.lifecycle import LifecycleEngine

router = APIRouter(prefix="/deposits", tags=["Deposits"])


@router.post("/release")
async def release_deposit(
    data: DepositReleaseRequest,
    user: CurrentUser = Depends(require_auth),
    engine: LifecycleEngine = Depends(get_engine)
):
    """Manually release a deposit after both parties confirmed the date."""
    result = await engine.release_deposit(data.request_id, user.id)
    return {
        "message": "Deposit released successfully",
        "refund_id": result.refund_id,
        "amount": result.amount,
        "status": result.status,
    }


@router.get("/policies")
async def list_policies():
    """Cancellation policy tiers invitees can pick from, flagging the default."""
    default = parse_policy_type(get_settings().default_cancellation_policy)
    return [
        {
            "policy": policy.value,
            "default": policy == default,
            **get_policy_template(policy),
            "tiers": [
                {
                    "hours_before_date": tier.hours_before_date,
                    "refund_percentage": tier.refund_percentage,
                    "description": tier.description,
                }
                for tier in get_forfeiture_policies(policy)
            ],
        }
        for policy in CancellationPolicy
    ]
