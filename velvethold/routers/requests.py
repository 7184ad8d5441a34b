"""Date requests router."""

from fastapi import APIRouter, Depends, Query
from typing import Optional

from velvethold.dependencies import get_engine
from velvethold.models.date_request import (
    ApprovalStatus, ConfirmationStatus, DateProposal, DateRequest,
    DateRequestCreate, DateRequestList, DateRequestWithExpiry,
)
from velvethold.models.user import CurrentUser
from velvethold.routers.auth import require_auth
from velvethold.services.lifecycle import LifecycleEngine

router = APIRouter(prefix="/requests", tags=["Requests"])


@router.post("", status_code=201)
async def create_request(
    data: DateRequestCreate,
    user: CurrentUser = Depends(require_auth),
    engine: LifecycleEngine = Depends(get_engine)
):
    """Send a date request and start the deposit payment."""
    request = await engine.create_request(
        requester_id=user.id,
        invitee_id=data.invitee_id,
        deposit_amount=data.deposit_amount,
        intro_message=data.intro_message,
        slot_id=data.slot_id,
        screening_answers=data.screening_answers,
    )
    hold = await engine.place_hold(request.id, user.id)

    return {
        "message": "Date request created successfully",
        "request": request,
        "client_secret": hold.client_secret,
    }


@router.get("", response_model=DateRequestList)
async def list_requests(
    status: Optional[ApprovalStatus] = None,
    as_invitee: bool = Query(False, alias="asInvitee"),
    as_requester: bool = Query(False, alias="asRequester"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(require_auth),
    engine: LifecycleEngine = Depends(get_engine)
):
    """List requests involving the current user."""
    requests = engine.list_requests(
        user.id,
        as_invitee=as_invitee,
        as_requester=as_requester,
        status=status,
        limit=limit,
        offset=offset,
    )
    annotated = [
        DateRequestWithExpiry(**r.model_dump(), expired=engine.is_expired(r))
        for r in requests
    ]
    return DateRequestList(requests=annotated, count=len(annotated))


@router.get("/{request_id}", response_model=DateRequest)
async def get_request(
    request_id: str,
    user: CurrentUser = Depends(require_auth),
    engine: LifecycleEngine = Depends(get_engine)
):
    return engine.get_request(request_id, user.id)


@router.post("/{request_id}/approve", response_model=DateRequest)
async def approve_request(
    request_id: str,
    user: CurrentUser = Depends(require_auth),
    engine: LifecycleEngine = Depends(get_engine)
):
    """Approve a request (invitee only). Opens the chat."""
    return await engine.approve(request_id, user.id)


@router.post("/{request_id}/decline", response_model=DateRequest)
async def decline_request(
    request_id: str,
    user: CurrentUser = Depends(require_auth),
    engine: LifecycleEngine = Depends(get_engine)
):
    """Decline a request (invitee only). Refunds the deposit."""
    return await engine.decline(request_id, user.id)


@router.post("/{request_id}/propose-date", response_model=DateRequest)
async def propose_date(
    request_id: str,
    data: DateProposal,
    user: CurrentUser = Depends(require_auth),
    engine: LifecycleEngine = Depends(get_engine)
):
    return await engine.propose_date(
        request_id, user.id, data.date_time, data.location, data.details
    )


@router.post("/{request_id}/confirm-date", response_model=DateRequest)
async def confirm_date(
    request_id: str,
    user: CurrentUser = Depends(require_auth),
    engine: LifecycleEngine = Depends(get_engine)
):
    return await engine.confirm_date(request_id, user.id)


@router.get("/{request_id}/confirmation-status", response_model=ConfirmationStatus)
async def confirmation_status(
    request_id: str,
    user: CurrentUser = Depends(require_auth),
    engine: LifecycleEngine = Depends(get_engine)
):
    return engine.get_confirmation_status(request_id, user.id)
