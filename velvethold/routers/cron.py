"""Scheduler entry points for the periodic sweeps."""

import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from typing import Optional

from velvethold.config import get_settings
from velvethold.dependencies import get_sweeper
from velvethold.services.sweeper import Sweeper

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["Cron"])


async def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Require ``Bearer <cron_secret>`` when a secret is configured."""
    secret = get_settings().cron_secret
    if not secret:
        return
    if not authorization or not hmac.compare_digest(authorization, f"Bearer {secret}"):
        logger.warning("Rejected cron call with bad secret")
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.post("/expire-requests", dependencies=[Depends(verify_cron_secret)])
async def expire_requests(sweeper: Sweeper = Depends(get_sweeper)):
    """Decline expired requests and refund their deposits (hourly)."""
    results = await sweeper.run_expiry_sweep()
    return {
        "success": True,
        "message": f"Processed {results.processed} expired requests",
        "results": results,
    }


@router.post("/release-deposits", dependencies=[Depends(verify_cron_secret)])
async def release_deposits(sweeper: Sweeper = Depends(get_sweeper)):
    """Release deposits of mutually confirmed dates (every 30 minutes)."""
    results = await sweeper.run_release_sweep()
    return {
        "success": True,
        "message": f"Processed {results.processed} confirmed date requests for deposit release",
        "results": results,
    }


@router.post("/retry-refunds", dependencies=[Depends(verify_cron_secret)])
async def retry_refunds(sweeper: Sweeper = Depends(get_sweeper)):
    """Retry refunds left held after a gateway failure."""
    results = await sweeper.run_refund_retry_sweep()
    return {
        "success": True,
        "message": f"Processed {results.processed} pending refunds",
        "results": results,
    }


@router.get("/expire-requests")
async def expire_requests_health():
    return {
        "status": "ok",
        "endpoint": "expire-requests",
        "description": "Automatically declines expired date requests",
    }


@router.get("/release-deposits")
async def release_deposits_health():
    return {
        "status": "ok",
        "endpoint": "release-deposits",
        "description": "Automatically releases deposits when both parties confirm date completion",
    }


@router.get("/retry-refunds")
async def retry_refunds_health():
    return {
        "status": "ok",
        "endpoint": "retry-refunds",
        "description": "Retries refunds for declined requests whose deposit is still held",
    }
