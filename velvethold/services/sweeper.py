"""
Scheduled sweeps over date requests.

Each sweep is safe to run on overlapping schedules: a record finalized by
an earlier or concurrent run fails the engine's state guard and is counted
as a failure, never processed twice.
"""

import logging
from datetime import datetime
from typing import Callable

from velvethold.exceptions import DateRequestError, PaymentGatewayError
from velvethold.models.date_request import SweepResult
from velvethold.services.lifecycle import LifecycleEngine, utc_now
from velvethold.services.repository import RequestRepository

logger = logging.getLogger(__name__)


class Sweeper:
    """Batch jobs triggered by the scheduler, one record at a time."""

    def __init__(
        self,
        engine: LifecycleEngine,
        repository: RequestRepository,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.engine = engine
        self.repository = repository
        self.clock = clock

    async def run_expiry_sweep(self) -> SweepResult:
        """Decline pending requests past their expiry and refund deposits."""
        expired = self.repository.query_expired_pending(self.clock())
        logger.info(f"Found {len(expired)} expired requests to process")

        result = SweepResult()
        for request in expired:
            try:
                outcome = await self.engine.expire(request.id)
            except DateRequestError as e:
                logger.warning(f"Skipped expired request {request.id}: {e.message}")
                result.failed += 1
                continue
            except Exception:
                logger.exception(f"Failed to decline expired request {request.id}")
                result.failed += 1
                continue

            result.processed += 1
            if outcome.refund is not None:
                result.refunds_processed += 1
            elif outcome.refund_error is not None:
                result.refunds_failed += 1

        logger.info(f"Expiry sweep finished: {result.model_dump()}")
        return result

    async def run_release_sweep(self) -> SweepResult:
        """Release deposits of approved requests both parties confirmed."""
        confirmed = self.repository.query_confirmed_held()
        logger.info(f"Found {len(confirmed)} confirmed requests needing deposit release")

        result = SweepResult()
        for request in confirmed:
            try:
                await self.engine.release_deposit(request.id)
            except PaymentGatewayError as e:
                logger.error(f"Failed to release deposit for request {request.id}: {e.message}")
                result.refunds_failed += 1
                result.failed += 1
                continue
            except DateRequestError as e:
                logger.warning(f"Skipped deposit release for request {request.id}: {e.message}")
                result.failed += 1
                continue
            except Exception:
                logger.exception(f"Unexpected error releasing deposit for request {request.id}")
                result.failed += 1
                continue

            result.processed += 1
            result.refunds_processed += 1

        logger.info(f"Release sweep finished: {result.model_dump()}")
        return result

    async def run_refund_retry_sweep(self) -> SweepResult:
        """Retry refunds for declined requests whose deposit is still held."""
        stuck = self.repository.query_declined_held()
        logger.info(f"Found {len(stuck)} declined requests with unrefunded deposits")

        result = SweepResult()
        for request in stuck:
            try:
                await self.engine.retry_refund(request.id)
            except PaymentGatewayError as e:
                logger.error(f"Refund retry failed for request {request.id}: {e.message}")
                result.refunds_failed += 1
                result.failed += 1
                continue
            except DateRequestError as e:
                logger.warning(f"Skipped refund retry for request {request.id}: {e.message}")
                result.failed += 1
                continue
            except Exception:
                logger.exception(f"Unexpected error retrying refund for request {request.id}")
                result.failed += 1
                continue

            result.processed += 1
            result.refunds_processed += 1

        logger.info(f"Refund retry sweep finished: {result.model_dump()}")
        return result
