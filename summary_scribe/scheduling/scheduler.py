"""
Periodic retry sweep for failed deliveries, run on APScheduler.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.constants import DEFAULT_RETRY_SWEEP_INTERVAL_MINUTES
from ..exceptions import ConfigurationError, ScribeException, create_error_context
from ..services.delivery import DeliveryService, SweepResult

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "delivery_retry_sweep"


class RetrySweepScheduler:
    """Runs ``DeliveryService.retry_sweep`` on a fixed interval."""

    def __init__(self,
                 delivery_service: DeliveryService,
                 interval_minutes: int = DEFAULT_RETRY_SWEEP_INTERVAL_MINUTES,
                 timezone: str = "UTC"):
        """Initialize sweep scheduler.

        Args:
            delivery_service: Service whose sweep is scheduled
            interval_minutes: Minutes between sweeps
            timezone: Timezone for the scheduler
        """
        if interval_minutes < 1:
            raise ConfigurationError(
                message=f"Sweep interval must be at least 1 minute, got {interval_minutes}",
                error_code="INVALID_SWEEP_INTERVAL",
                context=create_error_context(interval_minutes=interval_minutes),
            )

        self.delivery_service = delivery_service
        self.interval_minutes = interval_minutes
        self.scheduler = AsyncIOScheduler(timezone=timezone)
        self.last_result: Optional[SweepResult] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the scheduler and register the sweep job."""
        if self._running:
            logger.warning("Retry sweep scheduler already running")
            return

        try:
            self.scheduler.add_job(
                self.run_sweep,
                trigger=IntervalTrigger(minutes=self.interval_minutes),
                id=SWEEP_JOB_ID,
                name="Delivery retry sweep",
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
            self.scheduler.start()
        except Exception as e:
            logger.error(f"Failed to start retry sweep scheduler: {e}")
            raise ConfigurationError(
                message=f"Failed to start scheduler: {str(e)}",
                error_code="SCHEDULER_START_FAILED",
                context=create_error_context(operation="scheduler_start"),
                cause=e,
            )

        self._running = True
        logger.info(f"Retry sweep scheduled every {self.interval_minutes} minutes")

    async def stop(self, wait: bool = True) -> None:
        """Stop the scheduler.

        Args:
            wait: Wait for a running sweep to complete
        """
        if not self._running:
            return

        self.scheduler.shutdown(wait=wait)
        self._running = False
        logger.info("Retry sweep scheduler stopped")

    async def run_sweep(self) -> Optional[SweepResult]:
        """Run one sweep. Failures are logged and the next interval tries again."""
        try:
            self.last_result = await self.delivery_service.retry_sweep()
        except ScribeException as e:
            logger.error(f"Retry sweep failed: {e.to_log_string()}")
            return None
        return self.last_result
