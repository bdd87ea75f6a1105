"""
APScheduler Configuration for the Expiry Sweep

Optional interval job that bulk-marks overdue pending QR payments as
expired. Off by default: expiry is otherwise applied lazily on status
reads and confirmations.
"""
import logging
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.executors.asyncio import AsyncIOExecutor

from ..config import settings

logger = logging.getLogger(__name__)

EXPIRY_SWEEP_JOB_ID = "qr_payments_expiry_sweep"


async def run_expiry_sweep() -> int:
    """Open a session and expire every overdue pending payment."""
    from ..db.init_db import AsyncSessionLocal
    from .qr_payment_service import expire_overdue_payments

    async with AsyncSessionLocal() as session:
        return await expire_overdue_payments(session)


class ExpirySweepScheduler:
    """
    Singleton scheduler for the expiry sweep.

    Jobs live in memory; the sweep is re-registered on every startup.
    The underlying AsyncIOScheduler is built on first start so it binds
    to the running loop.
    """

    _instance: Optional["ExpirySweepScheduler"] = None
    _scheduler: Optional[AsyncIOScheduler] = None

    def __new__(cls):
        """Singleton pattern to ensure only one scheduler instance."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def _initialize_scheduler(self):
        """
        Configuration:
        - AsyncIOScheduler for async job execution
        - Coalesce: True (skip missed runs)
        - Max instances: 1 (sweeps never overlap)
        """
        self._scheduler = AsyncIOScheduler(
            executors={'default': AsyncIOExecutor()},
            job_defaults={
                'coalesce': True,
                'max_instances': 1,
                'misfire_grace_time': 30
            },
            timezone='UTC'
        )
        logger.info("APScheduler initialized for expiry sweep")

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self, interval_seconds: int):
        """
        Register the sweep job and start the scheduler.

        Must be called from inside the running event loop.
        """
        if self._scheduler is None:
            self._initialize_scheduler()

        self._scheduler.add_job(
            run_expiry_sweep,
            trigger=IntervalTrigger(seconds=interval_seconds),
            id=EXPIRY_SWEEP_JOB_ID,
            name="Expire overdue QR payments",
            replace_existing=True
        )
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info(f"Expiry sweep scheduled every {interval_seconds}s")

    def shutdown(self, wait: bool = True):
        """Shutdown the scheduler gracefully."""
        if self._scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            self._scheduler = None
            logger.info(f"Scheduler shutdown (wait={wait})")

    def get_job(self, job_id: str = EXPIRY_SWEEP_JOB_ID):
        if self._scheduler is None:
            return None
        return self._scheduler.get_job(job_id)


# Singleton instance - import this in other modules
scheduler = ExpirySweepScheduler()


# ============================================================================
# Scheduler Lifecycle Functions (for FastAPI integration)
# ============================================================================

def start_scheduler() -> bool:
    """
    Start the expiry sweep if enabled in settings.

    Returns:
        True if the sweep was scheduled
    """
    if not settings.expiry_sweep_enabled:
        logger.info("Expiry sweep disabled; expiry stays lazy")
        return False
    scheduler.start(settings.expiry_sweep_interval_seconds)
    return True


def shutdown_scheduler(wait: bool = True):
    """Shutdown the scheduler during app shutdown."""
    scheduler.shutdown(wait=wait)
