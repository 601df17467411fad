"""APScheduler trigger for the hourly voting-deadline sweep."""

from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from registry.utils import log

from .deadlines import DeadlineScheduler, DeadlineSweepResult

logger = log.get_logger(__name__)

JOB_ID = "voting_deadline_sweep"


class DeadlineJob:
    def __init__(self, deadlines: DeadlineScheduler, interval_minutes: int = 60):
        self.deadlines = deadlines
        self.interval_minutes = interval_minutes
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    async def run_once(self) -> Optional[DeadlineSweepResult]:
        logger.info("Voting deadline sweep starting...")
        try:
            return await self.deadlines.process_expired_deadlines()
        except Exception as e:
            logger.error(f"Voting deadline sweep failed: {e}", exc_info=True)
            return None

    def start(self) -> AsyncIOScheduler:
        """Must be called from a running event loop."""
        if self.running:
            return self._scheduler
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=JOB_ID,
            name="Voting Deadline Sweep",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(f"APScheduler started with voting deadline sweep (every {self.interval_minutes} min)")
        return self._scheduler

    async def trigger_now(self) -> Optional[DeadlineSweepResult]:
        return await self.run_once()

    def shutdown(self) -> None:
        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("APScheduler shut down")
