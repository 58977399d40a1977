import asyncio
import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from tvguide.exceptions import FeedError
from tvguide.services.feed_fetcher import FeedFetcher
from tvguide.services.fetch_types import UpdateResult


logger = logging.getLogger(__name__)

JOB_ID = "guide_refresh"


class GuideScheduler:
    """Scheduler for automatic guide refreshes"""

    def __init__(
        self,
        fetcher: FeedFetcher,
        *,
        cron: str = "0 3 * * *",
        misfire_grace_sec: int = 3600,
        shutdown_grace_sec: float = 10.0,
    ):
        self.fetcher = fetcher
        self.cron = cron
        self.misfire_grace_sec = misfire_grace_sec
        self.shutdown_grace_sec = shutdown_grace_sec
        self.scheduler: AsyncIOScheduler | None = None
        self._current_run: asyncio.Task | None = None
        self._stopping = False

    async def _refresh_job(self) -> None:
        """Background job; failures are logged and the next run stays scheduled"""
        logger.info("Scheduled guide refresh triggered")
        try:
            await self.run_now()
        except asyncio.CancelledError:
            if not self._stopping:
                logger.warning("Scheduled guide refresh cancelled")
                raise
            logger.warning("Scheduled guide refresh cancelled by shutdown")
        except FeedError as e:
            logger.error(f"Scheduled refresh failed: {e}")
        except Exception as e:
            logger.error(f"Exception in scheduled refresh: {e}", exc_info=True)

    async def run_now(self) -> UpdateResult:
        """Run an update as a tracked task so shutdown can cancel it"""
        if self.fetcher.is_updating():
            return await self.fetcher.update()

        task = asyncio.create_task(self.fetcher.update())
        self._current_run = task
        try:
            return await task
        finally:
            if self._current_run is task:
                self._current_run = None

    def start(self) -> None:
        """Start the scheduler with the refresh job"""
        if self.scheduler and self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        try:
            trigger = CronTrigger.from_crontab(self.cron, timezone="UTC")
        except (ValueError, KeyError) as exc:
            logger.error("Invalid cron expression '%s': %s", self.cron, exc)
            raise

        self._stopping = False
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.scheduler.add_job(
            self._refresh_job,
            trigger=trigger,
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.misfire_grace_sec,
        )

        self.scheduler.start()
        next_time = self.get_next_run_time()
        logger.info(
            "Scheduler started. Next refresh: %s",
            next_time.isoformat() if next_time else "unknown"
        )

    async def shutdown(self) -> None:
        """Stop scheduling and cancel an in-flight refresh, waiting at most the grace period"""
        self._stopping = True
        task = self._current_run
        if task is not None and not task.done():
            logger.info("Cancelling in-flight guide refresh")
            task.cancel()
            done, _ = await asyncio.wait({task}, timeout=self.shutdown_grace_sec)
            if not done:
                logger.warning(
                    "Guide refresh did not stop within %.1fs grace period",
                    self.shutdown_grace_sec,
                )

        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        self.scheduler = None

    @property
    def running(self) -> bool:
        return bool(self.scheduler and self.scheduler.running)

    def get_next_run_time(self) -> datetime | None:
        """Get next scheduled refresh time"""
        if not self.scheduler:
            return None
        job = self.scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None
