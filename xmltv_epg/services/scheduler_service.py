import logging
from datetime import datetime
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from xmltv_epg.exceptions import EPGServiceError
from xmltv_epg.services.guide_service import GuideService


logger = logging.getLogger(__name__)

JOB_ID = "guide_refresh"


class GuideScheduler:
    """Scheduler for periodic guide refreshes"""

    def __init__(self, guide_service: GuideService, cron: str, misfire_grace_sec: int):
        self.guide_service = guide_service
        self.cron = cron
        self.misfire_grace_sec = misfire_grace_sec
        self.scheduler: AsyncIOScheduler | None = None

    async def _refresh_job(self) -> None:
        """Background job that rebuilds the guide"""
        logger.info("Scheduled guide refresh triggered")
        try:
            result = await self.guide_service.refresh()
            logger.info(
                "Scheduled refresh completed: %s channels, %s listings",
                result.channels,
                result.listings,
            )
        except EPGServiceError as e:
            logger.error(f"Scheduled refresh failed: {e}")
        except Exception as e:
            logger.error(f"Exception in scheduled refresh: {e}", exc_info=True)

    def start(self) -> None:
        """Start the scheduler with the refresh job"""
        if self.scheduler and self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        try:
            trigger = CronTrigger.from_crontab(self.cron)
        except (ValueError, KeyError) as exc:
            logger.error("Invalid cron expression '%s': %s", self.cron, exc)
            raise

        self.scheduler = AsyncIOScheduler(timezone='UTC')
        self.scheduler.add_job(
            self._refresh_job,
            trigger=trigger,
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.misfire_grace_sec
        )

        self.scheduler.start()
        next_time = self.get_next_run_time()
        logger.info(
            "Scheduler started. Next refresh: %s",
            next_time.isoformat() if next_time else "unknown"
        )

    def shutdown(self) -> None:
        """Shutdown the scheduler"""
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
