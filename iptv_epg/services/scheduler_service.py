import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger


logger = logging.getLogger(__name__)

JOB_ID = 'iptv_refresh'


class IPTVScheduler:
    """Scheduler for periodic forced IPTV refreshes"""

    def __init__(
        self,
        refresh_callback: Callable[[], Awaitable[dict]],
        *,
        interval_hours: int = 12,
        cron: str | None = None,
        misfire_grace_sec: int = 3600,
    ):
        self.scheduler: AsyncIOScheduler | None = None
        self._refresh_callback = refresh_callback
        self.interval_hours = interval_hours
        self.cron = cron
        self.misfire_grace_sec = misfire_grace_sec

    async def _refresh_job(self) -> None:
        """Background job that runs a forced refresh"""
        logger.info("Scheduled IPTV refresh triggered")
        try:
            result = await self._refresh_callback()
            if "error" in result:
                logger.error(f"Scheduled refresh failed: {result['error']}")
        except Exception as e:
            logger.error(f"Exception in scheduled refresh: {e}", exc_info=True)

    def _build_trigger(self) -> BaseTrigger:
        if self.cron:
            try:
                return CronTrigger.from_crontab(self.cron, timezone='UTC')
            except (ValueError, KeyError) as exc:
                logger.error("Invalid cron expression '%s': %s", self.cron, exc)
                raise
        return IntervalTrigger(hours=self.interval_hours, timezone='UTC')

    def is_running(self) -> bool:
        return bool(self.scheduler and self.scheduler.running)

    def schedule_iptv_refresh(self) -> None:
        """Arm the periodic refresh job"""
        if self.is_running():
            logger.warning("IPTV refresh already scheduled")
            return

        trigger = self._build_trigger()

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
            "IPTV refresh scheduled. Next refresh: %s",
            next_time.isoformat() if next_time else "unknown"
        )

    def stop_iptv_refresh(self) -> None:
        """Disarm the periodic refresh job"""
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("IPTV refresh scheduler stopped")
        self.scheduler = None

    def get_next_run_time(self) -> datetime | None:
        """Get next scheduled refresh time"""
        if not self.scheduler:
            return None
        job = self.scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None
