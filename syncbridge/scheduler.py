"""Background scheduler for periodic maintenance"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from syncbridge.config import settings
from syncbridge.services.maintenance import ImageLinkRefresher
from syncbridge.services.store import get_store

logger = logging.getLogger(__name__)

IMAGE_REFRESH_JOB_ID = "refresh_image_links"


class SyncScheduler:
    """Scheduler for periodic jobs that keep synced content healthy"""

    def __init__(self):
        self.scheduler = AsyncIOScheduler()

    def start(self):
        """Start the scheduler (must be called from a running event loop)"""
        self.scheduler.start()
        logger.info("Sync scheduler started")
        self.schedule_image_refresh(settings.image_refresh_interval_minutes)

    def stop(self):
        """Stop the scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Sync scheduler stopped")

    def schedule_image_refresh(self, interval_minutes: int):
        """(Re)schedule the image link refresh. A non-positive interval disables it."""
        if self.scheduler.get_job(IMAGE_REFRESH_JOB_ID) is not None:
            self.scheduler.remove_job(IMAGE_REFRESH_JOB_ID)
        if interval_minutes <= 0:
            logger.info("Image link refresh disabled")
            return

        self.scheduler.add_job(
            func=self._refresh_image_links_job,
            trigger=IntervalTrigger(minutes=interval_minutes),
            id=IMAGE_REFRESH_JOB_ID,
            replace_existing=True,
        )
        logger.info(f"Scheduled image link refresh every {interval_minutes} minutes")

    async def _refresh_image_links_job(self):
        """Job function to refresh Linear image links on GitHub"""
        try:
            logger.info("Running scheduled image link refresh")
            result = await ImageLinkRefresher(get_store()).run()
            logger.info(f"Scheduled image link refresh completed: {result}")
        except Exception as e:
            logger.error(f"Scheduled image link refresh failed: {e}")


# Global scheduler instance
scheduler = SyncScheduler()
