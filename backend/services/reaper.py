import asyncio
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from core.config import settings
from db.database import async_session_maker
from services.reservations import expire_stale_holds

logger = logging.getLogger(__name__)


class HoldReaper:
    """Expires stale cart holds on a fixed interval; ticks never overlap."""

    job_id = "expire-stale-holds"

    def __init__(self, interval_seconds: int) -> None:
        self.interval_seconds = int(interval_seconds)
        self._lock = asyncio.Lock()
        self._scheduler: Optional[AsyncIOScheduler] = None

    async def tick(self) -> Optional[int]:
        """One sweep. Returns holds removed, or None when skipped or failed."""
        if self._lock.locked():
            logger.debug("Previous hold sweep still running, skipping this tick")
            return None
        async with self._lock:
            try:
                async with async_session_maker() as db:
                    removed = await expire_stale_holds(db)
            except Exception:
                logger.exception("Hold sweep failed; retrying on next tick")
                return None
        if removed:
            logger.info("Expired %d stale reservation(s)", removed)
        return removed

    def start(self) -> None:
        if self._scheduler is not None:
            return
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.tick,
            "interval",
            seconds=self.interval_seconds,
            id=self.job_id,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info("Hold reaper started (every %ss)", self.interval_seconds)

    def shutdown(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None


reaper = HoldReaper(settings.reaper_interval_seconds)
