"""APScheduler-based background sweep of expired upload sessions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession

from blobrelay.config import settings
from blobrelay.database import async_session

if TYPE_CHECKING:
    from blobrelay.services.upload_sessions import UploadSessionManager

logger = logging.getLogger(__name__)


class SessionSweeper:
    """Deletes expired sessions out of band. Requests reap lazily regardless."""

    def __init__(
        self,
        sessions: UploadSessionManager,
        interval_minutes: int | None = None,
        session_factory: Callable[[], AsyncSession] = async_session,
    ):
        self._sessions = sessions
        self._interval = (
            interval_minutes if interval_minutes is not None
            else settings.session_sweep_interval_minutes
        )
        self._session_factory = session_factory
        self._scheduler = AsyncIOScheduler(
            job_defaults={"coalesce": True, "max_instances": 1}
        )

    @property
    def enabled(self) -> bool:
        return self._interval > 0

    def start(self) -> None:
        if not self.enabled:
            logger.info("Session sweeper disabled")
            return

        self._scheduler.add_job(
            self.sweep,
            "interval",
            minutes=self._interval,
            id="sweep_sessions",
            name="Delete expired upload sessions",
        )
        self._scheduler.start()
        logger.info("Session sweeper started — every %d min", self._interval)

    async def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Session sweeper stopped")

    async def sweep(self) -> int:
        try:
            async with self._session_factory() as db:
                count = await self._sessions.purge_expired(db)
        except Exception as e:
            logger.error("Session sweep failed: %s", e)
            return 0
        if count:
            logger.info("Swept %d expired session(s)", count)
        return count
