"""APScheduler-based periodic sweep of idle sessions."""

from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from codex_bridge.config import SessionConfig
from codex_bridge.core.sessions import SessionRegistry
from codex_bridge.log import get_logger
from codex_bridge.services.base import Service

logger = get_logger(__name__)

SWEEP_JOB_ID = "session_sweep"


class SessionSweeper(Service):
    """Runs :meth:`SessionRegistry.sweep` on a fixed interval.

    The sweep itself takes the registry's locks, so it can run while requests
    are in flight.
    """

    def __init__(self, sessions: SessionRegistry, config: SessionConfig):
        self._sessions = sessions
        self._interval = config.sweep_interval_seconds
        self._scheduler = AsyncIOScheduler()

    @property
    def service_name(self) -> str:
        return "session_sweeper"

    @property
    def running(self) -> bool:
        return self._scheduler.running

    async def start(self) -> None:
        if self._scheduler.running:
            return
        self._scheduler.add_job(
            self.run_once,
            IntervalTrigger(seconds=self._interval),
            id=SWEEP_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info("session_sweeper_started", interval_seconds=self._interval)

    async def stop(self) -> None:
        if not self._scheduler.running:
            return
        self._scheduler.shutdown(wait=False)
        logger.info("session_sweeper_stopped")

    async def run_once(self) -> int:
        try:
            return self._sessions.sweep()
        except Exception as e:
            logger.error("session_sweep_error", error=str(e))
            return 0
