"""
Agents Background Scheduling
============================

APScheduler wrapper that periodically runs the agent pipeline over tickets
still waiting for analysis.
"""

from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from deskpilot.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class PipelineScheduler:
    """
    Wrapper for APScheduler for scheduled pipeline runs.

    Manages the lifecycle of the scheduler and its single job.
    """

    JOB_ID = "agent_pipeline_batch"

    def __init__(self, interval_minutes: int):
        self.interval_minutes = interval_minutes
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[None]]) -> None:
        """Start the scheduler with the given job function."""
        if self._running:
            logger.warning("Pipeline scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            job_func,
            "interval",
            minutes=self.interval_minutes,
            id=self.JOB_ID,
            name="Agent Pipeline Batch",
            misfire_grace_time=60,
            max_instances=1,
            replace_existing=True
        )
        self._scheduler.start()
        self._running = True

        logger.info(
            "Pipeline scheduler started",
            extra={"interval_minutes": self.interval_minutes}
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("Pipeline scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running
