import asyncio
import logging
from typing import Callable, Coroutine, List, Optional

from kubecostguard.core.config import parse_interval

logger = logging.getLogger(__name__)


class Scheduler:
    """
    Manages the scheduling and execution of periodic async jobs using asyncio.

    A job never overlaps with itself: the next run starts only after the
    previous one finished or was cancelled by its timeout. Runs are spaced on
    a fixed interval measured from the start of the previous run.
    """

    def __init__(self):
        self.tasks: List[asyncio.Task] = []
        logger.info("Scheduler initialized.")

    async def _run_periodically(
        self, interval_seconds: float, job_func: Callable[[], Coroutine], timeout_seconds: Optional[float]
    ):
        """Internal loop to run a job periodically."""
        loop = asyncio.get_running_loop()
        try:
            while True:
                started = loop.time()
                try:
                    await asyncio.wait_for(job_func(), timeout=timeout_seconds)
                except asyncio.TimeoutError:
                    logger.error(
                        "Scheduled job '%s' exceeded its %ss timeout and was cancelled.",
                        job_func.__name__,
                        timeout_seconds,
                    )
                except Exception as e:
                    logger.error(f"Error in scheduled job '{job_func.__name__}': {e}", exc_info=True)

                elapsed = loop.time() - started
                await asyncio.sleep(max(0.0, interval_seconds - elapsed))
        except asyncio.CancelledError:
            logger.info(f"Job '{job_func.__name__}' cancelled.")
            raise

    def add_job(
        self,
        job_func: Callable[[], Coroutine],
        interval_seconds: float,
        timeout_seconds: Optional[float] = None,
    ) -> asyncio.Task:
        """
        Adds a new async job to the schedule. Must be called from a running event loop.
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive.")
        task = asyncio.create_task(self._run_periodically(interval_seconds, job_func, timeout_seconds))
        self.tasks.append(task)
        logger.info(f"Scheduled job '{job_func.__name__}' to run every {interval_seconds}s.")
        return task

    def add_job_from_string(
        self, job_func: Callable[[], Coroutine], interval_str: str, timeout_seconds: Optional[float] = None
    ) -> asyncio.Task:
        """
        Adds a job based on a Prometheus-style duration string like '5m' or '1h'.
        """
        return self.add_job(job_func, parse_interval(interval_str), timeout_seconds)

    async def wait(self):
        """Blocks until every scheduled job has stopped."""
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)

    async def stop(self):
        """Cancels all scheduled tasks."""
        logger.info("Stopping scheduler...")
        for task in self.tasks:
            task.cancel()
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)
        self.tasks.clear()
