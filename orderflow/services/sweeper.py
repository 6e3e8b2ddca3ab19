# orderflow/services/sweeper.py
import asyncio
import contextlib
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from orderflow.models.common import utcnow

logger = logging.getLogger(__name__)

Job = Tuple[str, Callable[[], Awaitable[Any]]]


class SweepWorker:
    """Runs housekeeping jobs every interval until stopped."""

    def __init__(self, jobs: List[Job], interval_seconds: float = 300):
        self.jobs = jobs
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._last_run_at: Optional[datetime] = None
        self._last_results: Dict[str, Any] = {}
        self._last_error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if not self._task:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def run_once(self) -> Dict[str, Any]:
        self._last_run_at = utcnow()
        self._last_error = None
        results: Dict[str, Any] = {}
        for name, job in self.jobs:
            try:
                results[name] = await job()
            except Exception as exc:
                self._last_error = f"{name}: {exc}"
                logger.exception("Sweep job %s failed", name)
        self._last_results = results
        return results

    async def _run(self) -> None:
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "interval_seconds": self.interval_seconds,
            "last_run_at": self._last_run_at,
            "last_results": self._last_results,
            "last_error": self._last_error,
        }
