"""In-process background jobs (deferred webhook work).

Jobs run as asyncio tasks on the server's event loop, outside the request that
scheduled them. A failing job is logged and alerted at this boundary and never
affects sibling jobs or the process.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from voicedesk.db.enums import AlertSeverity
from voicedesk.services.alert_service import AlertingService
from voicedesk.utils.pii_mask import mask_text

logger = logging.getLogger(__name__)

JobFactory = Callable[[], Awaitable[Any]]


class BackgroundJobRunner:
    def __init__(self, alerts: AlertingService | None = None):
        self.alerts = alerts
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, name: str, job: JobFactory, context: dict[str, Any] | None = None) -> asyncio.Task:
        """Start `job()` on the running loop and return immediately."""
        task = asyncio.get_running_loop().create_task(self._run(name, job, context or {}))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, name: str, job: JobFactory, context: dict[str, Any]) -> Any:
        try:
            result = await job()
        except Exception as exc:
            logger.exception("Background job %s failed", name, extra=context)
            if self.alerts is not None:
                await self.alerts.notify(
                    AlertSeverity.ERROR,
                    "Background job failed",
                    f"{name}: {type(exc).__name__}: {mask_text(str(exc))}",
                    context,
                )
            return None
        logger.info("Background job %s completed", name, extra=context)
        return result

    async def drain(self) -> None:
        """Wait for every submitted job (shutdown, tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
