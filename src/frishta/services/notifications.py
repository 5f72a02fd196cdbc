"""Fire-and-forget delivery of notifications after a response is sent."""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from frishta.config import settings

logger = logging.getLogger(__name__)


class Notifier:
    """Runs notification coroutines as detached tasks.

    ``schedule`` returns immediately. Outcomes are only observable through the
    log: a raised exception, a timeout, or a ``False`` result is reported as a
    failure and never reaches the caller that scheduled the work.
    """

    def __init__(self, timeout: float = 30.0) -> None:
        self.timeout = timeout
        self._tasks: set[asyncio.Task[None]] = set()

    def schedule(self, name: str, coro: Coroutine[Any, Any, bool | None]) -> asyncio.Task[None]:
        """Start ``coro`` in the background under a descriptive ``name``."""
        task = asyncio.get_running_loop().create_task(self._run(name, coro), name=name)
        # Keep a strong reference until the task finishes
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def _run(self, name: str, coro: Coroutine[Any, Any, bool | None]) -> None:
        try:
            async with asyncio.timeout(self.timeout):
                result = await coro
        except TimeoutError:
            logger.error(f"{name} timed out after {self.timeout:.0f}s")
        except Exception as e:
            logger.error(f"{name} failed: {e!r}", exc_info=True)
        else:
            if result is False:
                logger.error(f"{name} failed")
            else:
                logger.info(f"{name} sent")

    async def drain(self) -> None:
        """Wait for all scheduled notifications to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


# Global notifier instance
notifier = Notifier(timeout=settings.email_timeout_seconds)
