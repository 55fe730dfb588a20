"""Coalesces bursts of field edits into a single session save."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class DebouncedSaver:
    """
    Runs `save` once `delay` seconds after the last `schedule()` call.

    `flush()` saves immediately and drops the pending timer. `cancel()`
    drops the timer without saving.
    """

    def __init__(self, save: Callable[[], Awaitable[None]], delay: float):
        self._save = save
        self._delay = delay
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self) -> None:
        self.cancel()
        self._task = asyncio.create_task(self._save_later())

    async def flush(self) -> None:
        self.cancel()
        await self._save()

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _save_later(self) -> None:
        await asyncio.sleep(self._delay)
        # Detach first so a flush during the save does not cancel it
        self._task = None
        try:
            await self._save()
        except Exception:
            logger.exception("Debounced save failed")
