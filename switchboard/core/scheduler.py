"""Named, cancellable delayed tasks owned by a single entity."""

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class TaskScheduler:
    """Delayed callbacks keyed by name.

    Scheduling under a name that is already pending replaces the earlier
    task. An entry is removed before its callback runs, so a callback may
    safely cancel every other timer of its owner.
    """

    def __init__(self, owner: str) -> None:
        self.owner = owner
        self._tasks: dict[str, asyncio.Task] = {}

    def schedule(
        self,
        name: str,
        delay: float,
        callback: Callable[[], Awaitable[None]],
    ) -> None:
        """Run ``callback`` after ``delay`` seconds unless cancelled first.

        Args:
            name: Timer name, unique within this scheduler
            delay: Delay in seconds (negative values run immediately)
            callback: Zero-argument coroutine function
        """
        self.cancel(name)
        task = asyncio.create_task(
            self._run(name, max(0.0, delay), callback),
            name=f"{self.owner}:{name}",
        )
        self._tasks[name] = task

    async def _run(
        self,
        name: str,
        delay: float,
        callback: Callable[[], Awaitable[None]],
    ) -> None:
        await asyncio.sleep(delay)
        current = asyncio.current_task()
        if self._tasks.get(name) is current:
            del self._tasks[name]
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Timer {name} of {self.owner} failed")

    def cancel(self, name: str) -> bool:
        """Cancel a pending timer.

        Returns:
            True if a pending timer was cancelled
        """
        task = self._tasks.pop(name, None)
        if task is None:
            return False
        task.cancel()
        return True

    def cancel_all(self) -> None:
        """Cancel every pending timer (entity teardown)."""
        for name in list(self._tasks):
            self.cancel(name)

    def is_scheduled(self, name: str) -> bool:
        return name in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)
