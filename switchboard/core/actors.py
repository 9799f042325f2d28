"""Per-entity actors: serialized execution of work keyed by entity ID.

Every call and every conversation gets its own mailbox. Jobs submitted for the
same key run one at a time in submission order; jobs for different keys run
concurrently. A mailbox's worker task exits as soon as its queue is empty, so
idle entities hold no resources.

A job must never submit to, and await, its own key: that would wait on
itself.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Job = Callable[[], Awaitable[T]]


class ActorRegistry:
    """Mailboxes keyed by entity ID."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._mailboxes: dict[str, asyncio.Queue] = {}
        self._workers: dict[str, asyncio.Task] = {}
        self._closed = False

    async def submit(self, key: str, job: Job) -> T:
        """Run ``job`` in the actor for ``key`` and return its result.

        If the submitting task is cancelled before the job starts, the job is
        skipped.

        Args:
            key: Entity ID (call ID, conversation ID)
            job: Zero-argument coroutine function

        Returns:
            Whatever the job returns; exceptions raised by the job propagate
        """
        if self._closed:
            raise RuntimeError(f"Actor registry {self.name} is closed")

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        queue = self._mailboxes.get(key)
        if queue is None:
            queue = asyncio.Queue()
            self._mailboxes[key] = queue
            self._workers[key] = asyncio.create_task(
                self._drain(key, queue), name=f"{self.name}:{key}"
            )
        queue.put_nowait((job, future))
        return await future

    async def _drain(self, key: str, queue: asyncio.Queue) -> None:
        future: asyncio.Future | None = None
        try:
            while not queue.empty():
                job, future = queue.get_nowait()
                if future.done():
                    # Submitter gave up before the job started
                    continue
                try:
                    result = await job()
                except Exception as exc:
                    if not future.done():
                        future.set_exception(exc)
                else:
                    if not future.done():
                        future.set_result(result)
        finally:
            # Worker cancelled mid-job: release the waiting submitter
            if future is not None and not future.done():
                future.cancel()
            if self._mailboxes.get(key) is queue:
                del self._mailboxes[key]
                del self._workers[key]
            while not queue.empty():
                _, future = queue.get_nowait()
                if not future.done():
                    future.cancel()

    def is_busy(self, key: str) -> bool:
        return key in self._mailboxes

    async def close(self) -> None:
        """Cancel all workers and any jobs still queued."""
        self._closed = True
        workers = list(self._workers.values())
        for worker in workers:
            worker.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)
