import asyncio
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Tuple

from bridge.errors import QueueClosedError
from bridge.logging_config import get_logger

logger = get_logger("queue_service")

Task = Callable[[], Awaitable[Any]]
_Job = Tuple[Task, asyncio.Future]


class ConversationQueue:
    """Serializes tasks per conversation key.

    Each key with pending work owns a deque drained by exactly one worker task,
    so tasks for a key run one at a time in submission order while different keys
    run concurrently. A failing task only fails its own future. The deque and the
    worker are dropped as soon as the key has nothing left to run.
    """

    def __init__(self):
        self._jobs: Dict[str, Deque[_Job]] = {}
        self._workers: Dict[str, asyncio.Task] = {}
        self._pending: Dict[str, int] = {}
        self._closed = False

    def is_busy(self, conversation_key: str) -> bool:
        """Whether the key has enqueued work that has not settled yet. Advisory only."""
        return self._pending.get(conversation_key, 0) > 0

    def pending_count(self, conversation_key: str) -> int:
        return self._pending.get(conversation_key, 0)

    def active_keys(self) -> list[str]:
        return list(self._workers)

    @property
    def closed(self) -> bool:
        return self._closed

    def enqueue(self, conversation_key: str, task: Task) -> asyncio.Future:
        """Append ``task`` to the key's chain. The returned future settles with the task's outcome."""
        if self._closed:
            raise QueueClosedError("Conversation queue is closed")

        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        self._jobs.setdefault(conversation_key, deque()).append((task, future))
        self._pending[conversation_key] = self._pending.get(conversation_key, 0) + 1

        if conversation_key not in self._workers:
            self._workers[conversation_key] = loop.create_task(self._drain_key(conversation_key))

        return future

    async def _drain_key(self, conversation_key: str) -> None:
        jobs = self._jobs[conversation_key]
        try:
            while jobs:
                task, future = jobs.popleft()
                try:
                    result = await task()
                except asyncio.CancelledError:
                    if not future.done():
                        future.cancel()
                    raise
                except Exception as e:
                    logger.error(
                        f"Queued task failed: {e}",
                        exc_info=True,
                        extra={"context": {"conversation": conversation_key}},
                    )
                    if not future.done():
                        future.set_exception(e)
                else:
                    if not future.done():
                        future.set_result(result)
                finally:
                    self._settle(conversation_key)
        finally:
            for _, future in jobs:
                if not future.done():
                    future.cancel()
            self._jobs.pop(conversation_key, None)
            self._workers.pop(conversation_key, None)
            self._pending.pop(conversation_key, None)

    def _settle(self, conversation_key: str) -> None:
        remaining = self._pending.get(conversation_key, 0) - 1
        if remaining > 0:
            self._pending[conversation_key] = remaining
        else:
            self._pending.pop(conversation_key, None)

    async def drain(self) -> None:
        """Wait until every enqueued task has settled."""
        while self._workers:
            await asyncio.gather(*list(self._workers.values()), return_exceptions=True)

    async def close(self) -> None:
        """Refuse new work and wait for in-flight tasks to finish."""
        self._closed = True
        await self.drain()
