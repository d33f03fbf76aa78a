import asyncio
import logging
from typing import Coroutine, Set

logger = logging.getLogger(__name__)


class TaskTracker:
    """Keeps track of detached tasks so shutdown can wait for them.

    Request handlers hand their fire-and-forget work to ``spawn`` and return
    immediately; only ``drain`` ever waits on it.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine, name: str = None) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("background task %s crashed", task.get_name(), exc_info=error)

    async def drain(self, timeout: float) -> int:
        """Wait up to ``timeout`` seconds for tracked tasks, then cancel the rest.

        Returns the number of tasks that had to be cancelled.
        """
        if not self._tasks:
            return 0

        logger.info("waiting for %d background tasks", len(self._tasks))
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        # tasks may spawn follow-up tasks while we wait, keep going until idle
        while True:
            pending = {task for task in self._tasks if not task.done()}
            remaining = deadline - loop.time()
            if not pending or remaining <= 0:
                break
            await asyncio.wait(pending, timeout=remaining)

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning("cancelled %d background tasks after %.1fs", len(pending), timeout)
        return len(pending)
