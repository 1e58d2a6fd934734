"""Own the single running agent task and its always-run cleanup."""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Coroutine, Iterable, List, Optional, Union

LOGGER = logging.getLogger(__name__)

CleanupCallback = Callable[[], Union[None, Awaitable[None]]]


class TaskScope:
    """Cleanup handlers bound to one `asyncio.Task`.

    Handlers are registered before the task first runs and are fired from the
    task's done-callback, so they run once whether the task finishes,
    fails or is cancelled, independently of how cancellation unwinds inside
    the task.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._cleanups: List[CleanupCallback] = []
        self._fired = False
        self._cleanup_task: Optional[asyncio.Task] = None

    def on_cleanup(self, callback: CleanupCallback) -> None:
        if self._fired:
            raise RuntimeError(f"Scope {self.name} has already been cleaned up")
        self._cleanups.append(callback)

    def attach(self, task: asyncio.Task) -> None:
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        if self._fired:
            return
        self._fired = True
        if task.cancelled():
            LOGGER.info("Task %s cancelled, running cleanup", self.name)
        elif task.exception() is not None:
            LOGGER.error("Task %s failed: %s", self.name, task.exception())
        self._cleanup_task = task.get_loop().create_task(self._run_cleanups())

    async def _run_cleanups(self) -> None:
        for callback in self._cleanups:
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                LOGGER.exception("Cleanup for %s failed: %s", self.name, exc)

    async def wait_closed(self) -> None:
        """Wait for the cleanup handlers fired by task completion."""
        if self._cleanup_task is None:
            await asyncio.sleep(0)
        if self._cleanup_task is not None:
            await asyncio.shield(self._cleanup_task)


class TaskSupervisor:
    """Keep at most one agent task running.

    `launch()` stops any current task first. `stop_current_task()` stops the
    session, resolves pending human waits as cancelled, cancels the task and
    waits for both the task and its cleanup to finish.
    """

    def __init__(self, on_stopped: Optional[Callable[[], None]] = None) -> None:
        self.on_stopped = on_stopped
        self._task: Optional[asyncio.Task] = None
        self._scope: Optional[TaskScope] = None
        self._session = None
        self._gate = None
        self._lock = asyncio.Lock()

    @property
    def current_task(self) -> Optional[asyncio.Task]:
        return self._task

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def launch(
        self,
        coro: Coroutine[Any, Any, Any],
        *,
        name: str = "agent-task",
        session=None,
        gate=None,
        cleanups: Iterable[CleanupCallback] = (),
    ) -> asyncio.Task:
        async with self._lock:
            await self._stop_locked()

            scope = TaskScope(name)
            for callback in cleanups:
                scope.on_cleanup(callback)
            task = asyncio.create_task(coro, name=name)
            scope.attach(task)

            self._task = task
            self._scope = scope
            self._session = session
            self._gate = gate
            LOGGER.info("Launched %s", name)
            return task

    async def wait(self) -> None:
        """Wait for the current task and its cleanup without cancelling it."""
        task, scope = self._task, self._scope
        if task is None or scope is None:
            return
        await asyncio.wait({task})
        await scope.wait_closed()

    async def stop_current_task(self) -> bool:
        async with self._lock:
            return await self._stop_locked()

    async def _stop_locked(self) -> bool:
        task, scope = self._task, self._scope
        if task is None or scope is None:
            return False

        if self._session is not None:
            self._session.stop()
        if self._gate is not None:
            self._gate.cancel_all()

        if not task.done():
            LOGGER.info("Cancelling %s", scope.name)
            task.cancel()
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            LOGGER.error("%s ended with an error: %s", scope.name, task.exception())
        await scope.wait_closed()

        self._task = None
        self._scope = None
        self._session = None
        self._gate = None

        if self.on_stopped is not None:
            try:
                self.on_stopped()
            except Exception as exc:
                LOGGER.error("on_stopped callback failed: %s", exc)
        return True
