"""
Hook execution strategies.

Hooks and completion predicates are plain callables receiving a
WorkflowContext. A synchronous hook runs inline and its exceptions propagate
to the engine. A hook that returns an awaitable is scheduled in the background
and the engine carries on without waiting for it.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional, Set

logger = logging.getLogger(__name__)


class _Pending:
    """Marker returned when a hook's result will arrive in the background."""

    def __repr__(self) -> str:
        return "PENDING"


PENDING = _Pending()


class HookExecutor(ABC):
    """Abstract base class for hook executors."""

    def call(
        self,
        hook: Callable[..., Any],
        context: Any,
        label: str,
        on_result: Optional[Callable[[Any], Any]] = None,
    ) -> Any:
        """Invoke a hook with its context.

        Args:
            hook: Hook or predicate
            context: WorkflowContext handed to the hook
            label: Name used in log messages
            on_result: Called with the resolved value of an awaitable result

        Returns:
            The hook's return value, or ``PENDING`` if it was scheduled
        """
        result = hook(context)
        if inspect.isawaitable(result):
            self.dispatch(result, label, on_result)
            return PENDING
        return result

    @abstractmethod
    def dispatch(
        self,
        awaitable: Awaitable[Any],
        label: str,
        on_result: Optional[Callable[[Any], Any]] = None,
    ) -> None:
        """Run an awaitable without blocking the caller."""

    @abstractmethod
    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for thread-backed background work to finish.

        Returns:
            True if nothing is left running
        """

    @abstractmethod
    def shutdown(self, wait: bool = True) -> None:
        """Release executor resources."""


class BackgroundHookExecutor(HookExecutor):
    """Schedules awaitable hook results on the running loop or a worker pool.

    Inside a running event loop the awaitable becomes a task on that loop.
    Without one, it runs to completion on a worker thread with its own loop.
    Failures in background work are logged, never raised.
    """

    def __init__(self, max_workers: int = 4):
        """Initialize background executor.

        Args:
            max_workers: Worker threads for awaitables dispatched outside a loop
        """
        self.max_workers = max_workers
        self._pool: Optional[concurrent.futures.ThreadPoolExecutor] = None
        self._futures: Set[concurrent.futures.Future] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._lock = threading.Lock()
        self._metrics = {"dispatched": 0, "failed": 0}

    def dispatch(
        self,
        awaitable: Awaitable[Any],
        label: str,
        on_result: Optional[Callable[[Any], Any]] = None,
    ) -> None:
        runner = self._run(awaitable, label, on_result)
        with self._lock:
            self._metrics["dispatched"] += 1

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            task = loop.create_task(runner)
            with self._lock:
                self._tasks.add(task)
            task.add_done_callback(self._discard_task)
            logger.debug(f"Scheduled {label} on running event loop")
            return

        future = self._get_pool().submit(asyncio.run, runner)
        with self._lock:
            self._futures.add(future)
        future.add_done_callback(self._discard_future)
        logger.debug(f"Scheduled {label} on worker thread")

    async def _run(
        self,
        awaitable: Awaitable[Any],
        label: str,
        on_result: Optional[Callable[[Any], Any]],
    ) -> None:
        try:
            result = await awaitable
            if on_result is not None:
                on_result(result)
        except asyncio.CancelledError:
            logger.info(f"Background {label} was cancelled")
            raise
        except Exception as e:
            with self._lock:
                self._metrics["failed"] += 1
            logger.error(f"Background {label} failed: {e}")

    def _get_pool(self) -> concurrent.futures.ThreadPoolExecutor:
        with self._lock:
            if self._pool is None:
                self._pool = concurrent.futures.ThreadPoolExecutor(
                    max_workers=self.max_workers, thread_name_prefix="workflow-hook"
                )
            return self._pool

    def _discard_task(self, task: asyncio.Task) -> None:
        with self._lock:
            self._tasks.discard(task)

    def _discard_future(self, future: concurrent.futures.Future) -> None:
        with self._lock:
            self._futures.discard(future)

    def join(self, timeout: Optional[float] = None) -> bool:
        with self._lock:
            futures = list(self._futures)
        if not futures:
            return True
        _, not_done = concurrent.futures.wait(futures, timeout=timeout)
        return not not_done

    async def drain(self) -> None:
        """Await every background task scheduled on the current loop."""
        while True:
            with self._lock:
                tasks = [task for task in self._tasks if not task.done()]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=wait)

    def get_metrics(self) -> Dict[str, Any]:
        """Get executor metrics.

        Returns:
            Metrics dictionary
        """
        with self._lock:
            return self._metrics.copy()
