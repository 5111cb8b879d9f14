"""Timeout wrapper for calls to external systems."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Any, Callable, Optional

from ..exceptions import OperationTimeout

logger = logging.getLogger(__name__)


class TimeoutRunner:
    """
    Runs calls with a deadline on a helper pool owned by one component.

    The pool is created on first use and reused by later calls. A call that
    times out keeps its helper thread busy, so the pool is retired and the
    next call starts a fresh one; the running call is handed to the caller
    as ``OperationTimeout.pending``.
    """

    def __init__(self, max_workers: int = 1, name: str = "tablemigrate-call"):
        self.max_workers = max(1, max_workers)
        self.name = name
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers,
                    thread_name_prefix=self.name,
                )
            return self._executor

    def _retire(self, executor: ThreadPoolExecutor) -> None:
        with self._lock:
            if self._executor is executor:
                self._executor = None
        executor.shutdown(wait=False)

    def call(
        self,
        func: Callable[..., Any],
        timeout: Optional[float],
        *args: Any,
        description: str = "",
        **kwargs: Any
    ) -> Any:
        """
        Run ``func`` and give up waiting after ``timeout`` seconds.

        ``None`` or ``0`` calls inline. Drivers are expected to enforce their
        own statement timeouts as well.
        """
        if not timeout:
            return func(*args, **kwargs)

        executor = self._get_executor()
        future = executor.submit(func, *args, **kwargs)
        try:
            return future.result(timeout=timeout)
        except FutureTimeout:
            if future.done():
                raise
            label = description or getattr(func, "__name__", "call")
            logger.warning(f"{label} timed out after {timeout}s")
            if not future.cancel():
                self._retire(executor)
            raise OperationTimeout(
                f"{label} timed out after {timeout}s",
                details={"timeout": timeout},
                pending=future,
            )

    def shutdown(self) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False)
