"""
Bounded thread pool with a single drain point.

Work submitted inside ``wrap()`` runs on at most ``max_threads`` workers.
Leaving the block waits for every submitted task. A task that raises only
affects its own future; an exception raised by the code inside the block
propagates once the already-submitted tasks have finished.
"""

import concurrent.futures
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, TypeVar

from utils.logging_utils import get_logger

T = TypeVar("T")


class ConcurrentTaskPool:
    """Thread pool used by the cleanup job to run deletions in parallel"""

    def __init__(self, max_threads: int, name: str = "cleanup"):
        if not isinstance(max_threads, int) or max_threads < 1:
            raise ValueError(f"max_threads must be a positive integer, got: {max_threads}")
        self.max_threads = max_threads
        self.name = name
        self.logger = get_logger(self.__class__.__name__)
        self._executor: Optional[concurrent.futures.ThreadPoolExecutor] = None
        self._futures: List[concurrent.futures.Future] = []
        self._lock = threading.Lock()

    @contextmanager
    def wrap(self) -> Iterator["ConcurrentTaskPool"]:
        """Open a submission scope and drain it on exit"""
        with self._lock:
            if self._executor is not None:
                raise RuntimeError(f"Pool {self.name} is already running")
            self._executor = concurrent.futures.ThreadPoolExecutor(
                max_workers=self.max_threads, thread_name_prefix=self.name
            )
            self._futures = []
        try:
            yield self
        finally:
            try:
                self.drain()
            finally:
                with self._lock:
                    executor, self._executor = self._executor, None
                executor.shutdown(wait=True)

    def submit(self, task: Callable[..., T], *args, **kwargs) -> concurrent.futures.Future:
        with self._lock:
            if self._executor is None:
                raise RuntimeError(f"Pool {self.name} is not running; submit work inside wrap()")
            future = self._executor.submit(task, *args, **kwargs)
            self._futures.append(future)
        return future

    def drain(self) -> List[concurrent.futures.Future]:
        """Wait for every task submitted so far; return their futures in submission order"""
        with self._lock:
            futures = list(self._futures)
        if futures:
            self.logger.debug(f"Waiting for {len(futures)} task(s) on {self.max_threads} worker(s)")
            concurrent.futures.wait(futures)
        return futures

    @property
    def submitted_count(self) -> int:
        with self._lock:
            return len(self._futures)
