import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

logger = logging.getLogger(__name__)


class BoundedExecutor:
    """
    Thread pool with a bounded backlog.

    At most ``max_workers + queue_size`` tasks are admitted at once. When the
    pool is saturated the task runs in the submitting thread instead of being
    rejected, so ledger anchoring work is never dropped.
    """

    def __init__(self, name: str, max_workers: int, queue_size: int):
        self.name = name
        self.max_workers = max_workers
        self.queue_size = queue_size
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=f"{name}-")
        self._slots = threading.BoundedSemaphore(max_workers + queue_size)
        self._shutdown = False

    def submit(self, fn: Callable[..., Any], *args, **kwargs) -> Future:
        if self._shutdown:
            raise RuntimeError(f"Executor {self.name} is shut down")

        if not self._slots.acquire(blocking=False):
            logger.warning("Executor %s saturated, running task %s in caller thread", self.name, getattr(fn, "__name__", fn))
            return self._run_in_caller(fn, *args, **kwargs)

        try:
            future = self._pool.submit(fn, *args, **kwargs)
        except RuntimeError:
            self._slots.release()
            raise
        future.add_done_callback(self._on_done)
        return future

    def _on_done(self, future: Future) -> None:
        self._slots.release()
        if not future.cancelled() and future.exception() is not None:
            logger.error("Task on executor %s failed: %s", self.name, future.exception())

    def _run_in_caller(self, fn: Callable[..., Any], *args, **kwargs) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            logger.error("Task on executor %s failed in caller thread: %s", self.name, e)
            future.set_exception(e)
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._shutdown = True
        self._pool.shutdown(wait=wait)
        logger.info("Executor %s shut down", self.name)
