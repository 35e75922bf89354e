"""
Worker pools and the periodic scheduler used by the extractor.
"""

import logging
import os
import queue
import threading
from concurrent.futures import Executor, Future
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs a callable on a daemon thread every ``interval`` seconds."""

    def __init__(self, name: str, interval: float, func: Callable[[], None]):
        self.name = name
        self.interval = interval
        self.func = func
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._loop, name=name, daemon=True)

    def start(self) -> "PeriodicTask":
        self._thread.start()
        return self

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.func()
            except Exception:
                logger.exception("Periodic task '%s' failed", self.name)

    def cancel(self) -> None:
        self._stop.set()

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive() and not self._stop.is_set()


class DaemonThreadPool(Executor):
    """
    Fixed-size executor whose workers are daemon threads.

    Unlike ``ThreadPoolExecutor``, workers are not joined at interpreter
    exit; only ``shutdown(wait=True)`` joins them.
    """

    def __init__(self, max_workers: int, thread_name_prefix: str = "daemon-pool"):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self.thread_name_prefix = thread_name_prefix
        self._queue: "queue.SimpleQueue" = queue.SimpleQueue()
        self._idle = threading.Semaphore(0)
        self._threads: List[threading.Thread] = []
        self._lock = threading.Lock()
        self._shutdown = False

    def submit(self, fn, *args, **kwargs) -> Future:
        with self._lock:
            if self._shutdown:
                raise RuntimeError("cannot schedule new futures after shutdown")
            future: Future = Future()
            self._queue.put((future, fn, args, kwargs))
            self._spawn_if_needed()
            return future

    def _spawn_if_needed(self) -> None:
        if self._idle.acquire(timeout=0):
            return
        if len(self._threads) < self.max_workers:
            thread = threading.Thread(
                target=self._worker,
                name=f"{self.thread_name_prefix}_{len(self._threads)}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)

    def _worker(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                return
            future, fn, args, kwargs = item
            if future.set_running_or_notify_cancel():
                try:
                    result = fn(*args, **kwargs)
                except BaseException as e:
                    future.set_exception(e)
                else:
                    future.set_result(result)
            del item, future
            self._idle.release()

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        with self._lock:
            self._shutdown = True
            if cancel_futures:
                while True:
                    try:
                        item = self._queue.get_nowait()
                    except queue.Empty:
                        break
                    if item is not None:
                        item[0].cancel()
            threads = list(self._threads)
            for _ in threads:
                self._queue.put(None)
        if wait:
            for thread in threads:
                thread.join()


class WorkerPools:
    """
    Owns the thread pools shared by the coordinator and the cache.

    - compute: fixed size, for decoding and JSON handling
    - io: larger, for background hydration and network work
    - scheduled: daemon threads running periodic maintenance

    Every worker is a daemon thread and never blocks process exit.
    """

    def __init__(self, compute_workers: Optional[int] = None, io_workers: int = 16):
        compute_workers = compute_workers or os.cpu_count() or 4
        logger.info(
            "Initializing worker pools (compute=%d, io=%d)", compute_workers, io_workers
        )
        self.compute = DaemonThreadPool(compute_workers, thread_name_prefix="compute-pool")
        self.io = DaemonThreadPool(io_workers, thread_name_prefix="io-pool")
        self._periodic: List[PeriodicTask] = []
        self._closed = False

    def submit_compute(self, fn, *args, **kwargs) -> Future:
        return self.compute.submit(fn, *args, **kwargs)

    def submit_io(self, fn, *args, **kwargs) -> Future:
        return self.io.submit(fn, *args, **kwargs)

    def schedule_every(self, name: str, interval: float, func: Callable[[], None]) -> PeriodicTask:
        """Run ``func`` every ``interval`` seconds until shutdown."""
        task = PeriodicTask(name, interval, func).start()
        self._periodic.append(task)
        return task

    def shutdown(self, wait: bool = False) -> None:
        """
        Stop all pools.

        With ``wait=False`` queued work is cancelled and running tasks are
        left to finish on their own without blocking the caller.
        """
        if self._closed:
            return
        self._closed = True
        logger.info("Shutting down worker pools...")
        for task in self._periodic:
            task.cancel()
        self.compute.shutdown(wait=wait, cancel_futures=not wait)
        self.io.shutdown(wait=wait, cancel_futures=not wait)

    def __enter__(self) -> "WorkerPools":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
