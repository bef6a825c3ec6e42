# Copyright (c) 2024 Fortis Contributors
# MIT License

"""
Thread-based worker pool.

A fixed number of threads pull jobs from one shared queue. Each worker
handles one job at a time and hands the outcome to a callback; nothing
else is shared between workers.
"""

import queue
import threading
from typing import Callable, Generic, Iterable, List, Optional, TypeVar


T = TypeVar("T")
R = TypeVar("R")

# Queue sentinel telling a worker to exit.
_STOP = object()


class WorkerPool(Generic[T, R]):
    """
    A bounded pool of worker threads.

    Usage::

        pool = WorkerPool(run_job, num_workers=4, on_result=sink.put, on_error=handle)
        pool.run(jobs)   # blocks until every job was handled

    ``on_result(job, value)`` and ``on_error(job, exc)`` are called from the
    worker threads, so they must be thread-safe (``queue.Queue.put`` is).
    """

    def __init__(
        self,
        func: Callable[[T], R],
        num_workers: int = 4,
        on_result: Optional[Callable[[T, R], None]] = None,
        on_error: Optional[Callable[[T, Exception], None]] = None,
        name: str = "WorkerPool",
    ):
        self.func = func
        self.num_workers = max(1, num_workers)
        self.on_result = on_result
        self.on_error = on_error
        self.name = name
        self._task_queue: queue.Queue = queue.Queue()
        self._workers: List[threading.Thread] = []
        self._started = False

    def start(self) -> None:
        """Start the worker threads."""
        if self._started:
            return

        for i in range(self.num_workers):
            worker = threading.Thread(
                target=self._worker_loop,
                name=f"{self.name}-{i}",
                daemon=True,
            )
            worker.start()
            self._workers.append(worker)

        self._started = True

    def submit(self, job: T) -> None:
        """Queue a job for the next free worker."""
        if not self._started:
            self.start()
        self._task_queue.put(job)

    def shutdown(self, wait: bool = True) -> None:
        """Let workers finish the queued jobs, then stop them."""
        for _ in self._workers:
            self._task_queue.put(_STOP)

        if wait:
            for worker in self._workers:
                worker.join()

        self._workers.clear()
        self._started = False

    def run(self, jobs: Iterable[T]) -> None:
        """Submit all jobs and block until every one has been handled."""
        self.start()
        for job in jobs:
            self._task_queue.put(job)
        self.shutdown(wait=True)

    def _worker_loop(self) -> None:
        """Main loop for worker threads."""
        while True:
            job = self._task_queue.get()
            if job is _STOP:
                break

            try:
                value = self.func(job)
            except Exception as e:
                if self.on_error is None:
                    raise
                self.on_error(job, e)
                continue

            if self.on_result is not None:
                self.on_result(job, value)

    def __enter__(self) -> "WorkerPool[T, R]":
        self.start()
        return self

    def __exit__(self, *args) -> None:
        self.shutdown()
