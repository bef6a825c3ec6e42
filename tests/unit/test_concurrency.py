"""Unit tests for the worker pool."""

import threading
import time

import pytest

from fortis.platform.concurrency import WorkerPool


class TestWorkerPool:
    """Tests for WorkerPool."""

    def test_runs_every_job(self):
        seen = []
        lock = threading.Lock()

        def record(job, value):
            with lock:
                seen.append(value)

        WorkerPool(lambda n: n * 2, num_workers=3, on_result=record).run(range(10))
        assert sorted(seen) == [n * 2 for n in range(10)]

    def test_errors_go_to_handler(self):
        errors = {}
        results = []

        def work(n):
            if n == 3:
                raise RuntimeError("bad job")
            return n

        WorkerPool(
            work,
            num_workers=2,
            on_result=lambda job, value: results.append(value),
            on_error=lambda job, e: errors.setdefault(job, str(e)),
        ).run([1, 2, 3, 4])

        assert errors == {3: "bad job"}
        assert sorted(results) == [1, 2, 4]

    def test_concurrency_bounded(self):
        active = 0
        peak = 0
        lock = threading.Lock()

        def work(n):
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.05)
            with lock:
                active -= 1

        WorkerPool(work, num_workers=3).run(range(12))
        assert 1 <= peak <= 3

    def test_minimum_one_worker(self):
        assert WorkerPool(lambda n: n, num_workers=0).num_workers == 1

    def test_context_manager(self):
        done = []
        with WorkerPool(lambda n: n, num_workers=2, on_result=lambda j, v: done.append(v)) as pool:
            for n in range(5):
                pool.submit(n)
        assert sorted(done) == list(range(5))

    @pytest.mark.parametrize("workers", [1, 4])
    def test_empty_job_list(self, workers):
        WorkerPool(lambda n: n, num_workers=workers).run([])
