"""
Background Job Runner.

Runs orchestrator jobs off the request path on a bounded thread pool.
Each job is one unit of work; jobs share nothing but the stores.

There is no cancellation and no automatic retry: a submitted job runs
until the orchestrator writes a terminal state.
"""
from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Set

from snipr.core.logging import debug, get_logger, info
from snipr.services.orchestrator import JobOrchestrator

_LOG = get_logger("snipr.worker")


class JobRunner:
    """
    Fire-and-forget dispatch with a way to wait.

    Usage:
        runner = JobRunner(orchestrator, max_workers=4)
        runner.submit(job.id)
        runner.wait_idle(timeout=600)   # tests, CLI
        runner.shutdown()
    """

    def __init__(self, orchestrator: JobOrchestrator, max_workers: int = 4):
        self._orchestrator = orchestrator
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="snipr-job")
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()
        self._closed = False
        self.max_workers = max_workers

    @property
    def in_flight(self) -> int:
        with self._lock:
            return len(self._pending)

    def submit(self, job_id: str) -> Future:
        """
        Schedule a job run.

        Raises:
            RuntimeError: The runner has been shut down.
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("job runner is shut down")
            future = self._executor.submit(self._orchestrator.run, job_id)
            self._pending.add(future)
        future.add_done_callback(self._done)
        debug(_LOG, "job_dispatched", job_id=job_id)
        return future

    def _done(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def wait_idle(self, timeout: float | None = None) -> bool:
        """
        Block until every submitted job has finished.

        Returns:
            True if idle, False if the timeout expired first.
        """
        with self._lock:
            pending = set(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_jobs: bool = True) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        info(_LOG, "runner_shutdown", in_flight=self.in_flight, wait=wait_for_jobs)
        self._executor.shutdown(wait=wait_for_jobs)
