"""Executor interfaces for dispatching build jobs."""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime
from typing import Callable, List, Optional, Protocol, Sequence

from ports.runner import CommandRunner

from .task import JobResult, JobState, WorkUnit

StartCallback = Callable[[JobResult], None]
FinishCallback = Callable[[JobResult], None]


class HaltPolicy:
    """Stop launching jobs once ``max_failures`` jobs have failed."""

    def __init__(self, max_failures: int) -> None:
        if max_failures < 1:
            raise ValueError("max_failures must be at least 1")
        self.max_failures = max_failures
        self._failures = 0
        self._lock = threading.Lock()

    def record(self, result: JobResult) -> None:
        if result.failed:
            with self._lock:
                self._failures += 1

    @property
    def failures(self) -> int:
        with self._lock:
            return self._failures

    @property
    def halted(self) -> bool:
        return self.failures >= self.max_failures


def run_work_unit(
    unit: WorkUnit,
    runner: CommandRunner,
    result: Optional[JobResult] = None,
    on_start: Optional[StartCallback] = None,
) -> JobResult:
    """Run ``unit`` to completion; a failing build is a result, not an error."""

    result = result if result is not None else JobResult(work_unit=unit)
    result.state = JobState.RUNNING
    result.started_at = datetime.now()
    if on_start is not None:
        on_start(result)

    begin = time.monotonic()
    outcome = runner(unit.argv, env=unit.env, merge_stderr=True)
    result.elapsed_s = time.monotonic() - begin
    result.finished_at = datetime.now()
    result.exit_status = outcome.returncode
    result.output = outcome.stdout + outcome.stderr
    result.state = JobState.SUCCEEDED if outcome.ok else JobState.FAILED
    return result


def _mark_skipped(results: Sequence[JobResult]) -> None:
    for result in results:
        if result.state is JobState.PENDING:
            result.state = JobState.SKIPPED


class Executor(Protocol):
    """Abstract execution backend."""

    def submit(
        self,
        work_units: Sequence[WorkUnit],
        *,
        on_start: Optional[StartCallback] = None,
        on_finish: Optional[FinishCallback] = None,
    ) -> List[JobResult]:
        """Run a batch of work units, returning one result per unit in order."""

    def barrier(self) -> None:
        """Wait until all launched work is finished."""

    def shutdown(self) -> None:
        """Tear down resources allocated by the executor."""


class SequentialExecutor:
    """Deterministic executor running one build at a time."""

    def __init__(self, runner: CommandRunner, *, halt_after_failures: int = 2) -> None:
        self.runner = runner
        self.halt_after_failures = halt_after_failures

    def submit(
        self,
        work_units: Sequence[WorkUnit],
        *,
        on_start: Optional[StartCallback] = None,
        on_finish: Optional[FinishCallback] = None,
    ) -> List[JobResult]:
        policy = HaltPolicy(self.halt_after_failures)
        results = [JobResult(work_unit=unit) for unit in work_units]
        for unit, result in zip(work_units, results):
            if policy.halted:
                break
            run_work_unit(unit, self.runner, result, on_start)
            policy.record(result)
            if on_finish is not None:
                on_finish(result)
        _mark_skipped(results)
        return results

    def barrier(self) -> None:
        return None

    def shutdown(self) -> None:
        return None


class ParallelExecutor:
    """Run up to ``jobs`` builds at once, one process per build.

    A new job is launched only after a slot frees up and the halt policy still
    allows it; jobs already running are never interrupted.
    """

    def __init__(
        self,
        runner: CommandRunner,
        *,
        jobs: int = 5,
        halt_after_failures: int = 2,
    ) -> None:
        if jobs < 1:
            raise ValueError("jobs must be at least 1")
        self.runner = runner
        self.jobs = jobs
        self.halt_after_failures = halt_after_failures
        self._pool: Optional[ThreadPoolExecutor] = None
        self._futures: List[Future[JobResult]] = []

    def _get_pool(self) -> ThreadPoolExecutor:
        if self._pool is None:
            self._pool = ThreadPoolExecutor(max_workers=self.jobs, thread_name_prefix="fast-build")
        return self._pool

    def _run(
        self,
        unit: WorkUnit,
        result: JobResult,
        slots: threading.BoundedSemaphore,
        policy: HaltPolicy,
        on_start: Optional[StartCallback],
        on_finish: Optional[FinishCallback],
    ) -> JobResult:
        try:
            run_work_unit(unit, self.runner, result, on_start)
            policy.record(result)
            if on_finish is not None:
                on_finish(result)
            return result
        finally:
            slots.release()

    def submit(
        self,
        work_units: Sequence[WorkUnit],
        *,
        on_start: Optional[StartCallback] = None,
        on_finish: Optional[FinishCallback] = None,
    ) -> List[JobResult]:
        pool = self._get_pool()
        policy = HaltPolicy(self.halt_after_failures)
        slots = threading.BoundedSemaphore(self.jobs)
        results = [JobResult(work_unit=unit) for unit in work_units]

        futures: List[Future[JobResult]] = []
        for unit, result in zip(work_units, results):
            slots.acquire()
            # Failures are recorded before a slot is released, so this check
            # sees every job that finished while we were waiting.
            if policy.halted:
                slots.release()
                break
            futures.append(
                pool.submit(self._run, unit, result, slots, policy, on_start, on_finish)
            )
        self._futures = futures
        self.barrier()
        _mark_skipped(results)
        for future in futures:
            future.result()
        return results

    def barrier(self) -> None:
        if self._futures:
            wait(self._futures)

    def shutdown(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None
        self._futures = []


__all__ = [
    "Executor",
    "HaltPolicy",
    "ParallelExecutor",
    "SequentialExecutor",
    "run_work_unit",
]
