"""Scheduler turning a target set into build jobs and a dispatch summary."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ports.build_port import build_command, build_env, flake_ref
from ports.runner import CommandRunner, SubprocessRunner
from project_config import DispatchSettings
from targets.model import Target

from . import log as event_log
from .executor import Executor, ParallelExecutor
from .output import OrderedEmitter
from .task import JobResult, JobState, WorkUnit

_LOGGER = logging.getLogger(__name__)

# Exit statuses above this value are reserved; matches GNU parallel.
MAX_EXIT_STATUS = 101


@dataclass
class DispatchSummary:
    """Aggregate of all job results for one dispatch."""

    results: List[JobResult]
    halted: bool = False

    def _with_state(self, state: JobState) -> List[JobResult]:
        return [result for result in self.results if result.state is state]

    @property
    def succeeded(self) -> List[JobResult]:
        return self._with_state(JobState.SUCCEEDED)

    @property
    def failed(self) -> List[JobResult]:
        return self._with_state(JobState.FAILED)

    @property
    def skipped(self) -> List[JobResult]:
        return self._with_state(JobState.SKIPPED)

    @property
    def exit_status(self) -> int:
        """Number of failed jobs, capped at :data:`MAX_EXIT_STATUS`."""

        return min(len(self.failed), MAX_EXIT_STATUS)


def _append_event(event: Dict[str, Any]) -> None:
    """Record ``event``; an unwritable log stops event logging, not the builds."""

    try:
        event_log.append_event(event)
    except OSError as exc:
        _LOGGER.warning("disabling job event log: %s", exc)
        event_log.disable()


def _clock(result: JobResult, stamp_attr: str) -> str:
    stamp = getattr(result, stamp_attr)
    return stamp.strftime("%H:%M:%S") if stamp is not None else "--:--:--"


def format_start(result: JobResult, tool: str) -> str:
    return f"[+] {_clock(result, 'started_at')} Start: {tool} '{result.work_unit.ref}'\n"


def format_stop(result: JobResult, tool: str) -> str:
    return (
        f"[+] {_clock(result, 'finished_at')} Stop: {tool} '{result.work_unit.ref}' "
        f"(took {int(result.elapsed_s)}s; exit {result.exit_status})\n"
    )


def format_block(result: JobResult, tool: str) -> str:
    """Render one job's labelled output block."""

    output = result.output
    if output and not output.endswith("\n"):
        output += "\n"
    return format_start(result, tool) + output + format_stop(result, tool)


class Scheduler:
    """Dispatch one build per target through an :class:`Executor`."""

    def __init__(
        self,
        settings: DispatchSettings,
        executor: Executor | None = None,
        *,
        runner: Optional[CommandRunner] = None,
        emitter: Optional[OrderedEmitter] = None,
        base_env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.settings = settings
        self.executor = executor or ParallelExecutor(
            runner or SubprocessRunner(),
            jobs=settings.jobs,
            halt_after_failures=settings.halt_after_failures,
        )
        self.emitter = emitter or OrderedEmitter()
        self.base_env = base_env
        self.tool = os.path.basename(settings.build_command)

    def build_task_graph(self, targets: Sequence[Target]) -> List[WorkUnit]:
        """Construct one work unit per target, in target order."""

        env = build_env(self.settings, self.base_env)
        return [
            WorkUnit(
                index=index,
                target=target,
                ref=flake_ref(target, self.settings),
                argv=tuple(build_command(target, self.settings)),
                env=env,
            )
            for index, target in enumerate(targets)
        ]

    def submit(self, work_units: Sequence[WorkUnit]) -> List[JobResult]:
        """Submit work units to the underlying executor."""

        return self.executor.submit(
            list(work_units),
            on_start=self._on_start,
            on_finish=self._on_finish,
        )

    def run(self, targets: Sequence[Target]) -> DispatchSummary:
        """Build every target and return the aggregated outcome."""

        work_units = self.build_task_graph(targets)
        try:
            results = self.submit(work_units)
        finally:
            self.emitter.close()

        summary = DispatchSummary(results=results)
        if summary.skipped:
            summary.halted = True
            _LOGGER.warning(
                "halted after %d failed jobs; %d jobs not started",
                len(summary.failed),
                len(summary.skipped),
            )
            _append_event(
                {
                    "event": "dispatch.halted",
                    "failed": len(summary.failed),
                    "skipped": [result.target for result in summary.skipped],
                }
            )
        _append_event(
            {
                "event": "dispatch.completed",
                "jobs": len(results),
                "succeeded": len(summary.succeeded),
                "failed": len(summary.failed),
                "skipped": len(summary.skipped),
                "exit_status": summary.exit_status,
            }
        )
        return summary

    def shutdown(self) -> None:
        self.executor.shutdown()

    def _on_start(self, result: JobResult) -> None:
        _LOGGER.info("start %s", result.work_unit.ref)
        _append_event(
            {
                "event": "job.started",
                "index": result.work_unit.index,
                "target": result.target,
                "ref": result.work_unit.ref,
            }
        )

    def _on_finish(self, result: JobResult) -> None:
        _LOGGER.info(
            "stop %s (%s, exit %s)", result.work_unit.ref, result.state.value, result.exit_status
        )
        _append_event(
            {
                "event": "job.finished",
                "index": result.work_unit.index,
                "target": result.target,
                "ref": result.work_unit.ref,
                "state": result.state.value,
                "exit_status": result.exit_status,
                "elapsed_s": round(result.elapsed_s, 3),
            }
        )
        self.emitter.emit(result.work_unit.index, format_block(result, self.tool))


__all__ = [
    "MAX_EXIT_STATUS",
    "DispatchSummary",
    "Scheduler",
    "format_block",
    "format_start",
    "format_stop",
]
