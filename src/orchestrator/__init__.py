"""Parallel build dispatch: executors, scheduler and job event log."""

from .executor import Executor, HaltPolicy, ParallelExecutor, SequentialExecutor
from .output import OrderedEmitter
from .scheduler import DispatchSummary, Scheduler
from .task import JobResult, JobState, WorkUnit
from . import log

__all__ = [
    "DispatchSummary",
    "Executor",
    "HaltPolicy",
    "JobResult",
    "JobState",
    "OrderedEmitter",
    "ParallelExecutor",
    "Scheduler",
    "SequentialExecutor",
    "WorkUnit",
    "log",
]
