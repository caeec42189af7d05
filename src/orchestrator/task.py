"""Work unit definitions for the build dispatcher."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Mapping, Optional, Tuple

from targets.model import Target


class JobState(str, Enum):
    """``pending -> running -> {succeeded, failed}``; ``skipped`` after a halt."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class WorkUnit:
    """One build invocation.

    ``argv`` and ``env`` are fully resolved before dispatch so a job never
    reads configuration from ambient state.
    """

    index: int
    target: Target
    ref: str
    argv: Tuple[str, ...]
    env: Mapping[str, str] = field(default_factory=dict, compare=False, repr=False)


@dataclass
class JobResult:
    """Container for the outcome of a :class:`WorkUnit`."""

    work_unit: WorkUnit
    state: JobState = JobState.PENDING
    exit_status: Optional[int] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    elapsed_s: float = 0.0
    output: str = ""

    @property
    def target(self) -> Target:
        return self.work_unit.target

    @property
    def failed(self) -> bool:
        return self.state is JobState.FAILED


__all__ = ["JobResult", "JobState", "WorkUnit"]
