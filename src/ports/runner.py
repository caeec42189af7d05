"""Subprocess seam shared by every port that shells out."""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Protocol, Sequence

from contracts.errors import PreconditionError

_LOGGER = logging.getLogger(__name__)

# Exit statuses POSIX shells report for missing and non-executable commands.
EXIT_COMMAND_NOT_FOUND = 127
EXIT_COMMAND_NOT_EXECUTABLE = 126


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command."""

    returncode: int
    stdout: str
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    """Callable that runs ``argv`` to completion and captures its output."""

    def __call__(
        self,
        argv: Sequence[str],
        *,
        env: Optional[Mapping[str, str]] = None,
        merge_stderr: bool = False,
    ) -> CommandResult:
        """Run ``argv``; with ``merge_stderr`` stderr is folded into stdout."""


class SubprocessRunner:
    """Default :class:`CommandRunner` backed by :func:`subprocess.run`."""

    def __call__(
        self,
        argv: Sequence[str],
        *,
        env: Optional[Mapping[str, str]] = None,
        merge_stderr: bool = False,
    ) -> CommandResult:
        _LOGGER.debug("running: %s", shlex.join(argv))
        try:
            completed = subprocess.run(
                list(argv),
                env=dict(env) if env is not None else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
                check=False,
            )
        except FileNotFoundError as exc:
            return CommandResult(
                returncode=EXIT_COMMAND_NOT_FOUND,
                stdout="",
                stderr=f"{argv[0]}: {exc.strerror or 'command not found'}\n",
            )
        except PermissionError as exc:
            return CommandResult(
                returncode=EXIT_COMMAND_NOT_EXECUTABLE,
                stdout="",
                stderr=f"{argv[0]}: {exc.strerror or 'permission denied'}\n",
            )
        return CommandResult(
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )


def require_commands(names: Iterable[str]) -> None:
    """Raise :class:`PreconditionError` for the first command not on ``PATH``."""

    for name in names:
        if shutil.which(name) is None:
            raise PreconditionError(
                f"command '{name}' is not installed (Hint: are you inside a nix-shell?)"
            )


__all__ = [
    "EXIT_COMMAND_NOT_EXECUTABLE",
    "EXIT_COMMAND_NOT_FOUND",
    "CommandResult",
    "CommandRunner",
    "SubprocessRunner",
    "require_commands",
]
