"""Facades over the external tools the dispatcher drives."""

from __future__ import annotations

from .build_port import build_command, build_env, flake_ref
from .flake_port import FlakeOutputs, OutputPath, show_outputs
from .runner import CommandResult, CommandRunner, SubprocessRunner, require_commands

__all__ = [
    "CommandResult",
    "CommandRunner",
    "FlakeOutputs",
    "OutputPath",
    "SubprocessRunner",
    "build_command",
    "build_env",
    "flake_ref",
    "require_commands",
    "show_outputs",
]
