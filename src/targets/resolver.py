"""Turn a :class:`TargetRequest` into the concrete :class:`TargetSet`."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import List

from contracts.errors import ResolverError, UsageError
from ports.flake_port import show_outputs
from ports.runner import CommandRunner

from .model import TargetRequest, TargetSet

_LOGGER = logging.getLogger(__name__)


def _compile_filter(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise UsageError(f"invalid filter '{pattern}': {exc}") from exc


def _write_lines(path: Path, lines: List[str]) -> None:
    path.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")


def filter_targets(
    pattern: str,
    *,
    runner: CommandRunner,
    workdir: Path,
    flake: str = ".",
    evaluator: str = "nix",
) -> TargetSet:
    """Select the flake outputs whose dotted path matches ``pattern``.

    The raw output graph and the intermediate name listings are written to
    ``workdir`` (``all.json``, ``out_names``, ``out_filtered``); the caller
    owns its lifetime.
    """

    regex = _compile_filter(pattern)
    outputs = show_outputs(runner, flake=flake, evaluator=evaluator)
    (workdir / "all.json").write_text(
        json.dumps(outputs.document, indent=2, sort_keys=True), encoding="utf-8"
    )

    names = outputs.names()
    _write_lines(workdir / "out_names", names)
    _LOGGER.debug("flake '%s' exposes %d outputs", flake, len(names))

    selected = TargetSet.filtered(name for name in names if regex.search(name))
    _write_lines(workdir / "out_filtered", list(selected))
    if not selected:
        raise ResolverError(f"No flake outputs match filter: '{pattern}'")
    return selected


def resolve_targets(
    request: TargetRequest,
    *,
    runner: CommandRunner,
    workdir: Path,
    flake: str = ".",
    evaluator: str = "nix",
) -> TargetSet:
    """Return the targets to build for ``request``."""

    if request.filter is not None:
        return filter_targets(
            request.filter,
            runner=runner,
            workdir=workdir,
            flake=flake,
            evaluator=evaluator,
        )
    if not request.targets:
        raise UsageError("either '-f' or '-t' must be specified")
    return TargetSet.explicit(request.targets)


__all__ = ["filter_targets", "resolve_targets"]
