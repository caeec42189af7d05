"""Typed query over the flake output graph."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterator, List, Mapping, Tuple

from contracts.errors import ResolverError
from contracts.schemas import FLAKE_SHOW_SCHEMA, schema_errors

from .runner import CommandRunner

_LEAF_MARKER = "name"


@dataclass(frozen=True, order=True)
class OutputPath:
    """Attribute path of one buildable flake output."""

    parts: Tuple[str, ...]

    @property
    def dotted(self) -> str:
        return ".".join(self.parts)

    def __str__(self) -> str:
        return self.dotted


@dataclass(frozen=True)
class FlakeOutputs:
    """Result of ``nix flake show``: the raw document and its leaf outputs."""

    document: Mapping[str, Any]
    paths: Tuple[OutputPath, ...]

    def names(self) -> List[str]:
        return [path.dotted for path in self.paths]

    def __len__(self) -> int:
        return len(self.paths)


def show_command(evaluator: str, flake: str) -> List[str]:
    return [evaluator, "flake", "show", "--all-systems", "--json", flake]


def iter_output_paths(document: Mapping[str, Any]) -> Iterator[OutputPath]:
    """Yield the path of every attribute set carrying a scalar ``name``.

    Derivations appear in ``nix flake show --json`` as
    ``{"type": "derivation", "name": ..., "description": ...}``; the attribute
    sets above them (``packages``, ``x86_64-linux``) have no ``name`` of their
    own. Traversal follows document order.
    """

    stack: List[Tuple[Tuple[str, ...], Mapping[str, Any]]] = [((), document)]
    while stack:
        prefix, node = stack.pop()
        marker = node.get(_LEAF_MARKER)
        if prefix and _LEAF_MARKER in node and not isinstance(marker, (dict, list)):
            yield OutputPath(prefix)
        children = [
            (prefix + (str(key),), child)
            for key, child in node.items()
            if isinstance(child, dict)
        ]
        stack.extend(reversed(children))


def parse_show_output(text: str) -> FlakeOutputs:
    """Decode and validate the JSON printed by ``nix flake show --json``."""

    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ResolverError(f"flake outputs are not valid JSON: {exc}") from exc

    problems = schema_errors(document, FLAKE_SHOW_SCHEMA)
    if problems:
        raise ResolverError(f"unexpected flake outputs document: {problems[0]}")

    return FlakeOutputs(document=document, paths=tuple(iter_output_paths(document)))


def show_outputs(
    runner: CommandRunner,
    *,
    flake: str = ".",
    evaluator: str = "nix",
) -> FlakeOutputs:
    """Evaluate ``flake`` and return its buildable outputs."""

    result = runner(show_command(evaluator, flake))
    if not result.ok:
        detail = result.stderr.strip().splitlines()[-1:] or ["no output"]
        raise ResolverError(
            f"'{evaluator} flake show' failed with exit {result.returncode}: {detail[0]}"
        )
    return parse_show_output(result.stdout)


__all__ = [
    "FlakeOutputs",
    "OutputPath",
    "iter_output_paths",
    "parse_show_output",
    "show_command",
    "show_outputs",
]
