"""Value types describing what to build."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Optional, Sequence, Tuple

from contracts.errors import UsageError

# A dotted flake attribute path such as ``packages.x86_64-linux.doc``.
Target = str


class TargetOrigin(str, Enum):
    EXPLICIT = "explicit"
    FILTER = "filter"


@dataclass(frozen=True)
class TargetRequest:
    """Either an explicit target list or a filter, never both."""

    targets: Tuple[Target, ...] = ()
    filter: Optional[str] = None

    @classmethod
    def from_options(
        cls,
        targets: Iterable[str] | None,
        filter: Optional[str],
    ) -> "TargetRequest":
        """Build a request from raw ``-t``/``-f`` values.

        Every ``-t`` value may hold several whitespace separated targets.
        """

        split: list[str] = []
        for value in targets or ():
            split.extend(value.split())
        pattern = filter or None
        if pattern is None and not split:
            raise UsageError("either '-f' or '-t' must be specified")
        if pattern is not None and split:
            raise UsageError("'-f' and '-t' are mutually exclusive")
        return cls(targets=tuple(split), filter=pattern)


@dataclass(frozen=True)
class TargetSet:
    """Ordered targets handed to the dispatcher."""

    targets: Tuple[Target, ...]
    origin: TargetOrigin

    def __iter__(self) -> Iterator[Target]:
        return iter(self.targets)

    def __len__(self) -> int:
        return len(self.targets)

    @classmethod
    def explicit(cls, targets: Sequence[Target]) -> "TargetSet":
        return cls(targets=tuple(targets), origin=TargetOrigin.EXPLICIT)

    @classmethod
    def filtered(cls, targets: Iterable[Target]) -> "TargetSet":
        return cls(targets=tuple(sorted(set(targets))), origin=TargetOrigin.FILTER)


__all__ = ["Target", "TargetOrigin", "TargetRequest", "TargetSet"]
