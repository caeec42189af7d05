"""Target selection for the build dispatcher."""

from __future__ import annotations

from .model import Target, TargetOrigin, TargetRequest, TargetSet
from .resolver import filter_targets, resolve_targets

__all__ = [
    "Target",
    "TargetOrigin",
    "TargetRequest",
    "TargetSet",
    "filter_targets",
    "resolve_targets",
]
