"""Error types and document schemas shared across the dispatcher."""

from __future__ import annotations

from .errors import (
    ConfigError,
    FastBuildError,
    PreconditionError,
    ResolverError,
    UsageError,
)
from .schemas import CONFIG_SCHEMA, FLAKE_SHOW_SCHEMA, schema_errors

__all__ = [
    "CONFIG_SCHEMA",
    "FLAKE_SHOW_SCHEMA",
    "ConfigError",
    "FastBuildError",
    "PreconditionError",
    "ResolverError",
    "UsageError",
    "schema_errors",
]
