"""Shared error types for the build dispatcher."""

from __future__ import annotations

from typing import Optional

EXIT_FAILURE = 1


class FastBuildError(RuntimeError):
    """Base error carrying a short machine code and a human readable detail."""

    exit_status = EXIT_FAILURE

    def __init__(self, code: str, detail: Optional[str] = None) -> None:
        self.code = code
        self.detail = detail if detail is not None else code
        message = code if detail is None else f"{code}:{detail}"
        super().__init__(message)


class UsageError(FastBuildError):
    """Missing, conflicting or malformed command line options."""

    def __init__(self, detail: str) -> None:
        super().__init__("usage", detail)


class PreconditionError(FastBuildError):
    """A required external command is not available."""

    def __init__(self, detail: str) -> None:
        super().__init__("precondition", detail)


class ResolverError(FastBuildError):
    """Build targets could not be resolved from the flake outputs."""

    def __init__(self, detail: str) -> None:
        super().__init__("resolver", detail)


class ConfigError(FastBuildError):
    """The configuration file is missing or does not match its schema."""

    def __init__(self, detail: str) -> None:
        super().__init__("config", detail)


__all__ = [
    "EXIT_FAILURE",
    "ConfigError",
    "FastBuildError",
    "PreconditionError",
    "ResolverError",
    "UsageError",
]
