"""Utility helpers for loading project-wide configuration."""

from __future__ import annotations

import os
import shlex
import tomllib
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from contracts.errors import ConfigError, UsageError
from contracts.schemas import CONFIG_SCHEMA, schema_errors

_CONFIG_FILENAME = "config.toml"
_CONFIG_ENV = "FAST_BUILD_CONFIG"

_DEFAULT_JOBS = 5
_DEFAULT_HALT_AFTER_FAILURES = 2
_DEFAULT_EVAL_WORKERS = 4
_DEFAULT_EVENT_LOG_MAX_BYTES = 100 * 1024 * 1024


@dataclass(frozen=True)
class DispatchSettings:
    """Finalised dispatcher configuration after precedence resolution."""

    jobs: int = _DEFAULT_JOBS
    halt_after_failures: int = _DEFAULT_HALT_AFTER_FAILURES
    eval_workers: int = _DEFAULT_EVAL_WORKERS
    flake: str = "."
    build_command: str = "nix-fast-build"
    evaluator_command: str = "nix"
    ssh_options: str = "-o ControlMaster=no"
    build_options: Tuple[str, ...] = ()
    event_log_dir: Optional[Path] = None
    event_log_max_bytes: int = _DEFAULT_EVENT_LOG_MAX_BYTES


def _default_config_path() -> Path:
    return Path(__file__).resolve().parents[1] / _CONFIG_FILENAME


def _config_path() -> Tuple[Path, bool]:
    """Return the config path and whether it was named explicitly."""

    override = os.environ.get(_CONFIG_ENV)
    if override:
        return Path(override), True
    return _default_config_path(), False


@lru_cache(maxsize=1)
def get_config() -> Dict[str, Any]:
    """Load, validate and cache the project configuration as a dictionary.

    Without ``FAST_BUILD_CONFIG`` a missing ``config.toml`` (an installed,
    non-editable package) yields an empty document, so the built-in defaults
    apply.
    """

    path, explicit = _config_path()
    try:
        with path.open("rb") as fh:
            data = tomllib.load(fh)
    except FileNotFoundError as exc:
        if not explicit:
            return {}
        raise ConfigError(f"configuration file '{path}' was not found") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"configuration file '{path}' is not valid TOML: {exc}") from exc

    problems = schema_errors(data, CONFIG_SCHEMA)
    if problems:
        raise ConfigError(f"configuration file '{path}' is invalid: {'; '.join(problems)}")
    return data


def reload() -> None:
    """Clear the cached configuration."""

    get_config.cache_clear()


def get_section(path: str, default: Any = None) -> Any:
    """Retrieve a nested configuration value using dotted notation."""

    data: Any = get_config()
    for part in path.split("."):
        if isinstance(data, dict) and part in data:
            data = data[part]
        else:
            if default is not None:
                return default
            raise KeyError(f"Configuration path '{path}' not found")
    return data


def _parse_positive_int(value: Any) -> Optional[int]:
    try:
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            parsed = value
        elif isinstance(value, str) and value.strip():
            parsed = int(value)
        else:
            return None
    except (TypeError, ValueError):
        return None
    return parsed if parsed >= 1 else None


def _parse_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _file_defaults() -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "jobs": get_section("dispatch.jobs", _DEFAULT_JOBS),
        "halt_after_failures": get_section(
            "dispatch.halt_after_failures", _DEFAULT_HALT_AFTER_FAILURES
        ),
        "eval_workers": get_section("build.eval_workers", _DEFAULT_EVAL_WORKERS),
        "flake": get_section("build.flake", "."),
        "build_command": get_section("build.command", "nix-fast-build"),
        "evaluator_command": get_section("evaluator.command", "nix"),
        "event_log_dir": get_section("events.dir", ""),
        "event_log_max_bytes": get_section(
            "events.max_bytes", _DEFAULT_EVENT_LOG_MAX_BYTES
        ),
    }
    # An explicit empty string disables the ssh multiplexing override.
    build = get_config().get("build", {})
    payload["ssh_options"] = build.get("ssh_options", "-o ControlMaster=no")
    return payload


def _env_overrides(env: Mapping[str, str]) -> Dict[str, Any]:
    keys = {
        "jobs": "FAST_BUILD_JOBS",
        "halt_after_failures": "FAST_BUILD_HALT_AFTER",
        "eval_workers": "FAST_BUILD_EVAL_WORKERS",
        "flake": "FAST_BUILD_FLAKE",
        "event_log_dir": "FAST_BUILD_EVENT_LOG",
    }
    payload: Dict[str, Any] = {}
    for field, alias in keys.items():
        if alias in env:
            payload[field] = env[alias]
    return payload


def _apply_overrides(settings: Dict[str, Any], overrides: Mapping[str, Any]) -> None:
    for field in ("jobs", "halt_after_failures", "eval_workers", "event_log_max_bytes"):
        if field in overrides:
            maybe = _parse_positive_int(overrides[field])
            if maybe is not None:
                settings[field] = maybe
    for field in ("flake", "build_command", "evaluator_command"):
        if field in overrides:
            maybe_str = _parse_str(overrides[field])
            if maybe_str is not None:
                settings[field] = maybe_str
    if "ssh_options" in overrides and isinstance(overrides["ssh_options"], str):
        settings["ssh_options"] = overrides["ssh_options"]
    if "event_log_dir" in overrides and overrides["event_log_dir"] is not None:
        value = str(overrides["event_log_dir"]).strip()
        settings["event_log_dir"] = Path(value) if value else None


def resolve_settings(
    env: Mapping[str, str] | None = None,
    cli: Mapping[str, Any] | None = None,
) -> DispatchSettings:
    """Resolve settings with precedence ``config.toml < env < cli``.

    Values that do not parse, or fall outside their allowed range, are ignored
    so a stray environment variable cannot break a CI job. ``cli`` may also
    carry ``build_options``, the raw passthrough string for the build tool.
    """

    settings: Dict[str, Any] = {}
    _apply_overrides(settings, _file_defaults())
    _apply_overrides(settings, _env_overrides(env or {}))

    cli = dict(cli or {})
    raw_options = cli.pop("build_options", None)
    _apply_overrides(settings, {key: value for key, value in cli.items() if value is not None})
    if raw_options:
        try:
            settings["build_options"] = tuple(shlex.split(raw_options))
        except ValueError as exc:
            raise UsageError(f"cannot parse build options '{raw_options}': {exc}") from exc

    return DispatchSettings(**settings)


__all__ = [
    "DispatchSettings",
    "get_config",
    "get_section",
    "reload",
    "resolve_settings",
]
