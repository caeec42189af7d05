from __future__ import annotations

from pathlib import Path

import pytest

import project_config
from contracts.errors import ConfigError, UsageError
from project_config import get_section, resolve_settings


def _write_config(tmp_path: Path, text: str, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "config.toml"
    path.write_text(text, encoding="utf-8")
    monkeypatch.setenv("FAST_BUILD_CONFIG", str(path))
    project_config.reload()


def test_config_precedence_defaults() -> None:
    settings = resolve_settings({})
    assert settings.jobs == 5
    assert settings.halt_after_failures == 2
    assert settings.eval_workers == 4
    assert settings.flake == "."
    assert settings.build_command == "nix-fast-build"
    assert settings.ssh_options == "-o ControlMaster=no"
    assert settings.build_options == ()
    assert settings.event_log_dir is None


def test_get_section_reads_dotted_paths() -> None:
    assert get_section("dispatch.jobs") == 5
    assert get_section("dispatch.missing", "fallback") == "fallback"
    with pytest.raises(KeyError):
        get_section("dispatch.missing")


def test_environment_overrides_toml() -> None:
    settings = resolve_settings(
        {"FAST_BUILD_JOBS": "8", "FAST_BUILD_HALT_AFTER": "3", "FAST_BUILD_FLAKE": "github:o/r"}
    )
    assert settings.jobs == 8
    assert settings.halt_after_failures == 3
    assert settings.flake == "github:o/r"


def test_invalid_environment_values_are_ignored() -> None:
    settings = resolve_settings({"FAST_BUILD_JOBS": "many", "FAST_BUILD_HALT_AFTER": "0"})
    assert settings.jobs == 5
    assert settings.halt_after_failures == 2


def test_cli_overrides_environment(tmp_path) -> None:
    settings = resolve_settings(
        {"FAST_BUILD_JOBS": "8", "FAST_BUILD_EVENT_LOG": str(tmp_path / "env")},
        {"jobs": 2, "halt_after_failures": None, "event_log_dir": str(tmp_path / "cli")},
    )
    assert settings.jobs == 2
    assert settings.halt_after_failures == 2
    assert settings.event_log_dir == tmp_path / "cli"


def test_build_options_follow_shell_quoting() -> None:
    settings = resolve_settings(
        {}, {"build_options": "--remote me@b --remote-ssh-option IdentityFile '~/my key'"}
    )
    assert settings.build_options == (
        "--remote",
        "me@b",
        "--remote-ssh-option",
        "IdentityFile",
        "~/my key",
    )


def test_unbalanced_build_options_are_a_usage_error() -> None:
    with pytest.raises(UsageError):
        resolve_settings({}, {"build_options": "--remote 'oops"})


def test_alternative_config_file(tmp_path, monkeypatch) -> None:
    _write_config(
        tmp_path,
        '[dispatch]\njobs = 3\n[build]\nssh_options = ""\n[events]\ndir = "logs"\n',
        monkeypatch,
    )
    settings = resolve_settings({})
    assert settings.jobs == 3
    assert settings.ssh_options == ""
    assert settings.event_log_dir == Path("logs")


def test_config_schema_violation_is_reported(tmp_path, monkeypatch) -> None:
    _write_config(tmp_path, "[dispatch]\njobs = 0\nunknown = true\n", monkeypatch)
    with pytest.raises(ConfigError) as excinfo:
        resolve_settings({})
    assert "/dispatch" in excinfo.value.detail


def test_missing_config_file_is_reported(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("FAST_BUILD_CONFIG", str(tmp_path / "absent.toml"))
    project_config.reload()
    with pytest.raises(ConfigError, match="was not found"):
        resolve_settings({})


def test_installed_package_without_config_file_uses_defaults(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(project_config, "_default_config_path", lambda: tmp_path / "config.toml")
    project_config.reload()

    assert project_config.get_config() == {}
    settings = resolve_settings({"FAST_BUILD_JOBS": "7"})
    assert settings.jobs == 7
    assert settings.halt_after_failures == 2
    assert settings.eval_workers == 4
    assert settings.build_command == "nix-fast-build"
    assert settings.ssh_options == "-o ControlMaster=no"
    assert settings.event_log_dir is None
