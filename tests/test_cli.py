from __future__ import annotations

import re
from pathlib import Path

import pytest

from conftest import ConcurrencyTracker, FakeRunner
from tools.cli import fast_build


def _tmpdir_from(stdout: str) -> Path:
    match = re.search(r"\[\+\] Using tmpdir: '([^']+)'", stdout)
    assert match is not None, stdout
    return Path(match.group(1))


def test_filter_and_targets_are_mutually_exclusive(capsys) -> None:
    runner = FakeRunner()

    status = fast_build.main(["-f", "^checks", "-t", "packages.x86_64-linux.doc"], runner=runner)

    assert status == 1
    assert runner.calls == []
    err = capsys.readouterr().err
    assert "Error: '-f' and '-t' are mutually exclusive" in err
    assert "usage: fast-build" in err


def test_filter_or_targets_is_required(capsys) -> None:
    runner = FakeRunner()

    assert fast_build.main(["-o", "--remote builder"], runner=runner) == 1
    assert runner.calls == []
    assert "either '-f' or '-t' must be specified" in capsys.readouterr().err


def test_unknown_option_and_positionals_are_usage_errors(capsys) -> None:
    assert fast_build.main(["-x"], runner=FakeRunner()) == 1
    assert fast_build.main(["-t", "a", "extra"], runner=FakeRunner()) == 1
    assert "unrecognized arguments: extra" in capsys.readouterr().err


def test_help_exits_zero(capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        fast_build.main(["-h"], runner=FakeRunner())
    assert excinfo.value.code == 0
    out = capsys.readouterr().out
    assert "Helper to run nix-fast-build" in out
    assert "fast-build -t packages.x86_64-linux.doc" in out


def test_explicit_targets_build_each_target(capsys) -> None:
    tracker = ConcurrencyTracker(duration=0.01)
    runner = FakeRunner(build=tracker)

    status = fast_build.main(["-t", "a b c"], runner=runner)

    assert status == 0
    assert sorted(runner.built_targets()) == ["a", "b", "c"]
    out = capsys.readouterr().out
    assert "[+] TARGETS:\n  a\n  b\n  c\n" in out
    assert out.index("Start: nix-fast-build '.#a'") < out.index("Start: nix-fast-build '.#b'")
    assert not _tmpdir_from(out).exists()


def test_filter_builds_matching_outputs(capsys) -> None:
    runner = FakeRunner()

    argv = ["-f", r"^checks\.x86_64-linux\.", "-o", "--remote me@b"]
    status = fast_build.main(argv, runner=runner)

    assert status == 0
    assert sorted(runner.built_targets()) == [
        "checks.x86_64-linux.lenovo-x1-debug",
        "checks.x86_64-linux.pre-commit",
    ]
    assert all(argv[-2:] == ["--remote", "me@b"] for argv in runner.build_calls)
    out = capsys.readouterr().out
    assert "[+] FILTER='^checks\\.x86_64-linux\\.'" in out
    assert "[+] OPTS='--remote me@b'" in out
    assert not _tmpdir_from(out).exists()


def test_filter_without_matches_never_dispatches(capsys) -> None:
    runner = FakeRunner()

    status = fast_build.main(["-f", "^nothing"], runner=runner)

    assert status == 1
    assert runner.build_calls == []
    captured = capsys.readouterr()
    assert "No flake outputs match filter: '^nothing'" in captured.err
    assert "[+] Removing tmpdir" in captured.out
    assert not _tmpdir_from(captured.out).exists()


def test_build_failures_set_exit_status_and_halt(capsys) -> None:
    runner = FakeRunner(build=lambda target: 0 if target == "ok" else 1)

    status = fast_build.main(["-j", "1", "-t", "ok bad1 bad2 never"], runner=runner)

    assert status == 2
    assert runner.built_targets() == ["ok", "bad1", "bad2"]
    captured = capsys.readouterr()
    assert "2 build(s) failed: bad1, bad2" in captured.err
    assert "not started: never" in captured.err
    assert not _tmpdir_from(captured.out).exists()


def test_halt_after_flag_overrides_default() -> None:
    runner = FakeRunner(build=lambda target: 1)

    status = fast_build.main(["-j", "1", "--halt-after", "3", "-t", "a b c d"], runner=runner)

    assert status == 3
    assert runner.built_targets() == ["a", "b", "c"]


def test_invalid_jobs_value_is_a_usage_error(capsys) -> None:
    assert fast_build.main(["-j", "0", "-t", "a"], runner=FakeRunner()) == 1
    assert "invalid positive integer" in capsys.readouterr().err


def test_missing_build_tool_is_a_precondition_error(monkeypatch, capsys) -> None:
    monkeypatch.setattr("ports.runner.shutil.which", lambda name: None)

    status = fast_build.main(["-t", "a"])

    assert status == 1
    assert "command 'nix-fast-build' is not installed" in capsys.readouterr().err


def test_evaluator_is_required_only_for_filters(monkeypatch) -> None:
    checked: list[str] = []

    def which(name: str):
        checked.append(name)
        return None if name == "nix" else f"/usr/bin/{name}"

    monkeypatch.setattr("ports.runner.shutil.which", which)

    assert fast_build.main(["-f", "^checks"]) == 1
    assert checked == ["nix-fast-build", "nix"]


def test_event_log_flag_writes_job_events(tmp_path) -> None:
    status = fast_build.main(["--event-log", str(tmp_path), "-t", "a"], runner=FakeRunner())

    assert status == 0
    logs = list(tmp_path.glob("*/builds_*.jsonl"))
    assert len(logs) == 1
    assert '"job.finished"' in logs[0].read_text(encoding="utf-8")


def test_unwritable_event_log_is_a_config_error(tmp_path, capsys) -> None:
    not_a_dir = tmp_path / "events"
    not_a_dir.write_text("", encoding="utf-8")
    runner = FakeRunner()

    status = fast_build.main(["--event-log", str(not_a_dir), "-t", "a"], runner=runner)

    assert status == 1
    assert runner.calls == []
    err = capsys.readouterr().err
    assert "Error: cannot write event log below" in err
    assert "Traceback" not in err


def test_usage_lists_every_option(capsys) -> None:
    assert fast_build.main(["-t", "a", "-f", "b"], runner=FakeRunner()) == 1
    usage = capsys.readouterr().err.split("usage:", 1)[1]
    for flag in ("-o", "-j", "--halt-after", "--flake", "--event-log", "-f", "-t"):
        assert flag in usage


def test_interrupt_removes_tmpdir(capsys) -> None:
    def build(target: str) -> int:
        raise KeyboardInterrupt

    status = fast_build.main(["-j", "1", "-t", "a"], runner=FakeRunner(build=build))

    assert status == fast_build.EXIT_INTERRUPTED
    assert not _tmpdir_from(capsys.readouterr().out).exists()
