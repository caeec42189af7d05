from __future__ import annotations

import json
import threading
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import pytest

import project_config
from orchestrator import log as event_log
from ports.runner import CommandResult

FLAKE_SHOW = {
    "checks": {
        "aarch64-linux": {
            "lenovo-x1-release": {"type": "derivation", "name": "x1-release"},
            "lenovo-x1-debug": {"type": "derivation", "name": "x1-debug"},
        },
        "x86_64-linux": {
            "pre-commit": {"type": "derivation", "name": "pre-commit-run"},
            "lenovo-x1-debug": {"type": "derivation", "name": "x1-debug"},
        },
    },
    "devShells": {
        "x86_64-linux": {
            "default": {"type": "derivation", "name": "nix-shell"},
        },
    },
    "packages": {
        "x86_64-linux": {
            "doc": {"type": "derivation", "name": "doc", "description": "Docs"},
        },
    },
    "nixosModules": {"common": {"type": "nixos-module"}},
    "formatter": {},
}


class FakeRunner:
    """Stands in for :class:`ports.runner.SubprocessRunner`.

    ``nix flake show`` answers with ``flake_show``; every build calls
    ``build(target)`` which returns the exit status (default 0).
    """

    def __init__(
        self,
        *,
        flake_show: Any = None,
        flake_status: int = 0,
        build: Optional[Callable[[str], int]] = None,
    ) -> None:
        self.flake_show = FLAKE_SHOW if flake_show is None else flake_show
        self.flake_status = flake_status
        self.build = build or (lambda target: 0)
        self.calls: List[Sequence[str]] = []
        self.envs: List[Optional[Mapping[str, str]]] = []
        self._lock = threading.Lock()

    @property
    def build_calls(self) -> List[Sequence[str]]:
        return [argv for argv in self.calls if "--flake" in argv]

    def built_targets(self) -> List[str]:
        return [argv[argv.index("--flake") + 1].split("#", 1)[1] for argv in self.build_calls]

    def __call__(
        self,
        argv: Sequence[str],
        *,
        env: Optional[Mapping[str, str]] = None,
        merge_stderr: bool = False,
    ) -> CommandResult:
        with self._lock:
            self.calls.append(list(argv))
            self.envs.append(env)
        if list(argv[1:3]) == ["flake", "show"]:
            if self.flake_status != 0:
                return CommandResult(self.flake_status, "", "error: flake not found\n")
            payload = self.flake_show
            text = payload if isinstance(payload, str) else json.dumps(payload)
            return CommandResult(0, text, "warning: Git tree is dirty\n")
        target = argv[argv.index("--flake") + 1].split("#", 1)[1]
        status = self.build(target)
        return CommandResult(status, f"building {target}\n")


class ConcurrencyTracker:
    """Build callback tracking how many builds run at the same time."""

    def __init__(self, duration: float = 0.05, failing: Sequence[str] = ()) -> None:
        self.duration = duration
        self.failing = set(failing)
        self.active = 0
        self.peak = 0
        self.started: List[str] = []
        self._lock = threading.Lock()

    def __call__(self, target: str) -> int:
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.started.append(target)
        try:
            time.sleep(self.duration)
        finally:
            with self._lock:
                self.active -= 1
        return 1 if target in self.failing else 0


@pytest.fixture(autouse=True)
def _isolated_state(monkeypatch: pytest.MonkeyPatch):
    for key in (
        "FAST_BUILD_CONFIG",
        "FAST_BUILD_JOBS",
        "FAST_BUILD_HALT_AFTER",
        "FAST_BUILD_EVAL_WORKERS",
        "FAST_BUILD_FLAKE",
        "FAST_BUILD_EVENT_LOG",
    ):
        monkeypatch.delenv(key, raising=False)
    project_config.reload()
    event_log.disable()
    yield
    project_config.reload()
    event_log.disable()


@pytest.fixture
def flake_show() -> Dict[str, Any]:
    return json.loads(json.dumps(FLAKE_SHOW))
