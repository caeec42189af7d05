"""Command construction for ``nix-fast-build`` invocations."""

from __future__ import annotations

import os
from typing import Dict, List, Mapping

from project_config import DispatchSettings


def flake_ref(target: str, settings: DispatchSettings) -> str:
    """Return the installable reference for ``target``, e.g. ``.#checks.x``."""

    return f"{settings.flake}#{target}"


def build_command(target: str, settings: DispatchSettings) -> List[str]:
    """Return the argv building ``target`` with the fixed CI flags."""

    argv = [
        settings.build_command,
        "--flake",
        flake_ref(target, settings),
        "--eval-workers",
        str(settings.eval_workers),
        "--option",
        "accept-flake-config",
        "true",
        "--remote-ssh-option",
        "ControlMaster",
        "no",
        "--remote-ssh-option",
        "ConnectTimeout",
        "10",
        "--no-download",
        "--skip-cached",
        "--no-nom",
    ]
    argv.extend(settings.build_options)
    return argv


def build_env(
    settings: DispatchSettings,
    base: Mapping[str, str] | None = None,
) -> Dict[str, str]:
    """Merge the process environment with the per-job overrides.

    ``--remote-ssh-option`` only reaches commands run on the remote builder;
    nix commands run locally (source uploads) read ``NIX_SSHOPTS`` instead, so
    ssh multiplexing is disabled in both places.
    """

    source = os.environ if base is None else base
    env: Dict[str, str] = {str(k): str(v) for k, v in source.items()}
    if settings.ssh_options:
        env["NIX_SSHOPTS"] = settings.ssh_options
    return env


__all__ = ["build_command", "build_env", "flake_ref"]
