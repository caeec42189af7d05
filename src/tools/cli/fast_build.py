"""Run nix-fast-build for a set of flake targets with bounded parallelism."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Mapping, NoReturn, Optional, TextIO

from contracts.errors import ConfigError, FastBuildError, UsageError
from orchestrator import log as event_log
from orchestrator.scheduler import Scheduler
from ports.runner import CommandRunner, SubprocessRunner, require_commands
from project_config import DispatchSettings, resolve_settings
from targets.model import TargetRequest
from targets.resolver import resolve_targets

_LOGGER = logging.getLogger("fast_build")

EXIT_INTERRUPTED = 130

_EPILOG = """\
Examples:

  --

  Following command builds the target 'packages.x86_64-linux.doc' locally:

    %(prog)s -t packages.x86_64-linux.doc

  --

  Following command builds the target 'packages.x86_64-linux.doc' on the
  remote builder 'my_builder' authenticating as current user:

    %(prog)s -t packages.x86_64-linux.doc -o '--remote my-builder'

  --

  Following command builds all 'checks.x86_64-linux.*debug' targets on
  the specified remote builder 'my_builder' authenticating as user 'me'
  with ssh key '~/.ssh/my_key':

    %(prog)s \\
      -f '^checks\\.x86_64-linux\\..*debug$' \\
      -o '--remote me@my_builder \\
          --remote-ssh-option IdentityFile ~/.ssh/my_key'

  --

  Following command builds all non-release aarch64 checks targets
  (outputs 'checks.aarch64-linux.' not followed by a word 'release'
  in the output target name) on the specified remote builder 'my_builder'
  authenticating as user 'me':

    %(prog)s \\
      -f '^checks\\.aarch64-linux\\.((?!release).)*$' \\
      -o '--remote me@my_builder'
"""


class _ArgumentParser(argparse.ArgumentParser):
    """Parser reporting problems as :class:`UsageError` instead of exiting 2."""

    def error(self, message: str) -> NoReturn:
        raise UsageError(message)


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid positive integer: '{value}'") from exc
    if parsed < 1:
        raise argparse.ArgumentTypeError(f"invalid positive integer: '{value}'")
    return parsed


def _build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="fast-build",
        description="Helper to run nix-fast-build for specified flake targets.",
        epilog=_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Set the script verbosity to DEBUG.",
    )
    parser.add_argument(
        "-o",
        "--options",
        dest="options",
        default="",
        metavar="OPTS",
        help=(
            "Options passed directly to nix-fast-build. See available options at: "
            "https://github.com/Mic92/nix-fast-build#reference."
        ),
    )
    parser.add_argument(
        "-f",
        "--filter",
        dest="filter",
        default=None,
        metavar="FILTER",
        help=(
            "Target selector filter - regular expression applied over flake outputs "
            "to determine the build targets. Mutually exclusive with -t. "
            "Example: -f '^devShells\\.'"
        ),
    )
    parser.add_argument(
        "-t",
        "--targets",
        dest="targets",
        action="append",
        default=[],
        metavar="TARGETS",
        help=(
            "Target selector list - whitespace separated flake outputs to build. "
            "May be repeated. Mutually exclusive with -f. "
            "Example: -t 'devShells.x86_64-linux.smoke-test packages.x86_64-linux.doc'"
        ),
    )
    parser.add_argument(
        "-j",
        "--jobs",
        type=_positive_int,
        default=None,
        help="Maximum number of concurrent builds (default: 5).",
    )
    parser.add_argument(
        "--halt-after",
        dest="halt_after",
        type=_positive_int,
        default=None,
        metavar="N",
        help="Stop launching new builds once N builds have failed (default: 2).",
    )
    parser.add_argument(
        "--flake",
        default=None,
        metavar="REF",
        help="Flake to evaluate and build from (default: '.').",
    )
    parser.add_argument(
        "--event-log",
        dest="event_log",
        default=None,
        metavar="DIR",
        help="Append JSONL job events below DIR.",
    )
    return parser


def _print_err(message: str, stream: Optional[TextIO] = None) -> None:
    stream = stream or sys.stderr
    red, none = ("\033[1;31m", "\033[0m") if stream.isatty() else ("", "")
    print(f"{red}Error:{none} {message}", file=stream)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "jobs": args.jobs,
        "halt_after_failures": args.halt_after,
        "flake": args.flake,
        "event_log_dir": args.event_log,
        "build_options": args.options,
    }


def _configure_event_log(settings: DispatchSettings) -> None:
    try:
        event_log.configure(settings.event_log_dir, max_bytes=settings.event_log_max_bytes)
    except OSError as exc:
        raise ConfigError(
            f"cannot write event log below '{settings.event_log_dir}': {exc}"
        ) from exc


def _required_commands(settings: DispatchSettings, request: TargetRequest) -> List[str]:
    commands = [settings.build_command]
    if request.filter is not None:
        commands.append(settings.evaluator_command)
    return commands


def dispatch(
    request: TargetRequest,
    settings: DispatchSettings,
    *,
    runner: CommandRunner,
    base_env: Optional[Mapping[str, str]] = None,
) -> int:
    """Resolve ``request`` and build its targets; return the exit status.

    The temporary directory holding the intermediate target listings is
    removed on every exit path, including interrupts.
    """

    print(f"[+] OPTS='{' '.join(settings.build_options)}'")
    if request.filter is not None:
        print(f"[+] FILTER='{request.filter}'")

    with tempfile.TemporaryDirectory(suffix=".evaltmp") as tmpdir:
        print(f"[+] Using tmpdir: '{tmpdir}'")
        try:
            target_set = resolve_targets(
                request,
                runner=runner,
                workdir=Path(tmpdir),
                flake=settings.flake,
                evaluator=settings.evaluator_command,
            )
            print("[+] TARGETS:")
            for target in target_set:
                print(f"  {target}")

            print("[+] Running builds ...", flush=True)
            scheduler = Scheduler(settings, runner=runner, base_env=base_env)
            try:
                summary = scheduler.run(list(target_set))
            finally:
                scheduler.shutdown()
        finally:
            print(f"[+] Removing tmpdir: '{tmpdir}'", flush=True)

    if summary.failed:
        failed = ", ".join(result.target for result in summary.failed)
        _print_err(f"{len(summary.failed)} build(s) failed: {failed}")
    if summary.halted:
        skipped = ", ".join(result.target for result in summary.skipped)
        _print_err(f"halted; not started: {skipped}")
    return summary.exit_status


def main(argv: List[str] | None = None, *, runner: Optional[CommandRunner] = None) -> int:
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
        request = TargetRequest.from_options(args.targets, args.filter)
        _configure_logging(args.verbose)
        settings = resolve_settings(os.environ, _cli_overrides(args))
        _LOGGER.debug("resolved settings: %s", settings)
        if settings.event_log_dir is not None:
            _configure_event_log(settings)
        if runner is None:
            require_commands(_required_commands(settings, request))
            runner = SubprocessRunner()
        return dispatch(request, settings, runner=runner)
    except UsageError as exc:
        _print_err(exc.detail)
        parser.print_usage(sys.stderr)
        return exc.exit_status
    except FastBuildError as exc:
        _print_err(exc.detail)
        return exc.exit_status
    except KeyboardInterrupt:
        _print_err("interrupted")
        return EXIT_INTERRUPTED


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
