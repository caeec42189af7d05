"""Aggregation helpers for JSONL build event logs."""

from __future__ import annotations

import argparse
import hashlib
import json
from collections import Counter
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

__all__ = ["aggregate", "main"]


def _load_events(paths: Iterable[Path]) -> Iterable[Mapping[str, Any]]:
    for path in paths:
        for line in path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            yield json.loads(line)


def aggregate(paths: Iterable[Path], *, top: int = 5) -> Dict[str, Any]:
    """Summarise ``job.finished`` events: totals per state, failures, slowest."""

    states: Counter[str] = Counter()
    failed: set[str] = set()
    durations: Dict[str, float] = {}
    jobs = 0
    for event in _load_events(paths):
        if event.get("event") != "job.finished":
            continue
        jobs += 1
        target = str(event.get("target", "unknown"))
        state = str(event.get("state", "unknown"))
        states[state] += 1
        if state == "failed":
            failed.add(target)
        elapsed = float(event.get("elapsed_s", 0.0))
        durations[target] = max(elapsed, durations.get(target, 0.0))

    slowest: List[List[Any]] = [
        [target, elapsed]
        for target, elapsed in sorted(durations.items(), key=lambda item: (-item[1], item[0]))[:top]
    ]
    summary: Dict[str, Any] = {
        "total_jobs": jobs,
        "states": dict(sorted(states.items())),
        "failed_targets": sorted(failed),
        "slowest": slowest,
    }
    # Canonicalise summary for deterministic snapshots
    canonical = json.dumps(summary, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    summary["canonical"] = canonical
    summary["digest"] = "sha256-" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return summary


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fast-build-report",
        description="Aggregate JSONL job events written by fast-build --event-log",
    )
    parser.add_argument("path", help="Directory containing JSONL logs")
    parser.add_argument("--top", type=int, default=5, help="Number of slowest targets to list")
    return parser


def main(argv: List[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    base_dir = Path(args.path)
    files = sorted(base_dir.glob("**/*.jsonl"))
    if not files:
        raise SystemExit(f"No JSONL logs found under {base_dir}")
    summary = aggregate(files, top=args.top)
    print(json.dumps(summary, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
