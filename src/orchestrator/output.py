"""Ordered, non-interleaved emission of per-job output blocks."""

from __future__ import annotations

import sys
import threading
from typing import Callable, Dict, Optional

Writer = Callable[[str], None]


def stdout_writer(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


class OrderedEmitter:
    """Write blocks in index order, holding back blocks that finish early.

    A block is written once every lower index has been written. Blocks still
    held when the dispatch ends (behind skipped jobs) are flushed by
    :meth:`close`.
    """

    def __init__(self, write: Optional[Writer] = None) -> None:
        self._write = write or stdout_writer
        self._lock = threading.Lock()
        self._pending: Dict[int, str] = {}
        self._next = 0

    def emit(self, index: int, block: str) -> None:
        with self._lock:
            self._pending[index] = block
            while self._next in self._pending:
                self._write(self._pending.pop(self._next))
                self._next += 1

    def close(self) -> None:
        with self._lock:
            for index in sorted(self._pending):
                self._write(self._pending.pop(index))
            self._next = 0


__all__ = ["OrderedEmitter", "Writer", "stdout_writer"]
