"""
kernel/context.py -- Per-run state shared by the worker pool.

Everything a worker needs for one verification run is reached through a
RunContext passed in explicitly; there are no module-level run globals, so
parallel units (and parallel runs in tests) cannot interfere.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from domain.models import ComparisonVerdict, ExecutionResult, Settings
    from domain.ports import ProcessPort


@dataclass
class RunContext:
    """Settings, cancellation token, and result store for one run."""

    settings: Settings
    process: ProcessPort
    cancel: threading.Event = field(default_factory=threading.Event)
    _results: dict[str, ExecutionResult] = field(default_factory=dict, repr=False)
    _verdicts: dict[str, ComparisonVerdict] = field(default_factory=dict, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def cancelled(self) -> bool:
        return self.cancel.is_set()

    def record(self, result: ExecutionResult | None, verdict: ComparisonVerdict) -> None:
        """Store a block's execution result (if it ran) and its verdict."""
        with self._lock:
            if result is not None:
                self._results[verdict.block_id] = result
            self._verdicts[verdict.block_id] = verdict

    def verdicts(self) -> dict[str, ComparisonVerdict]:
        """Return a snapshot of all verdicts recorded so far."""
        with self._lock:
            return dict(self._verdicts)

    def results(self) -> dict[str, ExecutionResult]:
        """Return a snapshot of all execution results recorded so far."""
        with self._lock:
            return dict(self._results)
