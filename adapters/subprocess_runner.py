"""Adapter: SubprocessRunner implements ProcessPort.

Runs compilers and example programs via subprocess with a wall-clock
timeout and cooperative cancellation. Each child starts its own process
group so that a timeout also kills anything it spawned (``kotlin`` is a
shell script that launches a JVM).
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
import time
from typing import TYPE_CHECKING

from domain.models import ProcessOutcome

if TYPE_CHECKING:
    import threading
    from collections.abc import Mapping, Sequence

logger = logging.getLogger("litverify.adapters")

_POLL_SECONDS = 0.05
_REAP_SECONDS = 5.0


class SubprocessRunner:
    """Concrete implementation of ProcessPort using subprocess.Popen."""

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        """Initialise with optional extra environment variables.

        Args:
            env: Variables added to the inherited environment of every child.
        """
        self._env = {**os.environ, "PYTHONIOENCODING": "utf-8", **(env or {})}

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: str,
        timeout_seconds: float,
        cancel: threading.Event | None = None,
    ) -> ProcessOutcome:
        """Run a command and collect its output.

        Returns:
            A ProcessOutcome; exit_code is None when the process was killed
            for exceeding the timeout or because the run was cancelled.

        Raises:
            FileNotFoundError: if the program does not exist.
        """
        start = time.monotonic()
        deadline = start + timeout_seconds
        proc = subprocess.Popen(
            list(argv),
            cwd=cwd,
            env=self._env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            start_new_session=True,
        )

        timed_out = False
        cancelled = False
        while True:
            remaining = deadline - time.monotonic()
            try:
                stdout, stderr = proc.communicate(timeout=max(0.0, min(_POLL_SECONDS, remaining)))
                break
            except subprocess.TimeoutExpired:
                if cancel is not None and cancel.is_set():
                    cancelled = True
                elif time.monotonic() >= deadline:
                    timed_out = True
                else:
                    continue
            logger.warning(
                "%s %s after %.1fs",
                argv[0],
                "cancelled" if cancelled else "timed out",
                time.monotonic() - start,
            )
            stdout, stderr = _kill(proc)
            break

        elapsed = time.monotonic() - start
        return ProcessOutcome(
            exit_code=None if (timed_out or cancelled) else proc.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            timed_out=timed_out,
            cancelled=cancelled,
            elapsed_seconds=elapsed,
        )

    def which(self, program: str) -> str | None:
        """Return the resolved path of a program, or None if not found."""
        return shutil.which(program)


def _kill(proc: subprocess.Popen[str]) -> tuple[str, str]:
    """Kill a process and its whole group, then collect what it printed."""
    try:
        if hasattr(os, "killpg"):
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except ProcessLookupError:
        logger.debug("Process %d already exited", proc.pid)
    try:
        return proc.communicate(timeout=_REAP_SECONDS)
    except subprocess.TimeoutExpired:
        logger.error("Process %d did not exit after SIGKILL", proc.pid)
        return "", ""
