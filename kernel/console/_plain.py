"""kernel.console._plain -- Plain-text fallback backend.

print()-based output with no external dependencies. Used when stdout is
not a TTY (CI logs) or when ``--plain`` is given.
"""

from __future__ import annotations

import threading

_STATUS_ICONS = {
    "pass": "ok",
    "fail": "FAIL",
    "skipped": "skip",
    "expected_failure": "xfail",
}


class PlainBackend:
    """ConsoleProtocol implementation using only built-in print()."""

    def __init__(self) -> None:
        # Verdicts are reported from worker threads.
        self._lock = threading.Lock()

    def _print(self, text: str = "") -> None:
        with self._lock:
            print(text, flush=True)

    # -- General messages ---------------------------------------------------

    def info(self, message: str) -> None:
        self._print(f"  {message}")

    def success(self, message: str) -> None:
        self._print(f"  [ok] {message}")

    def warning(self, message: str) -> None:
        self._print(f"  [warn] {message}")

    def error(self, message: str) -> None:
        self._print(f"  [error] {message}")

    # -- Structured output --------------------------------------------------

    def table(self, headers: list[str], rows: list[list[str]], *, title: str = "") -> None:
        out: list[str] = []
        if title:
            out.append(f"\n  {title}:")

        if headers or rows:
            all_rows = [headers, *rows]
            col_widths = [
                max(len(str(row[i])) if i < len(row) else 0 for row in all_rows)
                for i in range(len(headers))
            ]
            header_cells = zip(headers, col_widths, strict=True)
            out.append("  " + "  ".join(h.ljust(w) for h, w in header_cells))
            out.append("  " + "  ".join("-" * w for w in col_widths))
            for row in rows:
                cells = [
                    str(row[i]).ljust(col_widths[i]) if i < len(row) else " " * col_widths[i]
                    for i in range(len(headers))
                ]
                out.append("  " + "  ".join(cells).rstrip())
        if out:
            self._print("\n".join(out))

    def kv(self, data: dict[str, str], *, title: str = "") -> None:
        out: list[str] = []
        if title:
            out.append(f"\n  {title}:")
        if data:
            max_key = max(len(k) for k in data)
            out.extend(f"  {k.rjust(max_key)}: {v}" for k, v in data.items())
        if out:
            self._print("\n".join(out))

    # -- Run progress -------------------------------------------------------

    def step(self, current: int, total: int, description: str) -> None:
        self._print(f"\n  [{current}/{total}] {description}")

    def step_detail(self, message: str) -> None:
        self._print(f"    {message}")

    def block_result(self, block_id: str, label: str, status: str, message: str) -> None:
        icon = _STATUS_ICONS.get(status, status)
        suffix = f" -- {message}" if message else ""
        name = f"{block_id} ({label})" if label else block_id
        self._print(f"    [{icon}] {name}{suffix}")

    def diff(self, text: str) -> None:
        self._print("\n".join(f"      {line}" for line in text.splitlines()))
