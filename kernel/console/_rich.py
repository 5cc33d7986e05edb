"""kernel.console._rich -- Rich-based terminal backend.

Provides coloured, structured terminal output using the Rich library.
"""

from __future__ import annotations

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table
from rich.theme import Theme

_THEME = Theme(
    {
        "info": "blue",
        "success": "bold green",
        "warning": "bold yellow",
        "error": "bold red",
        "step.num": "bold cyan",
        "dim": "dim",
        "verdict.pass": "green",
        "verdict.fail": "bold red",
        "verdict.skipped": "dim",
        "verdict.expected_failure": "yellow",
    }
)

_STATUS_ICONS = {
    "pass": "✓",
    "fail": "✗",
    "skipped": "–",
    "expected_failure": "✓",
}


class RichBackend:
    """ConsoleProtocol implementation backed by Rich."""

    def __init__(self) -> None:
        self._con = Console(theme=_THEME, highlight=False)

    # -- General messages ---------------------------------------------------

    def info(self, message: str) -> None:
        self._con.print(f"  {escape(message)}", style="info")

    def success(self, message: str) -> None:
        self._con.print(f"  ✓ {escape(message)}", style="success")

    def warning(self, message: str) -> None:
        self._con.print(f"  ⚠ {escape(message)}", style="warning")

    def error(self, message: str) -> None:
        self._con.print(f"  ✗ {escape(message)}", style="error")

    # -- Structured output --------------------------------------------------

    def table(self, headers: list[str], rows: list[list[str]], *, title: str = "") -> None:
        t = Table(title=title or None, box=box.SIMPLE, show_edge=False, pad_edge=True)
        for h in headers:
            t.add_column(h)
        for r in rows:
            t.add_row(*(escape(str(cell)) for cell in r))
        self._con.print(t)

    def kv(self, data: dict[str, str], *, title: str = "") -> None:
        t = Table(
            title=title or None,
            box=box.SIMPLE,
            show_header=False,
            show_edge=False,
            pad_edge=True,
        )
        t.add_column("Key", style="bold", justify="right")
        t.add_column("Value")
        for k, v in data.items():
            t.add_row(k, escape(v))
        self._con.print(t)

    # -- Run progress -------------------------------------------------------

    def step(self, current: int, total: int, description: str) -> None:
        self._con.print(f"\n  [step.num]\\[{current}/{total}][/] {escape(description)}")

    def step_detail(self, message: str) -> None:
        self._con.print(f"    [dim]{escape(message)}[/]")

    def block_result(self, block_id: str, label: str, status: str, message: str) -> None:
        icon = _STATUS_ICONS.get(status, "?")
        style = f"verdict.{status}" if status in _STATUS_ICONS else "default"
        name = escape(block_id)
        if label:
            name += f" [dim]({escape(label)})[/]"
        suffix = f" [dim]─ {escape(message)}[/]" if message else ""
        self._con.print(f"    [{style}]{icon}[/] {name}{suffix}")

    def diff(self, text: str) -> None:
        self._con.print(Syntax(text, "diff", theme="ansi_dark", background_color="default"))
