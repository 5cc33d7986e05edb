"""kernel.console._protocol -- ConsoleProtocol definition.

Pure standard-library typing.Protocol for the litverify terminal output system.
No external dependencies allowed in this file.
"""

from __future__ import annotations

from typing import Protocol


class ConsoleProtocol(Protocol):
    """litverify terminal output protocol.

    Three layers of methods:

    **General messages** -- usable from any module::

        console.info("Found 42 documents")
        console.success("All examples pass")
        console.warning("Run cancelled")
        console.error("kotlinc not found")

    **Structured output** -- tables and key-value displays::

        console.table(["Document", "Pass"], [["a.md", "3"]], title="Results")
        console.kv({"Passed": "12", "Failed": "0"})

    **Run progress** -- used by kernel/cli.py::

        console.step(1, 3, "Extracting blocks...")
        console.block_result("a.md#2", "Lambdas/Sort.kt", "fail", "output does not match")
        console.diff("--- expected\\n+++ actual\\n...")
    """

    # -- General messages ---------------------------------------------------

    def info(self, message: str) -> None:
        """Informational message."""
        ...

    def success(self, message: str) -> None:
        """Success / positive-outcome message."""
        ...

    def warning(self, message: str) -> None:
        """Warning message."""
        ...

    def error(self, message: str) -> None:
        """Error message."""
        ...

    # -- Structured output --------------------------------------------------

    def table(self, headers: list[str], rows: list[list[str]], *, title: str = "") -> None:
        """Display a table with *headers* and *rows*."""
        ...

    def kv(self, data: dict[str, str], *, title: str = "") -> None:
        """Display key-value pairs."""
        ...

    # -- Run progress -------------------------------------------------------

    def step(self, current: int, total: int, description: str) -> None:
        """Display a pipeline step indicator ``[current/total] description``."""
        ...

    def step_detail(self, message: str) -> None:
        """Display an indented detail line under the current step."""
        ...

    def block_result(self, block_id: str, label: str, status: str, message: str) -> None:
        """Display the verdict of one block."""
        ...

    def diff(self, text: str) -> None:
        """Display a unified diff."""
        ...
