"""Port interfaces for litverify.

All ports are defined as typing.Protocol -- structural subtyping means any class
with matching method signatures satisfies the Protocol without inheritance.

This module has ZERO external imports -- only stdlib and typing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    import threading
    from collections.abc import Sequence

    from domain.models import FileInfo, ProcessOutcome


class FileSystemPort(Protocol):
    """Abstraction over file system operations."""

    def read_file(self, path: str) -> str:
        """Read and return the contents of a file."""
        ...

    def write_file(self, path: str, content: str) -> None:
        """Write content to a file, creating parent directories as needed."""
        ...

    def list_files(self, root: str, pattern: str = "**/*") -> list[FileInfo]:
        """List files matching the given glob pattern under root."""
        ...

    def file_exists(self, path: str) -> bool:
        """Return True if the file exists."""
        ...

    def is_directory(self, path: str) -> bool:
        """Return True if the path is an existing directory."""
        ...


class ProcessPort(Protocol):
    """Abstraction over running external compilers and interpreters."""

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: str,
        timeout_seconds: float,
        cancel: threading.Event | None = None,
    ) -> ProcessOutcome:
        """Run a command to completion, timeout, or cancellation.

        Never raises for a failing command; a missing executable raises
        FileNotFoundError.
        """
        ...

    def which(self, program: str) -> str | None:
        """Return the resolved path of a program, or None if not found."""
        ...
