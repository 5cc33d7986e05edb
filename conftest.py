"""Shared pytest fixtures and test factories for litverify.

Provides:
- Fake port implementations (FileSystem, Process)
- Factory functions for the domain models with sensible defaults
- Pytest fixtures wrapping the most commonly used factories
"""

from __future__ import annotations

import sys
import threading
from typing import TYPE_CHECKING

import pytest

from domain.models import (
    Block,
    ExecutionResult,
    ExecutionStatus,
    ExpectedOutput,
    FileInfo,
    OutputMode,
    ProcessOutcome,
    Settings,
    Toolchain,
    block_id,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence


# ── Fake Port Implementations ─────────────────────────────────────────────


class InMemoryFileSystem:
    """Stateful in-memory FileSystemPort."""

    def __init__(self, files: dict[str, str] | None = None) -> None:
        self._files: dict[str, str] = dict(files or {})

    def read_file(self, path: str) -> str:
        """Read file content from memory."""
        if path not in self._files:
            msg = f"File not found: {path}"
            raise FileNotFoundError(msg)
        return self._files[path]

    def write_file(self, path: str, content: str) -> None:
        """Write file content to memory."""
        self._files[path] = content

    def list_files(self, root: str, pattern: str = "**/*") -> list[FileInfo]:
        """List files under root matching the pattern suffix."""
        result: list[FileInfo] = []
        suffix = pattern.lstrip("*") if pattern.startswith("*") else ""
        prefix = "" if root in ("", ".") else root.rstrip("/") + "/"
        for path in sorted(self._files):
            if path.startswith(prefix) and (not suffix or path.endswith(suffix)):
                result.append(
                    FileInfo(path=path, size_bytes=len(self._files[path]), last_modified="")
                )
        return result

    def file_exists(self, path: str) -> bool:
        """Check if a file exists in memory."""
        return path in self._files

    def is_directory(self, path: str) -> bool:
        """Any prefix of a stored path counts as a directory."""
        prefix = path.rstrip("/") + "/"
        return any(p.startswith(prefix) for p in self._files)


class FakeProcess:
    """Scripted ProcessPort.

    ``responses`` maps a substring to the outcome returned for any command
    with an argument containing it; everything else succeeds silently.
    Calls are recorded (thread-safe) in ``calls`` as argv lists.
    """

    def __init__(
        self,
        responses: dict[str, ProcessOutcome] | None = None,
        *,
        missing: Sequence[str] = (),
        handler: Callable[[list[str], str], ProcessOutcome] | None = None,
    ) -> None:
        self._responses = responses or {}
        self._missing = set(missing)
        self._handler = handler
        self._lock = threading.Lock()
        self.calls: list[list[str]] = []

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: str,
        timeout_seconds: float,
        cancel: threading.Event | None = None,
    ) -> ProcessOutcome:
        """Record the call and return the scripted outcome."""
        args = list(argv)
        with self._lock:
            self.calls.append(args)
        if args[0] in self._missing:
            raise FileNotFoundError(args[0])
        if self._handler is not None:
            return self._handler(args, cwd)
        for key, outcome in self._responses.items():
            if any(key in arg for arg in args):
                return outcome
        return ProcessOutcome(exit_code=0, stdout="", stderr="")

    def which(self, program: str) -> str | None:
        """Every program exists except the ones declared missing."""
        return None if program in self._missing else f"/usr/bin/{program}"


# ── Domain Factories ──────────────────────────────────────────────────────


FAKE_KOTLIN = Toolchain(
    language="kotlin",
    aliases=("kt",),
    compile=("kotlinc", "{sources}", "-d", "{out}"),
    run=("kotlin", "-cp", "{out}", "{main}"),
    entry_pattern=r"\bfun\s+main\s*\(",
    main_class="{package_prefix}{Stem}Kt",
)

REAL_PYTHON = Toolchain(
    language="python",
    aliases=("py",),
    run=(sys.executable, "{source}"),
    compile_errors=("SyntaxError", "IndentationError"),
)


def make_settings(**overrides: object) -> Settings:
    """Create Settings with both the fake Kotlin and real Python toolchains."""
    defaults: dict[str, object] = {
        "toolchains": (FAKE_KOTLIN, REAL_PYTHON),
        "workers": 2,
        "timeout_ms": 5_000,
        "fail_fast": False,
        "assertion_marker": "[Error]:",
        "include": (),
    }
    defaults.update(overrides)
    return Settings(**defaults)  # type: ignore[arg-type]


def make_block(
    source: str = '// Basics/Hello.kt\nfun main() {\n  println("abc")\n}\n',
    *,
    document: str = "Basics.md",
    index: int = 0,
    line: int = 1,
    language: str = "kotlin",
    label: str | None = "Basics/Hello.kt",
    package: str | None = None,
    expected: str | None = "abc",
    sample: bool = False,
    flags: frozenset[str] = frozenset(),
    executable: bool = True,
    skip_reason: str = "",
) -> Block:
    """Create a Block with sensible defaults."""
    return Block(
        document=document,
        index=index,
        line=line,
        language=language,
        source=source,
        label=label,
        package=package,
        expected=(
            ExpectedOutput(text=expected, mode=OutputMode.SAMPLE if sample else OutputMode.EXACT)
            if expected is not None
            else None
        ),
        flags=flags,
        executable=executable,
        skip_reason=skip_reason,
    )


def make_result(
    status: ExecutionStatus = ExecutionStatus.SUCCESS,
    *,
    document: str = "Basics.md",
    index: int = 0,
    stdout: str = "abc\n",
    stderr: str = "",
    exit_code: int | None = 0,
    **kwargs: object,
) -> ExecutionResult:
    """Create an ExecutionResult with sensible defaults."""
    return ExecutionResult(
        block_id=block_id(document, index),
        status=status,
        stdout=stdout,
        stderr=stderr,
        exit_code=exit_code,
        **kwargs,  # type: ignore[arg-type]
    )


# ── Pytest Fixtures ──────────────────────────────────────────────────────


@pytest.fixture
def in_memory_fs() -> InMemoryFileSystem:
    """Provide a stateful in-memory FileSystemPort."""
    return InMemoryFileSystem()


@pytest.fixture
def fake_process() -> FakeProcess:
    """Provide a ProcessPort where every command succeeds silently."""
    return FakeProcess()


@pytest.fixture
def process_factory() -> type[FakeProcess]:
    """Provide the FakeProcess class for scripted outcomes."""
    return FakeProcess


@pytest.fixture
def fs_factory() -> type[InMemoryFileSystem]:
    """Provide the InMemoryFileSystem class for pre-populated trees."""
    return InMemoryFileSystem


@pytest.fixture
def settings() -> Settings:
    """Provide default test Settings."""
    return make_settings()


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    """Provide the make_settings factory function."""
    return make_settings


@pytest.fixture
def block_factory() -> Callable[..., Block]:
    """Provide the make_block factory function."""
    return make_block


@pytest.fixture
def result_factory() -> Callable[..., ExecutionResult]:
    """Provide the make_result factory function."""
    return make_result
