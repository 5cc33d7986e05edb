"""Local filesystem adapter implementing FileSystemPort.

Uses pathlib for all path operations. Relative paths are resolved against a
configurable base directory (the scan root); absolute paths are used as-is.
"""

from __future__ import annotations

import os
from datetime import UTC, datetime
from pathlib import Path

from domain.models import FileInfo

# Directories never searched for documents.
_SKIP_DIRS = frozenset(
    {
        ".git",
        ".hg",
        "node_modules",
        "__pycache__",
        "venv",
        ".venv",
        "build",
        "out",
    }
)


class LocalFileSystem:
    """Concrete FileSystemPort implementation backed by the local filesystem.

    Parameters
    ----------
    base_dir:
        Root directory for all operations. Relative paths passed to methods
        are resolved against this directory.

    """

    def __init__(self, base_dir: str) -> None:
        self._base = Path(base_dir).resolve()

    def _resolve(self, path: str) -> Path:
        """Resolve a path against the base directory."""
        return self._base / path

    def read_file(self, path: str) -> str:
        """Read and return the contents of a file."""
        return self._resolve(path).read_text(encoding="utf-8")

    def write_file(self, path: str, content: str) -> None:
        """Write content to a file, creating parent directories as needed."""
        resolved = self._resolve(path)
        resolved.parent.mkdir(parents=True, exist_ok=True)
        resolved.write_text(content, encoding="utf-8")

    def list_files(self, root: str, pattern: str = "**/*") -> list[FileInfo]:
        """List files matching the glob pattern under root.

        Hidden directories and build/VCS directories are skipped. Returned
        paths are POSIX-style and relative to the base directory.
        """
        resolved_root = self._resolve(root)
        if resolved_root.is_file():
            candidates = [resolved_root] if resolved_root.match(pattern.split("/")[-1]) else []
        elif resolved_root.is_dir():
            candidates = sorted(resolved_root.glob(pattern))
        else:
            return []

        results: list[FileInfo] = []
        for match in candidates:
            if not match.is_file():
                continue
            rel = match.relative_to(self._base)
            if any(part in _SKIP_DIRS or part.startswith(".") for part in rel.parts[:-1]):
                continue
            stat = match.stat()
            mtime = datetime.fromtimestamp(stat.st_mtime, tz=UTC).isoformat()
            results.append(
                FileInfo(
                    path=rel.as_posix(),
                    size_bytes=stat.st_size,
                    last_modified=mtime,
                )
            )
        return results

    def file_exists(self, path: str) -> bool:
        """Return True if the file exists."""
        return self._resolve(path).is_file()

    def is_directory(self, path: str) -> bool:
        """Return True if the path is an existing directory."""
        return self._resolve(path).is_dir()

    @property
    def base_dir(self) -> str:
        """Return the base directory as a string."""
        return os.fspath(self._base)
