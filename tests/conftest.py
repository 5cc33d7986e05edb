"""Shared pytest fixtures for the integration tests.

Provides a factory for on-disk books (a directory of markdown chapters)
and a mock ProcessPort for tests that only care about call patterns.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from unittest.mock import MagicMock

import pytest

from domain.models import ProcessOutcome

if TYPE_CHECKING:
    from pathlib import Path

# ---------------------------------------------------------------------------
# Book factories
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_book(tmp_path: Path) -> _BookFactory:
    """Factory that writes chapters under a fresh book directory.

    Returns the book root. Chapter names may contain subdirectories.
    """

    def _factory(chapters: dict[str, str], *, name: str = "book") -> Path:
        root = tmp_path / name
        root.mkdir(exist_ok=True)
        for chapter, text in chapters.items():
            path = root / chapter
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        return root

    return _factory


_BookFactory = Any  # callable[[dict[str, str]], Path]


# ---------------------------------------------------------------------------
# Mock Port implementations
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_process() -> MagicMock:
    """Mock ProcessPort -- every program exists and exits cleanly."""
    process = MagicMock()
    process.which.side_effect = lambda program: f"/usr/bin/{program}"
    process.run.return_value = ProcessOutcome(exit_code=0, stdout="", stderr="")
    return process
