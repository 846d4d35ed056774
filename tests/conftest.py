from __future__ import annotations

import textwrap
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


@pytest.fixture
def workflows_dir(tmp_path: Path) -> Path:
    """A repository layout rooted at tmp_path with .github/workflows/."""
    directory = tmp_path / ".github" / "workflows"
    directory.mkdir(parents=True)
    return directory


@pytest.fixture
def write_workflow(workflows_dir: Path) -> Callable[[str, str], Path]:
    """Write a file into the workflows directory and return its path.

    The content is dedented so tests can use indented triple-quoted strings.
    """
    def _write(filename: str, content: str) -> Path:
        path = workflows_dir / filename
        path.write_text(textwrap.dedent(content), encoding="utf-8")
        return path
    return _write
