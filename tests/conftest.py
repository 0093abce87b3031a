"""Shared fixtures for Coworker tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from coworker.core.capability import ToolContext
from coworker.core.events import EventEmitter


@pytest.fixture
def emitter() -> EventEmitter:
    """Unbounded emitter so tests can drain every event."""
    return EventEmitter(maxsize=0)


@pytest.fixture
def tmp_project(tmp_path: Path) -> Path:
    """Create a minimal project structure for testing."""
    project = tmp_path / "test-project"
    project.mkdir()
    (project / "src").mkdir()
    (project / "src" / "main.py").write_text("print('hello')\n", encoding="utf-8")
    (project / "src" / "utils.py").write_text("def add(a, b):\n    return a + b\n", encoding="utf-8")
    (project / "README.md").write_text("# Test Project\n", encoding="utf-8")
    return project


@pytest.fixture
def project_ctx(tmp_project: Path) -> ToolContext:
    return ToolContext(project_path=str(tmp_project))
