"""
Pytest configuration and shared fixtures for Stack-Orchestrator tests.
"""

import sys
from pathlib import Path
from typing import Any

import pytest

from stack_orchestrator.config import OrchestratorConfig
from stack_orchestrator.terminal.registry import SessionRegistry, SessionSettings
from stack_orchestrator.terminal.transport import ViewerTransport

PYTHON = sys.executable

COMPOSE_YAML = """\
services:
  nginx:
    image: nginx:latest
    ports:
      - "8080:80"
"""


class FakeTransport(ViewerTransport):
    """Records every emitted event; only viewers in ``connected`` are alive."""

    def __init__(self) -> None:
        self.connected: set[str] = set()
        self.events: list[tuple[str, str, tuple[Any, ...]]] = []

    def is_connected(self, viewer_id: str) -> bool:
        return viewer_id in self.connected

    def emit(self, viewer_id: str, event: str, *args: Any) -> None:
        self.events.append((viewer_id, event, args))

    def events_for(self, viewer_id: str) -> list[tuple[str, tuple[Any, ...]]]:
        return [(event, args) for viewer, event, args in self.events if viewer == viewer_id]

    def data_for(self, viewer_id: str) -> str:
        return "".join(
            args[1] for event, args in self.events_for(viewer_id) if event == "data"
        )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def settings() -> SessionSettings:
    """Session settings with a short sweep interval."""
    return SessionSettings(buffer_capacity=100, sweep_interval=0.05)


@pytest.fixture
def registry(transport: FakeTransport, settings: SessionSettings) -> SessionRegistry:
    return SessionRegistry(transport=transport, settings=settings)


@pytest.fixture
def stacks_dir(tmp_path: Path) -> Path:
    """Stacks directory holding one stack named ``web``."""
    directory = tmp_path / "stacks"
    (directory / "web").mkdir(parents=True)
    (directory / "web" / "compose.yaml").write_text(COMPOSE_YAML)
    return directory


@pytest.fixture
def config(stacks_dir: Path) -> OrchestratorConfig:
    return OrchestratorConfig(stacks_dir=str(stacks_dir), sweep_interval=0.05)
