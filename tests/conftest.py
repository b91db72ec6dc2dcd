"""Pytest fixtures: stub runners launched from a temporary script path."""

import shutil
import sys
from pathlib import Path

import pytest

from validation_bridge.config.schema import RunnerConfig
from validation_bridge.runner.lifecycle import ValidationClient

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def script_path(tmp_path: Path) -> Path:
    """A directory holding the stub runner modules."""
    for name in ("stub_runner.py", "exit_runner.py"):
        shutil.copy(FIXTURES / name, tmp_path / name)
    return tmp_path


@pytest.fixture
def make_config(script_path: Path):
    def _make(**overrides) -> RunnerConfig:
        values = {
            "python_executable": sys.executable,
            "script_path": str(script_path),
            "server_module": "stub_runner",
            "terminate_grace_seconds": 2.0,
        }
        values.update(overrides)
        return RunnerConfig(**values)

    return _make


@pytest.fixture
def runner_config(make_config) -> RunnerConfig:
    return make_config()


@pytest.fixture
def client(runner_config: RunnerConfig):
    c = ValidationClient(runner_config)
    c.start()
    yield c
    c.stop()
