"""Shared fixtures for trak tests."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

# Ensure the project root is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from trak import config as trak_config
from trak.errors import BackendError


class FakeLLM:
    """Completion client returning canned responses in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: list[dict] = []

    def complete(self, system, prompt, temperature=0.3, max_tokens=2000):
        self.calls.append({"system": system, "prompt": prompt, "temperature": temperature})
        if not self.responses:
            raise BackendError("no canned response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture(autouse=True)
def _isolate_user_config(tmp_path, monkeypatch):
    """Keep ~/.trak and AI/GitHub credentials out of every test."""
    config_dir = tmp_path / "home" / ".trak"
    monkeypatch.setattr(trak_config, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(trak_config, "CONFIG_PATH", config_dir / "config.json")
    for var in ("OPENAI_API_KEY", "TRAK_AI_MODEL", "TRAK_ORG_ENDPOINT", "GITHUB_TOKEN"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def workdir(tmp_path):
    """An empty project directory to track."""
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def fake_llm():
    return FakeLLM


@pytest.fixture
def restore_root_logging():
    """Undo handlers and levels installed by CLI or daemon logging setup."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
