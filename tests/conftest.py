"""Shared pytest fixtures."""

from __future__ import annotations

import os

import pytest

from tests.helpers import FakeClock, RecordingHandler, RecordingSink


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def _clean_diffsleuth_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer DIFFSLEUTH_* variables from leaking into tests."""
    for name in list(os.environ):
        if name.startswith("DIFFSLEUTH_"):
            monkeypatch.delenv(name, raising=False)
