from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from studytools.pipeline.ingestion import HoldingArea
from studytools.pipeline.workspace import SessionWorkspace
from tests.helpers import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def workspace(tmp_path: Path, clock: FakeClock) -> SessionWorkspace:
    return SessionWorkspace(base_dir=tmp_path / "sessions", ttl=timedelta(seconds=240), clock=clock)


@pytest.fixture
def holding(tmp_path: Path) -> HoldingArea:
    return HoldingArea(base_dir=tmp_path / "uploads")
