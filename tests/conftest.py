"""Shared fixtures for the quadtune test suite."""

from __future__ import annotations

import pytest
from builders import hover_frames, make_metadata, noisy_frames

from quadtune.models import LogFrame, LogMetadata


@pytest.fixture
def metadata() -> LogMetadata:
    return make_metadata()


@pytest.fixture
def quiet_frames() -> list[LogFrame]:
    return hover_frames()


@pytest.fixture(scope="module")
def gyro_noise_frames() -> list[LogFrame]:
    return noisy_frames()
