"""Shared fixtures for core unit tests"""

import pytest

from stream2md.config import Settings
from stream2md.core.boundary import BoundaryDetector
from stream2md.core.engine import StreamEngine


@pytest.fixture(name="settings")
def settings_fixture():
    return Settings()


@pytest.fixture(name="detector")
def detector_fixture(settings):
    return BoundaryDetector(settings)


@pytest.fixture(name="engine")
def engine_fixture(settings):
    return StreamEngine(settings)
