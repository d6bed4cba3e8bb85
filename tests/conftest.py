"""Shared test fixtures and helpers for minorguard tests."""

import importlib.util
import sys
from pathlib import Path

import pytest

# Load helpers module from the tests directory using importlib to avoid
# polluting sys.path.
_helpers_path = Path(__file__).resolve().parent / "helpers.py"
_spec = importlib.util.spec_from_file_location("helpers", _helpers_path)
_helpers = importlib.util.module_from_spec(_spec)
sys.modules["helpers"] = _helpers
_spec.loader.exec_module(_helpers)

from helpers import FakeClassifier, FakeDetector, make_image, png_bytes  # noqa: E402

from minorguard.backends.base import DetectedBox  # noqa: E402
from minorguard.pipeline import ScreeningPipeline  # noqa: E402

# Detector-space boxes for a 1280-wide photo (scale 2.0)
FACE_BOXES = (
    DetectedBox(100, 100, 200, 220, 0.95),
    DetectedBox(400, 150, 480, 250, 0.80),
)


@pytest.fixture
def detector():
    return FakeDetector(FACE_BOXES)


@pytest.fixture
def classifier():
    # First face is a child, second an adult
    return FakeClassifier([0.3, 0.8])


@pytest.fixture
def pipeline(detector, classifier):
    return ScreeningPipeline(detector, classifier)


@pytest.fixture
def photo():
    """1280x960 BGR photo."""
    return make_image(1280, 960)


@pytest.fixture
def photo_bytes(photo):
    return png_bytes(photo)
