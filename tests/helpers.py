"""Shared test helpers: fake predictors and image builders."""

import io
import threading
from typing import List, Optional, Sequence

import cv2
import numpy as np

from minorguard.backends.base import DetectedBox
from minorguard.imaging import EXIF_ORIENTATION_TAG


class FakeDetector:
    """Face detector returning fixed boxes.

    ``gate`` (when set) blocks each detect call until released, so tests
    can hold a job in flight.
    """

    def __init__(self, boxes: Sequence[DetectedBox] = (), error: Optional[Exception] = None):
        self.boxes = list(boxes)
        self.error = error
        self.gate: Optional[threading.Event] = None
        self.calls: List[tuple] = []
        self.initialized = False
        self.device: Optional[str] = None
        self.init_thread: Optional[str] = None
        self.cleaned_up = False

    def initialize(self, device: str = "cpu") -> None:
        self.initialized = True
        self.device = device
        self.init_thread = threading.current_thread().name

    def detect(self, image: np.ndarray) -> List[DetectedBox]:
        self.calls.append(image.shape)
        if self.gate is not None:
            self.gate.wait(timeout=5.0)
        if self.error is not None:
            raise self.error
        return list(self.boxes)

    def cleanup(self) -> None:
        self.initialized = False
        self.cleaned_up = True


class FakeClassifier:
    """Age classifier returning scores in call order.

    The all-zero warm-up tensor always scores 0.5 and does not consume a
    score.
    """

    def __init__(self, scores: Sequence[float] = (0.2,)):
        self.scores = list(scores)
        self.calls: List[tuple] = []
        self._next = 0
        self.initialized = False

    def initialize(self, device: str = "cpu") -> None:
        self.initialized = True

    def predict(self, tensor: np.ndarray) -> float:
        self.calls.append(tensor.shape)
        if not tensor.any():
            return 0.5
        score = self.scores[self._next % len(self.scores)]
        self._next += 1
        return score

    def cleanup(self) -> None:
        self.initialized = False


def make_image(width: int, height: int, seed: int = 1) -> np.ndarray:
    """Random non-black BGR image."""
    rng = np.random.default_rng(seed)
    return rng.integers(16, 256, size=(height, width, 3), dtype=np.uint8)


def png_bytes(image: np.ndarray) -> bytes:
    ok, buf = cv2.imencode(".png", image)
    assert ok
    return buf.tobytes()


def exif_bytes(image: np.ndarray, orientation: int, fmt: str = "PNG") -> bytes:
    """Encode a BGR image with an EXIF orientation tag (via Pillow)."""
    from PIL import Image

    pil_image = Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))
    exif = Image.Exif()
    exif[EXIF_ORIENTATION_TAG] = orientation
    buf = io.BytesIO()
    pil_image.save(buf, format=fmt, exif=exif.tobytes())
    return buf.getvalue()
