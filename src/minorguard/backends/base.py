"""Backend protocol definitions for the two predictors."""

from dataclasses import dataclass
from typing import List, Protocol

import numpy as np


@dataclass(frozen=True)
class DetectedBox:
    """Result from a face detection backend.

    Coordinates are in the pixel space of the image passed to ``detect``.

    Attributes:
        x1: Left edge.
        y1: Top edge.
        x2: Right edge.
        y2: Bottom edge.
        confidence: Detection confidence [0, 1].
    """

    x1: float
    y1: float
    x2: float
    y2: float
    confidence: float

    @property
    def box(self) -> tuple[float, float, float, float]:
        return (self.x1, self.y1, self.x2, self.y2)


class FaceDetectionBackend(Protocol):
    """Protocol for face detection backends.

    Implementations should be swappable without changing pipeline logic.
    """

    def initialize(self, device: str = "cpu") -> None:
        """Initialize the backend and load models."""
        ...

    def detect(self, image: np.ndarray) -> List[DetectedBox]:
        """Detect faces in a BGR image (H, W, 3)."""
        ...

    def cleanup(self) -> None:
        """Release resources and unload models."""
        ...


class AgeClassificationBackend(Protocol):
    """Protocol for adult/child classification backends."""

    def initialize(self, device: str = "cpu") -> None:
        """Initialize the backend and load models."""
        ...

    def predict(self, tensor: np.ndarray) -> float:
        """Adult probability for a (size, size, 3) RGB tensor in [0, 1]."""
        ...

    def cleanup(self) -> None:
        """Release resources and unload models."""
        ...


__all__ = ["DetectedBox", "FaceDetectionBackend", "AgeClassificationBackend"]
