"""Domain types shared by the worker, the compositor and the caller."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import numpy as np

from minorguard.config import ADULT_THRESHOLD

# (x1, y1, x2, y2)
Box = Tuple[float, float, float, float]


class AgeLabel(Enum):
    """Age group assigned to a detected face."""

    CHILD = "child"
    TEEN_OR_ADULT = "teen_or_adult"


def label_for(age_confidence: float, threshold: float = ADULT_THRESHOLD) -> AgeLabel:
    """Derive the age label from the adult probability.

    A confidence exactly at the threshold counts as a child.
    """
    if age_confidence <= threshold:
        return AgeLabel.CHILD
    return AgeLabel.TEEN_OR_ADULT


@dataclass(frozen=True)
class DetectionRecord:
    """A detected face with its age classification.

    Attributes:
        box: (x1, y1, x2, y2) in detector-input space.
        confidence: Detector score.
        age_confidence: Probability in [0, 1] that the face is an adult.
        face_crop: PNG bytes of the original-space crop, for display only.
        threshold: Threshold used to derive ``age_label``.
    """

    box: Box
    confidence: float
    age_confidence: float
    face_crop: bytes = field(default=b"", repr=False)
    threshold: float = ADULT_THRESHOLD

    def __post_init__(self) -> None:
        if len(self.box) != 4:
            raise ValueError(f"box must have 4 coordinates, got {len(self.box)}")
        if not 0.0 <= self.age_confidence <= 1.0:
            raise ValueError(
                f"age_confidence must be in [0, 1], got {self.age_confidence}"
            )
        object.__setattr__(self, "box", tuple(float(v) for v in self.box))

    @property
    def age_label(self) -> AgeLabel:
        return label_for(self.age_confidence, self.threshold)

    @property
    def is_child(self) -> bool:
        return self.age_label is AgeLabel.CHILD

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dict (crop excluded)."""
        x1, y1, x2, y2 = self.box
        return {
            "x1": x1,
            "y1": y1,
            "x2": x2,
            "y2": y2,
            "confidence": self.confidence,
            "age_confidence": self.age_confidence,
            "age_label": self.age_label.value,
            "threshold": self.threshold,
        }

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], face_crop: bytes = b""
    ) -> "DetectionRecord":
        """Build a record from a mapping.

        Missing coordinates or scores raise ``KeyError`` instead of
        defaulting to zero.
        """
        return cls(
            box=(
                float(data["x1"]),
                float(data["y1"]),
                float(data["x2"]),
                float(data["y2"]),
            ),
            confidence=float(data["confidence"]),
            age_confidence=float(data["age_confidence"]),
            face_crop=face_crop,
            threshold=float(data.get("threshold", ADULT_THRESHOLD)),
        )


@dataclass(frozen=True)
class JobRequest:
    """One image submitted to the inference worker."""

    job_id: int
    image_bytes: bytes


@dataclass
class JobResult:
    """Outcome of one detect-and-classify job.

    Attributes:
        job_id: Identifier of the request this result answers.
        records: Detected faces in detector output order.
        image: Orientation-corrected original image (H, W, 3) BGR.
        scale: original_width / detector_width for this image.
    """

    job_id: int
    records: Tuple[DetectionRecord, ...]
    image: np.ndarray
    scale: float

    @property
    def image_size(self) -> Tuple[int, int]:
        """(width, height) of the corrected original image."""
        return int(self.image.shape[1]), int(self.image.shape[0])

    @property
    def child_indices(self) -> Tuple[int, ...]:
        return tuple(i for i, r in enumerate(self.records) if r.is_child)


@dataclass
class RedactionRequest:
    """Inputs of one redaction.

    Attributes:
        image: Encoded original bytes or an already decoded BGR array.
        records: Detections of the job the image belongs to (read-only).
        selected: Indices into ``records`` to blur.
        scale: Detector scale; derived from the image width when None.
    """

    image: Any
    records: Tuple[DetectionRecord, ...]
    selected: frozenset
    scale: Optional[float] = None


__all__ = [
    "Box",
    "AgeLabel",
    "label_for",
    "DetectionRecord",
    "JobRequest",
    "JobResult",
    "RedactionRequest",
]
