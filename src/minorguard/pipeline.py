"""Detect-and-classify job over a single photo.

ScreeningPipeline owns the two model backends. It is not thread-safe: a
worker runs one job at a time against it, which is what keeps the model
handles free of concurrent access.

Example:
    >>> pipeline = ScreeningPipeline.from_config(MinorGuardConfig())
    >>> pipeline.initialize()
    >>> result = pipeline.screen(image_bytes)
    >>> [r.age_label for r in result.records]
"""

import logging
import time

import numpy as np

from minorguard.backends.base import (
    AgeClassificationBackend,
    DetectedBox,
    FaceDetectionBackend,
)
from minorguard.config import (
    ADULT_THRESHOLD,
    CLASSIFIER_INPUT_SIZE,
    DETECTOR_INPUT_WIDTH,
    MinorGuardConfig,
)
from minorguard.errors import MinorGuardError, ModelInvocationFailure
from minorguard.extract import extract_face
from minorguard.geometry import detector_scale
from minorguard.imaging import (
    decode_oriented,
    encode_png,
    resize_to_width,
    synthetic_image,
)
from minorguard.types import DetectionRecord, JobResult

logger = logging.getLogger(__name__)


class ScreeningPipeline:
    """Runs face detection followed by per-face age classification.

    Args:
        detector: Face detection backend.
        classifier: Age classification backend.
        detector_width: Width the photo is resized to for detection.
        classifier_size: Side of the classifier input.
        threshold: Adult probability at or below which a face is a child.
    """

    def __init__(
        self,
        detector: FaceDetectionBackend,
        classifier: AgeClassificationBackend,
        detector_width: int = DETECTOR_INPUT_WIDTH,
        classifier_size: int = CLASSIFIER_INPUT_SIZE,
        threshold: float = ADULT_THRESHOLD,
    ):
        self._detector = detector
        self._classifier = classifier
        self._detector_width = detector_width
        self._classifier_size = classifier_size
        self._threshold = threshold
        self._initialized = False

    @classmethod
    def from_config(cls, config: MinorGuardConfig) -> "ScreeningPipeline":
        """Build a pipeline with the ONNX backends from a config."""
        from pathlib import Path

        from minorguard.backends import create_classifier, create_detector

        models_dir = Path(config.models_dir) if config.models_dir else None
        return cls(
            detector=create_detector(config.detector, models_dir),
            classifier=create_classifier(config.classifier, models_dir),
            detector_width=config.detector.input_width,
            classifier_size=config.classifier.input_size,
            threshold=config.classifier.threshold,
        )

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self, device: str = "cpu") -> None:
        """Load both models and run one warm-up inference.

        Returns only when the pipeline is ready to serve real jobs.
        """
        if self._initialized:
            return

        start = time.perf_counter()
        self._detector.initialize(device)
        self._classifier.initialize(device)
        self._warm_up()
        self._initialized = True
        logger.info(
            "Screening pipeline ready in %.0f ms",
            (time.perf_counter() - start) * 1000,
        )

    def _warm_up(self) -> None:
        image = synthetic_image(self._detector_width, self._detector_width * 3 // 4)
        self._detector.detect(image)
        tensor = np.zeros(
            (self._classifier_size, self._classifier_size, 3), dtype=np.float32
        )
        self._classifier.predict(tensor)
        logger.debug("Warm-up inference complete")

    def cleanup(self) -> None:
        self._detector.cleanup()
        self._classifier.cleanup()
        self._initialized = False

    def screen(self, image_bytes: bytes, job_id: int = 0) -> JobResult:
        """Detect faces in a photo and classify each one.

        Args:
            image_bytes: Encoded photo.
            job_id: Identifier echoed in the result.

        Returns:
            JobResult; zero faces yields an empty record tuple.

        Raises:
            DecodeFailure: If the photo cannot be decoded.
            ModelInvocationFailure: If a model call fails.
        """
        if not self._initialized:
            raise RuntimeError("Pipeline not initialized. Call initialize() first.")

        start = time.perf_counter()
        image, _ = decode_oriented(image_bytes)
        scale = detector_scale(image.shape[1], self._detector_width)
        resized = resize_to_width(image, self._detector_width)

        boxes = self._call_model("Face detector", self._detector.detect, resized)
        records = [self._classify(image, box, scale) for box in boxes]

        logger.debug(
            "Job %d: %d face(s) in %dx%d image (%.0f ms)",
            job_id, len(records), image.shape[1], image.shape[0],
            (time.perf_counter() - start) * 1000,
        )
        return JobResult(
            job_id=job_id,
            records=tuple(records),
            image=image,
            scale=scale,
        )

    def _classify(
        self, image: np.ndarray, box: DetectedBox, scale: float
    ) -> DetectionRecord:
        region = extract_face(image, box.box, scale, self._classifier_size)
        age_confidence = self._call_model(
            "Age classifier", self._classifier.predict, region.tensor
        )
        return DetectionRecord(
            box=box.box,
            confidence=box.confidence,
            age_confidence=age_confidence,
            face_crop=encode_png(region.crop),
            threshold=self._threshold,
        )

    @staticmethod
    def _call_model(name: str, fn, arg):
        try:
            return fn(arg)
        except MinorGuardError:
            raise
        except Exception as e:
            raise ModelInvocationFailure(f"{name} failed: {e}") from e


__all__ = ["ScreeningPipeline"]
