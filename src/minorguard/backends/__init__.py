"""Predictor backends and their factory."""

from pathlib import Path
from typing import Optional

from minorguard.backends.base import (
    AgeClassificationBackend,
    DetectedBox,
    FaceDetectionBackend,
)
from minorguard.config import ClassifierConfig, DetectorConfig


def create_detector(
    config: DetectorConfig, models_dir: Optional[Path] = None
) -> FaceDetectionBackend:
    """Build the face detection backend described by ``config``."""
    from minorguard.backends.yolo_face import YoloFaceDetector

    return YoloFaceDetector(
        model_file=config.model_file,
        conf_threshold=config.conf_threshold,
        iou_threshold=config.iou_threshold,
        models_dir=models_dir,
    )


def create_classifier(
    config: ClassifierConfig, models_dir: Optional[Path] = None
) -> AgeClassificationBackend:
    """Build the age classification backend described by ``config``."""
    from minorguard.backends.age_classifier import OnnxAgeClassifier

    return OnnxAgeClassifier(
        model_file=config.model_file,
        input_size=config.input_size,
        models_dir=models_dir,
    )


__all__ = [
    "DetectedBox",
    "FaceDetectionBackend",
    "AgeClassificationBackend",
    "create_detector",
    "create_classifier",
]
