"""Configuration classes for the minorguard pipeline.

Resolutions and thresholds are fixed by the models' trained contract and
are exposed as module constants so that nothing downstream carries magic
literals.

Example:
    >>> from minorguard.config import MinorGuardConfig, WorkerConfig
    >>>
    >>> config = MinorGuardConfig(
    ...     worker=WorkerConfig(isolation="thread", max_pending=2),
    ... )
    >>> config = MinorGuardConfig.from_yaml("minorguard.yaml")
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

# Width of the image fed to the detection model.
DETECTOR_INPUT_WIDTH = 640

# Side of the square tensor fed to the age model.
CLASSIFIER_INPUT_SIZE = 133

# Adult probability at or below which a face is labelled as a child.
ADULT_THRESHOLD = 0.5

# Side of the square patch the redaction blur works on.
REDACTION_WORKING_SIZE = 64

ISOLATION_LEVELS = ("inline", "thread", "process")


@dataclass
class DetectorConfig:
    """Configuration for the face detection backend.

    Attributes:
        model_file: Model path, absolute or relative to the models directory.
        input_width: Width of the resized image handed to the detector.
        conf_threshold: Minimum detection confidence.
        iou_threshold: IoU threshold for non-maximum suppression.
    """

    model_file: str = "yolov8s-face.onnx"
    input_width: int = DETECTOR_INPUT_WIDTH
    conf_threshold: float = 0.25
    iou_threshold: float = 0.45


@dataclass
class ClassifierConfig:
    """Configuration for the age classification backend.

    Attributes:
        model_file: Model path, absolute or relative to the models directory.
        input_size: Side of the square classifier input.
        threshold: Adult probability at or below which a face is a child.
    """

    model_file: str = "age_classifier.onnx"
    input_size: int = CLASSIFIER_INPUT_SIZE
    threshold: float = ADULT_THRESHOLD


@dataclass
class RedactionConfig:
    """Configuration for the redaction compositor.

    Attributes:
        working_size: Side of the square the face region is shrunk to.
        jpeg_quality: Quality of the exported JPEG.
        isolated: Run each redaction in a short-lived worker process.
    """

    working_size: int = REDACTION_WORKING_SIZE
    jpeg_quality: int = 95
    isolated: bool = False

    @property
    def blur_radius(self) -> float:
        """Blur radius proportional to the working size."""
        return self.working_size / 6


@dataclass
class WorkerConfig:
    """Configuration for the inference worker.

    Attributes:
        isolation: "inline", "thread" or "process".
        max_pending: Jobs that may wait behind the running one (thread).
        job_timeout_sec: Per-job timeout; 0 disables it.
        handshake_timeout_sec: Time allowed for model loading and warm-up
            in a process worker.
        device: Inference device ("cpu" or "cuda:N").
    """

    isolation: str = "thread"
    max_pending: int = 4
    job_timeout_sec: float = 30.0
    handshake_timeout_sec: float = 120.0
    device: str = "cpu"

    def __post_init__(self) -> None:
        if self.isolation not in ISOLATION_LEVELS:
            raise ValueError(
                f"Unknown isolation level: {self.isolation}. "
                f"Valid levels: {', '.join(ISOLATION_LEVELS)}"
            )
        if self.max_pending < 0:
            raise ValueError("max_pending must be >= 0")


@dataclass
class MinorGuardConfig:
    """Complete configuration for a minorguard session.

    Attributes:
        detector: Face detection backend configuration.
        classifier: Age classification backend configuration.
        redaction: Redaction compositor configuration.
        worker: Inference worker configuration.
        models_dir: Override for the models directory.
        output_root: Root directory under which exports are saved.
    """

    detector: DetectorConfig = field(default_factory=DetectorConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    redaction: RedactionConfig = field(default_factory=RedactionConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    models_dir: Optional[str] = None
    output_root: str = "."

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MinorGuardConfig":
        """Create a config from a dictionary (e.g., loaded from YAML).

        Unknown keys inside a section raise ``TypeError`` from the
        dataclass constructor instead of being ignored.

        Args:
            data: Dictionary with configuration data.

        Returns:
            MinorGuardConfig instance.
        """
        return cls(
            detector=DetectorConfig(**data.get("detector", {})),
            classifier=ClassifierConfig(**data.get("classifier", {})),
            redaction=RedactionConfig(**data.get("redaction", {})),
            worker=WorkerConfig(**data.get("worker", {})),
            models_dir=data.get("models_dir"),
            output_root=data.get("output_root", "."),
        )

    @classmethod
    def from_yaml(cls, path: str) -> "MinorGuardConfig":
        """Load configuration from a YAML file.

        Args:
            path: Path to YAML configuration file.

        Returns:
            MinorGuardConfig instance.
        """
        import yaml

        with open(Path(path)) as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dictionary."""
        from dataclasses import asdict

        return asdict(self)


__all__ = [
    "DETECTOR_INPUT_WIDTH",
    "CLASSIFIER_INPUT_SIZE",
    "ADULT_THRESHOLD",
    "REDACTION_WORKING_SIZE",
    "ISOLATION_LEVELS",
    "DetectorConfig",
    "ClassifierConfig",
    "RedactionConfig",
    "WorkerConfig",
    "MinorGuardConfig",
]
