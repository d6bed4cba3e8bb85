"""minorguard: find children's faces in a photo and blur them before sharing.

Detects faces, classifies each one as child or teen/adult, and blurs the
chosen faces into a metadata-free JPEG. Inference runs on a long-lived
worker so the caller never blocks on a model.

Example:
    >>> from minorguard import MinorGuardConfig, WorkerLauncher, redact
    >>> config = MinorGuardConfig()
    >>> with WorkerLauncher.create(config) as worker:
    ...     outcome = worker.process(image_bytes)
    >>> jpeg = redact(image_bytes, outcome.result.records, outcome.result.child_indices)
"""

__version__ = "0.1.0"

# Configuration and errors
from minorguard.config import (
    MinorGuardConfig,
    DetectorConfig,
    ClassifierConfig,
    RedactionConfig,
    WorkerConfig,
)
from minorguard.errors import (
    MinorGuardError,
    DecodeFailure,
    ModelLoadError,
    ModelInvocationFailure,
    WorkerNotRunningError,
    QueueFullError,
    JobTimeoutError,
)

# Data model
from minorguard.types import AgeLabel, DetectionRecord, JobResult, RedactionRequest

# Core operations
from minorguard.pipeline import ScreeningPipeline
from minorguard.redact import redact
from minorguard.worker import WorkerLauncher, WorkerResult
from minorguard.session import EditSession, flag_children

__all__ = [
    "__version__",
    # Configuration
    "MinorGuardConfig",
    "DetectorConfig",
    "ClassifierConfig",
    "RedactionConfig",
    "WorkerConfig",
    # Errors
    "MinorGuardError",
    "DecodeFailure",
    "ModelLoadError",
    "ModelInvocationFailure",
    "WorkerNotRunningError",
    "QueueFullError",
    "JobTimeoutError",
    # Data model
    "AgeLabel",
    "DetectionRecord",
    "JobResult",
    "RedactionRequest",
    # Core
    "ScreeningPipeline",
    "redact",
    "WorkerLauncher",
    "WorkerResult",
    "EditSession",
    "flag_children",
]
