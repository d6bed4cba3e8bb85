"""Shared onnxruntime session setup."""

import logging
from pathlib import Path

from minorguard.errors import ModelLoadError

logger = logging.getLogger(__name__)


def select_providers(device: str) -> tuple[list[str], str]:
    """Pick execution providers for a device string.

    Returns:
        Tuple of (providers, description of the provider actually used).
    """
    import onnxruntime as ort

    available = ort.get_available_providers()
    logger.debug("Available ONNX providers: %s", available)

    if device.startswith("cuda"):
        if "CUDAExecutionProvider" in available:
            return ["CUDAExecutionProvider", "CPUExecutionProvider"], "CUDA"
        logger.warning("CUDAExecutionProvider not available, falling back to CPU")
        return ["CPUExecutionProvider"], "CPU (CUDA unavailable)"
    return ["CPUExecutionProvider"], "CPU"


def create_session(model_path: Path, device: str):
    """Create an InferenceSession for a model file.

    Raises:
        ModelLoadError: If the file is missing or cannot be loaded.
    """
    import onnxruntime as ort

    if not model_path.exists():
        raise ModelLoadError(f"Model not found at {model_path}")

    providers, description = select_providers(device)
    sess_options = ort.SessionOptions()
    sess_options.log_severity_level = 3
    try:
        session = ort.InferenceSession(
            str(model_path), sess_options, providers=providers,
        )
    except Exception as e:
        raise ModelLoadError(f"Failed to load {model_path}: {e}") from e

    logger.info("Loaded %s (provider=%s)", model_path.name, description)
    return session
