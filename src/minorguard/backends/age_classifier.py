"""ONNX backend for adult/child classification.

ONNX model:
  - age_classifier.onnx: [1,133,133,3] (NHWC) or [1,3,133,133] (NCHW)
    -> [1,1] sigmoid adult probability, or [1,2] with index 1 = adult.

Preprocessing is done by the caller (RGB, scaled to [0, 1]); this backend
only adds the batch axis and matches the model's layout.
"""

import logging
from pathlib import Path
from typing import Optional

import numpy as np

from minorguard.backends._onnx import create_session
from minorguard.errors import ModelInvocationFailure
from minorguard.paths import resolve_model_path

logger = logging.getLogger(__name__)


class OnnxAgeClassifier:
    """Age classification backend.

    Args:
        model_file: Model file, absolute or relative to the models directory.
        input_size: Expected side of the square input tensor.
        models_dir: Models directory override.
    """

    def __init__(
        self,
        model_file: str = "age_classifier.onnx",
        input_size: int = 133,
        models_dir: Optional[Path] = None,
    ):
        self._model_file = model_file
        self._input_size = input_size
        self._models_dir = models_dir
        self._session = None
        self._input_name: Optional[str] = None
        self._channels_first = False
        self._initialized = False

    def initialize(self, device: str = "cpu") -> None:
        if self._initialized:
            return

        model_path = resolve_model_path(self._model_file, self._models_dir)
        self._session = create_session(model_path, device)

        model_input = self._session.get_inputs()[0]
        self._input_name = model_input.name
        shape = model_input.shape
        self._channels_first = len(shape) == 4 and shape[1] == 3
        self._initialized = True
        logger.info(
            "Age classifier initialized (layout=%s)",
            "NCHW" if self._channels_first else "NHWC",
        )

    def predict(self, tensor: np.ndarray) -> float:
        """Adult probability for one face.

        Args:
            tensor: (size, size, 3) float32 RGB in [0, 1].

        Returns:
            Probability in [0, 1].

        Raises:
            ModelInvocationFailure: On shape mismatch or backend error.
        """
        if not self._initialized or self._session is None:
            raise RuntimeError("Backend not initialized. Call initialize() first.")

        expected = (self._input_size, self._input_size, 3)
        if tensor.shape != expected:
            raise ModelInvocationFailure(
                f"Classifier input shape {tensor.shape} != {expected}"
            )

        batch = tensor.astype(np.float32)
        if self._channels_first:
            batch = np.transpose(batch, (2, 0, 1))
        batch = np.ascontiguousarray(batch[np.newaxis, ...])

        try:
            output = self._session.run(None, {self._input_name: batch})[0]
        except Exception as e:
            raise ModelInvocationFailure(f"Age classifier failed: {e}") from e

        return self._to_probability(np.asarray(output, dtype=np.float32).reshape(-1))

    @staticmethod
    def _to_probability(values: np.ndarray) -> float:
        if values.size == 1:
            prob = float(values[0])
        elif values.size == 2:
            # Two-class head; softmax unless already normalized
            if np.all(values >= 0) and abs(float(values.sum()) - 1.0) < 1e-3:
                prob = float(values[1])
            else:
                exp = np.exp(values - values.max())
                prob = float(exp[1] / exp.sum())
        else:
            raise ModelInvocationFailure(
                f"Classifier returned {values.size} values, expected 1 or 2"
            )
        if not np.isfinite(prob):
            raise ModelInvocationFailure(f"Classifier returned non-finite value {prob}")
        return float(np.clip(prob, 0.0, 1.0))

    def cleanup(self) -> None:
        self._session = None
        self._initialized = False
        logger.info("Age classifier cleaned up")


__all__ = ["OnnxAgeClassifier"]
