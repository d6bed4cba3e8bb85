"""YOLOv8-face ONNX backend for face detection.

ONNX model:
  - yolov8s-face.onnx: [1,3,640,640] -> [1,4+1(+15),N]
    rows 0-3 are (cx, cy, w, h), row 4 is the face score, the remainder
    are landmarks (ignored).

Preprocessing: letterbox to the model input (pad right/bottom with 114),
RGB, scale to [0, 1], NCHW.
Postprocessing: confidence filter, NMS, undo letterbox ratio.
"""

import logging
from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np

from minorguard.backends._onnx import create_session
from minorguard.backends.base import DetectedBox
from minorguard.errors import ModelInvocationFailure
from minorguard.paths import resolve_model_path

logger = logging.getLogger(__name__)

PAD_VALUE = 114
# Rows per anchor: box + score, optionally followed by 5 landmarks (x, y, vis)
OUTPUT_CHANNELS = (5, 20)


class YoloFaceDetector:
    """Face detection backend running a YOLOv8-face ONNX export.

    Args:
        model_file: Model file, absolute or relative to the models directory.
        conf_threshold: Minimum face score.
        iou_threshold: IoU threshold for NMS.
        models_dir: Models directory override.

    Example:
        >>> backend = YoloFaceDetector()
        >>> backend.initialize("cpu")
        >>> boxes = backend.detect(image)
        >>> backend.cleanup()
    """

    def __init__(
        self,
        model_file: str = "yolov8s-face.onnx",
        conf_threshold: float = 0.25,
        iou_threshold: float = 0.45,
        models_dir: Optional[Path] = None,
    ):
        self._model_file = model_file
        self._conf_threshold = conf_threshold
        self._iou_threshold = iou_threshold
        self._models_dir = models_dir
        self._session = None
        self._input_name: Optional[str] = None
        self._input_size = (640, 640)  # (width, height)
        self._initialized = False

    def initialize(self, device: str = "cpu") -> None:
        if self._initialized:
            return

        model_path = resolve_model_path(self._model_file, self._models_dir)
        self._session = create_session(model_path, device)

        model_input = self._session.get_inputs()[0]
        self._input_name = model_input.name
        shape = model_input.shape
        # Dynamic dims come back as strings or None
        if len(shape) == 4 and isinstance(shape[2], int) and isinstance(shape[3], int):
            self._input_size = (shape[3], shape[2])
        self._initialized = True
        logger.info("YOLO face detector initialized (input=%s)", self._input_size)

    def detect(self, image: np.ndarray) -> List[DetectedBox]:
        """Detect faces.

        Args:
            image: BGR image as numpy array (H, W, 3).

        Returns:
            Detected boxes in the pixel space of ``image``, by descending score.
        """
        if not self._initialized or self._session is None:
            raise RuntimeError("Backend not initialized. Call initialize() first.")

        blob, ratio = self._preprocess(image)
        try:
            output = self._session.run(None, {self._input_name: blob})[0]
        except Exception as e:
            raise ModelInvocationFailure(f"Face detector failed: {e}") from e

        return self._postprocess(output, ratio, image.shape[1], image.shape[0])

    def _preprocess(self, image: np.ndarray) -> tuple[np.ndarray, float]:
        """Letterbox into the model input and build the NCHW blob."""
        in_w, in_h = self._input_size
        h, w = image.shape[:2]
        ratio = min(in_w / w, in_h / h)
        new_w, new_h = int(round(w * ratio)), int(round(h * ratio))

        if (new_w, new_h) != (w, h):
            resized = cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_LINEAR)
        else:
            resized = image

        canvas = np.full((in_h, in_w, 3), PAD_VALUE, dtype=np.uint8)
        canvas[:new_h, :new_w] = resized

        rgb = cv2.cvtColor(canvas, cv2.COLOR_BGR2RGB)
        blob = rgb.astype(np.float32) / 255.0
        blob = np.transpose(blob, (2, 0, 1))[np.newaxis, ...]
        return np.ascontiguousarray(blob), ratio

    def _postprocess(
        self, output: np.ndarray, ratio: float, width: int, height: int
    ) -> List[DetectedBox]:
        """Decode raw predictions into boxes in the caller's image space."""
        preds = np.asarray(output)
        if preds.ndim == 3:
            preds = preds[0]
        if preds.ndim != 2:
            raise ModelInvocationFailure(
                f"Unexpected detector output shape {np.shape(output)}"
            )
        # Exports are [C, N]; keep [N, C] outputs as they are
        already_rows = preds.shape[1] in OUTPUT_CHANNELS and preds.shape[0] not in OUTPUT_CHANNELS
        if not already_rows:
            preds = preds.T
        if preds.shape[1] < 5:
            raise ModelInvocationFailure(
                f"Unexpected detector output shape {np.shape(output)}"
            )

        scores = preds[:, 4]
        keep = scores >= self._conf_threshold
        if not np.any(keep):
            return []
        preds = preds[keep]
        scores = scores[keep]

        cx, cy, bw, bh = preds[:, 0], preds[:, 1], preds[:, 2], preds[:, 3]
        xywh = np.stack([cx - bw / 2, cy - bh / 2, bw, bh], axis=1)

        indices = cv2.dnn.NMSBoxes(
            xywh.tolist(),
            scores.astype(float).tolist(),
            self._conf_threshold,
            self._iou_threshold,
        )
        indices = np.array(indices).reshape(-1)

        results = []
        for i in indices:
            x, y, w, h = xywh[i] / ratio
            results.append(
                DetectedBox(
                    x1=float(np.clip(x, 0, width)),
                    y1=float(np.clip(y, 0, height)),
                    x2=float(np.clip(x + w, 0, width)),
                    y2=float(np.clip(y + h, 0, height)),
                    confidence=float(scores[i]),
                )
            )
        results.sort(key=lambda b: b.confidence, reverse=True)
        return results

    def cleanup(self) -> None:
        self._session = None
        self._initialized = False
        logger.info("YOLO face detector cleaned up")


__all__ = ["YoloFaceDetector"]
