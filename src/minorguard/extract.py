"""Face region extraction for the age classifier.

Takes a detector-input box, maps it into the original image, crops at full
resolution and builds the classifier tensor from that crop. Degenerate
boxes are grown to a 1x1 region rather than dropped, so every detection
yields a record.
"""

from dataclasses import dataclass

import cv2
import numpy as np

from minorguard.config import CLASSIFIER_INPUT_SIZE
from minorguard.geometry import (
    Box,
    PixelBox,
    ensure_min_region,
    scale_box,
    to_pixel_bounds,
)


@dataclass
class FaceRegion:
    """A face cut out of the original image.

    Attributes:
        pixel_box: (x1, y1, x2, y2) in original-image pixels.
        crop: BGR crop at original resolution.
        tensor: (size, size, 3) float32 RGB in [0, 1].
    """

    pixel_box: PixelBox
    crop: np.ndarray
    tensor: np.ndarray


def original_region(box: Box, scale: float, width: int, height: int) -> PixelBox:
    """Pixel bounds of a detector box in an original image of given size.

    Always returns a region of at least 1x1 inside the image.
    """
    bounds = to_pixel_bounds(scale_box(box, scale), width, height)
    return ensure_min_region(bounds, width, height)


def classifier_tensor(crop: np.ndarray, size: int = CLASSIFIER_INPUT_SIZE) -> np.ndarray:
    """Resize a BGR crop to the classifier input and normalize.

    Args:
        crop: BGR crop (H, W, 3) uint8.
        size: Side of the square classifier input.

    Returns:
        (size, size, 3) float32 array, RGB channel order, values in [0, 1].
    """
    resized = cv2.resize(crop, (size, size), interpolation=cv2.INTER_LINEAR)
    rgb = cv2.cvtColor(resized, cv2.COLOR_BGR2RGB)
    return rgb.astype(np.float32) / 255.0


def extract_face(
    image: np.ndarray,
    box: Box,
    scale: float,
    size: int = CLASSIFIER_INPUT_SIZE,
) -> FaceRegion:
    """Crop a detected face from the original image.

    Args:
        image: Orientation-corrected original image (H, W, 3) BGR.
        box: Face box in detector-input space.
        scale: original_width / detector_width.
        size: Classifier input side.
    """
    h, w = image.shape[:2]
    x1, y1, x2, y2 = original_region(box, scale, w, h)
    crop = image[y1:y2, x1:x2].copy()
    return FaceRegion(
        pixel_box=(x1, y1, x2, y2),
        crop=crop,
        tensor=classifier_tensor(crop, size),
    )


__all__ = ["FaceRegion", "original_region", "classifier_tensor", "extract_face"]
