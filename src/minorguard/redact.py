"""Face redaction by downscale, blur, upscale.

Each selected region is shrunk to a small square with linear
interpolation, Gaussian-blurred, then blown back up to its exact size with
nearest-neighbour interpolation. Patches are always computed from the
untouched source image, so redacting an index again gives the same pixels.
Output is encoded with no metadata.

Example:
    >>> jpeg = redact(image_bytes, result.records, {0, 2})
"""

import logging
import math
from typing import AbstractSet, Optional, Sequence, Union

import cv2
import numpy as np

from minorguard.config import DETECTOR_INPUT_WIDTH, RedactionConfig
from minorguard.geometry import detector_scale, scale_box, to_pixel_bounds
from minorguard.imaging import decode_oriented, encode_jpeg
from minorguard.types import DetectionRecord, RedactionRequest

logger = logging.getLogger(__name__)


def blur_patch(patch: np.ndarray, working_size: int, radius: float) -> np.ndarray:
    """Obfuscate one region and return it at its original size.

    Args:
        patch: BGR region (H, W, 3).
        working_size: Side of the square the region is shrunk to.
        radius: Gaussian blur radius in working-size pixels.
    """
    h, w = patch.shape[:2]
    small = cv2.resize(patch, (working_size, working_size), interpolation=cv2.INTER_LINEAR)
    ksize = 2 * math.ceil(radius) + 1
    blurred = cv2.GaussianBlur(small, (ksize, ksize), radius)
    return cv2.resize(blurred, (w, h), interpolation=cv2.INTER_NEAREST)


def redact_array(
    image: np.ndarray,
    records: Sequence[DetectionRecord],
    selected: AbstractSet[int],
    scale: float,
    config: Optional[RedactionConfig] = None,
) -> np.ndarray:
    """Blur the selected faces of a decoded image.

    Args:
        image: Orientation-corrected original (H, W, 3) BGR; not modified.
        records: Detections for this image.
        selected: Indices into ``records`` to blur.
        scale: original_width / detector_width.
        config: Redaction settings.

    Returns:
        New image with the selected regions blurred.

    Raises:
        IndexError: If an index is outside ``records``.
    """
    config = config or RedactionConfig()
    h, w = image.shape[:2]
    output = image.copy()

    for idx in sorted(selected):
        if not 0 <= idx < len(records):
            raise IndexError(f"Redaction index {idx} out of range ({len(records)} records)")

        x1, y1, x2, y2 = to_pixel_bounds(scale_box(records[idx].box, scale), w, h)
        if x2 <= x1 or y2 <= y1:
            logger.debug("Region %d collapsed to zero area, skipped", idx)
            continue

        output[y1:y2, x1:x2] = blur_patch(
            image[y1:y2, x1:x2], config.working_size, config.blur_radius
        )

    return output


def redact(
    original_image: Union[bytes, np.ndarray],
    records: Sequence[DetectionRecord],
    selected: AbstractSet[int],
    scale: Optional[float] = None,
    config: Optional[RedactionConfig] = None,
    detector_width: int = DETECTOR_INPUT_WIDTH,
) -> bytes:
    """Blur the selected faces and encode the result as JPEG.

    Args:
        original_image: Encoded photo (orientation is applied on decode) or
            an already corrected BGR array.
        records: Detections for this photo.
        selected: Indices into ``records`` to blur.
        scale: Detector scale; derived from the image width when None.
        config: Redaction settings.
        detector_width: Detector width used when deriving ``scale``.

    Returns:
        Metadata-free JPEG bytes.

    Raises:
        DecodeFailure: If ``original_image`` bytes cannot be decoded.
    """
    config = config or RedactionConfig()
    if isinstance(original_image, np.ndarray):
        image = original_image
    else:
        image, _ = decode_oriented(bytes(original_image))

    if scale is None:
        scale = detector_scale(image.shape[1], detector_width)

    output = redact_array(image, records, selected, scale, config)
    logger.info("Redacted %d of %d face(s)", len(selected), len(records))
    return encode_jpeg(output, config.jpeg_quality)


def redact_request(
    request: RedactionRequest, config: Optional[RedactionConfig] = None
) -> bytes:
    """Run a RedactionRequest (picklable entry point for process pools)."""
    return redact(
        request.image,
        request.records,
        request.selected,
        scale=request.scale,
        config=config,
    )


__all__ = ["blur_patch", "redact_array", "redact", "redact_request"]
