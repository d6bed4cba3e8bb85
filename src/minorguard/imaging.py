"""Image decode, orientation normalization and encode helpers.

Pixels are decoded with OpenCV (EXIF rotation disabled so that the
transform is applied exactly once, here). The orientation tag is read with
Pillow. Encoders go through ``cv2.imencode``, which writes no EXIF block,
so every encoded output is metadata-free.
"""

import io
import logging
from typing import Callable, Dict, Optional, Tuple

import cv2
import numpy as np

from minorguard.errors import DecodeFailure

logger = logging.getLogger(__name__)

EXIF_ORIENTATION_TAG = 0x0112


def _flip_h(img: np.ndarray) -> np.ndarray:
    return cv2.flip(img, 1)


def _flip_v(img: np.ndarray) -> np.ndarray:
    return cv2.flip(img, 0)


def _rot_cw(img: np.ndarray) -> np.ndarray:
    return cv2.rotate(img, cv2.ROTATE_90_CLOCKWISE)


def _rot_ccw(img: np.ndarray) -> np.ndarray:
    return cv2.rotate(img, cv2.ROTATE_90_COUNTERCLOCKWISE)


# EXIF orientation -> transform that brings pixels into display orientation
ORIENTATION_TRANSFORMS: Dict[int, Callable[[np.ndarray], np.ndarray]] = {
    1: lambda img: img,
    2: _flip_h,
    3: lambda img: cv2.rotate(img, cv2.ROTATE_180),
    4: _flip_v,
    5: lambda img: _flip_h(_rot_cw(img)),
    6: _rot_cw,
    7: lambda img: _flip_h(_rot_ccw(img)),
    8: _rot_ccw,
}


def read_orientation(image_bytes: bytes) -> int:
    """Read the EXIF orientation tag.

    Returns:
        Tag value 1..8; 1 when the tag is missing, unknown, or unreadable.
    """
    from PIL import Image, UnidentifiedImageError

    try:
        with Image.open(io.BytesIO(image_bytes)) as pil_image:
            value = pil_image.getexif().get(EXIF_ORIENTATION_TAG)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.debug("No readable EXIF orientation: %s", e)
        return 1

    try:
        orientation = int(value) if value is not None else 1
    except (TypeError, ValueError):
        return 1
    return orientation if orientation in ORIENTATION_TRANSFORMS else 1


def apply_orientation(image: np.ndarray, orientation: int) -> np.ndarray:
    """Apply the transform for an EXIF orientation value.

    Unknown values are treated as identity.
    """
    transform = ORIENTATION_TRANSFORMS.get(orientation, ORIENTATION_TRANSFORMS[1])
    return transform(image)


def decode_image(image_bytes: bytes) -> np.ndarray:
    """Decode bytes to a BGR image without applying orientation.

    Raises:
        DecodeFailure: If the bytes are empty or not a decodable image.
    """
    if not image_bytes:
        raise DecodeFailure("Empty image data")

    nparr = np.frombuffer(image_bytes, np.uint8)
    img = cv2.imdecode(nparr, cv2.IMREAD_COLOR | cv2.IMREAD_IGNORE_ORIENTATION)
    if img is None:
        raise DecodeFailure("Failed to decode image data")
    return img


def decode_oriented(image_bytes: bytes) -> Tuple[np.ndarray, int]:
    """Decode bytes and bring pixels into display orientation.

    Returns:
        Tuple of (image, orientation tag that was applied).

    Raises:
        DecodeFailure: If the bytes cannot be decoded.
    """
    img = decode_image(image_bytes)
    orientation = read_orientation(image_bytes)
    if orientation != 1:
        logger.debug("Applying EXIF orientation %d", orientation)
    return apply_orientation(img, orientation), orientation


def resize_to_width(image: np.ndarray, width: int) -> np.ndarray:
    """Resize to ``width`` keeping the aspect ratio (no crop)."""
    h, w = image.shape[:2]
    if w == width:
        return image
    height = max(1, int(round(h * width / w)))
    return cv2.resize(image, (width, height), interpolation=cv2.INTER_LINEAR)


def encode_jpeg(image: np.ndarray, quality: int = 95) -> bytes:
    """Encode a BGR image as a metadata-free JPEG."""
    ok, buf = cv2.imencode(".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not ok:
        raise ValueError("Failed to encode JPEG")
    return buf.tobytes()


def encode_png(image: np.ndarray) -> bytes:
    """Encode a BGR image as PNG (lossless, used for display crops)."""
    ok, buf = cv2.imencode(".png", image)
    if not ok:
        raise ValueError("Failed to encode PNG")
    return buf.tobytes()


def synthetic_image(width: int = 640, height: int = 480, seed: Optional[int] = 0) -> np.ndarray:
    """Random BGR image used for model warm-up."""
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)


__all__ = [
    "EXIF_ORIENTATION_TAG",
    "ORIENTATION_TRANSFORMS",
    "read_orientation",
    "apply_orientation",
    "decode_image",
    "decode_oriented",
    "resize_to_width",
    "encode_jpeg",
    "encode_png",
    "synthetic_image",
]
