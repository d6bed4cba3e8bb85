"""Pure coordinate mapping between the three image spaces.

Spaces:
    detector-input: the fixed-width resize handed to the face detector.
    original: the orientation-corrected photo at full resolution.
    display: a canvas on which the image is drawn letterboxed.

The overlay hit-testing and the redaction compositor both go through
these functions, so a box selected on screen is exactly the box blurred.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

Box = Tuple[float, float, float, float]
PixelBox = Tuple[int, int, int, int]


@dataclass(frozen=True)
class Placement:
    """Where an image lands on a canvas.

    Attributes:
        scale: Canvas pixels per image pixel.
        offset_x: Horizontal padding left of the image.
        offset_y: Vertical padding above the image.
    """

    scale: float
    offset_x: float = 0.0
    offset_y: float = 0.0


def detector_scale(original_width: float, detector_width: float) -> float:
    """Factor from detector-input space to original space."""
    if detector_width <= 0:
        raise ValueError(f"detector_width must be positive, got {detector_width}")
    return original_width / detector_width


def scale_box(box: Sequence[float], scale: float) -> Box:
    """Multiply every coordinate by ``scale``."""
    x1, y1, x2, y2 = box
    return (x1 * scale, y1 * scale, x2 * scale, y2 * scale)


def detector_to_original(
    box: Sequence[float], original_width: float, detector_width: float
) -> Box:
    """Map a detector-input box to original-image space."""
    return scale_box(box, detector_scale(original_width, detector_width))


def original_to_detector(
    box: Sequence[float], original_width: float, detector_width: float
) -> Box:
    """Inverse of :func:`detector_to_original`."""
    return scale_box(box, 1.0 / detector_scale(original_width, detector_width))


def detector_size(
    original_width: int, original_height: int, detector_width: int
) -> Tuple[int, int]:
    """Size of the detector-input resize, preserving aspect ratio."""
    scale = detector_scale(original_width, detector_width)
    return detector_width, max(1, int(round(original_height / scale)))


def to_pixel_bounds(box: Sequence[float], width: int, height: int) -> PixelBox:
    """Truncate a float box to integer pixels clamped to an image.

    The result may be empty (x2 <= x1 or y2 <= y1) when the box lies
    outside the image or has no extent.
    """
    x1, y1, x2, y2 = (int(v) for v in box)
    x1 = min(max(x1, 0), width)
    x2 = min(max(x2, 0), width)
    y1 = min(max(y1, 0), height)
    y2 = min(max(y2, 0), height)
    return x1, y1, x2, y2


def ensure_min_region(box: PixelBox, width: int, height: int) -> PixelBox:
    """Grow an empty pixel box to at least 1x1 inside the image."""
    x1, y1, x2, y2 = box
    if x2 <= x1:
        x1 = min(x1, width - 1)
        x2 = x1 + 1
    if y2 <= y1:
        y1 = min(y1, height - 1)
        y2 = y1 + 1
    return x1, y1, x2, y2


def box_area(box: Sequence[float]) -> float:
    x1, y1, x2, y2 = box
    return max(0.0, x2 - x1) * max(0.0, y2 - y1)


def letterbox(
    image_size: Tuple[float, float], canvas_size: Tuple[float, float]
) -> Placement:
    """Fit an image inside a canvas, centering the shorter dimension.

    Args:
        image_size: (width, height) of the image.
        canvas_size: (width, height) of the canvas.

    Returns:
        Placement of the image on the canvas.
    """
    img_w, img_h = image_size
    canvas_w, canvas_h = canvas_size
    if img_w <= 0 or img_h <= 0 or canvas_w <= 0 or canvas_h <= 0:
        raise ValueError(
            f"Sizes must be positive: image={image_size}, canvas={canvas_size}"
        )

    image_aspect = img_w / img_h
    canvas_aspect = canvas_w / canvas_h

    if canvas_aspect > image_aspect:
        # Canvas is wider: height limits, pad left/right
        scale = canvas_h / img_h
        return Placement(scale=scale, offset_x=(canvas_w - img_w * scale) / 2)

    scale = canvas_w / img_w
    return Placement(scale=scale, offset_y=(canvas_h - img_h * scale) / 2)


def to_display(box: Sequence[float], placement: Placement) -> Box:
    """Map an image-space box onto the canvas."""
    x1, y1, x2, y2 = box
    s = placement.scale
    return (
        x1 * s + placement.offset_x,
        y1 * s + placement.offset_y,
        x2 * s + placement.offset_x,
        y2 * s + placement.offset_y,
    )


def from_display(box: Sequence[float], placement: Placement) -> Box:
    """Map a canvas box back into image space."""
    x1, y1, x2, y2 = box
    s = placement.scale
    return (
        (x1 - placement.offset_x) / s,
        (y1 - placement.offset_y) / s,
        (x2 - placement.offset_x) / s,
        (y2 - placement.offset_y) / s,
    )


def hit_test(
    boxes: Sequence[Sequence[float]],
    point: Tuple[float, float],
    placement: Placement,
) -> Optional[int]:
    """Index of the box containing a canvas point, or None.

    When boxes overlap the last one (drawn on top) wins.

    Args:
        boxes: Image-space boxes in draw order.
        point: (x, y) on the canvas.
        placement: Placement the boxes were drawn with.
    """
    px, py = point
    for idx in range(len(boxes) - 1, -1, -1):
        x1, y1, x2, y2 = to_display(boxes[idx], placement)
        if x1 <= px <= x2 and y1 <= py <= y2:
            return idx
    return None


__all__ = [
    "Box",
    "PixelBox",
    "Placement",
    "detector_scale",
    "scale_box",
    "detector_to_original",
    "original_to_detector",
    "detector_size",
    "to_pixel_bounds",
    "ensure_min_region",
    "box_area",
    "letterbox",
    "to_display",
    "from_display",
    "hit_test",
]
