"""Tests for decoding and EXIF orientation normalization."""

import io

import numpy as np
import pytest

from helpers import exif_bytes, make_image, png_bytes

from minorguard.errors import DecodeFailure
from minorguard.imaging import (
    apply_orientation,
    decode_image,
    decode_oriented,
    encode_jpeg,
    read_orientation,
    resize_to_width,
    synthetic_image,
)

# Marker at the stored top-left pixel of a 4 wide x 3 high image ends up
# here after each orientation transform: (row, col, output shape)
EXPECTED_MARKER = {
    1: (0, 0, (3, 4)),
    2: (0, 3, (3, 4)),
    3: (2, 3, (3, 4)),
    4: (2, 0, (3, 4)),
    5: (0, 0, (4, 3)),
    6: (0, 2, (4, 3)),
    7: (3, 2, (4, 3)),
    8: (3, 0, (4, 3)),
}


def _marker_image() -> np.ndarray:
    img = np.zeros((3, 4, 3), dtype=np.uint8)
    img[0, 0] = (255, 255, 255)
    return img


def _marker_position(img: np.ndarray):
    rows, cols = np.nonzero(img[..., 0] == 255)
    assert len(rows) == 1
    return int(rows[0]), int(cols[0])


class TestApplyOrientation:
    @pytest.mark.parametrize("tag", sorted(EXPECTED_MARKER))
    def test_marker_lands_at_expected_pixel(self, tag):
        row, col, shape = EXPECTED_MARKER[tag]
        out = apply_orientation(_marker_image(), tag)
        assert out.shape[:2] == shape
        assert _marker_position(out) == (row, col)

    @pytest.mark.parametrize("tag", [0, 9, -1])
    def test_unknown_tag_is_identity(self, tag):
        img = _marker_image()
        assert np.array_equal(apply_orientation(img, tag), img)


class TestDecode:
    def test_missing_tag_reads_as_one(self):
        assert read_orientation(png_bytes(_marker_image())) == 1

    def test_garbage_reads_as_one(self):
        assert read_orientation(b"not an image") == 1

    def test_reads_tag(self):
        assert read_orientation(exif_bytes(_marker_image(), 6)) == 6

    def test_decode_oriented_applies_tag(self):
        img, orientation = decode_oriented(exif_bytes(_marker_image(), 6))
        assert orientation == 6
        assert img.shape[:2] == (4, 3)
        assert _marker_position(img) == (0, 2)

    def test_decode_oriented_jpeg(self):
        photo = make_image(64, 32)
        img, orientation = decode_oriented(exif_bytes(photo, 8, fmt="JPEG"))
        assert orientation == 8
        assert img.shape[:2] == (64, 32)

    def test_decode_failure(self):
        with pytest.raises(DecodeFailure):
            decode_image(b"\x00\x01garbage")

    def test_empty_bytes(self):
        with pytest.raises(DecodeFailure):
            decode_image(b"")


class TestEncodeResize:
    def test_resize_to_width(self):
        img = make_image(1280, 960)
        out = resize_to_width(img, 640)
        assert out.shape == (480, 640, 3)

    def test_resize_same_width_is_noop(self):
        img = make_image(640, 100)
        assert resize_to_width(img, 640) is img

    def test_jpeg_has_no_exif(self):
        from PIL import Image

        data = encode_jpeg(make_image(32, 32))
        assert data[:2] == b"\xff\xd8"
        with Image.open(io.BytesIO(data)) as pil_image:
            assert len(pil_image.getexif()) == 0

    def test_synthetic_image_is_deterministic(self):
        a = synthetic_image(64, 48, seed=3)
        b = synthetic_image(64, 48, seed=3)
        assert a.shape == (48, 64, 3)
        assert np.array_equal(a, b)
