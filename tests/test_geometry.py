"""Tests for coordinate mapping between detector, original and display space."""

import pytest

from minorguard.geometry import (
    Placement,
    box_area,
    detector_scale,
    detector_size,
    detector_to_original,
    ensure_min_region,
    from_display,
    hit_test,
    letterbox,
    original_to_detector,
    to_display,
    to_pixel_bounds,
)


class TestDetectorMapping:
    def test_scale(self):
        assert detector_scale(1280, 640) == 2.0
        assert detector_scale(320, 640) == 0.5

    def test_invalid_detector_width(self):
        with pytest.raises(ValueError):
            detector_scale(1280, 0)

    def test_1280x960_box_maps_to_original(self):
        box = detector_to_original((100, 100, 200, 220), 1280, 640)
        assert box == (200, 200, 400, 440)

    def test_round_trip_within_one_pixel(self):
        for width in (640, 1000, 1279, 4032):
            box = (13.7, 21.2, 311.9, 402.5)
            back = original_to_detector(detector_to_original(box, width, 640), width, 640)
            for a, b in zip(box, back):
                assert abs(a - b) <= 1.0

    def test_detector_size_keeps_aspect(self):
        assert detector_size(1280, 960, 640) == (640, 480)
        assert detector_size(4032, 3024, 640) == (640, 480)
        assert detector_size(3000, 1, 640) == (640, 1)


class TestPixelBounds:
    def test_truncates_and_clamps(self):
        assert to_pixel_bounds((10.9, -5, 700.2, 20.7), 640, 480) == (10, 0, 640, 20)

    def test_box_outside_image_is_empty(self):
        x1, y1, x2, y2 = to_pixel_bounds((700, 10, 710, 20), 640, 480)
        assert x2 <= x1

    def test_ensure_min_region_grows_to_one_pixel(self):
        assert ensure_min_region((640, 10, 640, 20), 640, 480) == (639, 10, 640, 20)
        assert ensure_min_region((5, 7, 5, 7), 640, 480) == (5, 7, 6, 8)

    def test_ensure_min_region_keeps_valid_box(self):
        assert ensure_min_region((1, 2, 3, 4), 640, 480) == (1, 2, 3, 4)

    def test_box_area(self):
        assert box_area((0, 0, 10, 5)) == 50
        assert box_area((10, 0, 0, 5)) == 0


class TestLetterbox:
    def test_wide_image_pads_vertically(self):
        placement = letterbox((1000, 500), (500, 500))
        assert placement.scale == 0.5
        assert placement.offset_x == 0
        assert placement.offset_y == 125

    def test_tall_image_pads_horizontally(self):
        placement = letterbox((500, 1000), (500, 500))
        assert placement.scale == 0.5
        assert placement.offset_x == 125
        assert placement.offset_y == 0

    def test_same_aspect_fills_canvas(self):
        placement = letterbox((640, 480), (1280, 960))
        assert placement == Placement(scale=2.0)

    def test_rejects_empty_sizes(self):
        with pytest.raises(ValueError):
            letterbox((0, 10), (100, 100))

    def test_display_round_trip(self):
        placement = letterbox((1280, 960), (390, 844))
        box = (200.0, 200.0, 400.0, 440.0)
        back = from_display(to_display(box, placement), placement)
        for a, b in zip(box, back):
            assert a == pytest.approx(b)


class TestHitTest:
    def test_hit_and_miss(self):
        placement = Placement(scale=1.0)
        boxes = [(0, 0, 10, 10), (20, 20, 30, 30)]
        assert hit_test(boxes, (5, 5), placement) == 0
        assert hit_test(boxes, (25, 25), placement) == 1
        assert hit_test(boxes, (15, 15), placement) is None

    def test_last_box_wins_on_overlap(self):
        placement = Placement(scale=1.0)
        boxes = [(0, 0, 20, 20), (10, 10, 30, 30)]
        assert hit_test(boxes, (15, 15), placement) == 1

    def test_uses_placement(self):
        placement = Placement(scale=0.5, offset_x=100)
        boxes = [(0, 0, 100, 100)]
        assert hit_test(boxes, (120, 20), placement) == 0
        assert hit_test(boxes, (20, 20), placement) is None
