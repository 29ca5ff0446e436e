from __future__ import annotations

import numpy as np
import pytest

from stamp_engine import CropIdGenerator, RasterError, detect_and_crop
from stamp_engine.cropper import crop_region, padded_bounds
from stamp_engine.knockout import Knockout, knockout_background
from stamp_engine.raster import decode_png
from stamp_engine.types import Box


def blank(w: int, h: int) -> np.ndarray:
    return np.full((h, w, 4), 255, dtype=np.uint8)


def paint(raster: np.ndarray, x: int, y: int, w: int, h: int, rgb=(0, 0, 0)) -> np.ndarray:
    raster[y : y + h, x : x + w, :3] = rgb
    return raster


# ═══════════════════════════════════════════════════════════════════════════════
# PADDING / BOUNDS TESTS
# ═══════════════════════════════════════════════════════════════════════════════

class TestPadding:
    def test_interior_box_gets_full_padding(self):
        assert padded_bounds(Box(30, 30, 40, 40), width=100, height=100, pad=10) == (20, 20, 60, 60)

    def test_box_at_origin_is_clamped(self):
        assert padded_bounds(Box(0, 0, 20, 20), width=100, height=100, pad=10) == (0, 0, 40, 40)

    def test_box_at_far_corner_is_clamped(self):
        assert padded_bounds(Box(80, 80, 20, 20), width=100, height=100, pad=10) == (70, 70, 30, 30)

    def test_box_overhanging_raster_is_clamped(self):
        # Edge blocks can reconstruct past the raster when w is not a multiple of B.
        assert padded_bounds(Box(60, 55, 45, 45), width=103, height=97, pad=10) == (50, 45, 53, 52)

    def test_crop_region_copies_pixels(self):
        r = paint(blank(50, 50), 20, 20, 10, 10, rgb=(9, 8, 7))
        (sx, sy, sw, sh), pixels = crop_region(r, Box(20, 20, 10, 10), pad=5)
        assert (sx, sy, sw, sh) == (15, 15, 20, 20)
        assert pixels.shape == (20, 20, 4)
        assert pixels[5, 5].tolist() == [9, 8, 7, 255]
        pixels[:] = 0
        assert r[20, 20].tolist() == [9, 8, 7, 255]


# ═══════════════════════════════════════════════════════════════════════════════
# DETECT AND CROP TESTS
# ═══════════════════════════════════════════════════════════════════════════════

class TestDetectAndCrop:
    def test_blank_raster_yields_empty_list(self):
        assert detect_and_crop(blank(100, 100), min_region_size=30) == []

    def test_single_square_padded_box(self):
        r = paint(blank(100, 100), 30, 30, 40, 40)
        crops = detect_and_crop(r, block_size=5, pad=10, min_region_size=30)
        assert len(crops) == 1
        c = crops[0]
        assert c.bbox_xywh == [20, 20, 60, 60]
        assert (c.width, c.height) == (60, 60)
        assert c.region == Box(30, 30, 40, 40)
        assert c.page == 1
        assert np.array_equal(decode_png(c.png), c.pixels)
        assert np.array_equal(c.pixels, r[20:80, 20:80])

    def test_two_separated_squares(self):
        r = paint(blank(100, 100), 0, 0, 20, 20)
        paint(r, 80, 80, 20, 20)
        crops = detect_and_crop(r, min_region_size=10)
        assert [c.bbox_xywh for c in crops] == [[0, 0, 40, 40], [70, 70, 30, 30]]
        assert crops[0].crop_id != crops[1].crop_id

    def test_bounds_invariant_on_odd_sized_raster(self):
        r = blank(103, 97)
        paint(r, 63, 57, 40, 40)
        paint(r, 0, 0, 33, 33)
        crops = detect_and_crop(r, min_region_size=30)
        assert len(crops) == 2
        for c in crops:
            assert c.x >= 0 and c.y >= 0
            assert c.x + c.width <= 103
            assert c.y + c.height <= 97
            assert c.pixels.shape == (c.height, c.width, 4)

    def test_repeat_runs_same_boxes_new_ids(self):
        r = paint(blank(100, 100), 30, 30, 40, 40)
        a = detect_and_crop(r, min_region_size=30)
        b = detect_and_crop(r, min_region_size=30)
        assert [c.bbox_xywh for c in a] == [c.bbox_xywh for c in b]
        assert a[0].crop_id != b[0].crop_id

    def test_shared_generator_keeps_ids_unique_across_pages(self):
        r = blank(200, 200)
        for i in range(4):
            paint(r, 10 + i * 48, 10, 36, 36)
        ids = CropIdGenerator()
        page1 = detect_and_crop(r, min_region_size=30, page=1, ids=ids)
        page2 = detect_and_crop(r, min_region_size=30, page=2, ids=ids)
        all_ids = [c.crop_id for c in page1 + page2]
        assert len(page1) == 4
        assert len(set(all_ids)) == 8
        assert {c.page for c in page2} == {2}

    def test_rejects_malformed_raster(self):
        with pytest.raises(RasterError):
            detect_and_crop(np.zeros((0, 0, 4), dtype=np.uint8), min_region_size=30)


class TestCropIdGenerator:
    def test_many_ids_in_one_tick_are_unique(self):
        ids = CropIdGenerator()
        got = [ids.next_id() for _ in range(5000)]
        assert len(set(got)) == 5000

    def test_run_token_is_part_of_id(self):
        ids = CropIdGenerator(run_token="abcd1234")
        assert ids.next_id() == "region-abcd1234-00000"
        assert ids.next_id() == "region-abcd1234-00001"

    def test_independent_runs_differ(self):
        assert CropIdGenerator().run_token != CropIdGenerator().run_token


# ═══════════════════════════════════════════════════════════════════════════════
# KNOCKOUT TESTS
# ═══════════════════════════════════════════════════════════════════════════════

class TestKnockout:
    def test_background_becomes_transparent(self):
        r = paint(blank(10, 10), 2, 2, 3, 3, rgb=(200, 0, 0))
        out = knockout_background(r, threshold=240)
        assert out[0, 0, 3] == 0
        assert out[3, 3].tolist() == [200, 0, 0, 255]
        assert r[0, 0, 3] == 255

    def test_disabled_config_returns_none(self):
        assert Knockout.from_cfg({"enabled": False}) is None
        k = Knockout.from_cfg({"enabled": True, "threshold": 200})
        assert k is not None and k.threshold == 200
