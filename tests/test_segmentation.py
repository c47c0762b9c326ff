"""Tests for lighting, plan extraction, grid suppression and color segmentation."""
import cv2
import numpy as np
import pytest

from conftest import PLAN_RECT, rect_mask, white_frame
from plan_progress.color_segmentation import ColorSegmenter, otsu_in_mask
from plan_progress.grid_suppression import GridSuppressor
from plan_progress.lighting import LightingNormalizer
from plan_progress.models import ColorGroup, ColorProfile, Swatch
from plan_progress.plan_extraction import PlanExtractor


class TestLighting:

    def test_returns_new_frame_same_shape(self, black_plan):
        original = black_plan.copy()
        result = LightingNormalizer().normalize(black_plan)
        assert result.shape == black_plan.shape
        assert result is not black_plan
        assert np.array_equal(black_plan, original)


class TestPlanExtraction:

    def test_blank_frame_uses_full_frame(self, blank_frame):
        mask = PlanExtractor().extract(blank_frame)
        assert cv2.countNonZero(mask) == mask.size

    def test_finds_plan_rectangle(self, black_plan):
        mask = PlanExtractor().extract(black_plan)
        x0, y0, x1, y1 = PLAN_RECT
        assert mask[(y0 + y1) // 2, (x0 + x1) // 2] == 255
        assert mask[10, 10] == 0
        assert mask[y0 - 20, x0 - 20] == 0

        expected = (x1 - x0) * (y1 - y0)
        assert cv2.countNonZero(mask) == pytest.approx(expected, rel=0.05)

    def test_edge_contour_fallback(self):
        extractor = PlanExtractor()
        frame_contour = np.array([[[0, 0]], [[99, 0]], [[99, 99]], [[0, 99]]], dtype=np.int32)
        best, rejected = extractor.select_contour([frame_contour], (100, 100), 3)
        assert rejected == 1
        assert best is frame_contour

    def test_small_contours_ignored(self):
        extractor = PlanExtractor()
        tiny = np.array([[[40, 40]], [[42, 40]], [[42, 42]], [[40, 42]]], dtype=np.int32)
        best, _ = extractor.select_contour([tiny], (100, 100), 3)
        assert best is None


class TestGridSuppression:

    def test_detects_printed_lines(self, grid_frame):
        plan = np.full(grid_frame.shape[:2], 255, dtype=np.uint8)
        grid = GridSuppressor().detect(grid_frame, plan)

        ratio = cv2.countNonZero(grid) / float(plan.size)
        assert 0.05 <= ratio <= 0.50
        assert grid[200, 20] == 255
        assert grid[40, 40] == 0

    def test_uniform_plan_has_no_grid(self, blank_frame):
        plan = np.full(blank_frame.shape[:2], 255, dtype=np.uint8)
        grid = GridSuppressor().detect(blank_frame, plan)
        assert cv2.countNonZero(grid) == 0

    def test_ratio_above_maximum_is_zeroed(self):
        plan = np.full((50, 50), 255, dtype=np.uint8)
        grid = GridSuppressor()._ratio_check(plan.copy(), plan, 0.05)
        assert cv2.countNonZero(grid) == 0

    def test_edges_on_clean_template(self):
        frame = white_frame(400, 400)
        for p in (100, 200, 300):
            frame[:, p:p + 2] = 0
        plan = np.full((400, 400), 255, dtype=np.uint8)
        grid = GridSuppressor().detect_edges(frame, plan)
        assert cv2.countNonZero(grid) > 0
        assert grid[200, 50] == 0

    def test_effective_mask_within_plan(self):
        plan = rect_mask((100, 100), 10, 10, 90, 90)
        grid = np.zeros((100, 100), dtype=np.uint8)
        grid[:, 50:52] = 255
        effective = GridSuppressor.effective_mask(plan, grid)
        assert cv2.countNonZero(cv2.bitwise_and(effective, cv2.bitwise_not(plan))) == 0
        assert cv2.countNonZero(effective) == 80 * 80 - 2 * 80


class TestOtsu:

    def test_empty_mask_returns_default(self):
        channel = np.zeros((10, 10), dtype=np.uint8)
        assert otsu_in_mask(channel, np.zeros_like(channel), default=77) == 77

    def test_single_level_returns_default(self):
        channel = np.full((10, 10), 4, dtype=np.uint8)
        assert otsu_in_mask(channel, np.full_like(channel, 255), default=77) == 77

    def test_restricted_to_mask(self):
        channel = np.full((20, 20), 250, dtype=np.uint8)
        channel[:, :5] = 20
        channel[:, 5:10] = 200
        mask = np.zeros_like(channel)
        mask[:, :10] = 255
        t = otsu_in_mask(channel, mask)
        assert 20 <= t < 200


class TestColorSegmenter:

    def test_profile_margins(self):
        seg = ColorSegmenter()
        assert seg.profile_margins(0) == (8, 20)
        assert seg.profile_margins(30) == (13, 36)

    def test_normal_threshold_is_capped(self):
        seg = ColorSegmenter()
        plan = np.full((20, 20), 255, dtype=np.uint8)
        # A single gray level has no Otsu split and uses the cap
        assert seg.normal_threshold(np.zeros((20, 20), dtype=np.uint8), plan) == 90
        bright = np.full((20, 20), 250, dtype=np.uint8)
        bright[:, :10] = 180
        assert seg.normal_threshold(bright, plan) == 90

    def test_dark_threshold_is_not_raised(self):
        seg = ColorSegmenter()
        plan = np.full((20, 20), 255, dtype=np.uint8)
        l_channel = np.full((20, 20), 35, dtype=np.uint8)
        l_channel[:, :10] = 10
        threshold = seg.normal_threshold(l_channel, plan)
        assert threshold == 10

        _, dark = cv2.threshold(l_channel, threshold, 255, cv2.THRESH_BINARY_INV)
        assert cv2.countNonZero(dark) == 200

    def test_overtime_heuristic(self):
        frame = white_frame(200, 100)
        frame[:, :100] = (0, 0, 255)
        plan = np.full((100, 200), 255, dtype=np.uint8)
        mask = ColorSegmenter().detect_overtime(frame, plan)
        assert np.all(mask[:, :95] == 255)
        assert np.all(mask[:, 105:] == 0)

    def test_overtime_respects_plan(self):
        frame = white_frame(200, 100)
        frame[:] = (0, 0, 255)
        plan = rect_mask((100, 200), 0, 0, 50, 100)
        mask = ColorSegmenter().detect_overtime(frame, plan)
        assert cv2.countNonZero(mask[:, 60:]) == 0

    def test_swatch_hue_wraparound(self):
        seg = ColorSegmenter()
        swatch = Swatch(ColorGroup.OVERTIME, 358.0, 0.9, 0.8)
        hsv = np.array([[[5, 230, 204], [90, 230, 204], [175, 230, 204]]], dtype=np.uint8)
        mask = seg.swatch_mask(hsv, swatch, 13, 36)
        assert mask[0].tolist() == [255, 0, 255]

    def test_dark_swatch_ignores_hue(self):
        seg = ColorSegmenter()
        swatch = Swatch(ColorGroup.NORMAL, 200.0, 0.5, 0.1)
        hsv = np.array([[[90, 200, 120], [10, 50, 40], [90, 200, 200]]], dtype=np.uint8)
        mask = seg.swatch_mask(hsv, swatch, 13, 36)
        assert mask[0].tolist() == [255, 255, 0]

    def test_segment_with_profile(self):
        frame = white_frame(200, 100)
        frame[:, :100] = (0, 0, 0)
        frame[:, 100:] = (0, 0, 255)
        plan = np.full((100, 200), 255, dtype=np.uint8)
        profile = ColorProfile(30, [Swatch.from_hex(ColorGroup.NORMAL, '#000000'),
                                    Swatch.from_hex(ColorGroup.OVERTIME, '#ff0000')])

        normal, ot = ColorSegmenter().segment(frame, plan, profile)
        assert np.all(normal[:, :95] == 255)
        assert cv2.countNonZero(normal[:, 105:]) == 0
        assert np.all(ot[:, 105:] == 255)
        assert cv2.countNonZero(ot[:, :95]) == 0

    def test_empty_profile_uses_heuristics(self):
        frame = white_frame(200, 100)
        frame[:, :100] = (0, 0, 255)
        plan = np.full((100, 200), 255, dtype=np.uint8)
        seg = ColorSegmenter()
        _, ot_profile = seg.segment(frame, plan, ColorProfile())
        _, ot_default = seg.segment(frame, plan)
        assert np.array_equal(ot_profile, ot_default)
