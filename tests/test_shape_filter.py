"""Tests for component shape filtering."""
import cv2
import numpy as np

from plan_progress.shape_filter import ShapeFilter

FULL_PLAN = 1000 * 750


def blank(width=1000, height=750):
    return np.zeros((height, width), dtype=np.uint8)


def count_components(mask):
    n, _ = cv2.connectedComponents(mask)
    return n - 1


def test_thin_line_removed_blob_kept():
    mask = blank()
    mask[100:103, 100:400] = 255   # 3px line
    mask[300:350, 500:550] = 255   # 50x50 blob

    filtered = ShapeFilter().filter_components(mask, FULL_PLAN)
    assert cv2.countNonZero(filtered[100:103, 100:400]) == 0
    assert cv2.countNonZero(filtered[300:350, 500:550]) == 2500


def test_small_component_removed():
    mask = blank()
    mask[10:19, 10:19] = 255   # area 81 < 100
    assert cv2.countNonZero(ShapeFilter().filter_components(mask, FULL_PLAN)) == 0


def test_aspect_ceiling_only_below_medium_area():
    mask = blank()
    mask[100:110, 100:300] = 255   # 10x200, aspect 20, area 2000
    shape_filter = ShapeFilter()

    # medium area = 0.005 * 750000 = 3750 > 2000: elongated, removed
    assert cv2.countNonZero(shape_filter.filter_components(mask, FULL_PLAN)) == 0
    # medium area = max(50, 500) = 500 < 2000: large enough to be a blob
    assert cv2.countNonZero(shape_filter.filter_components(mask, 100000)) == 2000


def test_empty_mask():
    assert cv2.countNonZero(ShapeFilter().filter_components(blank(), FULL_PLAN)) == 0


def test_refine_removes_lines_keeps_blob_edges():
    mask = blank()
    mask[300:360, 300:360] = 255   # blob
    mask[100:103, 50:650] = 255    # grid remnants, no interior pixels
    mask[150:700, 700:703] = 255

    refined = ShapeFilter().refine(mask, FULL_PLAN)
    expected = blank()
    expected[300:360, 300:360] = 255
    assert np.array_equal(refined, expected)


def test_line_crossing_seeds_regrowth():
    mask = blank()
    mask[100:103, 50:900] = 255
    mask[50:700, 700:703] = 255
    shape_filter = ShapeFilter()

    seed = shape_filter.interior_seed(mask)
    assert seed[100:103, 700:703].any()
    assert not seed[100:103, 50:650].any()

    # The junction seed regrows the whole cross, which is too large to drop
    refined = shape_filter.refine(mask, FULL_PLAN)
    assert refined[101, 100] == 255
    assert refined[600, 701] == 255


def test_refine_blob_touching_line_is_regrown_not_eroded():
    mask = blank()
    mask[300:360, 300:360] = 255
    mask[328:331, 360:600] = 255   # line attached to blob

    refined = ShapeFilter().refine(mask, FULL_PLAN)
    assert cv2.countNonZero(refined[300:360, 300:360]) == 3600


def test_refine_without_seeds_is_empty():
    mask = blank()
    mask[100:104, 100:500] = 255
    assert cv2.countNonZero(ShapeFilter().refine(mask, FULL_PLAN)) == 0


def test_geodesic_reconstruct_stays_inside_mask():
    mask = blank(50, 50)
    mask[10:20, 10:40] = 255
    mask[30:40, 10:40] = 255
    seed = np.zeros((50, 50), dtype=bool)
    seed[15, 15] = True
    grown = ShapeFilter.geodesic_reconstruct(seed, mask)
    assert cv2.countNonZero(grown) == 300
    assert cv2.countNonZero(grown[30:40]) == 0


def test_resolution_invariance():
    mask = blank()
    mask[100:140, 100:140] = 255   # 40x40 blob, kept
    mask[200:204, 300:420] = 255   # 4x120 line, too thin
    mask[500:508, 600:608] = 255   # 8x8 dot, too small
    mask[400:412, 100:160] = 255   # 12x60, elongated and below medium area
    mask[600:700, 800:900] = 255   # 100x100 blob, kept

    shape_filter = ShapeFilter()
    small = shape_filter.filter_components(mask, FULL_PLAN)

    big_mask = cv2.resize(mask, (2000, 1500), interpolation=cv2.INTER_NEAREST)
    big = shape_filter.filter_components(big_mask, FULL_PLAN * 4)

    assert count_components(small) == count_components(big) == 2
    restored = cv2.resize(big, (1000, 750), interpolation=cv2.INTER_NEAREST)
    assert np.array_equal(restored, small)


def test_resolution_scale():
    shape_filter = ShapeFilter()
    assert shape_filter.resolution_scale((750, 1000)) == 1.0
    assert shape_filter.resolution_scale((1500, 2000)) == 2.0
