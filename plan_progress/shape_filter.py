"""
Component Shape Filter Module

Removes grid-line remnants from class masks.

Two techniques:
- filter_components: per-component area / size / aspect heuristics, with
  thresholds scaled to the frame resolution.
- refine: geodesic reconstruction from "interior" seeds (pixels farther than
  a grid line's half-width from every edge). Thin all-edge structures have no
  seeds and vanish, while paint blobs regrow to their full original extent.
"""

import logging

import cv2
import numpy as np
from scipy import ndimage

from .config import PipelineConfig

logger = logging.getLogger(__name__)


class ShapeFilter:
    """Filters connected components of a class mask by shape."""

    def __init__(self, config: dict = None):
        """
        Initialize shape filter.

        Args:
            config: Optional config dict, uses PipelineConfig.SHAPE_FILTER if None
        """
        self.config = config or PipelineConfig.SHAPE_FILTER
        size = self.config['CLOSE_SIZE']
        self.close_kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (size, size))

    def resolution_scale(self, shape) -> float:
        """Linear scale factor of this frame relative to the reference resolution."""
        h, w = shape[:2]
        return float(np.sqrt((h * w) / float(self.config['REFERENCE_PIXELS'])))

    def thresholds(self, shape, plan_pixels: int) -> dict:
        scale = self.resolution_scale(shape)
        area_scale = scale * scale
        return {
            'scale': scale,
            'min_area': self.config['MIN_AREA'] * area_scale,
            'min_dim': self.config['MIN_DIM'] * scale,
            'max_aspect': self.config['MAX_ASPECT'],
            'medium_area': max(self.config['MEDIUM_MIN_AREA'] * area_scale,
                               plan_pixels * self.config['MEDIUM_FRACTION'])
        }

    def filter_components(self, mask: np.ndarray, plan_pixels: int) -> np.ndarray:
        """
        Keep only components that look like paint blobs.

        Args:
            mask: Binary class mask
            plan_pixels: Pixel count of the plan (denominator region)

        Returns:
            New filtered mask
        """
        n_labels, labels, stats, _ = cv2.connectedComponentsWithStats(mask, connectivity=8)
        if n_labels <= 1:
            return np.zeros_like(mask)

        t = self.thresholds(mask.shape, plan_pixels)
        keep = np.zeros(n_labels, dtype=bool)

        for i in range(1, n_labels):
            area = stats[i, cv2.CC_STAT_AREA]
            w = stats[i, cv2.CC_STAT_WIDTH]
            h = stats[i, cv2.CC_STAT_HEIGHT]
            aspect = max(w, h) / float(max(1, min(w, h)))

            if area < t['min_area']:
                continue
            if w < t['min_dim'] or h < t['min_dim']:
                continue
            if area < t['medium_area'] and aspect > t['max_aspect']:
                continue
            keep[i] = True

        removed = int((~keep[1:]).sum())
        logger.debug("CC filter: %d components, removed %d, kept %d "
                     "(minArea=%.0f minDim=%.1f scale=%.2f)",
                     n_labels - 1, removed, n_labels - 1 - removed,
                     t['min_area'], t['min_dim'], t['scale'])

        return np.where(keep[labels], 255, 0).astype(np.uint8)

    def interior_seed(self, mask: np.ndarray) -> np.ndarray:
        dist = cv2.distanceTransform(mask, cv2.DIST_L2, 5)
        return dist > self.config['GRID_THICK_RADIUS']

    @staticmethod
    def geodesic_reconstruct(seed: np.ndarray, mask: np.ndarray) -> np.ndarray:
        """Grow seed by 3x3 dilations constrained to mask until it stops changing."""
        grown = ndimage.binary_propagation(seed, structure=np.ones((3, 3), dtype=bool),
                                           mask=mask > 0)
        return np.where(grown, 255, 0).astype(np.uint8)

    def refine(self, mask: np.ndarray, plan_pixels: int) -> np.ndarray:
        """
        Remove thin structures while keeping blob interiors and edges intact.

        Args:
            mask: Raw class mask
            plan_pixels: Pixel count of the plan

        Returns:
            New refined mask (possibly empty)
        """
        seed = self.interior_seed(mask)
        seed_count = int(seed.sum())
        logger.debug("Grid removal: rawPx=%d seeds=%d", cv2.countNonZero(mask), seed_count)

        if seed_count == 0:
            return np.zeros_like(mask)

        regrown = self.geodesic_reconstruct(seed, mask)
        regrown = cv2.morphologyEx(regrown, cv2.MORPH_CLOSE, self.close_kernel)
        return self.filter_components(regrown, plan_pixels)
