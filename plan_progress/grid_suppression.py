"""
Grid Line Suppression Module

Detects the printed grid strokes inside the plan so they can be excluded from
the area denominator (painted / (plan - grid) reaches 100% on a finished plan).
"""

import logging

import cv2
import numpy as np

from .color_segmentation import otsu_in_mask
from .config import PipelineConfig

logger = logging.getLogger(__name__)


class GridSuppressor:
    """Builds grid masks and the effective (paintable) denominator mask."""

    def __init__(self, config: dict = None):
        """
        Initialize grid suppressor.

        Args:
            config: Optional config dict, uses PipelineConfig.GRID_SUPPRESSION if None
        """
        self.config = config or PipelineConfig.GRID_SUPPRESSION
        radius = self.config['GRID_THICK_RADIUS']
        # Kernel must be wider than a grid stroke so open/close erase it
        self.hat_size = 2 * (2 * radius + 1) + 1

    def grid_intensity(self, image: np.ndarray) -> np.ndarray:
        """Top-hat (bright thin) plus black-hat (dark thin) response."""
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        gray = cv2.GaussianBlur(gray, (3, 3), 0)

        kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (self.hat_size, self.hat_size))
        top_hat = cv2.morphologyEx(gray, cv2.MORPH_TOPHAT, kernel)
        black_hat = cv2.morphologyEx(gray, cv2.MORPH_BLACKHAT, kernel)
        return cv2.add(top_hat, black_hat)

    def _ratio_check(self, grid: np.ndarray, plan_mask: np.ndarray, min_ratio: float) -> np.ndarray:
        plan_px = cv2.countNonZero(plan_mask)
        grid_px = cv2.countNonZero(grid)
        ratio = grid_px / float(plan_px) if plan_px else 0.0
        max_ratio = self.config['MAX_GRID_RATIO']

        logger.info("GridMask: gridPx=%d planPx=%d gridRatio=%.1f%%", grid_px, plan_px, ratio * 100)

        if ratio < min_ratio or ratio > max_ratio:
            logger.info("GridMask: ratio %.1f%% outside [%.0f%%, %.0f%%], grid ignored",
                        ratio * 100, min_ratio * 100, max_ratio * 100)
            return np.zeros_like(grid)
        return grid

    def detect(self, image: np.ndarray, plan_mask: np.ndarray) -> np.ndarray:
        """
        Detect printed grid lines with morphological hats.

        Args:
            image: Normalized BGR image
            plan_mask: Plan mask

        Returns:
            Grid mask (0/255); all zero when the detection looks unreliable
        """
        intensity = self.grid_intensity(image)
        thresh = otsu_in_mask(intensity, plan_mask, default=255)

        _, grid = cv2.threshold(intensity, thresh, 255, cv2.THRESH_BINARY)
        grid = cv2.bitwise_and(grid, plan_mask)

        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))
        grid = cv2.dilate(grid, kernel, iterations=1)
        grid = cv2.bitwise_and(grid, plan_mask)

        logger.debug("GridMask: hatKernel=%d otsu=%d", self.hat_size, thresh)
        return self._ratio_check(grid, plan_mask, self.config['MIN_GRID_RATIO'])

    def detect_edges(self, image: np.ndarray, plan_mask: np.ndarray) -> np.ndarray:
        """
        Edge-based grid mask for a clean template reference frame.

        Only the upper ratio bound applies; a template can legitimately have
        almost no edges inside its paintable area.
        """
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        edges = cv2.Canny(gray, self.config['CANNY_LOW'], self.config['CANNY_HIGH'])

        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))
        grid = cv2.dilate(edges, kernel, iterations=1)
        grid = cv2.bitwise_and(grid, plan_mask)

        return self._ratio_check(grid, plan_mask, 0.0)

    @staticmethod
    def effective_mask(plan_mask: np.ndarray, grid_mask: np.ndarray) -> np.ndarray:
        """Plan minus grid."""
        return cv2.bitwise_and(plan_mask, cv2.bitwise_not(grid_mask))
