"""
Plan Region Extraction Module

Isolates the photographed plan sheet from the background. Combines a
"non-background" color mask with a local adaptive threshold, fuses printed
cells into one region, and keeps the best contour. Never fails: the whole
frame is used as the plan when nothing qualifies.
"""

import logging
from typing import List, Tuple

import cv2
import numpy as np

from .config import PipelineConfig

logger = logging.getLogger(__name__)


class PlanExtractor:
    """Builds the plan (legal analysis area) mask."""

    def __init__(self, config: dict = None):
        """
        Initialize plan extractor.

        Args:
            config: Optional config dict, uses PipelineConfig.PLAN_EXTRACTION if None
        """
        self.config = config or PipelineConfig.PLAN_EXTRACTION

    def build_coarse_mask(self, image: np.ndarray) -> np.ndarray:
        """Saturated-or-dark pixels OR'd with an adaptive threshold of grayscale."""
        hsv = cv2.cvtColor(image, cv2.COLOR_BGR2HSV)
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)

        _, colored = cv2.threshold(hsv[:, :, 1], self.config['SAT_MIN'], 255, cv2.THRESH_BINARY)
        _, dark = cv2.threshold(hsv[:, :, 2], self.config['DARK_MAX_V'], 255, cv2.THRESH_BINARY_INV)
        non_background = cv2.bitwise_or(colored, dark)

        blur = self.config['BLUR_SIZE']
        blurred = cv2.GaussianBlur(gray, (blur, blur), 0)
        adaptive = cv2.adaptiveThreshold(blurred, 255,
                                         cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
                                         cv2.THRESH_BINARY_INV,
                                         self.config['ADAPTIVE_BLOCK'],
                                         self.config['ADAPTIVE_C'])

        return cv2.bitwise_or(non_background, adaptive)

    def fuse_region(self, coarse: np.ndarray, border_px: int) -> np.ndarray:
        """Close to merge cells, erode off edge artifacts, zero the border strip."""
        k = self.config['CLOSE_KERNEL']
        close_kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (k, k))
        closed = cv2.morphologyEx(coarse, cv2.MORPH_CLOSE, close_kernel)

        erode_kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))
        fused = cv2.erode(closed, erode_kernel, iterations=self.config['ERODE_ITERATIONS'])

        fused[:border_px, :] = 0
        fused[-border_px:, :] = 0
        fused[:, :border_px] = 0
        fused[:, -border_px:] = 0
        return fused

    def select_contour(self, contours: List, shape: Tuple[int, int], border_px: int):
        """
        Pick the plan contour.

        Returns:
            Tuple of (contour or None, rejected_edge_count)
        """
        rows, cols = shape
        min_area = rows * cols * self.config['MIN_PLAN_FRACTION']

        best, best_area = None, 0.0
        rejected_edge = 0

        for cnt in contours:
            area = cv2.contourArea(cnt)
            if area < min_area:
                continue

            x, y, w, h = cv2.boundingRect(cnt)
            touches_edge = (x <= border_px or y <= border_px or
                            x + w >= cols - border_px or y + h >= rows - border_px)
            if touches_edge:
                rejected_edge += 1
                continue

            if area > best_area:
                best, best_area = cnt, area

        if best is None and contours:
            if rejected_edge:
                logger.info("PlanMask: %d edge-touching contour(s) rejected, fallback to largest",
                            rejected_edge)
            best = max(contours, key=cv2.contourArea)
            best_area = cv2.contourArea(best)
            if best_area < min_area:
                best = None

        return best, rejected_edge

    def extract(self, image: np.ndarray) -> np.ndarray:
        """
        Extract the plan mask.

        Args:
            image: Normalized BGR image

        Returns:
            Plan mask (0/255), same size as image
        """
        rows, cols = image.shape[:2]
        border_px = max(2, int(min(rows, cols) * self.config['BORDER_TRIM_PCT']))

        coarse = self.build_coarse_mask(image)
        fused = self.fuse_region(coarse, border_px)

        contours, _ = cv2.findContours(fused, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        mask = np.zeros((rows, cols), dtype=np.uint8)

        if not contours:
            logger.info("PlanMask: no contours after border trim, using full frame")
            mask[:] = 255
            return mask

        best, rejected_edge = self.select_contour(contours, (rows, cols), border_px)
        if best is None:
            logger.info("PlanMask: no qualifying contour found, using full frame")
            mask[:] = 255
            return mask

        cv2.drawContours(mask, [best], -1, 255, -1)

        plan_px = cv2.countNonZero(mask)
        ratio = plan_px / float(rows * cols)
        lo, hi = self.config['MIN_PLAN_RATIO'], self.config['MAX_PLAN_RATIO']
        if not (lo <= ratio <= hi):
            logger.warning("PlanMask: plan ratio %.1f%% outside [%.0f%%, %.0f%%]",
                           ratio * 100, lo * 100, hi * 100)

        logger.info("PlanMask: planPx=%d total=%d ratio=%.1f%% edgeRejected=%d",
                    plan_px, rows * cols, ratio * 100, rejected_edge)
        return mask
