"""
Color Segmentation Module

Classifies plan pixels into the "normal" and "overtime" paint classes, either
with default heuristics or from a calibrated per-order color profile.
Only a morphological close is applied to class masks: erosion eats the
edges of paint blobs and under-counts painted area.
"""

import logging
from typing import List, Optional, Tuple

import cv2
import numpy as np

from .config import PipelineConfig
from .models import ColorGroup, ColorProfile, Swatch

logger = logging.getLogger(__name__)

HUE_MAX = 180


def otsu_in_mask(channel: np.ndarray, mask: np.ndarray, default: int = 128) -> int:
    """
    Otsu threshold of a single channel computed only over pixels inside mask.

    Returns default when the mask is empty or the histogram has no split
    with positive between-class variance (a single gray level).
    """
    values = channel[mask > 0]
    if values.size == 0:
        return default

    hist = np.bincount(values.ravel().astype(np.int64), minlength=256)[:256].astype(np.float64)
    levels = np.arange(256, dtype=np.float64)

    w_b = np.cumsum(hist)
    w_f = values.size - w_b
    sum_b = np.cumsum(hist * levels)
    total = sum_b[-1]

    valid = (w_b > 0) & (w_f > 0)
    if not valid.any():
        return default

    m_b = np.where(valid, sum_b / np.maximum(w_b, 1), 0)
    m_f = np.where(valid, (total - sum_b) / np.maximum(w_f, 1), 0)
    between = np.where(valid, w_b * w_f * (m_b - m_f) ** 2, 0)
    if between.max() <= 0:
        return default
    return int(np.argmax(between))


class ColorSegmenter:
    """Produces raw class masks inside the plan."""

    def __init__(self, config: dict = None):
        """
        Initialize color segmenter.

        Args:
            config: Optional config dict, uses PipelineConfig.COLOR_SEGMENTATION if None
        """
        self.config = config or PipelineConfig.COLOR_SEGMENTATION
        size = self.config['CLOSE_SIZE']
        self.close_kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (size, size))

    def _finish(self, raw: np.ndarray, plan_mask: np.ndarray) -> np.ndarray:
        """Restrict to plan and close small interior speckles."""
        masked = cv2.bitwise_and(raw, plan_mask)
        return cv2.morphologyEx(masked, cv2.MORPH_CLOSE, self.close_kernel)

    # ------------------------------------------------------------------
    # Default heuristics
    # ------------------------------------------------------------------

    def normal_threshold(self, l_channel: np.ndarray, plan_mask: np.ndarray) -> int:
        cfg = self.config['NORMAL']
        otsu = otsu_in_mask(l_channel, plan_mask)
        threshold = min(otsu, cfg['MAX_L'])
        logger.info("Normal luminance threshold=%d (otsu=%d, capped at %d)", threshold, otsu, cfg['MAX_L'])
        return threshold

    def detect_normal(self, image: np.ndarray, plan_mask: np.ndarray) -> np.ndarray:
        """Dark, unsaturated pixels."""
        lab = cv2.cvtColor(image, cv2.COLOR_BGR2LAB)
        hsv = cv2.cvtColor(image, cv2.COLOR_BGR2HSV)
        l_ch = lab[:, :, 0]

        threshold = self.normal_threshold(l_ch, plan_mask)
        _, dark = cv2.threshold(l_ch, threshold, 255, cv2.THRESH_BINARY_INV)
        _, unsaturated = cv2.threshold(hsv[:, :, 1], self.config['NORMAL']['MAX_SAT'],
                                       255, cv2.THRESH_BINARY_INV)

        return self._finish(cv2.bitwise_and(dark, unsaturated), plan_mask)

    def detect_overtime(self, image: np.ndarray, plan_mask: np.ndarray) -> np.ndarray:
        """Red pixels on both sides of the hue wrap-around."""
        cfg = self.config['OVERTIME']
        hsv = cv2.cvtColor(image, cv2.COLOR_BGR2HSV)

        mask = np.zeros(hsv.shape[:2], dtype=np.uint8)
        for lo, hi in cfg['HUE_RANGES']:
            lower = np.array([lo, cfg['MIN_SAT'], cfg['MIN_VAL']])
            upper = np.array([hi, 255, 255])
            mask |= cv2.inRange(hsv, lower, upper)

        return self._finish(mask, plan_mask)

    # ------------------------------------------------------------------
    # Calibrated profile
    # ------------------------------------------------------------------

    def profile_margins(self, tolerance: int) -> Tuple[int, int]:
        """Hue and saturation/value margins for a 0-100 tolerance."""
        cfg = self.config['PROFILE']
        tol = 0.05 + (tolerance / 100.0) * 0.95
        hue_margin = max(cfg['MIN_HUE_MARGIN'], int(tol * 40))
        sv_margin = max(cfg['MIN_SV_MARGIN'], int(tol * 110))
        return hue_margin, sv_margin

    def swatch_mask(self, hsv: np.ndarray, swatch: Swatch,
                    hue_margin: int, sv_margin: int) -> np.ndarray:
        """Acceptance box around one swatch, with a wrapped box near hue 0/180."""
        t_h, t_s, t_v = swatch.to_opencv()

        if t_v < self.config['PROFILE']['DARK_V']:
            # Hue is unstable near black: match on value only
            v_hi = min(255, max(100, t_v + sv_margin * 3))
            return cv2.inRange(hsv, np.array([0, 0, 0]), np.array([HUE_MAX, 255, v_hi]))

        s_lo, s_hi = max(0, t_s - sv_margin), min(255, t_s + sv_margin)
        v_lo, v_hi = max(0, t_v - sv_margin), min(255, t_v + sv_margin)
        h_lo, h_hi = max(0, t_h - hue_margin), min(HUE_MAX, t_h + hue_margin)

        mask = cv2.inRange(hsv, np.array([h_lo, s_lo, v_lo]), np.array([h_hi, s_hi, v_hi]))

        if t_h < hue_margin:
            wrapped = cv2.inRange(hsv, np.array([HUE_MAX - (hue_margin - t_h), s_lo, v_lo]),
                                  np.array([HUE_MAX, s_hi, v_hi]))
            mask = cv2.bitwise_or(mask, wrapped)
        elif t_h > HUE_MAX - hue_margin:
            wrapped = cv2.inRange(hsv, np.array([0, s_lo, v_lo]),
                                  np.array([hue_margin - (HUE_MAX - t_h), s_hi, v_hi]))
            mask = cv2.bitwise_or(mask, wrapped)

        return mask

    def detect_profile(self, image: np.ndarray, plan_mask: np.ndarray,
                       swatches: List[Swatch], tolerance: int) -> np.ndarray:
        hsv = cv2.cvtColor(image, cv2.COLOR_BGR2HSV)
        hue_margin, sv_margin = self.profile_margins(tolerance)

        combined = np.zeros(hsv.shape[:2], dtype=np.uint8)
        for swatch in swatches:
            combined |= self.swatch_mask(hsv, swatch, hue_margin, sv_margin)

        return self._finish(combined, plan_mask)

    # ------------------------------------------------------------------

    def segment(self, image: np.ndarray, plan_mask: np.ndarray,
                profile: Optional[ColorProfile] = None) -> Tuple[np.ndarray, np.ndarray]:
        """
        Segment both paint classes.

        Args:
            image: Normalized BGR image
            plan_mask: Region allowed to hold paint
            profile: Optional calibration; heuristics are used when absent or empty

        Returns:
            Tuple of (normal_raw, ot_raw) masks
        """
        if profile is not None and not profile.is_empty:
            hue_margin, sv_margin = self.profile_margins(profile.tolerance)
            logger.info("Profile segmentation: tolerance=%d hueMargin=%d svMargin=%d swatches=%d",
                        profile.tolerance, hue_margin, sv_margin, len(profile.swatches))
            normal = self.detect_profile(image, plan_mask,
                                         profile.for_group(ColorGroup.NORMAL), profile.tolerance)
            ot = self.detect_profile(image, plan_mask,
                                     profile.for_group(ColorGroup.OVERTIME), profile.tolerance)
        else:
            normal = self.detect_normal(image, plan_mask)
            ot = self.detect_overtime(image, plan_mask)

        logger.debug("Raw class pixels: normal=%d ot=%d",
                     cv2.countNonZero(normal), cv2.countNonZero(ot))
        return normal, ot
