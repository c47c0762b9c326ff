"""
Percentage Calculation Module

Turns final class masks and a denominator mask into the reported result.
"""

import logging

import cv2
import numpy as np

from .config import PipelineConfig
from .models import AnalysisResult

logger = logging.getLogger(__name__)


class PercentageCalculator:
    """Computes class percentages over the effective paintable area."""

    def __init__(self, config: dict = None):
        """
        Initialize percentage calculator.

        Args:
            config: Optional config dict, uses PipelineConfig.PERCENTAGE if None
        """
        self.config = config or PipelineConfig.PERCENTAGE

    def compute(self, normal: np.ndarray, ot: np.ndarray, denominator: np.ndarray,
                plan: np.ndarray = None) -> AnalysisResult:
        """
        Compute the analysis result.

        Args:
            normal: Final normal mask
            ot: Final overtime mask
            denominator: Effective mask (plan minus grid)
            plan: Raw plan mask, used when the effective mask is empty

        Returns:
            AnalysisResult; all zero when no denominator is available
        """
        denom = denominator
        denom_px = cv2.countNonZero(denom)
        if denom_px == 0 and plan is not None:
            logger.info("Effective mask empty, using plan mask as denominator")
            denom = plan
            denom_px = cv2.countNonZero(denom)

        if denom_px == 0:
            logger.info("Empty denominator, reporting zero progress")
            return AnalysisResult.empty()

        normal_px = cv2.countNonZero(cv2.bitwise_and(normal, denom))
        ot_px = cv2.countNonZero(cv2.bitwise_and(ot, denom))

        normal_pct = round(normal_px / float(denom_px) * 100.0, 2)
        ot_pct = round(ot_px / float(denom_px) * 100.0, 2)
        total = min(round(normal_pct + ot_pct, 2), 100.0)
        is_complete = total >= self.config['COMPLETE_THRESHOLD']

        if is_complete and self.config.get('SNAP_COMPLETE', False):
            total = 100.0

        logger.info("Percent: denom=%d normal=%d ot=%d -> %.2f%% + %.2f%% = %.2f%% complete=%s",
                    denom_px, normal_px, ot_px, normal_pct, ot_pct, total, is_complete)
        return AnalysisResult(normal_pct, ot_pct, total, is_complete)
