"""
Lighting Normalization Module

Equalizes luminance with CLAHE and suppresses sensor noise so that later
threshold decisions do not depend on the phone's exposure.
"""

import logging

import cv2
import numpy as np

from .config import PipelineConfig

logger = logging.getLogger(__name__)


class LightingNormalizer:
    """Equalizes the luminance channel only, leaving hue untouched."""

    def __init__(self, config: dict = None):
        """
        Initialize lighting normalizer.

        Args:
            config: Optional config dict, uses PipelineConfig.LIGHTING if None
        """
        self.config = config or PipelineConfig.LIGHTING
        self.clip_limit = self.config['CLAHE_CLIP']
        self.tile_grid = self.config['TILE_GRID']
        self.blur_size = self.config['BLUR_SIZE']

    def normalize(self, image: np.ndarray) -> np.ndarray:
        """
        Normalize lighting of a BGR frame.

        Args:
            image: BGR input image

        Returns:
            New BGR image of the same size
        """
        lab = cv2.cvtColor(image, cv2.COLOR_BGR2LAB)
        l_ch, a_ch, b_ch = cv2.split(lab)

        clahe = cv2.createCLAHE(clipLimit=self.clip_limit,
                                tileGridSize=(self.tile_grid, self.tile_grid))
        l_norm = clahe.apply(l_ch)

        result = cv2.cvtColor(cv2.merge([l_norm, a_ch, b_ch]), cv2.COLOR_LAB2BGR)

        if self.blur_size > 1:
            result = cv2.GaussianBlur(result, (self.blur_size, self.blur_size), 0)

        logger.debug("Lighting normalized: clip=%.1f meanL %.1f -> %.1f",
                     self.clip_limit, float(l_ch.mean()), float(l_norm.mean()))
        return result
