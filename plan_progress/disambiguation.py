"""
Region Disambiguation Module

Partitions the union of both class detections into two disjoint masks with a
nearest-seed rule, and (template path) fills small gaps inside painted areas
before re-partitioning.
"""

import logging
from typing import Tuple

import cv2
import numpy as np

from .config import PipelineConfig

logger = logging.getLogger(__name__)


class RegionDisambiguator:
    """Nearest-seed assignment of ambiguous pixels."""

    @staticmethod
    def seed_distance(seed: np.ndarray) -> np.ndarray:
        """Distance of each pixel to the nearest seed pixel."""
        return cv2.distanceTransform(cv2.bitwise_not(seed), cv2.DIST_L2, 5)

    def assign(self, grown: np.ndarray, normal_seed: np.ndarray,
               ot_seed: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Split grown into normal and overtime.

        A pixel goes to normal when it is strictly closer to the normal seed
        or is itself a normal seed pixel, unless it is an overtime seed pixel.
        Everything else in grown is overtime, so ties and seed overlaps
        resolve to overtime.

        Args:
            grown: Region to partition
            normal_seed: Normal class seed mask
            ot_seed: Overtime class seed mask

        Returns:
            Tuple of disjoint (normal, ot) masks covering grown
        """
        empty = np.zeros_like(grown)
        normal_count = cv2.countNonZero(normal_seed)
        ot_count = cv2.countNonZero(ot_seed)

        if normal_count == 0 and ot_count == 0:
            return empty, empty.copy()
        if normal_count == 0:
            return empty, grown.copy()
        if ot_count == 0:
            return grown.copy(), empty

        dist_normal = self.seed_distance(normal_seed)
        dist_ot = self.seed_distance(ot_seed)

        closer_normal = np.where(dist_normal < dist_ot, 255, 0).astype(np.uint8)
        normal = cv2.bitwise_or(closer_normal, normal_seed)
        normal = cv2.bitwise_and(normal, cv2.bitwise_not(ot_seed))
        normal = cv2.bitwise_and(normal, grown)

        ot = cv2.bitwise_and(grown, cv2.bitwise_not(normal))

        logger.debug("Nearest-seed assign: grown=%d seeds(normal=%d ot=%d) -> normal=%d ot=%d",
                     cv2.countNonZero(grown), normal_count, ot_count,
                     cv2.countNonZero(normal), cv2.countNonZero(ot))
        return normal, ot

    def split(self, normal: np.ndarray, ot: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Partition the union of two (possibly overlapping) class masks."""
        grown = cv2.bitwise_or(normal, ot)
        return self.assign(grown, normal, ot)


class HoleFiller:
    """Closes small gaps in painted regions without leaving the legal area."""

    def __init__(self, config: dict = None, disambiguator: RegionDisambiguator = None):
        """
        Initialize hole filler.

        Args:
            config: Optional config dict, uses PipelineConfig.FILL if None
            disambiguator: Used to re-split the filled union
        """
        self.config = config or PipelineConfig.FILL
        self.disambiguator = disambiguator or RegionDisambiguator()
        size = self.config['KERNEL']
        self.kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (size, size))

    def fill(self, normal: np.ndarray, ot: np.ndarray, effective: np.ndarray,
             normal_seed: np.ndarray, ot_seed: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Fill gaps in the painted union and re-attribute the new pixels.

        Args:
            normal: Disjoint normal mask
            ot: Disjoint overtime mask
            effective: Legal paintable area; the fill never leaves it
            normal_seed: Filtered normal mask used as seed for the re-split
            ot_seed: Filtered overtime mask used as seed for the re-split

        Returns:
            Tuple of disjoint (normal, ot) masks
        """
        painted = cv2.bitwise_or(normal, ot)
        before = cv2.countNonZero(painted)

        painted = cv2.morphologyEx(painted, cv2.MORPH_CLOSE, self.kernel)
        painted = cv2.dilate(painted, self.kernel, iterations=self.config['DILATE_ITERATIONS'])
        painted = cv2.bitwise_and(painted, effective)

        logger.debug("Hole fill: painted %d -> %d px", before, cv2.countNonZero(painted))
        return self.disambiguator.assign(painted, normal_seed, ot_seed)
