"""
Visualization utilities for the plan progress pipeline.
Diagnostic overlays, labelled panel grids and best-effort debug image output.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

import cv2
import numpy as np

from .config import ClassColors, PipelineConfig
from .models import AnalysisResult

logger = logging.getLogger(__name__)


def add_label_to_image(img: np.ndarray,
                       text: str,
                       color: Tuple[int, int, int] = (255, 255, 255),
                       bg_color: Tuple[int, int, int] = (0, 0, 0),
                       position: str = 'top') -> np.ndarray:
    """
    Add a labelled banner to an image.

    Args:
        img: Input image (BGR or mask)
        text: Label text
        color: Text color
        bg_color: Banner color
        position: 'top' or 'bottom'

    Returns:
        New BGR image with the banner
    """
    vis = cv2.cvtColor(img, cv2.COLOR_GRAY2BGR) if img.ndim == 2 else img.copy()

    h, w = vis.shape[:2]
    font_scale = w / 1000.0
    thickness = max(1, int(w / 500.0))
    bar_h = max(20, int(h * 0.06))

    if position == 'top':
        y_start, y_end = 0, bar_h
        text_y = int(bar_h * 0.7)
    else:
        y_start, y_end = h - bar_h, h
        text_y = h - int(bar_h * 0.3)

    cv2.rectangle(vis, (0, y_start), (w, y_end), bg_color, -1)
    cv2.putText(vis, text, (10, text_y), cv2.FONT_HERSHEY_SIMPLEX,
                font_scale, color, thickness, cv2.LINE_AA)
    return vis


def create_grid_visualization(images: List[np.ndarray],
                              labels: Optional[List[str]] = None,
                              grid_size: Optional[Tuple[int, int]] = None) -> np.ndarray:
    """
    Arrange stage images in a grid.

    Masks are converted to BGR and every panel is resized to the first one.

    Args:
        images: Images to arrange
        labels: Optional label per image
        grid_size: Optional (rows, cols), near-square if None

    Returns:
        Grid image
    """
    if not images:
        raise ValueError("No images provided")

    n = len(images)
    if grid_size is None:
        cols = int(np.ceil(np.sqrt(n)))
        rows = int(np.ceil(n / cols))
    else:
        rows, cols = grid_size

    h, w = images[0].shape[:2]
    panels = []
    for i, img in enumerate(images):
        panel = cv2.cvtColor(img, cv2.COLOR_GRAY2BGR) if img.ndim == 2 else img
        if panel.shape[:2] != (h, w):
            panel = cv2.resize(panel, (w, h), interpolation=cv2.INTER_NEAREST)
        if labels and i < len(labels):
            panel = add_label_to_image(panel, labels[i])
        panels.append(panel)

    while len(panels) < rows * cols:
        panels.append(np.zeros((h, w, 3), dtype=np.uint8))

    image_rows = [np.hstack(panels[r * cols:(r + 1) * cols]) for r in range(rows)]
    return np.vstack(image_rows)


def class_overlay(image: np.ndarray,
                  normal: np.ndarray,
                  ot: np.ndarray,
                  plan_mask: Optional[np.ndarray] = None,
                  config: dict = None) -> np.ndarray:
    """
    Blend class colors over the frame and outline the plan.

    Normal pixels are drawn blue, overtime red, the plan contour green.
    """
    config = config or PipelineConfig.VIZ
    alpha = config['OVERLAY_ALPHA']

    colored = image.copy()
    colored[normal > 0] = ClassColors.OVERLAY['normal']
    colored[ot > 0] = ClassColors.OVERLAY['ot']
    vis = cv2.addWeighted(image, 1.0 - alpha, colored, alpha, 0)

    if plan_mask is not None:
        contours, _ = cv2.findContours(plan_mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        cv2.drawContours(vis, contours, -1, ClassColors.OVERLAY['plan'],
                         config['PLAN_CONTOUR_THICKNESS'])
    return vis


def result_banner(image: np.ndarray, result: AnalysisResult) -> np.ndarray:
    """Overlay image with the result written along the bottom."""
    return add_label_to_image(image, str(result), position='bottom')


class DebugWriter:
    """
    Writes named intermediate images to a directory.

    Writes are best-effort: failures are logged at DEBUG and never raised.
    All files of one writer share a timestamp prefix.
    """

    def __init__(self, directory, prefix: str = 'default'):
        self.directory = Path(directory)
        self.prefix = prefix
        self.stamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        self.written = []

    def path_for(self, name: str, ext: str = '.png') -> Path:
        return self.directory / f"{self.stamp}_{self.prefix}_{name}{ext}"

    def write(self, name: str, image: np.ndarray, ext: str = '.png') -> Optional[Path]:
        if image is None:
            return None
        path = self.path_for(name, ext)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            if not cv2.imwrite(str(path), image):
                logger.debug("Debug image not written: %s", path)
                return None
        except (OSError, cv2.error) as e:
            logger.debug("Debug image %s failed: %s", path, e)
            return None
        self.written.append(path)
        return path

    def write_stages(self, frame: np.ndarray, denominator: np.ndarray, stages: dict,
                     result: AnalysisResult = None) -> None:
        """
        Write the standard stage images plus the overlay.

        Args:
            frame: Registered frame the masks belong to
            denominator: Denominator mask
            stages: Dict with normal_raw, normal_filtered, normal_final,
                ot_raw, ot_filtered, ot_final (missing keys are skipped)
            result: Optional result drawn on the overlay
        """
        self.write('1_plan_mask', denominator)
        for key, name in (('normal_raw', '2a_normal_raw'),
                          ('normal_filtered', '2b_normal_filtered'),
                          ('normal_final', '2c_normal_final'),
                          ('ot_raw', '3a_ot_raw'),
                          ('ot_filtered', '3b_ot_filtered'),
                          ('ot_final', '3c_ot_final')):
            self.write(name, stages.get(key))

        normal = stages.get('normal_final')
        ot = stages.get('ot_final')
        if normal is None or ot is None:
            return

        overlay = class_overlay(frame, normal, ot, denominator)
        if result is not None:
            overlay = result_banner(overlay, result)
        self.write('5_overlay', overlay, '.jpg')
