"""
Registration Module

Aligns a photo to a known reference geometry. Two strategies:
- TemplateAligner: ORB features + RANSAC homography to a stored template
  frame, validated before use and silently skipped when untrustworthy.
- QR corners: perspective warp from tagged corner markers (qr_correction).

Registrar picks the strategy from the calibration data an order has.
"""

import logging
from enum import Enum
from typing import Optional, Tuple

import cv2
import numpy as np

from .config import PipelineConfig
from .models import Template
from .qr_correction import QrCornerCorrector

logger = logging.getLogger(__name__)


class TemplateAligner:
    """Feature-based homography alignment with a safe fallback."""

    def __init__(self, config: dict = None):
        """
        Initialize template aligner.

        Args:
            config: Optional config dict, uses PipelineConfig.ALIGNMENT if None
        """
        self.config = config or PipelineConfig.ALIGNMENT

    def estimate_homography(self, image: np.ndarray, template_image: np.ndarray) -> Optional[np.ndarray]:
        """
        Estimate the homography mapping image onto template_image.

        Returns:
            3x3 matrix, or None when there are too few keypoints or matches
        """
        gray_template = cv2.cvtColor(template_image, cv2.COLOR_BGR2GRAY)
        gray_current = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)

        orb = cv2.ORB_create(nfeatures=self.config['FEATURES'])
        kp_template, des_template = orb.detectAndCompute(gray_template, None)
        kp_current, des_current = orb.detectAndCompute(gray_current, None)

        min_kp = self.config['MIN_KEYPOINTS']
        logger.debug("Align keypoints: template=%d current=%d", len(kp_template), len(kp_current))
        if (des_template is None or des_current is None or
                len(kp_template) < min_kp or len(kp_current) < min_kp):
            logger.info("Align: insufficient keypoints, using resize-only")
            return None

        matcher = cv2.BFMatcher(cv2.NORM_HAMMING, crossCheck=False)
        raw_matches = matcher.knnMatch(des_current, des_template, k=2)

        ratio = self.config['RATIO_TEST']
        good = [pair[0] for pair in raw_matches
                if len(pair) == 2 and pair[0].distance < ratio * pair[1].distance]

        logger.debug("Align good matches: %d / %d", len(good), len(raw_matches))
        if len(good) < self.config['MIN_MATCHES']:
            logger.info("Align: too few matches (%d), using resize-only", len(good))
            return None

        src_pts = np.float32([kp_current[m.queryIdx].pt for m in good]).reshape(-1, 1, 2)
        dst_pts = np.float32([kp_template[m.trainIdx].pt for m in good]).reshape(-1, 1, 2)
        H, _ = cv2.findHomography(src_pts, dst_pts, cv2.RANSAC, self.config['RANSAC_REPROJ'])
        return H

    def validate_homography(self, H: Optional[np.ndarray], template_shape) -> Tuple[bool, str]:
        """
        Check that a homography is a plausible small correction.

        Args:
            H: 3x3 homography (or None)
            template_shape: Shape of the template frame

        Returns:
            Tuple of (ok, reason)
        """
        if H is None or np.shape(H) != (3, 3):
            return False, "homography computation failed"

        h33 = float(H[2, 2])
        if abs(h33) < 1e-6:
            return False, "degenerate homography (h33~0)"
        n = np.asarray(H, dtype=np.float64) / h33

        max_persp = self.config['MAX_PERSPECTIVE']
        if abs(n[2, 0]) > max_persp or abs(n[2, 1]) > max_persp:
            return False, f"excessive perspective h20={n[2, 0]:.3e} h21={n[2, 1]:.3e}"

        det = n[0, 0] * n[1, 1] - n[0, 1] * n[1, 0]
        if det < self.config['MIN_DET'] or det > self.config['MAX_DET']:
            return False, f"bad determinant {det:.3f}"

        max_shift = max(template_shape[0], template_shape[1]) * self.config['MAX_SHIFT_FRACTION']
        if abs(n[0, 2]) > max_shift or abs(n[1, 2]) > max_shift:
            return False, f"excessive translation tx={n[0, 2]:.1f} ty={n[1, 2]:.1f}"

        max_rot = self.config['MAX_ROTATION_TERM']
        if abs(n[0, 1]) > max_rot or abs(n[1, 0]) > max_rot:
            return False, f"excessive rotation h01={n[0, 1]:.3f} h10={n[1, 0]:.3f}"

        return True, f"det={det:.3f} tx={n[0, 2]:.1f} ty={n[1, 2]:.1f}"

    def align(self, image: np.ndarray, template_image: np.ndarray) -> np.ndarray:
        """
        Register image to template_image.

        Args:
            image: BGR frame already resized to the template size
            template_image: Template reference frame

        Returns:
            Warped frame, or a copy of image when registration is not trusted
        """
        try:
            H = self.estimate_homography(image, template_image)
        except cv2.error as e:
            logger.info("Align: OpenCV error (%s), using resize-only", e)
            return image.copy()

        if H is None:
            return image.copy()

        ok, reason = self.validate_homography(H, template_image.shape)
        if not ok:
            logger.info("Align: %s, using resize-only", reason)
            return image.copy()

        h, w = template_image.shape[:2]
        warped = cv2.warpPerspective(image, H, (w, h))
        logger.info("Align: applied (%s)", reason)
        return warped


class RegistrationMode(Enum):
    NONE = 'none'
    QR_CORNERS = 'qr_corners'
    FEATURE_HOMOGRAPHY = 'feature_homography'


class Registrar:
    """Chooses and applies a registration strategy."""

    def __init__(self, config: dict = None):
        """
        Initialize registrar.

        Args:
            config: Optional dict of config blocks (INPUT, ALIGNMENT, QR_CORRECTION)
        """
        config = config or PipelineConfig.as_dict()
        self.analysis_width = config['INPUT']['ANALYSIS_WIDTH']
        self.aligner = TemplateAligner(config['ALIGNMENT'])
        self.qr_corrector = QrCornerCorrector(config['QR_CORRECTION'])

    @staticmethod
    def select(template: Optional[Template], use_qr: bool = False) -> RegistrationMode:
        if use_qr:
            return RegistrationMode.QR_CORNERS
        if template is not None:
            return RegistrationMode.FEATURE_HOMOGRAPHY
        return RegistrationMode.NONE

    def resize_to_width(self, image: np.ndarray) -> np.ndarray:
        h, w = image.shape[:2]
        target_w = self.analysis_width
        target_h = max(1, int(h * target_w / float(w)))
        return cv2.resize(image, (target_w, target_h), interpolation=cv2.INTER_AREA)

    def register(self, image: np.ndarray, template: Optional[Template] = None,
                 mode: RegistrationMode = None) -> np.ndarray:
        """
        Bring a decoded photo into the analysis pixel grid.

        Args:
            image: Decoded BGR photo
            template: Optional template of the order
            mode: Strategy; chosen with select() when None

        Returns:
            New BGR frame. Template size when a template is given, otherwise
            the QR output size or the analysis width.

        Raises:
            QrCornerError: QR mode could not resolve the corners
        """
        if mode is None:
            mode = self.select(template)

        logger.debug("Registration mode: %s", mode.value)

        if mode is RegistrationMode.QR_CORNERS:
            size = (template.width, template.height) if template is not None else None
            return self.qr_corrector.correct(image, size)

        if mode is RegistrationMode.FEATURE_HOMOGRAPHY and template is not None:
            resized = cv2.resize(image, (template.width, template.height), interpolation=cv2.INTER_AREA)
            return self.aligner.align(resized, template.image)

        return self.resize_to_width(image)
