"""
QR-Corner Perspective Correction Module

Rectifies a photo using four QR markers placed at the plan corners, each
encoding its corner tag (TL, TR, BR, BL).

Corner strategy:
- Each detected QR contributes the vertex of its own polygon that lies
  furthest toward the plan corner it labels (TL minimizes x+y, TR maximizes
  x-y, BR maximizes x+y, BL minimizes x-y). This is independent of how the
  QR itself is rotated.
- With three markers the fourth corner comes from the parallelogram identity
  TL + BR = TR + BL.
- Fewer than three markers, or a quad that is not convex, too small or too
  skewed, raises QrCornerError.
"""

import logging
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np

from .config import PipelineConfig
from .models import CORNER_ORDER, CornerQuad, CornerTag, QrCornerError

logger = logging.getLogger(__name__)


def polygon_area(points: np.ndarray) -> float:
    """Shoelace area of a simple polygon."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    x, y = pts[:, 0], pts[:, 1]
    return float(abs(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y)) / 2.0)


def is_convex(points: np.ndarray) -> bool:
    """True when every non-degenerate turn of the closed polygon has the same sign."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    n = len(pts)
    if n < 4:
        return False

    sign = None
    for i in range(n):
        a, b, c = pts[i], pts[(i + 1) % n], pts[(i + 2) % n]
        cross = (b[0] - a[0]) * (c[1] - b[1]) - (b[1] - a[1]) * (c[0] - b[0])
        if abs(cross) < 1e-6:
            continue
        if sign is None:
            sign = cross > 0
        elif (cross > 0) != sign:
            return False

    return sign is not None


def select_extreme_corner(tag: CornerTag, polygon: np.ndarray) -> np.ndarray:
    """
    Pick the QR vertex that marks the plan corner for this tag.

    Args:
        tag: Corner the QR labels
        polygon: 4x2 QR vertices from the detector

    Returns:
        The chosen vertex as float32 (2,)
    """
    pts = np.asarray(polygon, dtype=np.float32).reshape(-1, 2)
    if len(pts) < 4:
        raise ValueError(f"QR polygon has {len(pts)} points, expected 4")

    s = pts[:, 0] + pts[:, 1]
    d = pts[:, 0] - pts[:, 1]
    index = {
        CornerTag.TL: np.argmin(s),
        CornerTag.TR: np.argmax(d),
        CornerTag.BR: np.argmax(s),
        CornerTag.BL: np.argmin(d)
    }[tag]
    return pts[index].copy()


def estimate_missing_corner(missing: CornerTag, known: Dict[CornerTag, np.ndarray]) -> np.ndarray:
    """Fourth corner of a parallelogram from the other three (TL + BR = TR + BL)."""
    p = {tag: np.asarray(pt, dtype=np.float32) for tag, pt in known.items()}
    if missing is CornerTag.TL:
        return p[CornerTag.TR] + p[CornerTag.BL] - p[CornerTag.BR]
    if missing is CornerTag.TR:
        return p[CornerTag.TL] + p[CornerTag.BR] - p[CornerTag.BL]
    if missing is CornerTag.BR:
        return p[CornerTag.TR] + p[CornerTag.BL] - p[CornerTag.TL]
    return p[CornerTag.TL] + p[CornerTag.BR] - p[CornerTag.TR]


class QrCornerCorrector:
    """Warps a photo to a front-facing rectangle using QR corner markers."""

    def __init__(self, config: dict = None):
        """
        Initialize QR corner corrector.

        Args:
            config: Optional config dict, uses PipelineConfig.QR_CORRECTION if None
        """
        self.config = config or PipelineConfig.QR_CORRECTION

    def _accept(self, text: str, points, found: list, seen: set) -> Optional[np.ndarray]:
        """Record a decoded marker; returns its polygon, or None when the points are unusable."""
        if points is None:
            return None
        polygon = np.asarray(points, dtype=np.float32).reshape(-1, 2)
        if len(polygon) < 4:
            return None
        polygon = polygon[:4]

        tag = CornerTag.parse(text) if text and text.strip() else None
        if tag is not None and tag not in seen and polygon_area(polygon) >= self.config['MIN_QR_AREA']:
            found.append((tag, polygon))
            seen.add(tag)
        else:
            logger.debug("Ignoring QR payload %r", (text or '').strip())
        return polygon

    @staticmethod
    def _blank_out(work: np.ndarray, polygon: np.ndarray) -> None:
        hull = cv2.convexHull(polygon.astype(np.int32))
        cv2.fillConvexPoly(work, hull, (255, 255, 255))

    def detect_qr_codes(self, image: np.ndarray) -> List[Tuple[CornerTag, np.ndarray]]:
        """
        Find tagged QR codes.

        All markers are decoded in one multi-code pass first. When that misses
        corners, the remaining codes are searched one at a time, painting each
        found region white before the next attempt.

        Returns:
            List of (tag, 4x2 polygon), first occurrence of each tag only
        """
        work = image.copy()
        detector = cv2.QRCodeDetector()
        found = []
        seen = set()

        ok, texts, points, _ = detector.detectAndDecodeMulti(work)
        if ok and points is not None:
            for text, pts in zip(texts, points):
                polygon = self._accept(text, pts, found, seen)
                if polygon is not None and text:
                    self._blank_out(work, polygon)
        logger.debug("Multi-code pass found %d corner(s)", len(found))

        attempts = 0
        while len(seen) < 4 and attempts < self.config['MAX_ATTEMPTS']:
            attempts += 1
            text, pts, _ = detector.detectAndDecode(work)
            if not text or not text.strip() or pts is None:
                break
            polygon = self._accept(text, pts, found, seen)
            if polygon is None:
                break
            self._blank_out(work, polygon)

        logger.info("Detected %d QR corner(s): %s", len(found),
                    ", ".join(tag.value for tag, _ in found) or "none")
        return found

    def resolve_quad(self, detections: List[Tuple[CornerTag, np.ndarray]]) -> CornerQuad:
        """
        Build the plan quad from detected markers.

        Raises:
            QrCornerError: fewer than three distinct corners were found
        """
        corners = {}
        for tag, polygon in detections:
            if tag not in corners:
                corners[tag] = select_extreme_corner(tag, polygon)

        if len(corners) >= 4:
            return CornerQuad(corners)

        if len(corners) == 3:
            missing = next(t for t in CORNER_ORDER if t not in corners)
            estimated = estimate_missing_corner(missing, corners)
            logger.info("Only 3 QR corners found, estimated %s at (%.0f, %.0f)",
                        missing.value, estimated[0], estimated[1])
            corners[missing] = estimated
            return CornerQuad(corners, frozenset([missing]))

        found = ", ".join(t.value for t in corners) or "none"
        raise QrCornerError(
            f"Need at least 3 QR corners to build a perspective quad. Found: {found}. "
            "Label the plan corners with QR codes TL, TR, BR, BL.")

    def validate_quad(self, quad: np.ndarray, width: int, height: int) -> None:
        """
        Check convexity, minimum area and side-length ratio.

        Raises:
            QrCornerError: when any check fails
        """
        pts = np.asarray(quad, dtype=np.float64).reshape(4, 2)

        if not is_convex(pts):
            coords = " ".join(f"{t.value}=({x:.0f},{y:.0f})" for t, (x, y) in zip(CORNER_ORDER, pts))
            raise QrCornerError(f"QR corners form a non-convex quadrilateral: {coords}")

        area = polygon_area(pts)
        image_area = float(width * height)
        min_fraction = self.config['MIN_QUAD_AREA_FRACTION']
        if area < image_area * min_fraction:
            raise QrCornerError(
                f"Plan quad too small ({area:.0f} px2, {area / image_area * 100:.1f}% of image, "
                f"minimum {min_fraction * 100:.0f}%)")

        sides = np.linalg.norm(pts - np.roll(pts, -1, axis=0), axis=1)
        max_ratio = self.config['MAX_SIDE_RATIO']
        if sides.min() < 1 or sides.max() / sides.min() > max_ratio:
            raise QrCornerError(
                f"Extreme skew: side lengths {np.round(sides).astype(int).tolist()} "
                f"exceed ratio {max_ratio}")

    def correct(self, image: np.ndarray, output_size: Tuple[int, int] = None) -> np.ndarray:
        """
        Rectify a photo using its QR corner markers.

        Args:
            image: BGR photo
            output_size: Optional (width, height); defaults to OUTPUT_WIDTH x OUTPUT_HEIGHT

        Returns:
            New warped BGR image

        Raises:
            QrCornerError: corners missing or the quad is invalid
        """
        if image is None or image.size == 0:
            raise QrCornerError("Input image is empty")

        out_w, out_h = output_size or (self.config['OUTPUT_WIDTH'], self.config['OUTPUT_HEIGHT'])

        quad = self.resolve_quad(self.detect_qr_codes(image))
        src = quad.as_array()
        self.validate_quad(src, image.shape[1], image.shape[0])

        dst = np.array([[0, 0], [out_w - 1, 0], [out_w - 1, out_h - 1], [0, out_h - 1]],
                       dtype=np.float32)
        transform = cv2.getPerspectiveTransform(src, dst)
        warped = cv2.warpPerspective(image, transform, (out_w, out_h),
                                     flags=cv2.INTER_LINEAR,
                                     borderMode=cv2.BORDER_CONSTANT,
                                     borderValue=(0, 0, 0))

        logger.info("QR warp %dx%d -> %dx%d (estimated: %s)",
                    image.shape[1], image.shape[0], out_w, out_h,
                    ", ".join(t.value for t in quad.estimated) or "none")
        return warped
