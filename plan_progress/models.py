"""
Data model for plan progress analysis.

Frames and masks are plain numpy arrays (BGR uint8 and single-channel 0/255
uint8). The types here describe the inputs that outlive a single analysis
(color profiles and templates) and the reported result.
"""

import colorsys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional

import cv2
import numpy as np


class PlanProgressError(Exception):
    """Base error for plan progress analysis."""


class QrCornerError(PlanProgressError):
    """QR corner markers could not produce a usable perspective quad."""


class ColorGroup(Enum):
    """The two paint classes."""
    NORMAL = 'normal'
    OVERTIME = 'ot'

    @classmethod
    def parse(cls, text: str) -> 'ColorGroup':
        key = str(text).strip().lower()
        if key in ('ot', 'overtime'):
            return cls.OVERTIME
        if key == 'normal':
            return cls.NORMAL
        raise ValueError(f"Unknown color group: {text!r}")


@dataclass(frozen=True)
class Swatch:
    """A measured calibration color. Hue in degrees, saturation/value in [0, 1]."""
    group: ColorGroup
    hue: float
    saturation: float
    value: float

    @classmethod
    def from_hex(cls, group: ColorGroup, hex_color: str) -> 'Swatch':
        text = hex_color.strip().lstrip('#')
        if len(text) != 6:
            raise ValueError(f"Expected #rrggbb, got {hex_color!r}")
        r, g, b = (int(text[i:i + 2], 16) / 255.0 for i in (0, 2, 4))
        h, s, v = colorsys.rgb_to_hsv(r, g, b)
        return cls(group, h * 360.0, s, v)

    def to_opencv(self):
        """Target (H, S, V) on OpenCV's 8-bit scale (hue 0-180)."""
        return int(self.hue / 2.0), int(self.saturation * 255), int(self.value * 255)


@dataclass
class ColorProfile:
    """Per-order color calibration."""
    tolerance: int = 30
    swatches: List[Swatch] = field(default_factory=list)

    def for_group(self, group: ColorGroup) -> List[Swatch]:
        return [s for s in self.swatches if s.group is group]

    @property
    def is_empty(self) -> bool:
        return not self.swatches

    @classmethod
    def from_dict(cls, data: Dict) -> 'ColorProfile':
        """
        Build a profile from a loosely-typed record.

        Accepts {"tolerance": 30, "colors": [{"colorGroup": "normal", "hex": "#000000"},
        {"colorGroup": "ot", "h": 0, "s": 0.9, "v": 0.8}, ...]}.
        """
        swatches = []
        for entry in data.get('colors', []):
            group = ColorGroup.parse(entry.get('colorGroup', entry.get('group', 'normal')))
            hex_color = entry.get('hex') or entry.get('hexColor')
            if hex_color:
                swatches.append(Swatch.from_hex(group, hex_color))
            else:
                swatches.append(Swatch(group, float(entry['h']), float(entry['s']), float(entry['v'])))

        tolerance = int(data.get('tolerance', 30))
        return cls(tolerance=max(0, min(100, tolerance)), swatches=swatches)


@dataclass
class Template:
    """Reference frame and paintable mask that later photos of an order are registered to."""
    image: np.ndarray
    paintable_mask: np.ndarray
    paintable_pixels: int
    width: int
    height: int

    @classmethod
    def from_arrays(cls, image: np.ndarray, paintable_mask: np.ndarray) -> 'Template':
        h, w = image.shape[:2]
        if paintable_mask.shape[:2] != (h, w):
            paintable_mask = cv2.resize(paintable_mask, (w, h), interpolation=cv2.INTER_NEAREST)
        _, binary = cv2.threshold(paintable_mask, 127, 255, cv2.THRESH_BINARY)
        return cls(image, binary, int(cv2.countNonZero(binary)), w, h)

    @classmethod
    def from_bytes(cls, image_bytes: bytes, mask_bytes: bytes) -> Optional['Template']:
        """Decode a stored template. Returns None if either part is unreadable."""
        image = decode_image(image_bytes)
        mask = decode_image(mask_bytes, cv2.IMREAD_GRAYSCALE)
        if image is None or mask is None:
            return None
        return cls.from_arrays(image, mask)

    @classmethod
    def load(cls, image_path, mask_path) -> Optional['Template']:
        image = cv2.imread(str(image_path), cv2.IMREAD_COLOR)
        mask = cv2.imread(str(mask_path), cv2.IMREAD_GRAYSCALE)
        if image is None or mask is None:
            return None
        return cls.from_arrays(image, mask)

    def save(self, image_path, mask_path) -> None:
        for path in (Path(image_path), Path(mask_path)):
            path.parent.mkdir(parents=True, exist_ok=True)
        if not cv2.imwrite(str(image_path), self.image):
            raise OSError(f"Could not write template image: {image_path}")
        # The mask must stay lossless
        if not cv2.imwrite(str(mask_path), self.paintable_mask):
            raise OSError(f"Could not write paintable mask: {mask_path}")

    def to_record(self) -> Dict:
        return {
            'paintablePixels': self.paintable_pixels,
            'templateWidth': self.width,
            'templateHeight': self.height
        }


class CornerTag(Enum):
    """Which plan corner a QR marker labels."""
    TL = 'TL'
    TR = 'TR'
    BR = 'BR'
    BL = 'BL'

    @classmethod
    def parse(cls, text: str) -> Optional['CornerTag']:
        try:
            return cls(str(text).strip().upper())
        except ValueError:
            return None


CORNER_ORDER = (CornerTag.TL, CornerTag.TR, CornerTag.BR, CornerTag.BL)


@dataclass
class CornerQuad:
    """Perspective quad ordered TL, TR, BR, BL."""
    points: Dict[CornerTag, np.ndarray]
    estimated: FrozenSet[CornerTag] = frozenset()

    def as_array(self) -> np.ndarray:
        return np.array([self.points[t] for t in CORNER_ORDER], dtype=np.float32)


@dataclass
class AnalysisResult:
    """Reported progress. Percentages are in [0, 100] with two decimals."""
    normal_percent: float = 0.0
    ot_percent: float = 0.0
    total_percent: float = 0.0
    is_complete: bool = False

    @classmethod
    def empty(cls) -> 'AnalysisResult':
        return cls()

    def to_dict(self) -> Dict:
        return {
            'normalPercent': self.normal_percent,
            'otPercent': self.ot_percent,
            'totalPercent': self.total_percent,
            'isComplete': self.is_complete
        }

    def __str__(self) -> str:
        return (f"Normal={self.normal_percent:.2f}% OT={self.ot_percent:.2f}% "
                f"Total={self.total_percent:.2f}% Complete={self.is_complete}")


def decode_image(data: Optional[bytes], flags: int = cv2.IMREAD_COLOR) -> Optional[np.ndarray]:
    """Decode encoded image bytes. Empty or undecodable input gives None."""
    if not data:
        return None
    buf = np.frombuffer(data, dtype=np.uint8)
    try:
        image = cv2.imdecode(buf, flags)
    except cv2.error:
        return None
    if image is None or image.size == 0:
        return None
    return image
