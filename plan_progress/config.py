"""
Configuration settings for the plan progress pipeline.
Centralized configuration for all modules.
"""

import copy
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional


@dataclass
class ClassColors:
    """BGR colors used when drawing class masks."""

    # Overlay colors (BGR) for diagnostics
    OVERLAY = {
        'normal': (220, 130, 0),
        'ot': (0, 0, 230),
        'plan': (0, 255, 0)
    }


class PipelineConfig:
    """Configuration for the entire progress pipeline."""

    # Decode / resize
    INPUT = {
        'ANALYSIS_WIDTH': 1000
    }

    # Lighting normalization
    LIGHTING = {
        'CLAHE_CLIP': 3.0,
        'TILE_GRID': 8,
        'BLUR_SIZE': 3
    }

    # Plan region extraction
    PLAN_EXTRACTION = {
        'SAT_MIN': 25,
        'DARK_MAX_V': 200,
        'BLUR_SIZE': 5,
        'ADAPTIVE_BLOCK': 51,
        'ADAPTIVE_C': 5.0,
        'CLOSE_KERNEL': 31,
        'ERODE_ITERATIONS': 2,
        'BORDER_TRIM_PCT': 0.03,
        'MIN_PLAN_FRACTION': 0.05,
        'MIN_PLAN_RATIO': 0.15,
        'MAX_PLAN_RATIO': 0.95
    }

    # Grid line suppression
    GRID_SUPPRESSION = {
        'GRID_THICK_RADIUS': 2,
        'MIN_GRID_RATIO': 0.05,
        'MAX_GRID_RATIO': 0.50,
        'CANNY_LOW': 50,
        'CANNY_HIGH': 150
    }

    # Color segmentation
    COLOR_SEGMENTATION = {
        'NORMAL': {
            'MAX_L': 90,
            'MAX_SAT': 110
        },
        # Red wraps around the hue circle, so it needs two ranges
        'OVERTIME': {
            'HUE_RANGES': [[0, 12], [168, 180]],
            'MIN_SAT': 60,
            'MIN_VAL': 40
        },
        'PROFILE': {
            'DARK_V': 80,
            'MIN_HUE_MARGIN': 8,
            'MIN_SV_MARGIN': 20
        },
        'CLOSE_SIZE': 5
    }

    # Component shape filtering (base values for a 1000x750 frame)
    SHAPE_FILTER = {
        'REFERENCE_PIXELS': 1000 * 750,
        'MIN_AREA': 100,
        'MIN_DIM': 8,
        'MAX_ASPECT': 4.5,
        'MEDIUM_MIN_AREA': 50,
        'MEDIUM_FRACTION': 0.005,
        'GRID_THICK_RADIUS': 2,
        'CLOSE_SIZE': 5
    }

    # Hole filling (template path)
    FILL = {
        'KERNEL': 5,
        'DILATE_ITERATIONS': 1
    }

    # Percentage computation
    PERCENTAGE = {
        'COMPLETE_THRESHOLD': 99.5,
        'SNAP_COMPLETE': False
    }

    # Feature-based template alignment
    ALIGNMENT = {
        'FEATURES': 5000,
        'RATIO_TEST': 0.75,
        'MIN_KEYPOINTS': 10,
        'MIN_MATCHES': 10,
        'RANSAC_REPROJ': 5.0,
        'MAX_PERSPECTIVE': 0.002,
        'MIN_DET': 0.5,
        'MAX_DET': 2.0,
        'MAX_SHIFT_FRACTION': 0.2,
        'MAX_ROTATION_TERM': 0.3
    }

    # QR corner perspective correction
    QR_CORRECTION = {
        'MAX_ATTEMPTS': 8,
        'MIN_QR_AREA': 10.0,
        'MIN_QUAD_AREA_FRACTION': 0.02,
        'MAX_SIDE_RATIO': 10.0,
        'OUTPUT_WIDTH': 1000,
        'OUTPUT_HEIGHT': 750
    }

    # Template creation
    TEMPLATE = {
        'CLEAN_KERNEL': 5
    }

    # Visualization
    VIZ = {
        'OVERLAY_ALPHA': 0.55,
        'PLAN_CONTOUR_THICKNESS': 2
    }

    @classmethod
    def as_dict(cls) -> Dict[str, dict]:
        """Return a deep copy of every configuration block."""
        return {
            name: copy.deepcopy(getattr(cls, name))
            for name in BLOCKS
        }


BLOCKS = (
    'INPUT', 'LIGHTING', 'PLAN_EXTRACTION', 'GRID_SUPPRESSION',
    'COLOR_SEGMENTATION', 'SHAPE_FILTER', 'FILL', 'PERCENTAGE',
    'ALIGNMENT', 'QR_CORRECTION', 'TEMPLATE', 'VIZ'
)


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge override into a copy of base, recursing into nested dicts."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Optional[str] = None, overrides: Optional[dict] = None) -> Dict[str, dict]:
    """
    Build a full configuration from the defaults plus optional overrides.

    Args:
        path: Optional JSON file with {BLOCK: {KEY: value}} overrides
        overrides: Optional dict in the same shape, applied after the file

    Returns:
        Dict of block name -> block dict
    """
    config = PipelineConfig.as_dict()

    if path is not None:
        with open(Path(path), 'r', encoding='utf-8') as f:
            from_file = json.load(f) or {}
        config = _deep_merge(config, _upper_keys(from_file))

    if overrides:
        config = _deep_merge(config, _upper_keys(overrides))

    unknown = set(config) - set(BLOCKS)
    if unknown:
        raise KeyError(f"Unknown configuration block(s): {', '.join(sorted(unknown))}")

    return config


def _upper_keys(section: dict) -> dict:
    return {
        str(k).upper(): _upper_keys(v) if isinstance(v, dict) else v
        for k, v in section.items()
    }
