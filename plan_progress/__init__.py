"""
Plan Progress Modules

This package contains the stages of painted plan progress estimation:
- lighting: CLAHE luminance normalization
- plan_extraction: Isolates the plan sheet from the background
- grid_suppression: Detects printed grid lines excluded from the denominator
- color_segmentation: Classifies normal / overtime paint
- shape_filter: Removes grid remnants from class masks
- disambiguation: Nearest-seed split of overlapping classes and hole filling
- percentage: Converts masks to the reported result
- registration / qr_correction: Template homography and QR corner warps
- templates: Builds order templates
- pipeline: Runs everything end to end
"""

from .color_segmentation import ColorSegmenter
from .config import PipelineConfig, load_config
from .disambiguation import HoleFiller, RegionDisambiguator
from .grid_suppression import GridSuppressor
from .lighting import LightingNormalizer
from .models import (AnalysisResult, ColorGroup, ColorProfile, CornerQuad, CornerTag,
                     PlanProgressError, QrCornerError, Swatch, Template)
from .percentage import PercentageCalculator
from .pipeline import ProgressPipeline
from .plan_extraction import PlanExtractor
from .qr_correction import QrCornerCorrector
from .registration import Registrar, RegistrationMode, TemplateAligner
from .shape_filter import ShapeFilter
from .templates import TemplateBuilder

__all__ = [
    'AnalysisResult',
    'ColorGroup',
    'ColorProfile',
    'ColorSegmenter',
    'CornerQuad',
    'CornerTag',
    'GridSuppressor',
    'HoleFiller',
    'LightingNormalizer',
    'PercentageCalculator',
    'PipelineConfig',
    'PlanExtractor',
    'PlanProgressError',
    'ProgressPipeline',
    'QrCornerCorrector',
    'QrCornerError',
    'RegionDisambiguator',
    'Registrar',
    'RegistrationMode',
    'ShapeFilter',
    'Swatch',
    'Template',
    'TemplateAligner',
    'TemplateBuilder',
    'load_config'
]
