"""
Plan Progress Pipeline

Orchestrates all stages to estimate painted progress from one photo.
Process: Decode -> Registration -> Lighting -> Denominator -> Grid -> Segmentation
         -> Shape Filter -> Disambiguation -> (Hole Fill) -> Percentages

The default path extracts the plan from the photo itself. The template path
uses the stored paintable mask, builds the grid from the template reference
frame and fills small holes before computing percentages.
"""

import logging
from typing import Dict, Optional

import cv2
import numpy as np

from .color_segmentation import ColorSegmenter
from .config import PipelineConfig
from .disambiguation import HoleFiller, RegionDisambiguator
from .grid_suppression import GridSuppressor
from .lighting import LightingNormalizer
from .models import AnalysisResult, ColorProfile, Template, decode_image
from .percentage import PercentageCalculator
from .plan_extraction import PlanExtractor
from .registration import Registrar
from .shape_filter import ShapeFilter
from .visualization import DebugWriter, class_overlay, create_grid_visualization, result_banner

logger = logging.getLogger(__name__)


class ProgressPipeline:
    """Main pipeline for painted plan progress estimation."""

    def __init__(self, config: Dict[str, dict] = None):
        """
        Initialize all stages.

        Args:
            config: Optional dict of config blocks (see load_config), defaults if None
        """
        self.config = config or PipelineConfig.as_dict()

        self.registrar = Registrar(self.config)
        self.normalizer = LightingNormalizer(self.config['LIGHTING'])
        self.plan_extractor = PlanExtractor(self.config['PLAN_EXTRACTION'])
        self.grid_suppressor = GridSuppressor(self.config['GRID_SUPPRESSION'])
        self.segmenter = ColorSegmenter(self.config['COLOR_SEGMENTATION'])
        self.shape_filter = ShapeFilter(self.config['SHAPE_FILTER'])
        self.disambiguator = RegionDisambiguator()
        self.hole_filler = HoleFiller(self.config['FILL'], self.disambiguator)
        self.calculator = PercentageCalculator(self.config['PERCENTAGE'])

    def analyze(self, image_bytes: bytes,
                profile: Optional[ColorProfile] = None,
                template: Optional[Template] = None,
                use_qr: bool = False,
                debug_dir=None) -> AnalysisResult:
        """
        Analyze an encoded photo.

        Args:
            image_bytes: Encoded JPEG/PNG bytes
            profile: Optional color calibration
            template: Optional order template
            use_qr: Rectify with QR corner markers
            debug_dir: Optional directory for diagnostic images

        Returns:
            AnalysisResult; all zero for empty or undecodable input

        Raises:
            QrCornerError: use_qr is set and the QR corners cannot be resolved
        """
        image = decode_image(image_bytes)
        if image is None:
            logger.info("Input could not be decoded, reporting zero progress")
            return AnalysisResult.empty()
        return self.analyze_frame(image, profile, template, use_qr, debug_dir)

    def analyze_with_template_files(self, image_bytes: bytes, template_image_path,
                                    paintable_mask_path,
                                    profile: Optional[ColorProfile] = None,
                                    debug_dir=None) -> AnalysisResult:
        """Analyze against a stored template, falling back to the default path when it cannot be read."""
        template = Template.load(template_image_path, paintable_mask_path)
        if template is None:
            logger.warning("Failed to load template files (%s, %s), falling back",
                           template_image_path, paintable_mask_path)
        return self.analyze(image_bytes, profile, template, debug_dir=debug_dir)

    def analyze_frame(self, image: np.ndarray,
                      profile: Optional[ColorProfile] = None,
                      template: Optional[Template] = None,
                      use_qr: bool = False,
                      debug_dir=None) -> AnalysisResult:
        """Analyze an already decoded BGR frame. See analyze()."""
        if image is None or image.size == 0:
            return AnalysisResult.empty()
        return self.process_frame(image, profile, template, use_qr, debug_dir)['result']

    def process_frame(self, image: np.ndarray,
                      profile: Optional[ColorProfile] = None,
                      template: Optional[Template] = None,
                      use_qr: bool = False,
                      debug_dir=None) -> Dict:
        """
        Run the full pipeline on a decoded frame.

        Returns:
            Dictionary with every intermediate mask and the final 'result'
        """
        results = {}
        use_template = template is not None

        # Step 1: Registration
        mode = self.registrar.select(template, use_qr)
        frame = self.registrar.register(image, template, mode)
        results['mode'] = mode
        results['frame'] = frame

        # Step 2: Lighting
        norm = self.normalizer.normalize(frame)

        # Step 3: Denominator and grid
        if use_template:
            plan = template.paintable_mask
            grid = self.grid_suppressor.detect_edges(template.image, plan)
        else:
            plan = self.plan_extractor.extract(norm)
            grid = self.grid_suppressor.detect(norm, plan)
        effective = self.grid_suppressor.effective_mask(plan, grid)

        results['plan'] = plan
        results['grid'] = grid
        results['effective'] = effective

        plan_px = cv2.countNonZero(plan)
        effective_px = cv2.countNonZero(effective)
        if plan_px == 0:
            logger.info("Empty plan mask, reporting zero progress")
            results['result'] = AnalysisResult.empty()
            return results

        # Template path detects only inside the legal area
        region = effective if use_template and effective_px > 0 else plan
        region_px = cv2.countNonZero(region)

        # Step 4: Segmentation
        normal_raw, ot_raw = self.segmenter.segment(norm, region, profile)

        # Step 5: Shape filter
        normal_filtered = self.shape_filter.refine(normal_raw, region_px)
        if profile is not None and not profile.is_empty:
            ot_filtered = self.shape_filter.refine(ot_raw, region_px)
        else:
            # Heuristic overtime: component filter only
            ot_filtered = self.shape_filter.filter_components(ot_raw, region_px)

        # Step 6: Disambiguation
        normal_final, ot_final = self.disambiguator.split(normal_filtered, ot_filtered)

        # Step 7: Hole fill
        if use_template:
            normal_final, ot_final = self.hole_filler.fill(normal_final, ot_final, effective,
                                                           normal_filtered, ot_filtered)

        # Step 8: Percentages
        result = self.calculator.compute(normal_final, ot_final, effective, plan)

        results.update({
            'normal_raw': normal_raw, 'normal_filtered': normal_filtered, 'normal_final': normal_final,
            'ot_raw': ot_raw, 'ot_filtered': ot_filtered, 'ot_final': ot_final,
            'result': result
        })

        logger.info("Analysis (%s%s): plan=%d effective=%d normal %d/%d/%d ot %d/%d/%d -> %s",
                    'template' if use_template else 'default',
                    '+profile' if profile is not None and not profile.is_empty else '',
                    plan_px, effective_px,
                    cv2.countNonZero(normal_raw), cv2.countNonZero(normal_filtered),
                    cv2.countNonZero(normal_final),
                    cv2.countNonZero(ot_raw), cv2.countNonZero(ot_filtered),
                    cv2.countNonZero(ot_final), result)

        if debug_dir is not None:
            writer = DebugWriter(debug_dir, 'template' if use_template else 'default')
            denominator = effective if effective_px > 0 else plan
            writer.write_stages(frame, denominator, results, result)
            if use_template:
                writer.write('0a_gridmask', grid)
                writer.write('0b_effective_mask', effective)

        return results

    def visualize_results(self, results: Dict) -> np.ndarray:
        """
        Create a panel grid of the main stages.

        Args:
            results: Output of process_frame

        Returns:
            BGR visualization image
        """
        frame = results['frame']
        result = results['result']
        if 'normal_final' not in results:
            return result_banner(frame.copy(), result)

        overlay = class_overlay(frame, results['normal_final'], results['ot_final'],
                                results['plan'], self.config['VIZ'])
        overlay = result_banner(overlay, result)

        panels = [frame, results['effective'], results['normal_final'], results['ot_final'],
                  results['grid'], overlay]
        labels = ['Registered', 'Effective', 'Normal', 'Overtime', 'Grid', 'Overlay']
        return create_grid_visualization(panels, labels, grid_size=(2, 3))
