"""
Template creation.

Builds the reference frame and paintable mask that later photos of an order
are registered to. The caller persists the result with Template.save().
"""

import logging

import cv2

from .config import PipelineConfig
from .grid_suppression import GridSuppressor
from .lighting import LightingNormalizer
from .models import Template, decode_image
from .plan_extraction import PlanExtractor
from .registration import Registrar
from .visualization import DebugWriter

logger = logging.getLogger(__name__)


class TemplateBuilder:
    """Derives a Template from a clean photo of an unpainted plan."""

    def __init__(self, config: dict = None):
        """
        Initialize template builder.

        Args:
            config: Optional dict of config blocks, uses PipelineConfig defaults if None
        """
        self.config = config or PipelineConfig.as_dict()
        self.registrar = Registrar(self.config)
        self.normalizer = LightingNormalizer(self.config['LIGHTING'])
        self.plan_extractor = PlanExtractor(self.config['PLAN_EXTRACTION'])
        self.grid_suppressor = GridSuppressor(self.config['GRID_SUPPRESSION'])
        size = self.config['TEMPLATE']['CLEAN_KERNEL']
        self.clean_kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (size, size))

    def build(self, image_bytes: bytes, debug_dir=None) -> Template:
        """
        Build a template from encoded image bytes.

        Args:
            image_bytes: Encoded JPEG/PNG photo of the plan
            debug_dir: Optional directory for diagnostic images

        Returns:
            Template at analysis width

        Raises:
            ValueError: image bytes could not be decoded
        """
        raw = decode_image(image_bytes)
        if raw is None:
            raise ValueError("Invalid template image")

        image = self.registrar.resize_to_width(raw)
        norm = self.normalizer.normalize(image)

        plan = self.plan_extractor.extract(norm)
        grid = self.grid_suppressor.detect(norm, plan)

        if cv2.countNonZero(grid) > 0:
            paintable = self.grid_suppressor.effective_mask(plan, grid)
            paintable = cv2.morphologyEx(paintable, cv2.MORPH_OPEN, self.clean_kernel)
            paintable = cv2.morphologyEx(paintable, cv2.MORPH_CLOSE, self.clean_kernel)
        else:
            paintable = plan.copy()

        template = Template.from_arrays(image, paintable)
        ratio = template.paintable_pixels / float(template.width * template.height)
        logger.info("Template: size=%dx%d paintablePx=%d ratio=%.1f%%",
                    template.width, template.height, template.paintable_pixels, ratio * 100)

        if debug_dir is not None:
            writer = DebugWriter(debug_dir, 'template')
            writer.write('input', image, '.jpg')
            writer.write('grid', grid)
            writer.write('paintable', template.paintable_mask)

        return template
