from photodesk.domain.interfaces import IProcessor, PipelineContext
from photodesk.domain.types import ImageBuffer
from photodesk.features.color.models import ColorAdjustments
from photodesk.features.color.logic import apply_adjustments


class ColorProcessor(IProcessor):
    """
    Applies the manual colour grading sliders.
    """

    def __init__(self, config: ColorAdjustments):
        self.config = config

    def process(self, image: ImageBuffer, context: PipelineContext) -> ImageBuffer:
        if self.config.is_identity:
            return image
        return apply_adjustments(image, self.config)
