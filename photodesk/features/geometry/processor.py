from typing import Optional
from photodesk.domain.interfaces import IProcessor, PipelineContext
from photodesk.domain.types import Dimensions, ImageBuffer
from photodesk.features.geometry.models import CropRect, GeometryConfig
from photodesk.features.geometry.logic import (
    center_crop_to_size,
    freeform_crop,
    rotate_and_flip,
)


class GeometryProcessor(IProcessor):
    """
    Applies rotation and horizontal flip.
    """

    def __init__(self, config: GeometryConfig):
        self.config = config

    def process(self, image: ImageBuffer, context: PipelineContext) -> ImageBuffer:
        img = image
        if self.config.rotation % 360 != 0 or self.config.flip:
            img = rotate_and_flip(img, self.config.rotation, self.config.flip)

        # Store rotation state for downstream consumers
        context.metrics["geometry_params"] = {
            "rotation": self.config.rotation,
            "flip": self.config.flip,
        }
        return img


class CenterCropProcessor(IProcessor):
    """
    Crops to the target aspect and resizes to the exact target size.
    """

    def __init__(self, target: Dimensions):
        self.target = target

    def process(self, image: ImageBuffer, context: PipelineContext) -> ImageBuffer:
        target_w, target_h = self.target
        context.metrics["crop_target"] = self.target
        return center_crop_to_size(image, target_w, target_h)


class CropProcessor(IProcessor):
    """
    Applies a user-chosen crop rectangle, with optional straighten and output size.
    """

    def __init__(
        self,
        rect: CropRect,
        rotation: float = 0.0,
        output_size: Optional[Dimensions] = None,
    ):
        self.rect = rect
        self.rotation = rotation
        self.output_size = output_size

    def process(self, image: ImageBuffer, context: PipelineContext) -> ImageBuffer:
        img, applied_rotation = freeform_crop(image, self.rect, self.rotation, self.output_size)
        context.metrics["crop_rotation"] = applied_rotation
        return img
