import dataclasses
import math
from typing import Optional, Union

from photodesk.domain.errors import InputValidationError
from photodesk.domain.interfaces import PipelineContext
from photodesk.domain.models import EditingState, EncodedImage, PrintSheetSpec, TRANSPARENT
from photodesk.domain.types import Dimensions, ImageBuffer
from photodesk.features.color.models import ColorAdjustments
from photodesk.features.color.processor import ColorProcessor
from photodesk.features.geometry.logic import center_crop_to_size, centered_crop_rect
from photodesk.features.geometry.models import ASPECT_PRESETS, CropRect, GeometryConfig
from photodesk.features.geometry.processor import CenterCropProcessor, CropProcessor, GeometryProcessor
from photodesk.features.units.logic import target_pixels
from photodesk.features.units.models import CropSettings, Unit
from photodesk.kernel.image.logic import (
    composite_over,
    decode_image,
    encode_png,
    fill_background,
    parse_color,
    read_image_file,
)
from photodesk.kernel.system.config import APP_CONFIG
from photodesk.kernel.system.logging import get_logger
from photodesk.services.ai.service import AIService
from photodesk.services.export.print import PrintService

logger = get_logger(__name__)


def _angle(value: Union[float, str]) -> float:
    try:
        degrees = float(value)
    except (TypeError, ValueError):
        raise InputValidationError(f"Rotation must be a number, got {value!r}") from None
    if not math.isfinite(degrees):
        raise InputValidationError(f"Rotation must be finite, got {value!r}")
    return degrees


class EditorSession:
    """
    Single-image editing. Holds the uploaded image, the current working
    buffer and the EditingState recipe replayed by render().

    Remote edits replace the working buffer only when they succeed; on any
    failure the exception reaches the caller and buffer and state are left
    as they were. There is no per-step undo, only reset().
    """

    def __init__(self, ai: Optional[AIService] = None, crop_dpi: Optional[int] = None) -> None:
        self._ai = ai
        self.crop_dpi = crop_dpi or APP_CONFIG.crop_dpi
        self.name = "photo"
        self.original: Optional[ImageBuffer] = None
        self.current: Optional[ImageBuffer] = None
        self.background_image: Optional[ImageBuffer] = None
        self.state = EditingState()
        self._busy = False

    @property
    def ai(self) -> AIService:
        if self._ai is None:
            self._ai = AIService()
        return self._ai

    @property
    def loaded(self) -> bool:
        return self.current is not None

    @property
    def dimensions(self) -> Dimensions:
        h, w = self._require_image().shape[:2]
        return w, h

    def _require_image(self) -> ImageBuffer:
        if self.current is None:
            raise InputValidationError("No image loaded")
        return self.current

    # Loading

    def load(self, encoded: EncodedImage, name: str = "photo") -> None:
        img = decode_image(encoded)
        self.name = name
        self.original = img
        self.current = img.copy()
        self.background_image = None
        self.state = EditingState()
        logger.info(f"Loaded {name} ({img.shape[1]}x{img.shape[0]})")

    def load_file(self, path: str) -> None:
        self.load(read_image_file(path), name=path)

    def reset(self) -> None:
        """
        Back to the uploaded image with a default recipe.
        """
        if self.original is None:
            raise InputValidationError("No image loaded")
        self.current = self.original.copy()
        self.background_image = None
        self.state = EditingState()

    # Remote edits

    async def _remote_edit(self, operation: str, **flags) -> None:
        current = self._require_image()
        if self._busy:
            raise InputValidationError("Another edit is still running")
        self._busy = True
        try:
            result = await self.ai.transform(operation)(encode_png(current))
            img = decode_image(result)
        finally:
            self._busy = False
        self.current = img
        self.state = dataclasses.replace(self.state, **flags)
        logger.info(f"{operation} applied ({img.shape[1]}x{img.shape[0]})")

    async def remove_background(self) -> None:
        await self._remote_edit(
            "remove_background",
            background_removed=True,
            background_color=TRANSPARENT,
            has_generated_background=False,
        )
        self.background_image = None

    async def enhance_face(self) -> None:
        await self._remote_edit("enhance_face", face_enhanced=True)

    async def remove_blemishes(self) -> None:
        await self._remote_edit("remove_blemishes", blemishes_removed=True)

    async def upscale(self) -> None:
        await self._remote_edit("upscale", upscaled=True)

    async def correct_color(self) -> None:
        await self._remote_edit("correct_color", color_corrected=True)

    async def generate_background(self, prompt: str) -> None:
        self._require_image()
        if self._busy:
            raise InputValidationError("Another edit is still running")
        self._busy = True
        try:
            result = await self.ai.generate_background(prompt)
            background = decode_image(result)
        finally:
            self._busy = False
        self.background_image = background
        self.state = dataclasses.replace(
            self.state, background_prompt=prompt.strip(), has_generated_background=True
        )

    # Local edits

    def set_background_color(self, color: str) -> None:
        """
        A solid colour replaces any generated background.
        """
        parse_color(color)
        self.background_image = None
        self.state = dataclasses.replace(
            self.state, background_color=color, has_generated_background=False
        )

    def rotate(self, degrees: float) -> None:
        self.state = dataclasses.replace(self.state, rotation=_angle(degrees) % 360.0)

    def rotate_by(self, delta: float) -> None:
        self.rotate(self.state.rotation + _angle(delta))

    def toggle_flip(self) -> None:
        self.state = dataclasses.replace(self.state, flip=not self.state.flip)

    def set_adjustments(self, adjustments: ColorAdjustments) -> None:
        self.state = dataclasses.replace(self.state, adjustments=adjustments)

    def crop(
        self, rect: CropRect, rotation: float = 0.0, output_size: Optional[Dimensions] = None
    ) -> float:
        """
        Freeform crop of the working buffer. Returns the straighten angle that
        was baked into the result.
        """
        img = self._require_image()
        h, w = img.shape[:2]
        context = PipelineContext(original_size=(w, h))
        self.current = CropProcessor(rect, rotation, output_size).process(img, context)
        applied = context.metrics["crop_rotation"]
        self.state = dataclasses.replace(self.state, crop_rotation=applied)
        return applied

    def crop_to_aspect(self, aspect: Union[str, float]) -> CropRect:
        """
        Largest centred crop with a preset name or a numeric w/h ratio.
        """
        if isinstance(aspect, str):
            if aspect not in ASPECT_PRESETS:
                raise InputValidationError(f"Unknown aspect preset '{aspect}'")
            ratio = ASPECT_PRESETS[aspect]
        else:
            ratio = float(aspect)
            if ratio <= 0:
                raise InputValidationError(f"Aspect ratio must be positive, got {aspect}")
        w, h = self.dimensions
        rect = centered_crop_rect(w, h, ratio)
        self.crop(rect)
        return rect

    def resize_and_crop(
        self, width, height, unit=Unit.PX, rect: Optional[CropRect] = None
    ) -> Dimensions:
        """
        Crops to an exact physical size. Without a rectangle the crop is
        centred on the image, otherwise `rect` is scaled to the target.
        """
        target = target_pixels(CropSettings.parse(width, height, unit), self.crop_dpi)
        img = self._require_image()
        if rect is not None:
            self.crop(rect, output_size=target)
            return target
        h, w = img.shape[:2]
        context = PipelineContext(original_size=(w, h))
        self.current = CenterCropProcessor(target).process(img, context)
        return target

    # Output

    def _flatten(self, img: ImageBuffer) -> ImageBuffer:
        if self.state.has_generated_background and self.background_image is not None:
            h, w = img.shape[:2]
            # Cover: scale and centre-crop the background to the photo size
            canvas = center_crop_to_size(self.background_image, w, h)
            return composite_over(canvas, img, 0, 0)
        if self.state.background_removed:
            return fill_background(img, parse_color(self.state.background_color))
        return img

    def render(self) -> ImageBuffer:
        """
        Working buffer with rotation/flip, colour adjustments and the
        background applied.
        """
        img = self._require_image()
        h, w = img.shape[:2]
        context = PipelineContext(original_size=(w, h))
        steps = [
            GeometryProcessor(GeometryConfig(rotation=self.state.rotation, flip=self.state.flip)),
            ColorProcessor(self.state.adjustments),
        ]
        for step in steps:
            img = step.process(img, context)
        if img is self.current:
            img = img.copy()
        return self._flatten(img)

    def export_png(self) -> EncodedImage:
        return encode_png(self.render())

    def export_print(self, paper: str = "4x6") -> EncodedImage:
        """
        One sheet tiled with the rendered image. Raises PrintFitError when
        the image is larger than the paper.
        """
        spec = PrintSheetSpec(paper=paper, background=TRANSPARENT)
        return encode_png(PrintService.render_sheet(self.render(), spec))
