import base64
import binascii
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from photodesk.domain.errors import InputValidationError
from photodesk.domain.types import ImageBuffer
from photodesk.features.color.models import ColorAdjustments
from photodesk.kernel.system.config import APP_CONFIG, PAPER_SIZES_IN

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)(?P<params>(;[\w-]+=[^;,]+)*);base64,(?P<data>.*)$", re.S)

TRANSPARENT = "transparent"


class ItemStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class EncodedImage:
    """
    A MIME-tagged encoded raster, as exchanged with the outside world.
    """

    mime_type: str
    payload: bytes = field(repr=False)

    @classmethod
    def from_data_uri(cls, uri: str) -> "EncodedImage":
        """
        Parses 'data:<mimetype>;base64,<encoded_data>'.
        """
        if not isinstance(uri, str):
            raise InputValidationError("Data URI must be a string")
        match = _DATA_URI_RE.match(uri.strip())
        if not match:
            raise InputValidationError("Malformed data URI: expected 'data:<mime>;base64,<data>'")
        try:
            data = re.sub(r"\s+", "", match.group("data"))
            payload = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InputValidationError(f"Data URI payload is not valid base64: {e}")
        if not payload:
            raise InputValidationError("Data URI payload is empty")
        return cls(mime_type=match.group("mime").lower(), payload=payload)

    def to_base64(self) -> str:
        return base64.b64encode(self.payload).decode("ascii")

    def to_data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"


@dataclass
class EditItem:
    """
    One image in a batch run. Only the batch processor mutates it.
    """

    id: str
    name: str
    source: EncodedImage
    status: ItemStatus = ItemStatus.PENDING
    result: Optional[ImageBuffer] = field(default=None, repr=False)
    error: Optional[str] = None


@dataclass(frozen=True)
class PrintSheetSpec:
    """
    Paper sheet layout parameters. Physical sizes are converted to pixels
    (and rounded) only when the sheet is rendered.
    """

    paper: str = "4x6"
    cutting_margin_mm: float = field(default_factory=lambda: APP_CONFIG.cutting_margin_mm)
    border_mm: float = field(default_factory=lambda: APP_CONFIG.border_mm)
    background: str = "#ffffff"

    def __post_init__(self) -> None:
        if self.paper not in PAPER_SIZES_IN:
            choices = ", ".join(PAPER_SIZES_IN)
            raise InputValidationError(f"Unknown paper size '{self.paper}' (expected one of: {choices})")
        if self.cutting_margin_mm < 0 or self.border_mm < 0:
            raise InputValidationError("Cutting margin and border must not be negative")
        # Local import, the image kernel depends on this module
        from photodesk.kernel.image.logic import parse_color

        parse_color(self.background)

    @property
    def dpi(self) -> int:
        return APP_CONFIG.print_dpi

    @property
    def paper_size_px(self) -> tuple[int, int]:
        width_in, height_in = PAPER_SIZES_IN[self.paper]
        return int(width_in * self.dpi), int(height_in * self.dpi)


@dataclass(frozen=True)
class EditingState:
    """
    Recipe of what has been applied in the single-image editor. Replayed over
    the current buffer when rendering or exporting.
    """

    background_removed: bool = False
    background_prompt: str = ""
    background_color: str = TRANSPARENT
    has_generated_background: bool = False
    face_enhanced: bool = False
    blemishes_removed: bool = False
    upscaled: bool = False
    color_corrected: bool = False
    rotation: float = 0.0
    flip: bool = False
    crop_rotation: float = 0.0
    adjustments: ColorAdjustments = field(default_factory=ColorAdjustments)
