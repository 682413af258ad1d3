import math
from typing import Any

from photodesk.domain.errors import InputValidationError
from photodesk.domain.types import Dimensions
from photodesk.features.units.models import CropSettings, Unit

MM_PER_INCH = 25.4
CM_PER_INCH = 2.54


def to_pixels(value: float, unit: Any, dpi: float) -> float:
    """
    Converts a physical length to a (fractional) pixel count at `dpi`.

    No rounding and no validation happens here: callers round once, at the
    point where a buffer is allocated.
    """
    unit = Unit.parse(unit)
    if unit == Unit.IN:
        return value * dpi
    if unit == Unit.CM:
        return (value / CM_PER_INCH) * dpi
    if unit == Unit.MM:
        return (value / MM_PER_INCH) * dpi
    return value


def round_px(value: float) -> int:
    """
    Rounds half away from zero for positive sizes (round(2.5) == 3).
    """
    return int(math.floor(value + 0.5))


def to_pixel_count(value: float, unit: Any, dpi: float) -> int:
    """
    Rounded pixel count for a single allocation.
    """
    return round_px(to_pixels(value, unit, dpi))


def target_pixels(settings: CropSettings, dpi: float) -> Dimensions:
    """
    Exact output size in pixels for a crop setting.
    """
    width, height, unit = settings.resolve()
    target_w = to_pixel_count(width, unit, dpi)
    target_h = to_pixel_count(height, unit, dpi)
    if target_w <= 0 or target_h <= 0:
        raise InputValidationError(
            f"Crop target {width}x{height}{unit.value} is smaller than one pixel at {dpi} DPI"
        )
    return target_w, target_h
