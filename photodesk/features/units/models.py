from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Tuple

from photodesk.domain.errors import InputValidationError


class Unit(str, Enum):
    MM = "mm"
    IN = "in"
    CM = "cm"
    PX = "px"

    @classmethod
    def parse(cls, value: Any) -> "Unit":
        if isinstance(value, Unit):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(u.value for u in cls)
            raise InputValidationError(f"Unknown unit '{value}' (expected one of: {choices})")


CUSTOM_PRESET = "custom"

# ID photo formats offered for batch crops
CROP_PRESETS: Dict[str, Tuple[float, float, Unit]] = {
    "35x45mm": (35.0, 45.0, Unit.MM),
    "1.5x1.5in": (1.5, 1.5, Unit.IN),
    "2x2in": (2.0, 2.0, Unit.IN),
}


def _parse_positive(value: Any, field_name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InputValidationError(f"{field_name} must be a number, got {value!r}")
    if number != number or number in (float("inf"), float("-inf")):
        raise InputValidationError(f"{field_name} must be a finite number, got {value!r}")
    if number <= 0:
        raise InputValidationError(f"{field_name} must be greater than zero, got {value!r}")
    return number


@dataclass(frozen=True)
class CropSettings:
    """
    Physical crop target. `preset` is a key of CROP_PRESETS or "custom";
    width/height/unit are only read for custom crops.
    """

    preset: str = "35x45mm"
    width: float = 35.0
    height: float = 45.0
    unit: Unit = Unit.MM

    def __post_init__(self) -> None:
        if self.preset != CUSTOM_PRESET and self.preset not in CROP_PRESETS:
            raise InputValidationError(f"Unknown crop preset '{self.preset}'")
        object.__setattr__(self, "unit", Unit.parse(self.unit))
        if self.preset == CUSTOM_PRESET:
            _parse_positive(self.width, "Width")
            _parse_positive(self.height, "Height")

    @classmethod
    def from_preset(cls, preset: str) -> "CropSettings":
        if preset == CUSTOM_PRESET:
            return cls(preset=CUSTOM_PRESET)
        if preset not in CROP_PRESETS:
            raise InputValidationError(f"Unknown crop preset '{preset}'")
        width, height, unit = CROP_PRESETS[preset]
        return cls(preset=preset, width=width, height=height, unit=unit)

    @classmethod
    def parse(cls, width: Any, height: Any, unit: Any = Unit.PX) -> "CropSettings":
        """
        Builds a custom crop from raw user fields, rejecting non-numeric or
        non-positive values.
        """
        return cls(
            preset=CUSTOM_PRESET,
            width=_parse_positive(width, "Width"),
            height=_parse_positive(height, "Height"),
            unit=Unit.parse(unit),
        )

    def resolve(self) -> Tuple[float, float, Unit]:
        """
        Physical (width, height, unit) this crop targets.
        """
        if self.preset == CUSTOM_PRESET:
            return float(self.width), float(self.height), self.unit
        return CROP_PRESETS[self.preset]
