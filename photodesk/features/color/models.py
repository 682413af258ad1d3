from dataclasses import dataclass, fields

from photodesk.domain.errors import InputValidationError

ADJUSTMENT_MIN = -100.0
ADJUSTMENT_MAX = 100.0


@dataclass(frozen=True)
class ColorAdjustments:
    """
    Slider values for the colour grading pass, each in [-100, 100].
    """

    brightness: float = 0.0
    contrast: float = 0.0
    saturation: float = 0.0
    temperature: float = 0.0
    highlights: float = 0.0
    shadows: float = 0.0

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            try:
                value = float(value)
            except (TypeError, ValueError):
                raise InputValidationError(f"{f.name} must be a number, got {value!r}")
            if not ADJUSTMENT_MIN <= value <= ADJUSTMENT_MAX:
                raise InputValidationError(
                    f"{f.name} must be within [{ADJUSTMENT_MIN:g}, {ADJUSTMENT_MAX:g}], got {value:g}"
                )
            object.__setattr__(self, f.name, value)

    @property
    def is_identity(self) -> bool:
        return all(getattr(self, f.name) == 0.0 for f in fields(self))
