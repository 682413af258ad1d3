from dataclasses import dataclass
from typing import Dict

from photodesk.domain.errors import GeometryError

# Aspect ratios (width / height) offered for freeform crops
ASPECT_PRESETS: Dict[str, float] = {
    "instagram_post": 1.0 / 1.0,
    "instagram_story": 9.0 / 16.0,
    "linkedin_banner": 4.0 / 1.0,
    "twitter_post": 16.0 / 9.0,
}


@dataclass(frozen=True)
class GeometryConfig:
    rotation: float = 0.0
    flip: bool = False


@dataclass(frozen=True)
class CropRect:
    """
    Crop rectangle in pixel coordinates of the (optionally rotated) source.
    """

    x: int
    y: int
    width: int
    height: int

    def __post_init__(self) -> None:
        for name in ("x", "y", "width", "height"):
            object.__setattr__(self, name, int(round(getattr(self, name))))
        if self.width <= 0 or self.height <= 0:
            raise GeometryError(f"Crop rectangle has no area ({self.width}x{self.height})")
