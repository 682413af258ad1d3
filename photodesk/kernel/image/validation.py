from typing import Any, cast
import numpy as np
from photodesk.domain.errors import GeometryError
from photodesk.domain.types import ImageBuffer


def ensure_image(arr: Any) -> ImageBuffer:
    """
    Ensures the input is a non-empty (H, W, 4) uint8 numpy array and returns
    it as an ImageBuffer. Performs runtime validation rather than a raw cast.
    """
    if not isinstance(arr, np.ndarray):
        raise TypeError(f"Expected numpy.ndarray, got {type(arr)}")

    if arr.ndim != 3 or arr.shape[2] != 4:
        raise ValueError(f"Expected an RGBA buffer of shape (H, W, 4), got {arr.shape}")

    if arr.shape[0] == 0 or arr.shape[1] == 0:
        raise GeometryError(f"Image has no size ({arr.shape[1]}x{arr.shape[0]})")

    if arr.dtype != np.uint8:
        arr = np.clip(arr, 0, 255).astype(np.uint8)

    return cast(ImageBuffer, arr)
