from typing import TypeAlias, Tuple
import numpy as np
import numpy.typing as npt


# Image Types
# 8-bit RGBA raster (Height, Width, 4)
ImageBuffer: TypeAlias = npt.NDArray[np.uint8]

# Float working copy used while grading (Height, Width, 4), 0.0 - 255.0
FloatBuffer: TypeAlias = npt.NDArray[np.float32]

# Geometry Types
# (Width, Height) in pixels
Dimensions: TypeAlias = Tuple[int, int]

# RGBA colour; alpha is 0-255
RGBA: TypeAlias = Tuple[int, int, int, int]

# https://en.wikipedia.org/wiki/Luma_(video)
LUMA_R = 0.2126
LUMA_G = 0.7152
LUMA_B = 0.0722

# Weights used for the desaturation gray point
GRAY_R = 0.3
GRAY_G = 0.59
GRAY_B = 0.11
