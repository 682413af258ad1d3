import numpy as np
from photodesk.domain.types import (
    ImageBuffer,
    FloatBuffer,
    GRAY_R,
    GRAY_G,
    GRAY_B,
    LUMA_R,
    LUMA_G,
    LUMA_B,
)
from photodesk.features.color.models import ColorAdjustments
from photodesk.kernel.image.validation import ensure_image
from photodesk.kernel.system.performance import time_function

# Luminance split between the highlight and shadow sliders
HIGHLIGHT_THRESHOLD = 128.0


def get_gray(rgb: FloatBuffer) -> FloatBuffer:
    return GRAY_R * rgb[..., 0] + GRAY_G * rgb[..., 1] + GRAY_B * rgb[..., 2]


def get_luminance(rgb: FloatBuffer) -> FloatBuffer:
    # Rec.709 luma
    return LUMA_R * rgb[..., 0] + LUMA_G * rgb[..., 1] + LUMA_B * rgb[..., 2]


def grade_rgb(rgb: FloatBuffer, adj: ColorAdjustments) -> FloatBuffer:
    """
    Runs the grading stages on a float (..., 3) array without clamping.

    Stage order matters: every stage reads the output of the previous one.
    """
    out = rgb.astype(np.float32, copy=True)

    # 1. Brightness
    out += 255.0 * (adj.brightness / 100.0)

    # 2. Contrast around mid-grey
    contrast_factor = 1.0 + adj.contrast / 100.0
    out = (((out / 255.0) - 0.5) * contrast_factor + 0.5) * 255.0

    # 3. Saturation relative to the post-contrast gray point
    saturation_factor = 1.0 + adj.saturation / 100.0
    gray = get_gray(out)[..., np.newaxis]
    out = gray + (out - gray) * saturation_factor

    # 4. Temperature: warm pushes red up and blue down, cool mirrors it
    shift = 255.0 * (adj.temperature / 100.0)
    out[..., 0] += shift
    out[..., 2] -= shift

    # 5. Highlights / Shadows, split on post-temperature luminance
    lum = get_luminance(out)
    tone_shift = np.where(
        lum > HIGHLIGHT_THRESHOLD,
        np.float32(255.0 * (adj.highlights / 100.0)),
        np.float32(255.0 * (adj.shadows / 100.0)),
    )
    out += tone_shift[..., np.newaxis]

    return out.astype(np.float32, copy=False)


@time_function
def apply_adjustments(img: ImageBuffer, adj: ColorAdjustments) -> ImageBuffer:
    """
    Applies brightness/contrast/saturation/temperature/highlights/shadows to
    the colour channels of an RGBA buffer. Alpha and dimensions are kept.

    Returns a new buffer; the input is never modified.
    """
    img = ensure_image(img)
    if adj.is_identity:
        return img.copy()

    graded = grade_rgb(img[..., :3].astype(np.float32), adj)

    # 6. Clamp once at the end
    result = img.copy()
    result[..., :3] = np.clip(np.rint(graded), 0, 255).astype(np.uint8)
    return result
