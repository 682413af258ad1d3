import math
from typing import Callable, Optional, Tuple

import cv2
import numpy as np

from photodesk.domain.errors import GeometryError
from photodesk.domain.types import Dimensions, ImageBuffer
from photodesk.features.geometry.models import CropRect
from photodesk.features.units.logic import round_px
from photodesk.kernel.image.validation import ensure_image
from photodesk.kernel.system.performance import time_function


def _with_premultiplied_alpha(
    img: ImageBuffer, op: Callable[[np.ndarray], np.ndarray]
) -> ImageBuffer:
    """
    Runs a resampling op on premultiplied colour so transparent pixels do
    not bleed their (meaningless) RGB into visible edges.
    """
    if np.all(img[..., 3] == 255):
        return ensure_image(op(img))

    f = img.astype(np.float32)
    alpha = f[..., 3:4] / 255.0
    f[..., :3] *= alpha
    res = op(f)

    out_alpha = res[..., 3:4] / 255.0
    safe = np.where(out_alpha > 0.0, out_alpha, 1.0)
    res[..., :3] /= safe
    return ensure_image(np.clip(np.rint(res), 0, 255).astype(np.uint8))


def rotated_bounds(width: float, height: float, degrees: float) -> Tuple[float, float]:
    """
    Axis-aligned bounding box (width, height) of a width x height rectangle
    rotated by `degrees`.
    """
    rad = math.radians(degrees)
    abs_cos = abs(math.cos(rad))
    abs_sin = abs(math.sin(rad))
    return width * abs_cos + height * abs_sin, width * abs_sin + height * abs_cos


def rotated_canvas_size(width: int, height: int, degrees: float) -> Dimensions:
    bw, bh = rotated_bounds(width, height, degrees)
    return max(1, round_px(bw)), max(1, round_px(bh))


@time_function
def rotate_and_flip(img: ImageBuffer, degrees: float = 0.0, flip: bool = False) -> ImageBuffer:
    """
    Rotates clockwise by `degrees` about the image centre onto a canvas
    sized to the rotated bounding box. The horizontal mirror is applied in
    source space, before the rotation. Uncovered corners stay transparent.
    """
    img = ensure_image(img)
    if flip:
        img = img[:, ::-1]

    degrees = float(degrees) % 360.0
    if degrees == 0.0:
        return np.ascontiguousarray(img).copy()

    # Quarter turns are exact pixel permutations
    if degrees % 90.0 == 0.0:
        quarter_turns = int(degrees // 90.0)
        return np.ascontiguousarray(np.rot90(img, k=-quarter_turns))

    h, w = img.shape[:2]
    out_w, out_h = rotated_canvas_size(w, h, degrees)

    rad = math.radians(degrees)
    cos_t, sin_t = math.cos(rad), math.sin(rad)
    # y-down screen space: positive angles turn clockwise
    linear = np.array([[cos_t, -sin_t], [sin_t, cos_t]], dtype=np.float64)

    # Pixel centres sit at +0.5 in canvas space and at integers for OpenCV
    src_c = np.array([w / 2.0 - 0.5, h / 2.0 - 0.5])
    dst_c = np.array([out_w / 2.0 - 0.5, out_h / 2.0 - 0.5])
    m_mat = np.hstack([linear, (dst_c - linear @ src_c).reshape(2, 1)])

    def warp(arr: np.ndarray) -> np.ndarray:
        return cv2.warpAffine(
            arr,
            m_mat,
            (out_w, out_h),
            flags=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=(0, 0, 0, 0),
        )

    return _with_premultiplied_alpha(np.ascontiguousarray(img), warp)


@time_function
def resize_exact(img: ImageBuffer, width: int, height: int) -> ImageBuffer:
    """
    Scales to exactly width x height (non-uniform if the aspect differs).
    """
    img = ensure_image(img)
    if width <= 0 or height <= 0:
        raise GeometryError(f"Output size must be positive, got {width}x{height}")
    h, w = img.shape[:2]
    if (w, h) == (width, height):
        return img.copy()

    shrinking = width * height < w * h
    interpolation = cv2.INTER_AREA if shrinking else cv2.INTER_CUBIC

    def scale(arr: np.ndarray) -> np.ndarray:
        return cv2.resize(arr, (width, height), interpolation=interpolation)

    return _with_premultiplied_alpha(np.ascontiguousarray(img), scale)


def center_crop_rect(
    src_w: int, src_h: int, target_w: float, target_h: float
) -> Tuple[float, float, float, float]:
    """
    Largest centred (x, y, width, height) region of the source sharing the
    target's aspect ratio.
    """
    if src_w <= 0 or src_h <= 0:
        raise GeometryError(f"Image has no size ({src_w}x{src_h})")
    if target_w <= 0 or target_h <= 0:
        raise GeometryError(f"Target size must be positive, got {target_w}x{target_h}")

    target_aspect = target_w / target_h
    source_aspect = src_w / src_h

    if source_aspect > target_aspect:
        # Too wide, trim width
        crop_w = src_h * target_aspect
        return (src_w - crop_w) / 2.0, 0.0, crop_w, float(src_h)

    # Too tall, trim height
    crop_h = src_w / target_aspect
    return 0.0, (src_h - crop_h) / 2.0, float(src_w), crop_h


def centered_crop_rect(width: int, height: int, aspect: float) -> CropRect:
    """
    Whole-pixel version of center_crop_rect for an aspect ratio (w / h).
    """
    if aspect <= 0:
        raise GeometryError(f"Aspect ratio must be positive, got {aspect}")
    x, y, w, h = center_crop_rect(width, height, aspect, 1.0)
    crop_w = min(width, max(1, round_px(w)))
    crop_h = min(height, max(1, round_px(h)))
    return CropRect(
        x=(width - crop_w) // 2,
        y=(height - crop_h) // 2,
        width=crop_w,
        height=crop_h,
    )


@time_function
def center_crop_to_size(img: ImageBuffer, target_w: int, target_h: int) -> ImageBuffer:
    """
    Trims the source symmetrically to the target aspect, then resizes to
    exactly target_w x target_h.
    """
    img = ensure_image(img)
    if target_w <= 0 or target_h <= 0:
        raise GeometryError(f"Target size must be positive, got {target_w}x{target_h}")
    h, w = img.shape[:2]
    rect = centered_crop_rect(w, h, target_w / target_h)
    region = img[rect.y : rect.y + rect.height, rect.x : rect.x + rect.width]
    return resize_exact(region, target_w, target_h)


def crop_region(img: ImageBuffer, rect: CropRect) -> ImageBuffer:
    """
    Copies the pixels under `rect`. Areas of the rectangle outside the image
    come back transparent.
    """
    img = ensure_image(img)
    h, w = img.shape[:2]
    out = np.zeros((rect.height, rect.width, 4), dtype=np.uint8)

    x0, y0 = max(rect.x, 0), max(rect.y, 0)
    x1, y1 = min(rect.x + rect.width, w), min(rect.y + rect.height, h)
    if x1 <= x0 or y1 <= y0:
        raise GeometryError("Crop rectangle lies entirely outside the image")

    out[y0 - rect.y : y1 - rect.y, x0 - rect.x : x1 - rect.x] = img[y0:y1, x0:x1]
    return out


@time_function
def freeform_crop(
    img: ImageBuffer,
    rect: CropRect,
    rotation: float = 0.0,
    output_size: Optional[Dimensions] = None,
) -> Tuple[ImageBuffer, float]:
    """
    Straightens (rotates on an expanded canvas), extracts `rect` and
    optionally resizes to `output_size`. Returns the image and the rotation
    that was baked in.
    """
    img = ensure_image(img)
    if rotation:
        img = rotate_and_flip(img, rotation, flip=False)

    cropped = crop_region(img, rect)

    if output_size is not None:
        out_w, out_h = output_size
        cropped = resize_exact(cropped, out_w, out_h)

    return cropped, float(rotation)
