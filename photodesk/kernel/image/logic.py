import io
import os
from typing import Optional

import numpy as np
from PIL import Image, ImageColor, ImageOps, UnidentifiedImageError

from photodesk.domain.errors import GeometryError, InputValidationError
from photodesk.domain.models import EncodedImage, TRANSPARENT
from photodesk.domain.types import ImageBuffer, RGBA
from photodesk.kernel.image.validation import ensure_image
from photodesk.kernel.system.logging import get_logger

logger = get_logger(__name__)

# Formats accepted on intake (Pillow format name -> MIME type)
SUPPORTED_FORMATS = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "TIFF": "image/tiff",
    "WEBP": "image/webp",
    "GIF": "image/gif",
    "BMP": "image/bmp",
}

SUPPORTED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".tif", ".tiff", ".webp", ".gif", ".bmp"}

# Labels that browsers and APIs use interchangeably
_MIME_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
    "image/x-png": "image/png",
    "image/tif": "image/tiff",
    "image/x-tiff": "image/tiff",
}


def normalize_mime(mime_type: str) -> str:
    mime_type = mime_type.strip().lower()
    return _MIME_ALIASES.get(mime_type, mime_type)


def sniff_mime(payload: bytes) -> Optional[str]:
    """
    Returns the MIME type of an encoded raster based on its content, or None
    when Pillow does not recognise it.
    """
    try:
        with Image.open(io.BytesIO(payload)) as img:
            return SUPPORTED_FORMATS.get(img.format or "")
    except (UnidentifiedImageError, OSError):
        return None


def encoded_from_bytes(payload: bytes) -> EncodedImage:
    """
    Wraps raw file bytes, labelling them from their content.
    """
    mime_type = sniff_mime(payload)
    if mime_type is None:
        raise InputValidationError("Unsupported or corrupt image data")
    return EncodedImage(mime_type=mime_type, payload=payload)


def read_image_file(path: str) -> EncodedImage:
    ext = os.path.splitext(path)[1].lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise InputValidationError(f"Unsupported file type: {os.path.basename(path)}")
    with open(path, "rb") as f:
        return encoded_from_bytes(f.read())


def decode_image(encoded: EncodedImage) -> ImageBuffer:
    """
    Encoded image -> RGBA buffer. EXIF orientation is applied the way
    browsers display the file.
    """
    try:
        with Image.open(io.BytesIO(encoded.payload)) as img:
            sniffed = SUPPORTED_FORMATS.get(img.format or "")
            if sniffed is None:
                raise InputValidationError(f"Unsupported image format: {img.format}")
            if sniffed != normalize_mime(encoded.mime_type):
                logger.warning(
                    f"Image labelled {encoded.mime_type} contains {sniffed} data, decoding as {sniffed}"
                )
            img.load()
            upright = ImageOps.exif_transpose(img)
            rgba = upright.convert("RGBA")
    except (UnidentifiedImageError, OSError) as e:
        raise InputValidationError(f"Could not decode image: {e}")

    return ensure_image(np.array(rgba, dtype=np.uint8))


def buffer_to_pil(img: ImageBuffer) -> Image.Image:
    return Image.fromarray(np.ascontiguousarray(ensure_image(img)))


def encode_png(img: ImageBuffer) -> EncodedImage:
    """
    RGBA buffer -> PNG encoded image.
    """
    output_buf = io.BytesIO()
    buffer_to_pil(img).save(output_buf, format="PNG")
    return EncodedImage(mime_type="image/png", payload=output_buf.getvalue())


def parse_color(color: str) -> Optional[RGBA]:
    """
    Parses a CSS-style colour ('#fff', '#ffffff', 'white', 'rgb(...)').
    Returns None for 'transparent'.
    """
    if color is None or color.strip().lower() == TRANSPARENT:
        return None
    try:
        rgba = ImageColor.getcolor(color.strip(), "RGBA")
    except ValueError:
        raise InputValidationError(f"Unknown colour '{color}'")
    return (int(rgba[0]), int(rgba[1]), int(rgba[2]), int(rgba[3]))


def new_canvas(width: int, height: int, color: Optional[RGBA] = None) -> ImageBuffer:
    """
    Allocates a buffer filled with `color` (fully transparent when None).
    """
    if width <= 0 or height <= 0:
        raise GeometryError(f"Canvas size must be positive, got {width}x{height}")
    canvas = np.zeros((height, width, 4), dtype=np.uint8)
    if color is not None:
        canvas[...] = np.array(color, dtype=np.uint8)
    return canvas


def composite_over(dst: ImageBuffer, src: ImageBuffer, x: int, y: int) -> ImageBuffer:
    """
    Source-over composites `src` onto `dst` in place with its top-left
    corner at (x, y). Parts falling outside `dst` are clipped.
    """
    src_h, src_w = src.shape[:2]
    dst_h, dst_w = dst.shape[:2]

    x0, y0 = max(x, 0), max(y, 0)
    x1, y1 = min(x + src_w, dst_w), min(y + src_h, dst_h)
    if x1 <= x0 or y1 <= y0:
        return dst

    patch = src[y0 - y : y1 - y, x0 - x : x1 - x]

    # Opaque sources are a plain copy
    if np.all(patch[..., 3] == 255):
        dst[y0:y1, x0:x1] = patch
        return dst

    s = patch.astype(np.float32) / 255.0
    d = dst[y0:y1, x0:x1].astype(np.float32) / 255.0
    sa = s[..., 3:4]
    da = d[..., 3:4]

    out_a = sa + da * (1.0 - sa)
    safe_a = np.where(out_a > 0.0, out_a, 1.0)
    out_rgb = (s[..., :3] * sa + d[..., :3] * da * (1.0 - sa)) / safe_a

    out = np.concatenate([out_rgb, out_a], axis=-1)
    dst[y0:y1, x0:x1] = np.clip(np.rint(out * 255.0), 0, 255).astype(np.uint8)
    return dst


def fill_background(img: ImageBuffer, color: Optional[RGBA]) -> ImageBuffer:
    """
    Flattens `img` over a solid colour. Returns a copy when color is None.
    """
    img = ensure_image(img)
    if color is None:
        return img.copy()
    h, w = img.shape[:2]
    canvas = new_canvas(w, h, color)
    return composite_over(canvas, img, 0, 0)
