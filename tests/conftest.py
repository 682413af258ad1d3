import io

import numpy as np
import pytest
from PIL import Image

from photodesk.domain.models import EncodedImage


@pytest.fixture
def make_rgba():
    """Factory for solid RGBA buffers of shape (height, width, 4)."""

    def _make(width, height, color=(120, 80, 40, 255)):
        img = np.zeros((height, width, 4), dtype=np.uint8)
        img[...] = color
        return img

    return _make


@pytest.fixture
def make_encoded(make_rgba):
    """Factory for encoded images (PNG unless fmt says otherwise)."""

    def _make(width, height, color=(120, 80, 40, 255), fmt="PNG"):
        arr = make_rgba(width, height, color)
        pil = Image.fromarray(arr)
        if fmt == "JPEG":
            pil = pil.convert("RGB")
        buf = io.BytesIO()
        pil.save(buf, format=fmt)
        return EncodedImage(mime_type=f"image/{fmt.lower()}", payload=buf.getvalue())

    return _make
