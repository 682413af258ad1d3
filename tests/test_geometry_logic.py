import numpy as np
import pytest

from photodesk.domain.errors import GeometryError
from photodesk.domain.interfaces import PipelineContext
from photodesk.features.geometry.logic import (
    center_crop_rect,
    center_crop_to_size,
    centered_crop_rect,
    crop_region,
    freeform_crop,
    resize_exact,
    rotate_and_flip,
    rotated_bounds,
    rotated_canvas_size,
)
from photodesk.features.geometry.models import CropRect, GeometryConfig
from photodesk.features.geometry.processor import CenterCropProcessor, CropProcessor, GeometryProcessor

RED = (255, 0, 0, 255)


def _opaque(width, height):
    return np.full((height, width, 4), 255, dtype=np.uint8)


def test_rotated_bounds_quarter_turn():
    bw, bh = rotated_bounds(100, 50, 90)
    assert bw == pytest.approx(50)
    assert bh == pytest.approx(100)


def test_rotated_canvas_size_45():
    # 40*cos45 + 20*sin45 = 42.43
    assert rotated_canvas_size(40, 20, 45) == (42, 42)


def test_rotate_90_swaps_dimensions():
    img = _opaque(100, 50)
    res = rotate_and_flip(img, 90)
    assert res.shape == (100, 50, 4)


def test_rotate_0_keeps_dimensions():
    img = _opaque(100, 50)
    res = rotate_and_flip(img, 0)
    assert res.shape == img.shape
    assert np.array_equal(res, img)
    assert res is not img


def test_rotate_90_is_clockwise():
    img = _opaque(3, 2)
    img[0, 0] = RED
    res = rotate_and_flip(img, 90)
    # Top-left corner ends up top-right
    assert tuple(res[0, 1]) == RED


def test_rotate_negative_angle_normalised():
    img = _opaque(3, 2)
    img[0, 0] = RED
    res = rotate_and_flip(img, -90)
    assert res.shape == (3, 2, 4)
    # Counter-clockwise: top-left ends up bottom-left
    assert tuple(res[2, 0]) == RED


def test_flip_mirrors_horizontally():
    img = _opaque(3, 2)
    img[0, 0] = RED
    res = rotate_and_flip(img, 0, flip=True)
    assert tuple(res[0, 2]) == RED


def test_flip_is_applied_before_rotation():
    img = _opaque(3, 2)
    img[0, 0] = RED
    res = rotate_and_flip(img, 90, flip=True)
    assert res.shape == (3, 2, 4)
    # Mirrored to top-right, then turned clockwise to bottom-right
    assert tuple(res[-1, -1]) == RED
    assert tuple(res[0, 0]) != RED


def test_arbitrary_rotation_leaves_transparent_corners():
    img = _opaque(40, 20)
    res = rotate_and_flip(img, 45)
    assert res.shape == (42, 42, 4)
    assert res[0, 0, 3] == 0
    assert res[21, 21, 3] == 255


def test_center_crop_rect_wide_source():
    assert center_crop_rect(400, 200, 100, 100) == (100.0, 0.0, 200.0, 200.0)


def test_center_crop_rect_tall_source():
    assert center_crop_rect(200, 400, 100, 100) == (0.0, 100.0, 200.0, 200.0)


def test_centered_crop_rect_whole_pixels():
    assert centered_crop_rect(1000, 500, 1.0) == CropRect(250, 0, 500, 500)
    # 100 / (16/9) = 56.25
    assert centered_crop_rect(100, 100, 16 / 9) == CropRect(0, 22, 100, 56)


@pytest.mark.parametrize("src", [(400, 200), (200, 400), (100, 100), (37, 91)])
def test_center_crop_to_size_is_exact(src):
    img = _opaque(*src)
    res = center_crop_to_size(img, 100, 100)
    assert res.shape == (100, 100, 4)


def test_center_crop_to_id_photo_size():
    res = center_crop_to_size(_opaque(1000, 1000), 413, 531)
    assert res.shape == (531, 413, 4)


def test_center_crop_takes_the_middle():
    img = np.zeros((10, 30, 4), dtype=np.uint8)
    img[..., 3] = 255
    img[:, 10:20] = RED
    res = center_crop_to_size(img, 10, 10)
    assert np.all(res[..., 0] == 255)


def test_crop_region_outside_is_transparent():
    img = _opaque(20, 20)
    res = crop_region(img, CropRect(-5, 0, 10, 10))
    assert res.shape == (10, 10, 4)
    assert np.all(res[:, :5, 3] == 0)
    assert np.all(res[:, 5:, 3] == 255)


def test_crop_region_entirely_outside():
    with pytest.raises(GeometryError):
        crop_region(_opaque(20, 20), CropRect(50, 50, 10, 10))


def test_zero_area_rect_rejected():
    with pytest.raises(GeometryError):
        CropRect(0, 0, 0, 10)


def test_freeform_crop_with_straighten_and_output_size():
    img = _opaque(40, 20)
    res, rotation = freeform_crop(img, CropRect(0, 0, 20, 40), rotation=90)
    assert rotation == 90.0
    assert res.shape == (40, 20, 4)

    res, _ = freeform_crop(img, CropRect(0, 0, 20, 40), rotation=90, output_size=(10, 20))
    assert res.shape == (20, 10, 4)


def test_resize_exact_shapes():
    img = _opaque(100, 50)
    assert resize_exact(img, 10, 5).shape == (5, 10, 4)
    assert resize_exact(img, 400, 200).shape == (200, 400, 4)
    with pytest.raises(GeometryError):
        resize_exact(img, 0, 10)


def test_resize_does_not_bleed_transparent_colour():
    img = np.zeros((10, 10, 4), dtype=np.uint8)
    img[:, :5] = (0, 0, 255, 255)
    # Invisible pixels carrying red
    img[:, 5:] = (255, 0, 0, 0)
    res = resize_exact(img, 20, 20)
    visible = res[res[..., 3] > 0]
    assert visible[:, 0].max() == 0


def test_geometry_processor_records_params():
    context = PipelineContext(original_size=(100, 50))
    res = GeometryProcessor(GeometryConfig(rotation=90, flip=True)).process(_opaque(100, 50), context)
    assert res.shape == (100, 50, 4)
    assert context.metrics["geometry_params"] == {"rotation": 90, "flip": True}


def test_crop_processors_record_metrics():
    context = PipelineContext(original_size=(1000, 1000))
    res = CenterCropProcessor((413, 531)).process(_opaque(1000, 1000), context)
    assert res.shape == (531, 413, 4)
    assert context.metrics["crop_target"] == (413, 531)

    res = CropProcessor(CropRect(10, 10, 50, 60), rotation=0).process(_opaque(100, 100), context)
    assert res.shape == (60, 50, 4)
    assert context.metrics["crop_rotation"] == 0.0
