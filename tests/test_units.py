import pytest

from photodesk.domain.errors import InputValidationError
from photodesk.features.units.logic import round_px, target_pixels, to_pixel_count, to_pixels
from photodesk.features.units.models import CropSettings, Unit


def test_to_pixels_inches():
    assert to_pixels(1, "in", 300) == 300


def test_to_pixels_mm_and_cm():
    assert to_pixels(25.4, "mm", 300) == pytest.approx(300)
    assert to_pixels(2.54, Unit.CM, 300) == pytest.approx(300)


def test_to_pixels_px_is_passthrough():
    for value in (0, -3, 1, 12.75, 4000):
        assert to_pixels(value, "px", 72) == value
        assert to_pixels(value, "px", 600) == value


def test_to_pixels_does_not_round():
    # 35mm at 300dpi is 413.38...
    assert to_pixels(35, "mm", 300) == pytest.approx(413.3858, rel=1e-6)


def test_round_px_half_up():
    # Python's round() would give 2 here
    assert round_px(2.5) == 3
    assert round_px(412.99) == 413
    assert to_pixel_count(2, "mm", 300) == 24


def test_target_pixels_presets():
    assert target_pixels(CropSettings.from_preset("35x45mm"), 300) == (413, 531)
    assert target_pixels(CropSettings.from_preset("2x2in"), 300) == (600, 600)
    assert target_pixels(CropSettings.from_preset("1.5x1.5in"), 300) == (450, 450)


def test_target_pixels_custom():
    settings = CropSettings.parse("10", "5", "cm")
    assert settings.resolve() == (10.0, 5.0, Unit.CM)
    assert target_pixels(settings, 300) == (1181, 591)


def test_target_pixels_rejects_sub_pixel_targets():
    with pytest.raises(InputValidationError):
        target_pixels(CropSettings.parse(0.2, 0.2, "px"), 300)


@pytest.mark.parametrize("width,height", [("abc", "10"), ("0", "10"), ("10", "-5"), ("", "3"), (None, "3")])
def test_parse_rejects_bad_dimensions(width, height):
    with pytest.raises(InputValidationError):
        CropSettings.parse(width, height, "mm")


def test_unit_parse():
    assert Unit.parse(" MM ") == Unit.MM
    assert Unit.parse(Unit.IN) is Unit.IN
    with pytest.raises(InputValidationError):
        Unit.parse("furlong")


def test_unknown_preset_rejected():
    with pytest.raises(InputValidationError):
        CropSettings.from_preset("10x15cm")
    with pytest.raises(InputValidationError):
        CropSettings(preset="passport")


def test_preset_ignores_custom_fields():
    settings = CropSettings(preset="2x2in", width=1, height=1, unit="px")
    assert settings.resolve() == (2.0, 2.0, Unit.IN)
