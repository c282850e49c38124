import io

import numpy as np
import pytest
from PIL import Image

from src.domain.exceptions import RasterError
from src.domain.services.raster_service import RasterService as RS


def two_band_image(width=10, height=20):
    """Top half red, bottom half blue."""
    img = np.zeros((height, width, 3), dtype=np.float32)
    img[: height // 2, :, 0] = 1.0
    img[height // 2 :, :, 2] = 1.0
    return img


def test_size_and_channels():
    img = np.zeros((20, 10, 3), dtype=np.float32)
    assert RS.size(img) == (10, 20)
    assert RS.channels(img) == 3
    assert RS.channels(np.zeros((5, 5), dtype=np.float32)) == 1


def test_extract_region_bounds():
    img = two_band_image()
    region = RS.extract_region(img, 2, 3, 4, 5)
    assert region.shape == (5, 4, 3)
    with pytest.raises(RasterError):
        RS.extract_region(img, 0, 15, 10, 10)
    with pytest.raises(RasterError):
        RS.extract_region(img, 0, 0, 0, 5)


def test_row_helpers():
    img = two_band_image()
    assert np.all(RS.top_rows(img, 4)[..., 0] == 1.0)
    assert np.all(RS.bottom_rows(img, 4)[..., 2] == 1.0)
    assert RS.drop_top_rows(img, 5).shape == (15, 10, 3)
    assert RS.drop_bottom_rows(img, 5).shape == (15, 10, 3)
    assert RS.drop_top_rows(img, 0).shape == img.shape


def test_resize_fit_cover_keeps_anchored_side():
    img = two_band_image(10, 20)
    top = RS.resize_fit(img, 10, 5, fit="cover", anchor="top")
    bottom = RS.resize_fit(img, 10, 5, fit="cover", anchor="bottom")
    assert top.shape == (5, 10, 3)
    assert np.allclose(top[..., 0], 1.0)
    assert np.allclose(bottom[..., 2], 1.0)


def test_resize_fit_exact_size_for_any_input():
    img = np.full((37, 53, 3), 0.5, dtype=np.float32)
    for fit in ("cover", "contain", "fill"):
        out = RS.resize_fit(img, 120, 40, fit=fit, anchor="center")
        assert RS.size(out) == (120, 40)


def test_resize_fit_contain_pads_white():
    img = np.zeros((10, 10, 3), dtype=np.float32)
    out = RS.resize_fit(img, 20, 10, fit="contain", anchor="center")
    assert np.allclose(out[:, 0], 1.0)
    assert np.allclose(out[:, 10], 0.0)


def test_composite_later_layers_win():
    black = np.zeros((4, 4, 3), dtype=np.float32)
    gray = np.full((4, 4), 0.5, dtype=np.float32)
    out = RS.composite_layers(4, 8, [(black, 0, 0), (gray, 0, 2)])
    assert out.shape == (8, 4, 3)
    assert np.allclose(out[0:2], 0.0)
    assert np.allclose(out[2:6], 0.5)
    # uncovered canvas stays white
    assert np.allclose(out[6:], 1.0)


def test_encode_decode_and_header():
    img = two_band_image(6, 8)
    data, content_type = RS.encode(img, "png")
    assert content_type == "image/png"
    assert RS.read_size(data) == (6, 8)
    decoded = RS.decode(data)
    assert decoded.shape == (8, 6, 3)
    assert decoded.dtype == np.float32


def test_decode_rejects_garbage():
    with pytest.raises(RasterError):
        RS.decode(b"not an image")
    with pytest.raises(RasterError):
        RS.read_size(b"")


def test_alpha_survives_decode_crop_and_encode():
    buf = io.BytesIO()
    Image.new("RGBA", (3, 4), (255, 0, 0, 128)).save(buf, format="PNG")
    out = RS.decode(buf.getvalue())
    assert out.shape == (4, 3, 4)

    cropped = RS.drop_top_rows(out, 1)
    data, content_type = RS.encode(cropped)
    assert content_type == "image/png"
    with Image.open(io.BytesIO(data)) as img:
        assert img.mode == "RGBA"
        assert img.size == (3, 3)
        assert img.getpixel((0, 0)) == (255, 0, 0, 128)


def test_opaque_images_stay_rgb():
    buf = io.BytesIO()
    Image.new("RGB", (3, 2), (0, 0, 255)).save(buf, format="PNG")
    assert RS.decode(buf.getvalue()).shape == (2, 3, 3)


def test_jpeg_encode_drops_alpha():
    data, content_type = RS.encode(np.zeros((2, 2, 4), dtype=np.float32), "jpg")
    assert content_type == "image/jpeg"
    with Image.open(io.BytesIO(data)) as img:
        assert img.mode == "RGB"


def test_composite_with_alpha_layer_keeps_transparency():
    clear = np.zeros((2, 4, 4), dtype=np.float32)
    solid_rgb = np.full((2, 4, 3), 0.5, dtype=np.float32)
    out = RS.composite_layers(4, 4, [(solid_rgb, 0, 0), (clear, 0, 2)])
    assert out.shape == (4, 4, 4)
    assert np.allclose(out[:2, :, 3], 1.0)
    assert np.allclose(out[2:, :, 3], 0.0)


def test_resize_keeps_alpha():
    rgba = np.zeros((4, 4, 4), dtype=np.float32)
    assert RS.resize(rgba, 2, 8).shape == (8, 2, 4)
