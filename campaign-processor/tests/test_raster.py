import io

import numpy as np
import pytest
from PIL import Image

from poster.errors import DecodeError, EncodeError
from poster.raster import (
    RasterImage, EncodedImage, FitPolicy, QualityOptions,
    decode, encode, resize, scale_to_width,
)


def test_decode_forces_alpha_channel(backdrop_photo):
    raster = decode(backdrop_photo)
    assert raster.size == (1200, 800)
    assert raster.pixels.shape == (800, 1200, 4)
    assert len(raster.buffer) == 1200 * 800 * 4
    assert (raster.alpha == 255).all()


def test_decode_accepts_encoded_image(product_photo):
    raster = decode(EncodedImage(data=product_photo, format="PNG"))
    assert raster.size == (400, 600)


def test_decode_rejects_empty_input():
    with pytest.raises(DecodeError):
        decode(b"")


def test_decode_rejects_garbage():
    with pytest.raises(DecodeError) as exc_info:
        decode(b"definitely not an image")
    assert exc_info.value.status_code == 400


def test_decode_rejects_truncated_png(product_photo):
    with pytest.raises(DecodeError):
        decode(product_photo[:len(product_photo) // 2])


def test_from_buffer_checks_length():
    with pytest.raises(ValueError):
        RasterImage.from_buffer(2, 2, b"\x00" * 15)

    raster = RasterImage.from_buffer(2, 2, bytes(range(16)))
    assert raster.buffer == bytes(range(16))


def test_encode_jpeg_is_progressive(solid_raster):
    encoded = encode(solid_raster(64, 32, (10, 20, 30, 255)), "jpg", QualityOptions(quality=95))
    assert encoded.format == "JPEG"
    assert encoded.mime_type == "image/jpeg"
    assert encoded.extension == "jpg"

    with Image.open(io.BytesIO(encoded.data)) as image:
        assert image.size == (64, 32)
        assert image.info.get("progressive")


def test_encode_png_keeps_transparency(solid_raster):
    raster = solid_raster(8, 8, (255, 0, 0, 255))
    raster.pixels[0, 0, 3] = 0

    decoded = decode(encode(raster, "PNG"))
    assert decoded.pixels[0, 0, 3] == 0
    assert decoded.pixels[4, 4].tolist() == [255, 0, 0, 255]


def test_encode_rejects_unsupported_format(solid_raster):
    with pytest.raises(EncodeError):
        encode(solid_raster(4, 4), "GIF")


def test_resize_cover_fills_exact_box(solid_raster):
    result = resize(solid_raster(300, 100), 100, 100, fit=FitPolicy.COVER)
    assert result.size == (100, 100)
    assert (result.alpha == 255).all()


def test_resize_cover_anchor_picks_crop_side(solid_raster):
    raster = solid_raster(200, 100, (0, 0, 0, 255))
    raster.pixels[:, :100, :3] = 255  # left half white

    left = resize(raster, 100, 100, fit=FitPolicy.COVER, anchor=(0.0, 0.5))
    right = resize(raster, 100, 100, fit=FitPolicy.COVER, anchor=(1.0, 0.5))

    assert left.pixels[50, 50, 0] == 255
    assert right.pixels[50, 50, 0] == 0


def test_resize_contain_pads_transparent(solid_raster):
    result = resize(solid_raster(200, 100), 100, 100, fit=FitPolicy.CONTAIN)
    assert result.size == (100, 100)
    assert result.pixels[0, 50, 3] == 0      # top pad
    assert result.pixels[50, 50, 3] == 255   # image


def test_resize_never_upscales_by_default(solid_raster):
    result = resize(solid_raster(50, 50), 200, 200, fit=FitPolicy.CONTAIN)
    assert result.size == (200, 200)
    assert int((result.alpha == 255).sum()) == 50 * 50


def test_resize_upscales_when_allowed(solid_raster):
    result = resize(solid_raster(50, 50), 200, 200, fit=FitPolicy.COVER, allow_upscale=True)
    assert (result.alpha == 255).all()


def test_resize_rejects_empty_target(solid_raster):
    with pytest.raises(ValueError):
        resize(solid_raster(10, 10), 0, 10)


def test_resize_leaves_source_untouched(solid_raster):
    raster = solid_raster(120, 80, (1, 2, 3, 255))
    before = raster.pixels.copy()
    resize(raster, 40, 40, fit=FitPolicy.COVER)
    assert np.array_equal(raster.pixels, before)


def test_scale_to_width_returns_owned_copy(solid_raster):
    raster = solid_raster(100, 50)
    small = scale_to_width(raster, 1000)
    assert small.size == (100, 50)
    small.pixels[0, 0, 3] = 0
    assert raster.pixels[0, 0, 3] == 255

    scaled = scale_to_width(solid_raster(2000, 500), 1000)
    assert scaled.size == (1000, 250)
