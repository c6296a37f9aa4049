import math

import pytest

from imgx.errors import InvalidParameter
from imgx.models import ImageFormat
from imgx.pipeline import options as opts


def test_defaults_follow_the_source(jpeg_source):
    options = opts.default_options(jpeg_source)
    assert options.resize == opts.ResizeOptions(64, 48, True)
    assert options.compress.quality == 80
    assert options.convert == opts.ConvertOptions(format=ImageFormat.JPEG, quality=100)
    assert options.transform.is_identity
    assert options.filter == opts.FilterOptions()


def test_reset_stage_touches_only_that_stage(jpeg_source):
    options = opts.default_options(jpeg_source)
    edited = options.replace('resize', opts.ResizeOptions(10, 10, False))
    edited = edited.replace('compress', opts.CompressOptions(quality=20))

    reset = opts.reset_stage(edited, 'resize', jpeg_source)
    assert reset.resize == options.resize
    assert reset.compress.quality == 20


def test_unknown_stage():
    with pytest.raises(KeyError):
        opts.PipelineOptions().replace('crop', None)


def test_clamping():
    options = opts.PipelineOptions(
        resize=opts.ResizeOptions(width=-5, height=10 ** 9),
        compress=opts.CompressOptions(quality=150),
        convert=opts.ConvertOptions(format=ImageFormat.WEBP, quality=0),
        transform=opts.TransformOptions(angle=720, skew_x=90, skew_y=math.nan),
        filter=opts.FilterOptions(opacity=-1, brightness=5, contrast=math.inf, sepia=3, blur=50),
    ).clamped()

    assert (options.resize.width, options.resize.height) == (0, 16384)
    assert options.compress.quality == 100
    assert options.convert.quality == 1
    assert options.transform.angle == 360
    assert options.transform.skew_x == 45
    assert options.transform.skew_y == 0
    assert options.filter.opacity == 0
    assert options.filter.brightness == 2
    assert options.filter.contrast == 1
    assert options.filter.sepia == 1
    assert options.filter.blur == 10


def test_clamping_keeps_valid_values():
    options = opts.PipelineOptions(filter=opts.FilterOptions(brightness=1.5, grayscale=0.3))
    assert options.clamped() == options


def test_resize_clamping_rounds_half_up():
    assert opts.ResizeOptions(width=20.5, height=0).clamped().width == 21
    assert opts.ResizeOptions(width=20.4, height=0).clamped().width == 20


def test_unlocked_resize_sides_are_at_least_one():
    clamped = opts.ResizeOptions(width=0, height=10, maintain_aspect_ratio=False).clamped()
    assert (clamped.width, clamped.height) == (1, 10)


def test_empty_locked_resize_falls_back_to_source_size(jpeg_source):
    options = opts.PipelineOptions(resize=opts.ResizeOptions(0, 0)).clamped(jpeg_source)
    assert options.resize == opts.ResizeOptions(64, 48, True)
    # one given side is kept; the other is derived at run time
    options = opts.PipelineOptions(resize=opts.ResizeOptions(32, 0)).clamped(jpeg_source)
    assert options.resize == opts.ResizeOptions(32, 0, True)


@pytest.mark.parametrize("record", [
    opts.CompressOptions(quality=101),
    opts.CompressOptions(quality=50.5),
    opts.ConvertOptions(format='image/bmp'),
    opts.TransformOptions(angle=math.nan),
    opts.FilterOptions(grayscale=1.5),
    opts.FilterOptions(contrast=-0.1),
    opts.ResizeOptions(width=-1),
])
def test_validate_rejects(record):
    with pytest.raises(InvalidParameter):
        record.validate()


def test_invalid_parameter_is_a_value_error():
    with pytest.raises(ValueError):
        opts.FilterOptions(blur=-1).validate()
