import numpy as np
import pytest

from conftest import decode, make_source, noise_image
from imgx.errors import InvalidParameter
from imgx.models import ImageFormat
from imgx.pipeline import runner
from imgx.pipeline.options import (
    ConvertOptions,
    FilterOptions,
    ResizeOptions,
    TransformOptions,
    default_options,
)


def test_default_options_keep_geometry_and_format(png_source):
    result = runner.run_pipeline(png_source, default_options(png_source))
    # Compress turns PNG into JPEG, convert brings it back to the source format
    assert result.format is ImageFormat.PNG
    assert (result.width, result.height) == (800, 600)


def test_resize_then_compress(png_source):
    options = default_options(png_source).replace('resize', ResizeOptions(width=400, height=0))
    options = options.replace('convert', ConvertOptions(format=ImageFormat.JPEG, quality=80))
    result = runner.run_pipeline(png_source, options, request_id=7)
    assert (result.width, result.height) == (400, 300)
    assert result.format is ImageFormat.JPEG
    assert result.size < png_source.size


def test_rotated_webp_has_transparent_corners():
    source = make_source(noise_image(120, 80))
    options = default_options(source)
    options = options.replace('convert', ConvertOptions(format=ImageFormat.WEBP))
    options = options.replace('transform', TransformOptions(angle=45))
    result = runner.run_pipeline(source, options)
    assert result.format is ImageFormat.WEBP
    data = np.asarray(decode(result.data))
    assert data[0, 0, 3] == 0
    assert data[-1, -1, 3] == 0


def test_stage_error_propagates(png_source):
    options = default_options(png_source).replace('filter', FilterOptions(blur=-1))
    with pytest.raises(InvalidParameter):
        runner.run_pipeline(png_source, options)


def test_intermediates_are_released(png_source, monkeypatch):
    produced = []

    def recording(stage):
        def wrapper(image, options):
            result = stage(image, options)
            produced.append(result)
            return result
        return wrapper

    monkeypatch.setattr(runner, 'STAGES', tuple((name, recording(fn)) for name, fn in runner.STAGES))
    options = default_options(png_source).replace('filter', FilterOptions(opacity=0.5))
    result = runner.run_pipeline(png_source, options)

    assert produced[-1] is result
    assert not result.released
    assert all(image.released for image in produced[:-1])
    assert png_source.data
