import io
import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import numpy as np
import pytest
from PIL import Image
from loguru import logger

from imgx.models import ImageFormat, SourceImage


def encode(img: Image.Image, fmt: ImageFormat) -> bytes:
    buf = io.BytesIO()
    if fmt is ImageFormat.JPEG:
        img = img.convert('RGB')
    img.save(buf, fmt.pil_format)
    return buf.getvalue()


def decode(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img.convert('RGBA')


def noise_image(width: int, height: int, seed: int = 0) -> Image.Image:
    rng = np.random.default_rng(seed)
    rgb = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
    return Image.fromarray(rgb).convert('RGBA')


def solid_image(width: int, height: int, color=(200, 40, 40, 255)) -> Image.Image:
    return Image.new('RGBA', (width, height), color)


def make_source(img: Image.Image, fmt: ImageFormat = ImageFormat.PNG, name: str = "image") -> SourceImage:
    return SourceImage(data=encode(img, fmt), width=img.width, height=img.height, format=fmt, name=name)


@pytest.fixture
def png_source():
    """800x600 opaque noise PNG"""
    return make_source(noise_image(800, 600), ImageFormat.PNG, name="noise.png")


@pytest.fixture
def small_source():
    return make_source(solid_image(40, 30), ImageFormat.PNG, name="small.png")


@pytest.fixture
def jpeg_source():
    return make_source(noise_image(64, 48, seed=1), ImageFormat.JPEG, name="photo.jpg")


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    logger.remove()
