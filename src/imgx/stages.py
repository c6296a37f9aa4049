"""
Raster stages.

Each stage takes an encoded image (SourceImage or ProcessedImage), decodes it
into an RGBA working image, edits it and re-encodes. Inputs are never
modified.
"""
from typing import List, Tuple

import numpy as np
from PIL import Image, ImageFilter
from loguru import logger

from imgx import config, math_ops
from imgx.errors import InvalidParameter
from imgx.file_io import decode_image, encode_processed
from imgx.models import EncodedImage, ImageFormat, ProcessedImage
from imgx.pipeline.options import (
    CompressOptions,
    ConvertOptions,
    FilterOptions,
    ResizeOptions,
    TransformOptions,
)

# Clockwise quarter turns; Pillow's ROTATE_* constants turn counter-clockwise
_QUARTER_TURNS = {
    90: Image.Transpose.ROTATE_270,
    180: Image.Transpose.ROTATE_180,
    270: Image.Transpose.ROTATE_90,
}

_TRANSPARENT = (0, 0, 0, 0)


def _passthrough(image: EncodedImage) -> ProcessedImage:
    """Wrap the input bytes unchanged. Bytes are immutable, so sharing is safe."""
    return ProcessedImage(data=image.data, width=image.width, height=image.height, format=image.format)


def _release_intermediate(image: EncodedImage, original: EncodedImage):
    if image is not original and isinstance(image, ProcessedImage):
        image.release()


# =========================================================
# Resize / Compress / Convert
# =========================================================

def resize_image(image: EncodedImage, options: ResizeOptions) -> ProcessedImage:
    """Scale to the target size (bicubic), keeping the input format at maximum quality."""
    options.validate()
    img = decode_image(image.data)
    width, height = math_ops.fit_dimensions(
        img.width, img.height,
        math_ops.js_round(options.width), math_ops.js_round(options.height),
        options.maintain_aspect_ratio,
    )
    if width <= 0 or height <= 0:
        raise InvalidParameter(f"resize produced a {width}x{height} target")

    if (width, height) != img.size:
        logger.debug(f"[Resize] {img.width}x{img.height} -> {width}x{height}")
        img = img.resize((width, height), Image.Resampling.BICUBIC)
    return encode_processed(img, image.format, config.MAX_QUALITY)


def compress_image(image: EncodedImage, options: CompressOptions) -> ProcessedImage:
    """Re-encode at `quality`. PNG has no quality axis, so it becomes JPEG."""
    options.validate()
    fmt = ImageFormat.JPEG if image.format is ImageFormat.PNG else image.format
    img = decode_image(image.data)
    return encode_processed(img, fmt, int(options.quality))


def convert_image(image: EncodedImage, options: ConvertOptions) -> ProcessedImage:
    options.validate()
    img = decode_image(image.data)
    return encode_processed(img, options.format, int(options.quality))


# =========================================================
# Geometric transform
# =========================================================

def rotate_image(img: Image.Image, angle: float) -> Image.Image:
    """
    Rotate clockwise about the center onto a canvas that holds the whole
    rotated rectangle. Uncovered corners are transparent.
    """
    if angle == 0:
        return img

    if float(angle).is_integer() and int(angle) % 360 in _QUARTER_TURNS:
        return img.transpose(_QUARTER_TURNS[int(angle) % 360])
    if float(angle).is_integer() and int(angle) % 360 == 0:
        return img.copy()

    width, height = img.size
    new_width, new_height = math_ops.rotated_bounds(width, height, angle)
    coeffs = math_ops.rotation_affine(width, height, new_width, new_height, angle)
    # Pillow premultiplies RGBA internally for non-nearest resampling
    return img.transform(
        (new_width, new_height),
        Image.Transform.AFFINE,
        coeffs,
        resample=Image.Resampling.BICUBIC,
        fillcolor=_TRANSPARENT,
    )


def flip_image(img: Image.Image, horizontal: bool, vertical: bool) -> Image.Image:
    if horizontal:
        img = img.transpose(Image.Transpose.FLIP_LEFT_RIGHT)
    if vertical:
        img = img.transpose(Image.Transpose.FLIP_TOP_BOTTOM)
    return img


def skew_image(img: Image.Image, skew_x: float, skew_y: float) -> Image.Image:
    """
    Shear from the top-left origin: x' = x + y*tan(sx), y' = y + x*tan(sy).

    The canvas grows by the shear extent; content pushed to negative
    coordinates by a negative angle is clipped.
    """
    if skew_x == 0 and skew_y == 0:
        return img

    width, height = img.size
    new_size = math_ops.skewed_bounds(width, height, skew_x, skew_y)
    coeffs = math_ops.skew_affine(skew_x, skew_y)
    if coeffs is None:
        logger.debug(f"[Skew] Singular shear ({skew_x}, {skew_y}), source collapses")
        return Image.new('RGBA', new_size, _TRANSPARENT)

    return img.transform(
        new_size,
        Image.Transform.AFFINE,
        coeffs,
        resample=Image.Resampling.BICUBIC,
        fillcolor=_TRANSPARENT,
    )


def apply_transform(image: EncodedImage, options: TransformOptions) -> ProcessedImage:
    """
    Rotate, then flip, then skew. Each active sub-step re-encodes at maximum
    quality in the input format; inactive ones are skipped.
    """
    options.validate()
    steps = (
        ('rotate', options.angle != 0,
         lambda img: rotate_image(img, options.angle)),
        ('flip', options.horizontal or options.vertical,
         lambda img: flip_image(img, options.horizontal, options.vertical)),
        ('skew', options.skew_x != 0 or options.skew_y != 0,
         lambda img: skew_image(img, options.skew_x, options.skew_y)),
    )

    current = image
    for name, active, step in steps:
        if not active:
            continue
        result = encode_processed(step(decode_image(current.data)), image.format, config.MAX_QUALITY)
        logger.debug(f"[Transform] {name}: {current.width}x{current.height} -> {result.width}x{result.height}")
        _release_intermediate(current, image)
        current = result

    if current is image:
        return _passthrough(image)
    return current


# =========================================================
# Filter
# =========================================================

def filter_steps(options: FilterOptions) -> List[Tuple[str, float]]:
    """Non-default filter functions in application order."""
    candidates = (
        ('brightness', options.brightness, 1.0),
        ('contrast', options.contrast, 1.0),
        ('grayscale', options.grayscale, 0.0),
        ('sepia', options.sepia, 0.0),
        ('invert', options.invert, 0.0),
        ('blur', options.blur, 0.0),
    )
    return [(name, float(value)) for name, value, default in candidates if value != default]


def build_filter_string(options: FilterOptions) -> str:
    """CSS-style description, e.g. 'brightness(1.2) blur(2px)'; 'none' when empty."""
    parts = []
    for name, value in filter_steps(options):
        unit = 'px' if name == 'blur' else ''
        parts.append(f"{name}({math_ops.format_number(value)}{unit})")
    return ' '.join(parts) if parts else 'none'


def _apply_color_steps(img: Image.Image, steps: List[Tuple[str, float]]) -> Image.Image:
    """Run the per-pixel color functions on unpremultiplied float RGB."""
    pixels = np.asarray(img, dtype=np.float32) / 255.0
    rgb = np.ascontiguousarray(pixels[..., :3])
    alpha = np.asarray(img.getchannel('A'), dtype=np.uint8)

    for name, value in steps:
        if name == 'brightness':
            math_ops.apply_brightness_inplace(rgb, value)
        elif name == 'contrast':
            math_ops.apply_contrast_inplace(rgb, value)
        elif name == 'grayscale':
            math_ops.apply_color_matrix_inplace(rgb, math_ops.grayscale_matrix(value))
        elif name == 'sepia':
            math_ops.apply_color_matrix_inplace(rgb, math_ops.sepia_matrix(value))
        elif name == 'invert':
            math_ops.apply_invert_inplace(rgb, value)

    rgb8 = np.floor(rgb * 255.0 + 0.5).astype(np.uint8)
    return Image.fromarray(np.dstack((rgb8, alpha)))


def apply_filter(image: EncodedImage, options: FilterOptions) -> ProcessedImage:
    """
    Apply the filter functions in fixed order, then scale alpha by opacity.
    A filter with nothing to do returns the input bytes unchanged.
    """
    options.validate()
    steps = filter_steps(options)
    opacity = float(options.opacity)
    if not steps and opacity == 1.0:
        return _passthrough(image)

    logger.debug(f"[Filter] {build_filter_string(options)}, opacity {math_ops.format_number(opacity)}")
    img = decode_image(image.data)

    color_steps = [step for step in steps if step[0] != 'blur']
    if color_steps:
        img = _apply_color_steps(img, color_steps)

    blur = dict(steps).get('blur', 0.0)
    if blur > 0:
        # Blur premultiplied so transparent pixels do not bleed their color
        img = img.convert('RGBa').filter(ImageFilter.GaussianBlur(blur)).convert('RGBA')

    if opacity != 1.0:
        img.putalpha(img.getchannel('A').point(lambda a: int(a * opacity + 0.5)))

    return encode_processed(img, image.format, config.MAX_QUALITY)
