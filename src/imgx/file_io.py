"""
Image input/output.
Decoding and format-specific encoding for the stages, upload validation,
data-URL interchange and export helpers.
"""
import base64
import binascii
import io
import math
import os
import re
from pathlib import Path
from typing import Optional, Union

from PIL import Image, UnidentifiedImageError
from loguru import logger

from imgx import config
from imgx.errors import DecodeError, EncodeError, InvalidInput
from imgx.math_ops import format_number
from imgx.models import EncodedImage, ImageFormat, ProcessedImage, SourceImage

_DECODE_ERRORS = (UnidentifiedImageError, OSError, ValueError, SyntaxError, Image.DecompressionBombError)

_DATA_URL_PREFIX = re.compile(r'^data:image/[a-z+]+;base64,', re.IGNORECASE)
_BASE64_ALPHABET = re.compile(r'^[A-Za-z0-9+/=]+$')


# =========================================================
# Codec
# =========================================================

def decode_image(data: bytes) -> Image.Image:
    """
    Decode encoded bytes into an RGBA working image.

    Multi-frame files (animated GIF/WebP) yield their first frame.
    """
    try:
        img = Image.open(io.BytesIO(data))
        img.seek(0)
        img.load()
    except _DECODE_ERRORS as e:
        raise DecodeError(f"Failed to decode image: {e}") from e

    if img.mode != 'RGBA':
        try:
            img = img.convert('RGBA')
        except (OSError, ValueError) as e:
            raise DecodeError(f"Unsupported pixel mode {img.mode}: {e}") from e
    return img


def sniff_format(data: bytes) -> Optional[ImageFormat]:
    """Format detected from the file header, or None."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return ImageFormat.from_pil(img.format)
    except _DECODE_ERRORS:
        return None


def encode_image(img: Image.Image, fmt: ImageFormat, quality: int = config.MAX_QUALITY) -> bytes:
    """
    Encode a working image to `fmt`.

    Quality (1-100) only affects JPEG and WebP; 100 means maximum quality
    (lossless for WebP).
    """
    width, height = img.size
    if width <= 0 or height <= 0:
        raise EncodeError(f"Cannot encode a {width}x{height} canvas")

    buf = io.BytesIO()
    try:
        if fmt is ImageFormat.JPEG:
            _save_jpeg(img, buf, quality)
        elif fmt is ImageFormat.PNG:
            _save_png(img, buf)
        elif fmt is ImageFormat.WEBP:
            _save_webp(img, buf, quality)
        elif fmt is ImageFormat.GIF:
            _save_gif(img, buf)
        else:
            raise EncodeError(f"Unsupported output format: {fmt!r}")
    except (OSError, ValueError, KeyError) as e:
        raise EncodeError(f"Failed to encode {fmt.value}: {e}") from e
    return buf.getvalue()


def encode_processed(img: Image.Image, fmt: ImageFormat, quality: int = config.MAX_QUALITY) -> ProcessedImage:
    data = encode_image(img, fmt, quality)
    width, height = img.size
    return ProcessedImage(data=data, width=width, height=height, format=fmt)


def _flatten(img: Image.Image) -> Image.Image:
    """Composite onto opaque black, which is what a cleared canvas exports to JPEG."""
    if img.mode == 'RGB':
        return img
    rgba = img.convert('RGBA') if img.mode != 'RGBA' else img
    background = Image.new('RGB', rgba.size, (0, 0, 0))
    background.paste(rgba, mask=rgba.getchannel('A'))
    return background


def _save_jpeg(img: Image.Image, buf: io.BytesIO, quality: int):
    save_params = {
        'quality': int(quality),
        'optimize': True,
    }
    # Full chroma resolution for the max-quality re-encodes between stages
    if quality >= 90:
        save_params['subsampling'] = 0
    _flatten(img).save(buf, 'JPEG', **save_params)


def _save_png(img: Image.Image, buf: io.BytesIO):
    img.save(buf, 'PNG')


def _save_webp(img: Image.Image, buf: io.BytesIO, quality: int):
    if quality >= config.MAX_QUALITY:
        img.save(buf, 'WEBP', lossless=True, quality=100, exact=True)
    else:
        img.save(buf, 'WEBP', quality=int(quality))


def _save_gif(img: Image.Image, buf: io.BytesIO):
    """Palette-quantize; pixels with alpha < 128 map to a transparent index."""
    rgba = img.convert('RGBA') if img.mode != 'RGBA' else img
    alpha = rgba.getchannel('A')
    paletted = rgba.convert('RGB').quantize(colors=255, method=Image.Quantize.MEDIANCUT)

    palette = paletted.getpalette() or []
    paletted.putpalette(palette + [0] * (768 - len(palette)))

    transparent_mask = alpha.point(lambda a: 255 if a < 128 else 0)
    if transparent_mask.getbbox() is None:
        paletted.save(buf, 'GIF')
        return

    paletted.paste(255, mask=transparent_mask)
    paletted.save(buf, 'GIF', transparency=255)


# =========================================================
# Input contract
# =========================================================

def load_source(data: bytes, mime: str, name: str = "image") -> SourceImage:
    """
    Validate an upload and decode its dimensions.

    Raises:
        InvalidInput: unsupported MIME type or file larger than 10 MiB
        DecodeError: the bytes are not an image
    """
    fmt = ImageFormat.from_mime(mime)
    if len(data) > config.MAX_FILE_SIZE:
        raise InvalidInput(
            f"File size must be less than {format_file_size(config.MAX_FILE_SIZE)} "
            f"(got {format_file_size(len(data))})"
        )

    img = decode_image(data)
    width, height = img.size
    img.close()

    logger.debug(f"Loaded {name}: {width}x{height} {fmt.value} {format_file_size(len(data))}")
    return SourceImage(data=bytes(data), width=width, height=height, format=fmt, name=name)


def load_source_file(path: Union[str, os.PathLike]) -> SourceImage:
    """Read a file from disk; the MIME type comes from its content, else its extension."""
    path = Path(path)
    if not path.is_file():
        raise InvalidInput(f"File not found: {path}")

    size = path.stat().st_size
    if size > config.MAX_FILE_SIZE:
        raise InvalidInput(f"File size must be less than {format_file_size(config.MAX_FILE_SIZE)}")

    data = path.read_bytes()
    fmt = sniff_format(data)
    if fmt is not None:
        mime = fmt.value
    else:
        mime = config.EXTENSION_TO_MIME.get(path.suffix.lower(), 'application/octet-stream')
    return load_source(data, mime, name=path.name)


# =========================================================
# Base64 interchange
# =========================================================

def encode_data_url(data: bytes, fmt: ImageFormat) -> str:
    payload = base64.b64encode(data).decode('ascii')
    return f"data:{fmt.value};base64,{payload}"


def to_data_url(image: EncodedImage) -> str:
    return encode_data_url(image.data, image.format)


def from_data_url(text: str, name: str = "decoded-image") -> SourceImage:
    """
    Parse `data:<mime>;base64,<payload>` (or a bare base64 payload) into a
    SourceImage. A bare payload's format is sniffed, PNG if unknown.
    """
    text = re.sub(r'\s', '', text or '')
    mime = None
    if text.startswith('data:'):
        header, sep, payload = text.partition(',')
        if not sep or not header.endswith(';base64'):
            raise InvalidInput("Invalid base64 image: expected a base64 data URL")
        mime = header[len('data:'):].split(';')[0] or ImageFormat.PNG.value
    else:
        payload = text

    if not payload:
        raise InvalidInput("Invalid base64 image: empty payload")
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidInput(f"Invalid base64 image: {e}") from e

    if mime is None:
        fmt = sniff_format(data) or ImageFormat.PNG
        mime = fmt.value
    return load_source(data, mime, name=name)


def decode_pasted_text(text: str) -> Optional[SourceImage]:
    """
    Turn pasted clipboard text into an image.

    Returns None when the text does not look like an image at all; raises
    InvalidInput when it does but cannot be decoded.
    """
    text = (text or '').strip()
    if not text:
        return None
    compact = re.sub(r'\s', '', text)
    if _DATA_URL_PREFIX.match(compact):
        return from_data_url(compact)
    if len(text) > 100 and _BASE64_ALPHABET.match(compact):
        return from_data_url(compact)
    return None


# =========================================================
# Output contract
# =========================================================

def download_filename(image: EncodedImage) -> str:
    return f"image.{image.format.extension}"


def save_processed(image: ProcessedImage, directory: Union[str, os.PathLike], filename: Optional[str] = None) -> Path:
    """Write the encoded bytes to `directory/filename` (default image.<ext>)."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    output_path = directory / (filename or download_filename(image))
    output_path.write_bytes(image.data)
    logger.info(f"  ✅ Saved: {output_path} ({format_file_size(image.size)})")
    return output_path


def format_file_size(size: int) -> str:
    """1536 -> '1.5 KB'. Units step by 1024, two decimals at most."""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    i = 0
    while i < len(units) - 1 and size >= 1024 ** (i + 1):
        i += 1
    value = math.floor(size / (1024 ** i) * 100 + 0.5) / 100
    return f"{format_number(value)} {units[i]}"


def compression_ratio(original_size: int, compressed_size: int) -> int:
    """Percentage of bytes saved, rounded; negative when the output grew."""
    if original_size <= 0:
        return 0
    return int(math.floor((original_size - compressed_size) / original_size * 100 + 0.5))
