"""
Image data models: the supported formats, the immutable source image and the
processed snapshot produced by a pipeline run.
"""
from __future__ import annotations

import io
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from PIL import Image

from imgx.errors import InvalidInput


class ImageFormat(str, Enum):
    """Closed set of formats the pipeline reads and writes. Value is the MIME type."""
    JPEG = 'image/jpeg'
    PNG = 'image/png'
    WEBP = 'image/webp'
    GIF = 'image/gif'

    @property
    def pil_format(self) -> str:
        return _PIL_NAMES[self]

    @property
    def extension(self) -> str:
        """MIME subtype, used for `image.<ext>` filenames."""
        return self.value.split('/')[1]

    @property
    def has_quality(self) -> bool:
        return self in (ImageFormat.JPEG, ImageFormat.WEBP)

    @property
    def has_alpha(self) -> bool:
        return self is not ImageFormat.JPEG

    @classmethod
    def from_mime(cls, mime: str) -> "ImageFormat":
        try:
            return cls(mime.strip().lower())
        except ValueError:
            raise InvalidInput(
                f"Unsupported image type {mime!r}; expected JPEG, PNG, WebP or GIF"
            ) from None

    @classmethod
    def from_pil(cls, name: Optional[str]) -> Optional["ImageFormat"]:
        for fmt, pil_name in _PIL_NAMES.items():
            if pil_name == name:
                return fmt
        return None


_PIL_NAMES = {
    ImageFormat.JPEG: 'JPEG',
    ImageFormat.PNG: 'PNG',
    ImageFormat.WEBP: 'WEBP',
    ImageFormat.GIF: 'GIF',
}


@dataclass(frozen=True)
class SourceImage:
    """
    The uploaded image. Created once per upload or selection.

    Fields:
        data: encoded bytes as received
        width: decoded pixel width
        height: decoded pixel height
        format: declared format
        name: display name used by the recent-images store
    """
    data: bytes = field(repr=False)
    width: int
    height: int
    format: ImageFormat
    name: str = "image"

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(eq=False)
class ProcessedImage:
    """
    Result of a stage or a full pipeline run.

    Treat as read-only. The owner calls release() once the image is no longer
    displayed; afterwards `data` is empty and `display` is unavailable.
    """
    data: bytes = field(repr=False)
    width: int
    height: int
    format: ImageFormat
    size: int = -1
    released: bool = False
    _display: Optional[Image.Image] = field(default=None, repr=False)

    def __post_init__(self):
        if self.size < 0:
            self.size = len(self.data)

    @property
    def display(self) -> Image.Image:
        """Decoded Pillow image, created on first access."""
        if self.released:
            raise RuntimeError("ProcessedImage has been released")
        if self._display is None:
            img = Image.open(io.BytesIO(self.data))
            img.load()
            self._display = img
        return self._display

    def release(self):
        """Drop the encoded buffer and the display handle."""
        if self.released:
            return
        if self._display is not None:
            self._display.close()
            self._display = None
        self.data = b""
        self.released = True


EncodedImage = Union[SourceImage, ProcessedImage]
