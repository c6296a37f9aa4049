"""
Per-stage option records, their defaults and the clamping applied at the
option-setting boundary.

Every field is always present. Records are frozen; an edit builds a new
PipelineOptions with `replace()`.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field, replace as dc_replace
from typing import Any, Optional, Tuple

from imgx import config
from imgx.errors import InvalidParameter
from imgx.math_ops import js_round
from imgx.models import ImageFormat, SourceImage

STAGE_NAMES: Tuple[str, ...] = ('resize', 'compress', 'convert', 'transform', 'filter')


def _finite(name: str, value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidParameter(f"{name} must be a number, got {value!r}") from None
    if not math.isfinite(number):
        raise InvalidParameter(f"{name} must be finite, got {value!r}")
    return number


def _in_range(name: str, value: Any, low: float, high: float = math.inf) -> float:
    number = _finite(name, value)
    if number < low or number > high:
        raise InvalidParameter(f"{name} must be within [{low}, {high}], got {value!r}")
    return number


def _clamp(value: Any, low: float, high: float, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return min(max(number, low), high)


def _validate_quality(name: str, value: Any):
    number = _in_range(name, value, 1, config.MAX_QUALITY)
    if not number.is_integer():
        raise InvalidParameter(f"{name} must be an integer, got {value!r}")


def _clamp_quality(value: Any, default: int) -> int:
    return int(round(_clamp(value, 1, config.MAX_QUALITY, default)))


@dataclass(frozen=True)
class ResizeOptions:
    """Target size. 0 means "not given" and is derived when aspect-locked."""
    width: int = 0
    height: int = 0
    maintain_aspect_ratio: bool = True

    def validate(self):
        _in_range("resize.width", self.width, 0)
        _in_range("resize.height", self.height, 0)

    def clamped(self, native: Optional[Tuple[int, int]] = None) -> "ResizeOptions":
        """
        Round to whole pixels within [0, MAX_DIMENSION]. Unlocked sides are at
        least 1; a locked record with neither side given falls back to `native`.
        """
        keep_aspect = bool(self.maintain_aspect_ratio)
        width = js_round(_clamp(self.width, 0, config.MAX_DIMENSION, 0))
        height = js_round(_clamp(self.height, 0, config.MAX_DIMENSION, 0))
        if not keep_aspect:
            width, height = max(width, 1), max(height, 1)
        elif width == 0 and height == 0 and native is not None:
            width, height = native
        return ResizeOptions(width=width, height=height, maintain_aspect_ratio=keep_aspect)


@dataclass(frozen=True)
class CompressOptions:
    quality: int = config.DEFAULT_COMPRESS_QUALITY

    def validate(self):
        _validate_quality("compress.quality", self.quality)

    def clamped(self) -> "CompressOptions":
        return CompressOptions(quality=_clamp_quality(self.quality, config.DEFAULT_COMPRESS_QUALITY))


@dataclass(frozen=True)
class ConvertOptions:
    """Target format; quality only matters for JPEG and WebP."""
    format: ImageFormat = ImageFormat.PNG
    quality: int = config.MAX_QUALITY

    def validate(self):
        if not isinstance(self.format, ImageFormat):
            raise InvalidParameter(f"convert.format must be an ImageFormat, got {self.format!r}")
        _validate_quality("convert.quality", self.quality)

    def clamped(self) -> "ConvertOptions":
        fmt = self.format
        if not isinstance(fmt, ImageFormat):
            fmt = ImageFormat.from_mime(str(fmt))
        return ConvertOptions(format=fmt, quality=_clamp_quality(self.quality, config.MAX_QUALITY))


@dataclass(frozen=True)
class TransformOptions:
    """Rotation (clockwise degrees), mirror flags and skew angles in degrees."""
    angle: float = 0.0
    horizontal: bool = False
    vertical: bool = False
    skew_x: float = 0.0
    skew_y: float = 0.0

    @property
    def is_identity(self) -> bool:
        return (
            self.angle == 0 and not self.horizontal and not self.vertical
            and self.skew_x == 0 and self.skew_y == 0
        )

    def validate(self):
        _finite("transform.angle", self.angle)
        _in_range("transform.skew_x", self.skew_x, -config.MAX_SKEW, config.MAX_SKEW)
        _in_range("transform.skew_y", self.skew_y, -config.MAX_SKEW, config.MAX_SKEW)

    def clamped(self) -> "TransformOptions":
        return TransformOptions(
            angle=_clamp(self.angle, -config.MAX_ANGLE, config.MAX_ANGLE, 0.0),
            horizontal=bool(self.horizontal),
            vertical=bool(self.vertical),
            skew_x=_clamp(self.skew_x, -config.MAX_SKEW, config.MAX_SKEW, 0.0),
            skew_y=_clamp(self.skew_y, -config.MAX_SKEW, config.MAX_SKEW, 0.0),
        )


@dataclass(frozen=True)
class FilterOptions:
    """
    Pixel filters. Multipliers default to 1, intensities to 0; blur is a
    Gaussian standard deviation in pixels.
    """
    opacity: float = 1.0
    brightness: float = 1.0
    contrast: float = 1.0
    grayscale: float = 0.0
    sepia: float = 0.0
    invert: float = 0.0
    blur: float = 0.0

    def validate(self):
        _in_range("filter.opacity", self.opacity, 0.0, 1.0)
        _in_range("filter.brightness", self.brightness, 0.0)
        _in_range("filter.contrast", self.contrast, 0.0)
        _in_range("filter.grayscale", self.grayscale, 0.0, 1.0)
        _in_range("filter.sepia", self.sepia, 0.0, 1.0)
        _in_range("filter.invert", self.invert, 0.0, 1.0)
        _in_range("filter.blur", self.blur, 0.0)

    def clamped(self) -> "FilterOptions":
        return FilterOptions(
            opacity=_clamp(self.opacity, 0.0, 1.0, 1.0),
            brightness=_clamp(self.brightness, 0.0, config.MAX_MULTIPLIER, 1.0),
            contrast=_clamp(self.contrast, 0.0, config.MAX_MULTIPLIER, 1.0),
            grayscale=_clamp(self.grayscale, 0.0, 1.0, 0.0),
            sepia=_clamp(self.sepia, 0.0, 1.0, 0.0),
            invert=_clamp(self.invert, 0.0, 1.0, 0.0),
            blur=_clamp(self.blur, 0.0, config.MAX_BLUR, 0.0),
        )


@dataclass(frozen=True)
class PipelineOptions:
    """One option record per stage, in pipeline order."""
    resize: ResizeOptions = field(default_factory=ResizeOptions)
    compress: CompressOptions = field(default_factory=CompressOptions)
    convert: ConvertOptions = field(default_factory=ConvertOptions)
    transform: TransformOptions = field(default_factory=TransformOptions)
    filter: FilterOptions = field(default_factory=FilterOptions)

    def replace(self, stage: str, value) -> "PipelineOptions":
        _check_stage(stage)
        return dc_replace(self, **{stage: value})

    def clamped(self, source: Optional[SourceImage] = None) -> "PipelineOptions":
        """Clamp every stage; `source` supplies the native size for an empty resize."""
        native = (source.width, source.height) if source is not None else None
        return PipelineOptions(
            resize=self.resize.clamped(native),
            compress=self.compress.clamped(),
            convert=self.convert.clamped(),
            transform=self.transform.clamped(),
            filter=self.filter.clamped(),
        )


def _check_stage(stage: str):
    if stage not in STAGE_NAMES:
        raise KeyError(f"Unknown stage {stage!r}; expected one of {', '.join(STAGE_NAMES)}")


def stage_default(stage: str, source: SourceImage):
    """Default options for one stage, derived from the current source where needed."""
    _check_stage(stage)
    if stage == 'resize':
        return ResizeOptions(width=source.width, height=source.height, maintain_aspect_ratio=True)
    if stage == 'compress':
        return CompressOptions()
    if stage == 'convert':
        return ConvertOptions(format=source.format)
    if stage == 'transform':
        return TransformOptions()
    return FilterOptions()


def default_options(source: SourceImage) -> PipelineOptions:
    return PipelineOptions(**{stage: stage_default(stage, source) for stage in STAGE_NAMES})


def reset_stage(options: PipelineOptions, stage: str, source: SourceImage) -> PipelineOptions:
    """Restore exactly one stage to its default, leaving the others untouched."""
    return options.replace(stage, stage_default(stage, source))
