import math
from typing import Optional, Tuple

import numpy as np

# =========================================================
# Scalar helpers
# =========================================================

# Bounds are rounded to this many decimals before ceil() so that float noise
# from cos/sin/tan of exact right angles (cos(pi/2) = 6.1e-17) does not add a
# pixel column.
_BOUNDS_DECIMALS = 9


def js_round(value: float) -> int:
    """Round half up, like JavaScript Math.round (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def _ceil_bounds(value: float) -> int:
    return int(math.ceil(round(value, _BOUNDS_DECIMALS)))


def format_number(value: float) -> str:
    """Shortest human form of a number: 1.0 -> '1', 0.25 -> '0.25'."""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


# =========================================================
# Geometry
# =========================================================

def fit_dimensions(
    native_width: int,
    native_height: int,
    width: int,
    height: int,
    maintain_aspect_ratio: bool,
) -> Tuple[int, int]:
    """
    Target size for the resize stage.

    With aspect-lock a zero dimension is derived from the other one; when both
    are given they form a bounding box and the image is fitted inside it.
    """
    if not maintain_aspect_ratio or native_width <= 0 or native_height <= 0:
        return width, height

    aspect_ratio = native_width / native_height
    if width and not height:
        height = js_round(width / aspect_ratio)
    elif height and not width:
        width = js_round(height * aspect_ratio)
    elif width and height:
        target_ratio = width / height
        if aspect_ratio > target_ratio:
            height = js_round(width / aspect_ratio)
        else:
            width = js_round(height * aspect_ratio)
    return width, height


def rotated_bounds(width: int, height: int, angle: float) -> Tuple[int, int]:
    """Canvas size that holds a width x height image rotated by `angle` degrees."""
    rad = math.radians(angle)
    cos = abs(math.cos(rad))
    sin = abs(math.sin(rad))
    return (
        _ceil_bounds(width * cos + height * sin),
        _ceil_bounds(width * sin + height * cos),
    )


def skewed_bounds(width: int, height: int, skew_x: float, skew_y: float) -> Tuple[int, int]:
    tan_x = math.tan(math.radians(skew_x))
    tan_y = math.tan(math.radians(skew_y))
    return (
        _ceil_bounds(width + abs(height * tan_x)),
        _ceil_bounds(height + abs(width * tan_y)),
    )


def rotation_affine(
    width: int, height: int, new_width: int, new_height: int, angle: float
) -> Tuple[float, float, float, float, float, float]:
    """
    Inverse affine coefficients (output -> input) for PIL's Image.transform.

    Forward map: translate to the new canvas center, rotate clockwise by
    `angle` (y axis points down), draw the source centered.
    """
    rad = math.radians(angle)
    cos = math.cos(rad)
    sin = math.sin(rad)
    cx_out, cy_out = new_width / 2.0, new_height / 2.0
    cx_in, cy_in = width / 2.0, height / 2.0
    return (
        cos, sin, cx_in - cos * cx_out - sin * cy_out,
        -sin, cos, cy_in + sin * cx_out - cos * cy_out,
    )


def skew_affine(skew_x: float, skew_y: float) -> Optional[Tuple[float, float, float, float, float, float]]:
    """
    Inverse of x' = x + y*tan(sx), y' = y + x*tan(sy), anchored at the top-left.

    Returns None when the shear is singular (tan(sx) * tan(sy) == 1) and the
    source collapses onto a line.
    """
    tan_x = math.tan(math.radians(skew_x))
    tan_y = math.tan(math.radians(skew_y))
    det = 1.0 - tan_x * tan_y
    if abs(det) < 1e-12:
        return None
    return (
        1.0 / det, -tan_x / det, 0.0,
        -tan_y / det, 1.0 / det, 0.0,
    )


# =========================================================
# Color kernels (float32 RGB in [0, 1], modified in place)
# =========================================================

def grayscale_matrix(amount: float) -> np.ndarray:
    """CSS Filter Effects grayscale() matrix."""
    a = 1.0 - min(max(amount, 0.0), 1.0)
    return np.array([
        [0.2126 + 0.7874 * a, 0.7152 - 0.7152 * a, 0.0722 - 0.0722 * a],
        [0.2126 - 0.2126 * a, 0.7152 + 0.2848 * a, 0.0722 - 0.0722 * a],
        [0.2126 - 0.2126 * a, 0.7152 - 0.7152 * a, 0.0722 + 0.9278 * a],
    ], dtype=np.float32)


def sepia_matrix(amount: float) -> np.ndarray:
    """CSS Filter Effects sepia() matrix."""
    a = 1.0 - min(max(amount, 0.0), 1.0)
    return np.array([
        [0.393 + 0.607 * a, 0.769 - 0.769 * a, 0.189 - 0.189 * a],
        [0.349 - 0.349 * a, 0.686 + 0.314 * a, 0.168 - 0.168 * a],
        [0.272 - 0.272 * a, 0.534 - 0.534 * a, 0.131 + 0.869 * a],
    ], dtype=np.float32)


def apply_color_matrix_inplace(rgb: np.ndarray, matrix: np.ndarray):
    h, w, _ = rgb.shape
    flat = rgb.reshape(h * w, 3)
    flat[:] = flat @ matrix.T
    np.clip(rgb, 0.0, 1.0, out=rgb)


def apply_brightness_inplace(rgb: np.ndarray, amount: float):
    rgb *= np.float32(amount)
    np.clip(rgb, 0.0, 1.0, out=rgb)


def apply_contrast_inplace(rgb: np.ndarray, amount: float):
    rgb -= np.float32(0.5)
    rgb *= np.float32(amount)
    rgb += np.float32(0.5)
    np.clip(rgb, 0.0, 1.0, out=rgb)


def apply_invert_inplace(rgb: np.ndarray, amount: float):
    a = np.float32(min(max(amount, 0.0), 1.0))
    # a * (1 - c) + (1 - a) * c == a + c * (1 - 2a)
    rgb *= np.float32(1.0) - np.float32(2.0) * a
    rgb += a
    np.clip(rgb, 0.0, 1.0, out=rgb)
