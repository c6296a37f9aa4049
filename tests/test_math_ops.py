import math

import numpy as np
import pytest

from imgx import math_ops


def test_js_round_rounds_half_up():
    assert math_ops.js_round(2.5) == 3
    assert math_ops.js_round(3.5) == 4
    assert math_ops.js_round(-2.5) == -2


@pytest.mark.parametrize("width, height, expected", [
    (400, 0, (400, 300)),
    (0, 300, (400, 300)),
    (400, 400, (400, 300)),
    (1000, 300, (400, 300)),
])
def test_fit_dimensions_aspect_locked(width, height, expected):
    assert math_ops.fit_dimensions(800, 600, width, height, True) == expected


def test_fit_dimensions_derivation_is_symmetric():
    width, height = math_ops.fit_dimensions(1920, 1080, 640, 0, True)
    assert math_ops.fit_dimensions(1920, 1080, 0, height, True) == (width, height)


def test_fit_dimensions_unlocked_passes_through():
    assert math_ops.fit_dimensions(800, 600, 123, 45, False) == (123, 45)


def test_rotated_bounds_removes_float_noise():
    assert math_ops.rotated_bounds(100, 50, 90) == (50, 100)
    assert math_ops.rotated_bounds(100, 50, 180) == (100, 50)
    assert math_ops.rotated_bounds(100, 50, -270) == (50, 100)


def test_rotated_bounds_45_degrees():
    assert math_ops.rotated_bounds(100, 100, 45) == (142, 142)


def test_skewed_bounds():
    assert math_ops.skewed_bounds(100, 100, 45, 0) == (200, 100)
    assert math_ops.skewed_bounds(100, 100, -45, 0) == (200, 100)
    assert math_ops.skewed_bounds(100, 50, 0, 0) == (100, 50)


def test_rotation_affine_maps_output_center_to_input_center():
    a, b, c, d, e, f = math_ops.rotation_affine(100, 50, 112, 87, 30)
    x, y = 56.0, 43.5
    assert a * x + b * y + c == pytest.approx(50.0)
    assert d * x + e * y + f == pytest.approx(25.0)


def test_skew_affine_is_inverse_of_forward_shear():
    tan_x, tan_y = math.tan(math.radians(20)), math.tan(math.radians(-10))
    a, b, c, d, e, f = math_ops.skew_affine(20, -10)
    x, y = 30.0, 12.0
    xs, ys = x + y * tan_x, y + x * tan_y
    assert a * xs + b * ys + c == pytest.approx(x)
    assert d * xs + e * ys + f == pytest.approx(y)


def test_skew_affine_singular():
    assert math_ops.skew_affine(45, 45) is None


def test_color_kernels():
    rgb = np.array([[[1.0, 0.0, 0.0]]], dtype=np.float32)
    math_ops.apply_color_matrix_inplace(rgb, math_ops.grayscale_matrix(1.0))
    assert rgb[0, 0] == pytest.approx([0.2126, 0.2126, 0.2126], abs=1e-5)

    rgb = np.array([[[0.2, 0.5, 1.0]]], dtype=np.float32)
    math_ops.apply_invert_inplace(rgb, 1.0)
    assert rgb[0, 0] == pytest.approx([0.8, 0.5, 0.0], abs=1e-6)

    rgb = np.array([[[0.6, 0.5, 0.25]]], dtype=np.float32)
    math_ops.apply_contrast_inplace(rgb, 2.0)
    assert rgb[0, 0] == pytest.approx([0.7, 0.5, 0.0], abs=1e-6)

    rgb = np.array([[[0.6, 0.5, 0.25]]], dtype=np.float32)
    math_ops.apply_brightness_inplace(rgb, 2.0)
    assert rgb[0, 0] == pytest.approx([1.0, 1.0, 0.5], abs=1e-6)


def test_zero_amount_matrices_are_identity():
    assert np.allclose(math_ops.grayscale_matrix(0.0), np.eye(3))
    assert np.allclose(math_ops.sepia_matrix(0.0), np.eye(3))


def test_format_number():
    assert math_ops.format_number(1.0) == "1"
    assert math_ops.format_number(0.25) == "0.25"
