"""PDF transformation utilities for graphics operations."""

import math
from dataclasses import dataclass
from typing import Iterable, Sequence, Tuple

import numpy as np

MATRIX_EPSILON = 1e-9
IDENTITY_MATRIX: Tuple[float, ...] = (1.0, 0.0, 0.0, 1.0, 0.0, 0.0)
UNIT_SQUARE = [(0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0)]

Matrix = Tuple[float, float, float, float, float, float]


@dataclass
class Transformation:
    """Holds decomposed transformation matrix values."""
    rotation: float
    scaleX: float
    scaleY: float
    skewX: float
    skewY: float
    translateX: float
    translateY: float


@dataclass(frozen=True)
class Viewport:
    """
    Page viewport at scale 1.0.

    `transform` maps PDF user space onto page pixels with the origin at the
    top-left corner and Y growing downward. `width`/`height` are the
    displayed dimensions, so a page rotated by 90 or 270 degrees reports its
    MediaBox dimensions swapped.
    """
    width: float
    height: float
    transform: Matrix
    rotation: int = 0
    view_box: Tuple[float, float, float, float] = (0.0, 0.0, 612.0, 792.0)

    def to_page(self, x: float, y: float) -> Tuple[float, float]:
        """Map a user-space point into top-down page pixels."""
        return apply_matrix_transform(x, y, self.transform)


# --- Core Transformation Functions ---
def multiply_matrices(m1: Sequence[float], m0: Sequence[float]) -> Matrix:
    """Concatenate two PDF matrices: apply `m1` first, then `m0`."""
    a1, b1, c1, d1, e1, f1 = m1
    a0, b0, c0, d0, e0, f0 = m0
    return (
        a0 * a1 + c0 * b1,
        b0 * a1 + d0 * b1,
        a0 * c1 + c0 * d1,
        b0 * c1 + d0 * d1,
        a0 * e1 + c0 * f1 + e0,
        b0 * e1 + d0 * f1 + f0,
    )


def invert_matrix(m: Sequence[float]) -> Matrix:
    """Invert an affine PDF matrix.

    Raises:
        ValueError: If the matrix is singular.
    """
    a, b, c, d, e, f = m
    det = a * d - b * c
    if abs(det) < MATRIX_EPSILON:
        raise ValueError(f"Matrix {tuple(m)} is not invertible")
    return (
        d / det,
        -b / det,
        -c / det,
        a / det,
        (c * f - d * e) / det,
        (b * e - a * f) / det,
    )


def is_finite_matrix(m: Iterable[float]) -> bool:
    return all(math.isfinite(v) for v in m)


def decompose_ctm(ctm: Sequence[float]) -> Transformation:
    """Decompose CTM matrix into transformation components.

    Args:
        ctm: 6-element CTM matrix [a, b, c, d, e, f]

    Returns:
        Transformation with rotation, scale, skew, and translation.
    """
    a, b, c, d, e, f = ctm

    rotation_degrees = float(np.degrees(np.arctan2(b, a)))

    scaleX = float(np.sqrt(a * a + b * b))
    scaleY = float(np.sqrt(c * c + d * d))

    if abs(scaleX) > MATRIX_EPSILON:
        skewX_degrees = float(np.degrees(np.arctan((a * c + b * d) / (a * a + b * b))))
    else:
        skewX_degrees = 0.0

    if abs(scaleY) > MATRIX_EPSILON:
        skewY_degrees = float(np.degrees(np.arctan((a * c + b * d) / (c * c + d * d))))
    else:
        skewY_degrees = 0.0

    # Reflection flips the horizontal scale
    if a * d - b * c < 0:
        scaleX = -scaleX

    return Transformation(
        rotation=rotation_degrees,
        scaleX=scaleX,
        scaleY=scaleY,
        skewX=skewX_degrees,
        skewY=skewY_degrees,
        translateX=e,
        translateY=f
    )


def rotation_degrees(matrix: Sequence[float]) -> int:
    """Rotation of a matrix's X axis, rounded to the nearest degree."""
    a, b = matrix[0], matrix[1]
    return int(round(math.degrees(math.atan2(b, a))))


def apply_matrix_transform(x: float, y: float, ctm: Sequence[float]) -> Tuple[float, float]:
    """Apply CTM transformation to a point.

    Args:
        x, y: Point coordinates
        ctm: 6-element CTM matrix [a, b, c, d, e, f]

    Returns:
        Transformed (x, y) coordinates
    """
    a, b, c, d, e, f = ctm
    tx = a * x + c * y + e
    ty = b * x + d * y + f
    return tx, ty


def transform_bbox(
    points: Iterable[Tuple[float, float]], matrix: Sequence[float]
) -> Tuple[float, float, float, float]:
    """Axis-aligned bounds (x, y, width, height) of points mapped by `matrix`."""
    transformed = [apply_matrix_transform(x, y, matrix) for x, y in points]
    xs = [p[0] for p in transformed]
    ys = [p[1] for p in transformed]
    min_x, max_x = min(xs), max(xs)
    min_y, max_y = min(ys), max(ys)
    return min_x, min_y, max_x - min_x, max_y - min_y


def calculate_image_bbox(ctm: Sequence[float], viewport: Viewport) -> Tuple[float, float, float, float]:
    """Calculate image bounding box in top-down page pixels.

    Images are painted on the unit square, so the placed rectangle is the
    unit square transformed by the CTM in effect at paint time followed by
    the viewport transform.

    Args:
        ctm: Current Transformation Matrix [a, b, c, d, e, f]
        viewport: Page viewport

    Returns:
        Tuple of (x, y, width, height) with Y growing downward
    """
    return transform_bbox(UNIT_SQUARE, multiply_matrices(ctm, viewport.transform))


def compute_viewport(view_box: Sequence[float], rotation: int = 0) -> Viewport:
    """Build the scale-1 viewport for a page box and /Rotate value.

    Follows the viewer convention used by browser PDF renderers: the page
    is rotated clockwise by `rotation` degrees about its centre and the
    result is translated so the visible area starts at (0, 0).
    """
    x0, y0, x1, y1 = (float(v) for v in view_box)
    x0, x1 = min(x0, x1), max(x0, x1)
    y0, y1 = min(y0, y1), max(y0, y1)
    rotation = int(rotation) % 360
    if rotation % 90:
        rotation = 0

    center_x = (x0 + x1) / 2
    center_y = (y0 + y1) / 2

    if rotation == 90:
        A, B, C, D = 0.0, 1.0, 1.0, 0.0
    elif rotation == 180:
        A, B, C, D = -1.0, 0.0, 0.0, 1.0
    elif rotation == 270:
        A, B, C, D = 0.0, -1.0, -1.0, 0.0
    else:
        A, B, C, D = 1.0, 0.0, 0.0, -1.0

    if A == 0:
        offset_x = abs(center_y - y0)
        offset_y = abs(center_x - x0)
        width, height = y1 - y0, x1 - x0
    else:
        offset_x = abs(center_x - x0)
        offset_y = abs(center_y - y0)
        width, height = x1 - x0, y1 - y0

    transform = (
        A, B, C, D,
        offset_x - A * center_x - C * center_y,
        offset_y - B * center_x - D * center_y,
    )
    return Viewport(
        width=width,
        height=height,
        transform=transform,
        rotation=rotation,
        view_box=(x0, y0, x1, y1),
    )


def rotate_about(angle_degrees: float, cx: float, cy: float) -> Matrix:
    """Matrix rotating counter-clockwise by `angle_degrees` about (cx, cy)."""
    theta = math.radians(angle_degrees)
    cos_t, sin_t = math.cos(theta), math.sin(theta)
    return (
        cos_t, sin_t, -sin_t, cos_t,
        cx - cos_t * cx + sin_t * cy,
        cy - sin_t * cx - cos_t * cy,
    )
