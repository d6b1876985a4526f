"""
Homogeneous transform helpers.

All transforms are 4x4 float64 arrays in the column-vector convention:

    p' = T[:3, :3] @ p + T[:3, 3]

i.e. the translation lives in the last column and the bottom row is
[0, 0, 0, 1]. Point sets are (N, 3) arrays, one point per row.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from ..errors import DegenerateGeometryError
from .types import as_point, normalize

# Legacy failure value: identity scaled by zero
SENTINEL_TRANSFORM = np.zeros((4, 4))


def make_transform(
    rotation: Optional[np.ndarray] = None,
    translation: Optional[np.ndarray] = None,
    scale: float = 1.0,
) -> np.ndarray:
    """
    Assemble a 4x4 transform from a 3x3 linear part, translation and uniform scale.

    Args:
        rotation: 3x3 matrix (identity if None).
        translation: 3-vector (zero if None).
        scale: Uniform factor applied to the linear part.

    Returns:
        Transformation matrix (4 x 4).
    """
    T = np.eye(4)
    if rotation is not None:
        T[:3, :3] = np.asarray(rotation, dtype=np.float64).reshape(3, 3)
    T[:3, :3] *= scale
    if translation is not None:
        T[:3, 3] = as_point(translation, "translation")
    return T


def split_transform(transform: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Return copies of the (3x3 linear part, translation) of a 4x4 transform."""
    T = _as_transform(transform)
    return T[:3, :3].copy(), T[:3, 3].copy()


def apply_transform(points: np.ndarray, transform: np.ndarray) -> np.ndarray:
    """
    Apply a transformation matrix to a point or a set of points.

    Args:
        points: Single point (3,) or point cloud (N x 3).
        transform: Transformation matrix (4 x 4).

    Returns:
        Transformed point(s), same shape as the input.
    """
    T = _as_transform(transform)
    pts = np.asarray(points, dtype=np.float64)
    if pts.size == 0:
        return pts.reshape(-1, 3)
    return pts @ T[:3, :3].T + T[:3, 3]


def transform_scale(transform: np.ndarray) -> float:
    """Uniform scale of the linear part (cube root of the absolute determinant)."""
    T = _as_transform(transform)
    return float(np.cbrt(abs(np.linalg.det(T[:3, :3]))))


def is_proper_rotation(matrix: np.ndarray, atol: float = 1e-6) -> bool:
    """True if ``matrix`` is orthonormal with determinant +1."""
    R = np.asarray(matrix, dtype=np.float64)
    if R.shape != (3, 3):
        return False
    return bool(
        np.allclose(R.T @ R, np.eye(3), atol=atol)
        and abs(np.linalg.det(R) - 1.0) <= atol
    )


def invert_transform(transform: np.ndarray) -> np.ndarray:
    """
    Invert a rigid, similarity or affine transform.

    Rigid and similarity transforms (linear part equal to s * R) are inverted in
    closed form: the linear part becomes R.T / s and the translation -A^-1 @ t.
    Anything else goes through a general 3x3 inverse.

    Raises:
        DegenerateGeometryError: If the linear part is singular.
    """
    T = _as_transform(transform)
    A = T[:3, :3]
    t = T[:3, 3]

    gram = A.T @ A
    s2 = float(np.trace(gram)) / 3.0
    if s2 < 1e-24:
        raise DegenerateGeometryError("Cannot invert a transform with a zero linear part")

    if np.allclose(gram, s2 * np.eye(3), atol=1e-9 * max(1.0, s2)):
        A_inv = A.T / s2
    else:
        try:
            A_inv = np.linalg.inv(A)
        except np.linalg.LinAlgError as err:
            raise DegenerateGeometryError("Transform linear part is singular") from err

    inverse = np.eye(4)
    inverse[:3, :3] = A_inv
    inverse[:3, 3] = -A_inv @ t
    return inverse


def rotation_matrix(axis, angle_deg: float) -> np.ndarray:
    """Rotation matrix for a right-handed rotation of ``angle_deg`` about ``axis``."""
    unit_axis = normalize(as_point(axis, "axis"), "rotation axis")
    return Rotation.from_rotvec(np.deg2rad(angle_deg) * unit_axis).as_matrix()


def rotation_to_quaternion(matrix: np.ndarray) -> np.ndarray:
    """
    Unit quaternion (x, y, z, w) of the rotation in a rigid or similarity linear part.

    The uniform scale is divided out first. The sign is fixed so that w >= 0.
    """
    A = np.asarray(matrix, dtype=np.float64)
    if A.shape == (4, 4):
        A = A[:3, :3]
    scale = float(np.cbrt(np.linalg.det(A)))
    if scale <= 0:
        raise DegenerateGeometryError("Linear part is not a proper (scaled) rotation")
    quat = Rotation.from_matrix(A / scale).as_quat()
    if quat[3] < 0:
        quat = -quat
    return quat


def matrix_from_array(values) -> np.ndarray:
    """
    Build a 4x4 transform from common flat or nested layouts.

    Accepted inputs:
        - 16 values or a 4x4 nested sequence, row-major
        - 9 values or a 3x3 nested sequence (linear part only, zero translation)

    Raises:
        ValueError: For any other size.
    """
    arr = np.asarray(values, dtype=np.float64)
    if arr.size == 16:
        return arr.reshape(4, 4).copy()
    if arr.size == 9:
        return make_transform(rotation=arr.reshape(3, 3))
    raise ValueError(f"Expected 9 or 16 matrix entries, got {arr.size}")


def format_matrix(transform: np.ndarray, precision: int = 6) -> str:
    """Single-line textual form of a 4x4 matrix, rows separated by wide gaps."""
    T = _as_transform(transform)
    rows = [" ".join(f"{v:.{precision}g}" for v in row) for row in T]
    return "    ".join(rows)


def is_sentinel(transform: np.ndarray) -> bool:
    """True for the legacy all-zero failure transform."""
    return bool(np.array_equal(np.asarray(transform), SENTINEL_TRANSFORM))


def _as_transform(transform: np.ndarray) -> np.ndarray:
    T = np.asarray(transform, dtype=np.float64)
    if T.shape != (4, 4):
        raise ValueError(f"Transform must be 4x4 matrix, got {T.shape}")
    return T
