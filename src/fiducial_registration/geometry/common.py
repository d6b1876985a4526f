"""
Shared geometric primitives for registration.

- Closest point on a plane or a line
- Least-squares intersection of lines
- Point-to-line and point-to-plane distances

The projection and distance helpers broadcast: each argument may be a single
(3,) vector or an (N, 3) array, so the iterative solvers evaluate all
correspondences in one call.
"""

from __future__ import annotations

from typing import Iterable, Tuple, Union

import numpy as np

from ..errors import DegenerateGeometryError, InsufficientCorrespondencesError
from ..utils.logging import setup_logger
from .types import ZERO_NORM_EPSILON, Line, as_line

logger = setup_logger(__name__)

# Smallest eigenvalue (per line) of the summed projectors accepted as non-singular
SINGULAR_EPSILON = 1e-10


def _as_coords(values, name: str) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float64)
    if arr.ndim not in (1, 2) or arr.shape[-1] != 3:
        raise ValueError(f"{name} must have shape (3,) or (N, 3), got {arr.shape}")
    return arr


def _unit_rows(vectors, name: str) -> np.ndarray:
    arr = _as_coords(vectors, name)
    lengths = np.linalg.norm(arr, axis=-1, keepdims=True)
    if np.any(lengths < ZERO_NORM_EPSILON):
        raise DegenerateGeometryError(f"Cannot normalize zero-length {name}")
    return arr / lengths


def _scalar_or_array(values: np.ndarray) -> Union[float, np.ndarray]:
    return float(values) if values.ndim == 0 else values


def closest_point_on_plane(point, origin, normal) -> np.ndarray:
    """
    Compute the orthogonal projection of point(s) onto plane(s).

    Args:
        point: Query point(s), (3,) or (N, 3).
        origin: Any point on each plane, (3,) or (N, 3).
        normal: Plane normal(s), (3,) or (N, 3); normalized internally.

    Returns:
        Closest point(s) on the plane(s), broadcast shape of the inputs.

    Raises:
        DegenerateGeometryError: If a normal has zero length.
    """
    p = _as_coords(point, "point")
    o = _as_coords(origin, "plane origin")
    n = _unit_rows(normal, "plane normal")
    offset = np.sum((p - o) * n, axis=-1, keepdims=True)
    return p - offset * n


def closest_point_on_line(point, origin, direction) -> np.ndarray:
    """Orthogonal projection of point(s) onto line(s); broadcasts like ``closest_point_on_plane``."""
    p = _as_coords(point, "point")
    o = _as_coords(origin, "line origin")
    d = _unit_rows(direction, "line direction")
    along = np.sum((p - o) * d, axis=-1, keepdims=True)
    return o + along * d


def point_to_plane_distance(point, origin, normal) -> Union[float, np.ndarray]:
    """Unsigned distance from point(s) to plane(s); a float for a single pair."""
    p = _as_coords(point, "point")
    n = _unit_rows(normal, "plane normal")
    distances = np.abs(np.sum((p - _as_coords(origin, "plane origin")) * n, axis=-1))
    return _scalar_or_array(distances)


def point_to_line_distance(point, line_origin, line_direction) -> Union[float, np.ndarray]:
    """
    Perpendicular distance from 3D point(s) to infinite line(s).

    Uses |(p - a) x d| / |d|, so ``line_direction`` need not be unit length.

    Raises:
        DegenerateGeometryError: If a direction has zero length.
    """
    p = _as_coords(point, "point")
    a = _as_coords(line_origin, "line origin")
    d = _unit_rows(line_direction, "line direction")
    distances = np.linalg.norm(np.cross(p - a, d), axis=-1)
    return _scalar_or_array(distances)


def lines_intersection(lines: Iterable) -> Tuple[np.ndarray, float]:
    """
    Least-squares common intersection point of N lines.

    Follows Traa, "Least-Squares Intersection of Lines" (UIUC, 2013):

        R = sum_i (I - n_i @ n_i.T)
        q = sum_i (I - n_i @ n_i.T) @ a_i
        p = solve(R, q)

    where a_i and n_i are the origin and unit direction of the i-th line.

    A single line is a defined degenerate case: its origin is returned with a
    zero residual.

    Args:
        lines: Sequence of ``Line`` objects or ``(origin, direction)`` pairs.

    Returns:
        Tuple of (point, mean perpendicular distance from point to each line).

    Raises:
        InsufficientCorrespondencesError: If no lines are given.
        DegenerateGeometryError: If two or more lines are all parallel, which
            makes the summed projector singular.
    """
    line_list = [as_line(line) for line in lines]
    if not line_list:
        raise InsufficientCorrespondencesError("At least one line is required for an intersection")

    if len(line_list) == 1:
        # Every point of the line is an exact solution; report the origin
        return line_list[0].origin.copy(), 0.0

    R = np.zeros((3, 3))
    q = np.zeros(3)
    for line in line_list:
        n = line.unit_direction
        projector = np.eye(3) - np.outer(n, n)
        R += projector
        q += projector @ line.origin

    smallest = float(np.linalg.eigvalsh(R)[0])
    if smallest < SINGULAR_EPSILON * len(line_list):
        raise DegenerateGeometryError(
            f"Line configuration is degenerate (all {len(line_list)} lines parallel)"
        )

    point = np.linalg.solve(R, q)
    residual = mean_point_to_line_distance(point, line_list)
    logger.debug("Intersected %d lines; mean residual %.6g", len(line_list), residual)
    return point, residual


def mean_point_to_line_distance(points, lines: "list[Line]") -> float:
    """Mean perpendicular distance between paired points and lines (or one point and all lines)."""
    origins = np.array([line.origin for line in lines])
    directions = np.array([line.direction for line in lines])
    return float(np.mean(point_to_line_distance(points, origins, directions)))
