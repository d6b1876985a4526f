"""
Geometric primitives used as registration correspondences.

Points and vectors are plain ``(3,)`` float64 arrays. Lines and planes are
small frozen dataclasses pairing an origin with a direction (or normal); the
direction is stored as supplied and normalized on demand.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np

from ..errors import DegenerateGeometryError

ArrayLike3 = Union[Sequence[float], np.ndarray]

# Below this magnitude a direction or normal is treated as zero
ZERO_NORM_EPSILON = 1e-12


def as_point(value: ArrayLike3, name: str = "point") -> np.ndarray:
    """Convert a coordinate triple to a ``(3,)`` float64 array."""
    arr = np.asarray(value, dtype=np.float64).reshape(-1)
    if arr.shape != (3,):
        raise ValueError(f"{name} must have exactly 3 coordinates, got shape {np.shape(value)}")
    return arr


def as_points(values, name: str = "points") -> np.ndarray:
    """
    Convert a point collection to an ``(N, 3)`` float64 array.

    Accepts an ``(N, 3)`` array, a sequence of triples, or a flat coordinate
    buffer of length ``3N`` (x0, y0, z0, x1, ...).
    """
    arr = np.asarray(values, dtype=np.float64)
    if arr.ndim == 1:
        if arr.size % 3 != 0:
            raise ValueError(f"Flat {name} buffer length must be a multiple of 3, got {arr.size}")
        arr = arr.reshape(-1, 3)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise ValueError(f"Expected {name} of shape (N, 3), got {arr.shape}")
    return arr


def normalize(vector: np.ndarray, name: str = "vector") -> np.ndarray:
    """Return ``vector`` scaled to unit length; zero vectors are rejected."""
    length = float(np.linalg.norm(vector))
    if length < ZERO_NORM_EPSILON:
        raise DegenerateGeometryError(f"Cannot normalize zero-length {name}")
    return vector / length


@dataclass(frozen=True, eq=False)
class Line:
    """A 3D line through ``origin`` along ``direction`` (not necessarily unit)."""

    origin: np.ndarray
    direction: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "origin", as_point(self.origin, "line origin"))
        object.__setattr__(self, "direction", as_point(self.direction, "line direction"))

    @property
    def unit_direction(self) -> np.ndarray:
        return normalize(self.direction, "line direction")

    def point_at(self, distance: float) -> np.ndarray:
        """Point ``distance`` units along the line from its origin."""
        return self.origin + distance * self.unit_direction


@dataclass(frozen=True, eq=False)
class Plane:
    """A 3D plane through ``origin`` with ``normal`` (not necessarily unit)."""

    origin: np.ndarray
    normal: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "origin", as_point(self.origin, "plane origin"))
        object.__setattr__(self, "normal", as_point(self.normal, "plane normal"))

    @property
    def unit_normal(self) -> np.ndarray:
        return normalize(self.normal, "plane normal")


def as_line(value) -> Line:
    """Accept a ``Line`` or an ``(origin, direction)`` pair."""
    if isinstance(value, Line):
        return value
    origin, direction = value
    return Line(origin, direction)


def as_plane(value) -> Plane:
    """Accept a ``Plane`` or an ``(origin, normal)`` pair."""
    if isinstance(value, Plane):
        return value
    origin, normal = value
    return Plane(origin, normal)
