"""
Geometry Module

Points, lines and planes used as registration correspondences, homogeneous
transform helpers, and shared geometric primitives.
"""

from .types import Line, Plane, as_point, as_points, as_line, as_plane, normalize
from .common import (
    closest_point_on_line,
    closest_point_on_plane,
    lines_intersection,
    mean_point_to_line_distance,
    point_to_line_distance,
    point_to_plane_distance,
)
from .transforms import (
    SENTINEL_TRANSFORM,
    apply_transform,
    format_matrix,
    invert_transform,
    is_proper_rotation,
    is_sentinel,
    make_transform,
    matrix_from_array,
    rotation_matrix,
    rotation_to_quaternion,
    split_transform,
    transform_scale,
)

__all__ = [
    "Line",
    "Plane",
    "as_point",
    "as_points",
    "as_line",
    "as_plane",
    "normalize",
    "closest_point_on_line",
    "closest_point_on_plane",
    "lines_intersection",
    "mean_point_to_line_distance",
    "point_to_line_distance",
    "point_to_plane_distance",
    "SENTINEL_TRANSFORM",
    "apply_transform",
    "format_matrix",
    "invert_transform",
    "is_proper_rotation",
    "is_sentinel",
    "make_transform",
    "matrix_from_array",
    "rotation_matrix",
    "rotation_to_quaternion",
    "split_transform",
    "transform_scale",
]
