"""
Landmark Registration

Closed-form least-squares fit of a rigid, similarity or affine transform
between two corresponding 3D point sets. This is the inner solve re-run on
every iteration of the point-to-line and point-to-plane registrations.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Tuple, Union

import numpy as np

from ..errors import (
    CorrespondenceMismatchError,
    DegenerateGeometryError,
    InsufficientCorrespondencesError,
)
from ..geometry.transforms import apply_transform, format_matrix
from ..geometry.types import as_points
from ..utils.logging import setup_logger

logger = setup_logger(__name__)

MIN_LANDMARKS = 3

# Relative singular value below which the centered point set is treated as collinear
COLLINEAR_EPSILON = 1e-9


class RegistrationMode(str, Enum):
    RIGID = "rigid"
    SIMILARITY = "similarity"
    AFFINE = "affine"


def estimate_transform(
    source,
    target,
    mode: Union[RegistrationMode, str] = RegistrationMode.SIMILARITY,
) -> Tuple[np.ndarray, float]:
    """
    Estimate the transform mapping ``source`` onto ``target`` in the least-squares sense.

    Rigid and similarity modes use the SVD of the cross-covariance matrix
    H = sum_i (y_i - y_c)(x_i - x_c)^T with an explicit reflection correction,
    so the rotation always has determinant +1. Similarity mode adds a uniform
    scale (Umeyama). Affine mode solves the unconstrained linear map.

    Collinear inputs do not raise: the rotation about the common axis is
    undetermined and the result is a best-effort fit. Coincident targets in
    similarity mode give scale 0: the linear part is zero and every source
    point maps onto the target centroid.

    Args:
        source: Source points (N x 3), a list of triples or a flat buffer.
        target: Corresponding target points, same layout and length.
        mode: RIGID, SIMILARITY or AFFINE.

    Returns:
        Tuple of (transformation_matrix (4 x 4), mean residual distance).

    Raises:
        CorrespondenceMismatchError: If the point sets differ in length.
        InsufficientCorrespondencesError: If fewer than 3 pairs are given.
        DegenerateGeometryError: If the source spread is zero or the fit is not finite.
    """
    mode = RegistrationMode(mode)
    src = as_points(source, "source landmarks")
    tgt = as_points(target, "target landmarks")

    if len(src) != len(tgt):
        raise CorrespondenceMismatchError(len(src), len(tgt), "target landmark")
    if len(src) < MIN_LANDMARKS:
        raise InsufficientCorrespondencesError(
            f"Landmark registration needs at least {MIN_LANDMARKS} point pairs, got {len(src)}"
        )

    if mode is RegistrationMode.AFFINE:
        transform = _affine_transform(src, tgt)
    else:
        transform = _orthogonal_transform(src, tgt, with_scale=mode is RegistrationMode.SIMILARITY)

    if not np.all(np.isfinite(transform)):
        raise DegenerateGeometryError("Landmark registration produced a non-finite transform")

    residuals = np.linalg.norm(apply_transform(src, transform) - tgt, axis=1)
    error = float(np.mean(residuals))
    return transform, error


def _orthogonal_transform(src: np.ndarray, tgt: np.ndarray, *, with_scale: bool) -> np.ndarray:
    # Center the point sets
    src_centroid = np.mean(src, axis=0)
    tgt_centroid = np.mean(tgt, axis=0)
    src_centered = src - src_centroid
    tgt_centered = tgt - tgt_centroid

    src_spread = float(np.sum(src_centered ** 2))
    if src_spread <= 0.0:
        raise DegenerateGeometryError("Source landmarks are coincident; rotation is undefined")

    # Cross-covariance matrix, target x source
    H = tgt_centered.T @ src_centered
    U, S, Vt = np.linalg.svd(H)

    if S[0] > 0 and S[1] <= COLLINEAR_EPSILON * S[0]:
        logger.warning(
            "Landmarks are (nearly) collinear; rotation about their common axis is "
            "undetermined and the fit may be inaccurate."
        )

    # Reflection correction: flip the axis of the smallest singular value
    D = np.ones(3)
    if np.linalg.det(U @ Vt) < 0:
        logger.debug("Closed-form solution contains a reflection; correcting to a proper rotation.")
        D[-1] = -1.0
    R = U @ np.diag(D) @ Vt

    scale = 1.0
    if with_scale:
        # sum(S * D) >= S[1] >= 0 since S is sorted descending
        scale = max(float(np.sum(S * D)) / src_spread, 0.0)
        if scale == 0.0:
            logger.warning("Target landmarks are coincident; similarity fit has zero scale.")

    transform = np.eye(4)
    transform[:3, :3] = scale * R
    transform[:3, 3] = tgt_centroid - scale * (R @ src_centroid)
    return transform


def _affine_transform(src: np.ndarray, tgt: np.ndarray) -> np.ndarray:
    homogeneous = np.column_stack([src, np.ones(len(src))])
    solution, _, rank, _ = np.linalg.lstsq(homogeneous, tgt, rcond=None)
    if rank < 4:
        logger.warning(
            "Affine landmark system is rank deficient (rank %d < 4); returning minimum-norm fit.",
            rank,
        )
    transform = np.eye(4)
    transform[:3, :3] = solution[:3].T
    transform[:3, 3] = solution[3]
    return transform


def average_detection_frames(frames) -> np.ndarray:
    """
    Average repeated detections of the same landmarks.

    Args:
        frames: Sequence of frames, each an (N x 3) array of the same N landmarks.

    Returns:
        Per-landmark mean position (N x 3).
    """
    stacked = np.asarray(frames, dtype=np.float64)
    if stacked.ndim != 3 or stacked.shape[2] != 3 or stacked.shape[0] == 0:
        raise ValueError(f"Expected detection frames of shape (F, N, 3), got {stacked.shape}")
    return stacked.mean(axis=0)


class LandmarkRegistration:
    """
    Stateful wrapper around ``estimate_transform``.

    Source and target landmarks are set independently and may be supplied as
    (N x 3) arrays, lists of triples, flat coordinate buffers or lists of
    detection frames (F x N x 3, averaged per landmark).
    """

    def __init__(self, mode: Union[RegistrationMode, str] = RegistrationMode.SIMILARITY):
        self._mode = RegistrationMode(mode)
        self._source = np.empty((0, 3))
        self._target = np.empty((0, 3))
        self._error: Optional[float] = None

    @classmethod
    def from_config(cls, config) -> "LandmarkRegistration":
        """Create from a ``LandmarkConfig``."""
        return cls(mode=config.mode)

    # ------------------------ Landmarks ------------------------
    def set_source_landmarks(self, landmarks) -> None:
        self._source = self._coerce(landmarks, "source landmarks")

    def set_target_landmarks(self, landmarks) -> None:
        self._target = self._coerce(landmarks, "target landmarks")

    @property
    def source_landmarks(self) -> np.ndarray:
        return self._source.copy()

    @property
    def target_landmarks(self) -> np.ndarray:
        return self._target.copy()

    @staticmethod
    def _coerce(landmarks, name: str) -> np.ndarray:
        arr = np.asarray(landmarks, dtype=np.float64)
        if arr.ndim == 3:
            return average_detection_frames(arr)
        return as_points(arr, name)

    # ------------------------ Mode ------------------------
    @property
    def mode(self) -> RegistrationMode:
        return self._mode

    @mode.setter
    def mode(self, value: Union[RegistrationMode, str]) -> None:
        self._mode = RegistrationMode(value)

    def set_mode_to_rigid(self) -> None:
        self._mode = RegistrationMode.RIGID

    def set_mode_to_similarity(self) -> None:
        self._mode = RegistrationMode.SIMILARITY

    def set_mode_to_affine(self) -> None:
        self._mode = RegistrationMode.AFFINE

    # ------------------------ Solve ------------------------
    def inverse(self) -> None:
        """Swap source and target so the next computation yields the inverse mapping."""
        self._source, self._target = self._target, self._source
        self._error = None

    @property
    def error(self) -> Optional[float]:
        """Mean residual of the last computation, or None before the first one."""
        return self._error

    def compute(self) -> np.ndarray:
        """
        Compute the source -> target transform for the current landmarks.

        Returns:
            Transformation matrix (4 x 4).
        """
        transform, error = estimate_transform(self._source, self._target, self._mode)
        self._error = error
        logger.debug(
            "Landmark registration (%s, %d points): error=%.6g, T=%s",
            self._mode.value,
            len(self._source),
            error,
            format_matrix(transform),
        )
        return transform
