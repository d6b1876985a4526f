"""
Point-to-Plane Registration

Iteratively solves for the rigid transform T that brings each source point x_i
onto its corresponding plane (o_i, n_i), re-solving a closed-form rigid
landmark registration against the closest points on the planes.
"""

from __future__ import annotations

from typing import Optional
import threading
import time

import numpy as np

from ..errors import ConvergenceError, DegenerateGeometryError
from ..geometry.transforms import apply_transform, format_matrix
from ..geometry.common import closest_point_on_plane, point_to_plane_distance
from ..geometry.types import Plane, as_plane
from ..utils.logging import setup_logger
from .landmark_registration import RegistrationMode, estimate_transform
from .session import CorrespondenceSession, RegistrationResult

logger = setup_logger(__name__)

# Initial displacement set, far from any converged state
_INITIAL_DISPLACEMENT = 1000.0

# Rotation (3) plus translation (3)
_RIGID_DOF = 6


class PointToPlaneRegistration(CorrespondenceSession):
    """
    ICP-style point-to-plane registration.

    The iteration count is capped; reaching the cap without the displacement
    change dropping to ``tolerance`` is a failure, never a best-effort result.
    """

    target_kind = "plane"

    DEFAULT_TOLERANCE = 1e-4
    DEFAULT_MAX_ITERATIONS = 2000
    DEFAULT_RANK_TOLERANCE = 1e-6

    def __init__(
        self,
        tolerance: float = DEFAULT_TOLERANCE,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        rank_tolerance: float = DEFAULT_RANK_TOLERANCE,
    ):
        """
        Initialize point-to-plane registration parameters.

        Args:
            tolerance: Convergence threshold on the change in displacements.
                Restored by ``reset()``.
            max_iterations: Iteration cap.
            rank_tolerance: Relative singular value of the linearized
                point-to-plane system below which the plane set is rejected as
                unable to fix all six degrees of freedom.
        """
        super().__init__()
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")
        self._default_tolerance = float(tolerance)
        self.tolerance = tolerance
        self.max_iterations = int(max_iterations)
        self.rank_tolerance = float(rank_tolerance)

    @classmethod
    def from_config(cls, config) -> "PointToPlaneRegistration":
        """Create from a ``PointToPlaneConfig``."""
        return cls(
            tolerance=config.tolerance,
            max_iterations=config.max_iterations,
            rank_tolerance=config.rank_tolerance,
        )

    @property
    def tolerance(self) -> float:
        return self._tolerance

    @tolerance.setter
    def tolerance(self, value: float) -> None:
        if value <= 0:
            raise ValueError(f"tolerance must be positive, got {value}")
        self._tolerance = float(value)

    # ------------------------ Accumulation ------------------------
    def add_plane(self, plane, normal=None) -> None:
        """Add a target plane, either a ``Plane``/``(origin, normal)`` pair or origin plus normal."""
        if normal is not None:
            plane = Plane(plane, normal)
        self._add_target(as_plane(plane))

    def add_correspondence(self, point, plane) -> None:
        """Add a point and its plane together, keeping the lists paired."""
        self.add_point(point)
        self.add_plane(plane)

    @property
    def planes(self) -> "list[Plane]":
        return list(self._targets)

    def reset(self) -> None:
        """Discard all correspondences and restore the default tolerance."""
        super().reset()
        self._tolerance = self._default_tolerance

    # ------------------------ Solve ------------------------
    def compute(self, cancel_event: Optional[threading.Event] = None) -> RegistrationResult:
        """
        Register the accumulated points to their planes.

        Args:
            cancel_event: Optional event checked once per iteration.

        Returns:
            RegistrationResult with the rigid source -> plane-frame transform
            and the mean point-to-plane distance after registration.

        Raises:
            CorrespondenceMismatchError: Point and plane counts differ.
            InsufficientCorrespondencesError: No correspondences.
            DegenerateGeometryError: Zero normal, fewer than six pairs, normals
                that do not span 3D (e.g. all parallel), or a solution that
                leaves a rigid motion free.
            ConvergenceError: ``max_iterations`` reached without convergence.
            RegistrationCancelled: ``cancel_event`` was set.
        """
        self._validate()

        X = self.points
        planes = self.planes
        origins = np.array([plane.origin for plane in planes])
        normals = np.array([plane.unit_normal for plane in planes])

        self._check_normals(normals)

        logger.info("Starting point-to-plane registration with %d correspondences.", len(X))
        start = time.time()

        transform = np.eye(4)
        moved = X.copy()
        previous = np.full_like(X, _INITIAL_DISPLACEMENT)
        residual = float("inf")
        converged = False
        iteration = 0

        for iteration in range(1, self.max_iterations + 1):
            self._check_cancel(cancel_event, iteration)

            targets = closest_point_on_plane(moved, origins, normals)

            transform, _ = estimate_transform(X, targets, RegistrationMode.RIGID)
            moved = apply_transform(X, transform)

            displacement = targets - moved
            residual = float(np.linalg.norm(displacement - previous))
            previous = displacement

            logger.debug("Iteration %d: residual=%.6e", iteration, residual)

            if residual <= self._tolerance:
                converged = True
                break

        error = float(np.mean(point_to_plane_distance(moved, origins, normals)))
        result = RegistrationResult(
            transform=transform,
            error=error,
            iterations=iteration,
            converged=converged,
            residual=residual,
            mode=RegistrationMode.RIGID.value,
        )

        if not converged:
            logger.info(
                "Point-to-plane registration did not converge after %d iterations "
                "(residual %.3e > %.3e).",
                self.max_iterations,
                residual,
                self._tolerance,
            )
            raise ConvergenceError(
                f"Point-to-plane registration did not converge within {self.max_iterations} iterations",
                iterations=iteration,
                result=result,
            )

        self._check_constraints(moved, normals)

        self._mark_computed()
        logger.info(
            "Point-to-plane registration converged after %d iterations in %.4f s. "
            "Mean point-to-plane error: %.6f",
            iteration,
            time.time() - start,
            error,
        )
        logger.debug("Point-to-plane transform: %s", format_matrix(transform))
        return result

    def _check_normals(self, normals: np.ndarray) -> None:
        """
        Reject plane sets that cannot fix the translation, before iterating.

        The translation rows of the linearized system are the plane normals
        themselves, so this test does not depend on the current rotation.
        """
        if len(normals) < _RIGID_DOF:
            raise DegenerateGeometryError(
                f"{len(normals)} point-to-plane pairs cannot constrain a rigid transform "
                f"(at least {_RIGID_DOF} required)"
            )
        singular_values = np.linalg.svd(normals, compute_uv=False)
        ratio = float(singular_values[2] / singular_values[0])
        if ratio <= self.rank_tolerance:
            raise DegenerateGeometryError(
                "Plane normals do not span 3D; the translation is under-determined "
                f"(relative singular value {ratio:.3e}), e.g. all planes parallel"
            )

    def _check_constraints(self, points: np.ndarray, normals: np.ndarray) -> None:
        """
        Reject solutions that leave a rigid motion free.

        ``points`` are the registered points, in the same frame as ``normals``,
        so the Jacobian rows [(p - p_c) x n, n] describe the point-to-plane
        system linearized at the solution.
        """
        centered = points - np.mean(points, axis=0)
        jacobian = np.hstack([np.cross(centered, normals), normals])
        singular_values = np.linalg.svd(jacobian, compute_uv=False)

        ratio = float(singular_values[_RIGID_DOF - 1] / singular_values[0])
        if ratio <= self.rank_tolerance:
            raise DegenerateGeometryError(
                "Plane configuration leaves the transform under-determined "
                f"(relative singular value {ratio:.3e}), e.g. a rotation about a common axis"
            )
