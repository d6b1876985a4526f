"""
Point-to-Line Registration

Iteratively solves for the transform T such that each fixed source point x_i,
once transformed, lies on its corresponding line (o_i, d_i):

    o_i + a_i * d_i = T(x_i)

The line side of each pair is typically a line of sight (e.g. an eye or
optical ray) along which the point is known to lie, but not where on it.
"""

from __future__ import annotations

from typing import Optional, Union
import threading
import time

import numpy as np

from ..errors import ConvergenceError
from ..geometry.transforms import apply_transform, format_matrix
from ..geometry.common import closest_point_on_line, mean_point_to_line_distance
from ..geometry.types import Line, as_line
from ..utils.logging import setup_logger
from .landmark_registration import RegistrationMode, estimate_transform
from .session import CorrespondenceSession, RegistrationResult

logger = setup_logger(__name__)

# Initial displacement set, far from any converged state
_INITIAL_DISPLACEMENT = 1000.0


class PointToLineRegistration(CorrespondenceSession):
    """
    ICP-style point-to-line registration.

    Each iteration:
    1. Solves landmark registration between the source points and the current
       virtual targets (initially one unit along each line from its origin)
    2. Transforms the source points with the result
    3. Projects each transformed point onto its line to get new virtual targets
    4. Stops when the displacement set (target - transformed point) changes by
       no more than ``tolerance`` (Frobenius norm) between iterations

    The stop test measures the step between iterations, not the fit error.
    Similarity solves can creep slowly along the line directions, so at the
    default tolerance the reported error may be one to two orders of magnitude
    above ``tolerance``. Pass a tighter tolerance (e.g. 1e-6) when the result
    must be accurate to about 1e-3 in input units.
    """

    target_kind = "line"

    DEFAULT_TOLERANCE = 1e-4
    DEFAULT_MAX_ITERATIONS = 2000

    def __init__(
        self,
        tolerance: float = DEFAULT_TOLERANCE,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        mode: Union[RegistrationMode, str] = RegistrationMode.SIMILARITY,
    ):
        """
        Initialize point-to-line registration parameters.

        Args:
            tolerance: Convergence threshold on the change in displacements.
            max_iterations: Iteration cap; reaching it without convergence
                raises ConvergenceError.
            mode: RIGID or SIMILARITY transform re-solved on each iteration.
        """
        super().__init__()
        mode = RegistrationMode(mode)
        if mode is RegistrationMode.AFFINE:
            raise ValueError("Point-to-line registration supports rigid or similarity mode only")
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")
        self.tolerance = float(tolerance)
        self.max_iterations = int(max_iterations)
        self.mode = mode

    @property
    def tolerance(self) -> float:
        return self._tolerance

    @tolerance.setter
    def tolerance(self, value: float) -> None:
        if value <= 0:
            raise ValueError(f"tolerance must be positive, got {value}")
        self._tolerance = float(value)

    @classmethod
    def from_config(cls, config) -> "PointToLineRegistration":
        """Create from a ``PointToLineConfig``."""
        return cls(
            tolerance=config.tolerance,
            max_iterations=config.max_iterations,
            mode=config.mode,
        )

    # ------------------------ Accumulation ------------------------
    def add_line(self, line, direction=None) -> None:
        """Add a target line, either a ``Line``/``(origin, direction)`` pair or origin plus direction."""
        if direction is not None:
            line = Line(line, direction)
        self._add_target(as_line(line))

    def add_correspondence(self, point, line) -> None:
        """Add a point and its line together, keeping the lists paired."""
        self.add_point(point)
        self.add_line(line)

    @property
    def lines(self) -> "list[Line]":
        return list(self._targets)

    # ------------------------ Solve ------------------------
    def compute(self, cancel_event: Optional[threading.Event] = None) -> RegistrationResult:
        """
        Register the accumulated points to their lines.

        Args:
            cancel_event: Optional event checked once per iteration.

        Returns:
            RegistrationResult with the source -> line-frame transform and the
            mean point-to-line distance after registration.

        Raises:
            CorrespondenceMismatchError: Point and line counts differ.
            InsufficientCorrespondencesError: No (or fewer than 3) pairs.
            DegenerateGeometryError: Zero-length direction or degenerate fit.
            ConvergenceError: ``max_iterations`` reached without convergence.
            RegistrationCancelled: ``cancel_event`` was set.
        """
        self._validate()

        X = self.points
        lines = self.lines
        origins = np.array([line.origin for line in lines])
        directions = np.array([line.unit_direction for line in lines])

        logger.info(
            "Starting point-to-line registration with %d correspondences (mode=%s).",
            len(X),
            self.mode.value,
        )
        start = time.time()

        # Virtual targets start one unit along each line
        targets = origins + directions
        previous = np.full_like(X, _INITIAL_DISPLACEMENT)
        transform = np.eye(4)
        moved = X
        residual = float("inf")
        converged = False
        iteration = 0

        for iteration in range(1, self.max_iterations + 1):
            self._check_cancel(cancel_event, iteration)

            transform, _ = estimate_transform(X, targets, self.mode)
            moved = apply_transform(X, transform)

            targets = closest_point_on_line(moved, origins, directions)

            displacement = targets - moved
            residual = float(np.linalg.norm(displacement - previous))
            previous = displacement

            logger.debug("Iteration %d: residual=%.6e", iteration, residual)

            if residual <= self._tolerance:
                converged = True
                break

        error = mean_point_to_line_distance(moved, lines)
        result = RegistrationResult(
            transform=transform,
            error=error,
            iterations=iteration,
            converged=converged,
            residual=residual,
            mode=self.mode.value,
        )

        if not converged:
            logger.info(
                "Point-to-line registration did not converge after %d iterations "
                "(residual %.3e > %.3e).",
                self.max_iterations,
                residual,
                self._tolerance,
            )
            raise ConvergenceError(
                f"Point-to-line registration did not converge within {self.max_iterations} iterations",
                iterations=iteration,
                result=result,
            )

        self._mark_computed()
        logger.info(
            "Point-to-line registration converged after %d iterations in %.4f s. "
            "Mean point-to-line error: %.6f",
            iteration,
            time.time() - start,
            error,
        )
        logger.debug("Point-to-line transform: %s", format_matrix(transform))
        return result

