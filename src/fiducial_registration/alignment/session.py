"""
Correspondence accumulation shared by the iterative registrations.

A session collects source points and their target entities (lines or planes)
one capture at a time, is consumed by a single compute call and is reset
between registrations:

    EMPTY -> ACCUMULATING -> COMPUTED
      ^                         |
      +--------- reset() -------+

Sessions perform no internal locking; callers must serialize add, compute and
reset calls on a given instance.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Tuple
import threading

import numpy as np

from ..errors import (
    CorrespondenceMismatchError,
    InsufficientCorrespondencesError,
    RegistrationCancelled,
    RegistrationError,
)
from ..geometry.transforms import SENTINEL_TRANSFORM
from ..geometry.types import as_point
from ..utils.logging import setup_logger

logger = setup_logger(__name__)


class SessionState(str, Enum):
    EMPTY = "empty"
    ACCUMULATING = "accumulating"
    COMPUTED = "computed"


@dataclass(frozen=True, eq=False)
class RegistrationResult:
    """
    Outcome of an iterative registration.

    Attributes:
        transform: Source -> target transform (4 x 4).
        error: Mean distance between transformed source points and their
            targets (fiducial registration error), in input units.
        iterations: Number of outer iterations performed.
        converged: True if the convergence residual reached the tolerance.
        residual: Convergence residual of the last iteration.
        mode: Transform family re-solved on each iteration.
    """

    transform: np.ndarray
    error: float
    iterations: int
    converged: bool
    residual: float
    mode: str


class CorrespondenceSession:
    """Parallel point / target lists with an explicit lifecycle."""

    target_kind = "target"

    def __init__(self):
        self._points: List[np.ndarray] = []
        self._targets: List[Any] = []
        self._state = SessionState.EMPTY

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def count(self) -> int:
        """Number of source points added so far."""
        return len(self._points)

    @property
    def points(self) -> np.ndarray:
        return np.array(self._points, dtype=np.float64).reshape(-1, 3)

    def add_point(self, point) -> None:
        self._touch()
        self._points.append(as_point(point))

    def _add_target(self, target) -> None:
        self._touch()
        self._targets.append(target)

    def reset(self) -> None:
        """Discard all correspondences and return to the EMPTY state."""
        self._points.clear()
        self._targets.clear()
        self._state = SessionState.EMPTY

    def _touch(self) -> None:
        if self._state is SessionState.COMPUTED:
            logger.warning(
                "Adding correspondences to a computed %s session without reset(); "
                "the next compute will include all %d existing pairs.",
                type(self).__name__,
                len(self._points),
            )
        self._state = SessionState.ACCUMULATING

    def _validate(self) -> None:
        n_points = len(self._points)
        n_targets = len(self._targets)
        if n_points != n_targets:
            raise CorrespondenceMismatchError(n_points, n_targets, self.target_kind)
        if n_points == 0:
            raise InsufficientCorrespondencesError(
                f"{type(self).__name__} has no correspondences to register"
            )

    def _mark_computed(self) -> None:
        self._state = SessionState.COMPUTED

    @staticmethod
    def _check_cancel(cancel_event: Optional[threading.Event], iteration: int) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise RegistrationCancelled(f"Registration cancelled at iteration {iteration}")

    def compute(self, cancel_event: Optional[threading.Event] = None) -> RegistrationResult:
        raise NotImplementedError

    def compute_legacy(self) -> Tuple[np.ndarray, float]:
        """
        Compatibility entry point returning ``(transform, error)``.

        Every registration failure (mismatched lists, degenerate geometry,
        non-convergence) is reported as the all-zero sentinel transform with
        an infinite error.
        """
        try:
            result = self.compute()
        except RegistrationError as e:
            logger.warning(
                "%s failed (%s); returning sentinel transform.", type(self).__name__, e
            )
            return SENTINEL_TRANSFORM.copy(), float("inf")
        return result.transform, result.error
