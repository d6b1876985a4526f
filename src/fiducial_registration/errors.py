"""
Registration Errors

Exception hierarchy shared by the landmark, point-to-line and point-to-plane
solvers. Every failure is local and recoverable by the caller, typically by
capturing more (or better spread) correspondences and computing again.
"""

from __future__ import annotations

from typing import Any, Optional


class RegistrationError(Exception):
    """Base class for all registration failures."""


class CorrespondenceMismatchError(RegistrationError, ValueError):
    """Raised when source and target correspondence lists differ in length."""

    def __init__(self, n_source: int, n_target: int, target_kind: str = "target"):
        self.n_source = n_source
        self.n_target = n_target
        super().__init__(
            f"Correspondence count mismatch: {n_source} points vs "
            f"{n_target} {target_kind} entries"
        )


class InsufficientCorrespondencesError(RegistrationError, ValueError):
    """Raised when too few correspondences are available to solve."""


class DegenerateGeometryError(RegistrationError, ValueError):
    """Raised when the input geometry cannot determine a unique solution."""


class ConvergenceError(RegistrationError, RuntimeError):
    """
    Raised when an iterative solve hits its iteration cap.

    The last (unconverged) estimate is attached as ``result`` so callers can
    inspect it, but it must not be used as a registration.
    """

    def __init__(self, message: str, iterations: int, result: Optional[Any] = None):
        super().__init__(message)
        self.iterations = iterations
        self.result = result


class RegistrationCancelled(RegistrationError):
    """Raised when a running solve observes its cancel event."""


__all__ = [
    "RegistrationError",
    "CorrespondenceMismatchError",
    "InsufficientCorrespondencesError",
    "DegenerateGeometryError",
    "ConvergenceError",
    "RegistrationCancelled",
]
