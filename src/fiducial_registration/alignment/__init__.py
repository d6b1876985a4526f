"""
Registration Module

Closed-form landmark registration and the iterative point-to-line and
point-to-plane registrations built on it, plus background execution of the
iterative solves.
"""

from .landmark_registration import (
    LandmarkRegistration,
    RegistrationMode,
    average_detection_frames,
    estimate_transform,
)
from .session import RegistrationResult, SessionState
from .point_to_line import PointToLineRegistration
from .point_to_plane import PointToPlaneRegistration
from .background import RegistrationWorker

__all__ = [
    "LandmarkRegistration",
    "RegistrationMode",
    "average_detection_frames",
    "estimate_transform",
    "RegistrationResult",
    "SessionState",
    "PointToLineRegistration",
    "PointToPlaneRegistration",
    "RegistrationWorker",
]
