"""
Fiducial Registration Package

Registration of tracked coordinate frames for image-guided navigation.
Given paired observations (point-to-point landmarks, point-to-line constraints
from optical or eye rays, point-to-plane constraints) the package solves for
the rigid or similarity transform that best aligns one frame to the other.
Landmark registration is solved in closed form; point-to-line and
point-to-plane registration iterate on top of it, ICP style.
"""

__version__ = "0.1.0"

from .errors import *
from .geometry import *
from .alignment import *
from .utils import *

__all__ = [
    "errors",
    "geometry",
    "alignment",
    "utils",
]
