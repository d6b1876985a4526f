"""
Utility Functions Module

Common utilities used across the registration package:
- Logging setup
- Typed configuration loading
"""

from .logging import setup_logger, configure_logging
from .config import (
    AppConfig,
    LandmarkConfig,
    PointToLineConfig,
    PointToPlaneConfig,
    LoggingConfig,
    load_config,
)

__all__ = [
    "setup_logger",
    "configure_logging",
    "AppConfig",
    "LandmarkConfig",
    "PointToLineConfig",
    "PointToPlaneConfig",
    "LoggingConfig",
    "load_config",
]
