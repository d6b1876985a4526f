"""
Configuration management for fiducial-registration.

Provides a typed pydantic model and YAML loader with sensible defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Literal, Any, Dict

from pydantic import BaseModel, Field, ValidationError
import yaml


# -----------------------
# Typed config structures
# -----------------------


class LandmarkConfig(BaseModel):
    mode: Literal["rigid", "similarity", "affine"] = Field(
        default="similarity",
        description="Transform family fitted by closed-form landmark registration",
    )


class PointToLineConfig(BaseModel):
    tolerance: float = Field(
        default=1e-4,
        gt=0,
        description="Stop when the change in point-to-line displacements falls to or below this",
    )
    max_iterations: int = Field(
        default=2000,
        ge=1,
        description="Iteration cap; exceeding it is reported as a convergence failure",
    )
    mode: Literal["rigid", "similarity"] = Field(
        default="similarity",
        description="Transform family re-solved on every iteration",
    )


class PointToPlaneConfig(BaseModel):
    tolerance: float = Field(default=1e-4, gt=0)
    max_iterations: int = Field(default=2000, ge=1)
    rank_tolerance: float = Field(
        default=1e-6,
        gt=0,
        description="Relative singular value below which the plane set is considered degenerate",
    )


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    file: Optional[str] = Field(default=None)


class AppConfig(BaseModel):
    landmark: LandmarkConfig = Field(default_factory=LandmarkConfig)
    point_to_line: PointToLineConfig = Field(default_factory=PointToLineConfig)
    point_to_plane: PointToPlaneConfig = Field(default_factory=PointToPlaneConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# -----------------------
# Loader
# -----------------------


def _project_root() -> Path:
    """
    Resolve the repository root directory.

    File is at: repo_root/src/fiducial_registration/utils/config.py
    parents sequence:
      0 -> .../src/fiducial_registration/utils
      1 -> .../src/fiducial_registration
      2 -> .../src
      3 -> repo_root
    """
    return Path(__file__).resolve().parents[3]


def load_config(path: Optional[str | Path] = None, *, allow_missing: bool = True) -> AppConfig:
    """
    Load configuration from YAML into a typed AppConfig.

    Search order when path is None:
    1) repo_root/config/default.yaml
    2) if missing and allow_missing=True: return default AppConfig()

    Args:
        path: Explicit YAML file path.
        allow_missing: If True, returns defaults when file missing; otherwise raises.

    Returns:
        AppConfig instance
    """
    cfg_path: Path
    if path is None:
        cfg_path = _project_root() / "config" / "default.yaml"
    else:
        cfg_path = Path(path)

    if not cfg_path.exists():
        if allow_missing:
            return AppConfig()
        raise FileNotFoundError(f"Config file not found: {cfg_path}")

    with cfg_path.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as e:
        # Re-raise with context to help users fix the YAML
        raise ValueError(f"Invalid configuration in {cfg_path}: {e}") from e
