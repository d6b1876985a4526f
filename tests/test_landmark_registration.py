"""
Tests for closed-form landmark registration.

These cover recovery of known rigid, similarity and affine transforms,
the reflection correction on mirrored and planar point sets, and the
input errors raised for unusable landmark lists.
"""

from pathlib import Path
import sys

import numpy as np
import pytest

# Ensure src is importable
sys.path.append(str(Path(__file__).parent.parent / "src"))

from fiducial_registration.alignment.landmark_registration import (
    LandmarkRegistration,
    RegistrationMode,
    average_detection_frames,
    estimate_transform,
)
from fiducial_registration.errors import (
    CorrespondenceMismatchError,
    DegenerateGeometryError,
    InsufficientCorrespondencesError,
)
from fiducial_registration.geometry.transforms import (
    apply_transform,
    invert_transform,
    is_proper_rotation,
    make_transform,
    rotation_matrix,
    transform_scale,
)


def _make_landmarks(n: int = 12, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    # Anisotropic spread to avoid degenerate covariance
    return rng.normal(size=(n, 3)) * np.array([10.0, 5.0, 2.0]) + np.array([50.0, -20.0, 10.0])


TETRAHEDRON = np.array(
    [
        [0.0, 0.0, 0.0],
        [10.0, 0.0, 0.0],
        [0.0, 10.0, 0.0],
        [0.0, 0.0, 10.0],
    ]
)


def test_similarity_recovers_known_transform():
    src = _make_landmarks()
    R = rotation_matrix([1.0, 2.0, 3.0], 40.0)
    T_true = make_transform(R, [3.0, -2.0, 7.0], scale=2.5)
    tgt = apply_transform(src, T_true)

    T_est, err = estimate_transform(src, tgt, RegistrationMode.SIMILARITY)

    np.testing.assert_allclose(T_est, T_true, atol=1e-8)
    assert transform_scale(T_est) == pytest.approx(2.5)
    assert err < 1e-8


def test_rigid_recovers_known_transform():
    src = _make_landmarks(seed=3)
    R = rotation_matrix([0.0, 0.0, 1.0], -75.0)
    T_true = make_transform(R, [-12.0, 4.0, 0.5])
    tgt = apply_transform(src, T_true)

    T_est, err = estimate_transform(src, tgt, "rigid")

    np.testing.assert_allclose(T_est, T_true, atol=1e-8)
    assert is_proper_rotation(T_est[:3, :3])
    assert err < 1e-8


def test_rigid_mode_never_scales():
    src = _make_landmarks(seed=4)
    tgt = apply_transform(src, make_transform(rotation_matrix([1, 0, 0], 20.0), scale=3.0))

    T_est, err = estimate_transform(src, tgt, RegistrationMode.RIGID)

    assert np.linalg.det(T_est[:3, :3]) == pytest.approx(1.0)
    assert err > 1.0


def test_mirrored_tetrahedron_yields_proper_rotation():
    """A reflected target set must still produce det(R) = +1."""
    mirrored = TETRAHEDRON * np.array([-1.0, 1.0, 1.0])

    for mode in (RegistrationMode.RIGID, RegistrationMode.SIMILARITY):
        T_est, _ = estimate_transform(TETRAHEDRON, mirrored, mode)
        linear = T_est[:3, :3] / transform_scale(T_est)
        assert np.linalg.det(T_est[:3, :3]) > 0
        assert is_proper_rotation(linear)


def test_planar_mirror_is_fit_exactly_by_proper_rotation():
    # Coplanar points: a mirror in x equals a 180 degree turn about y
    src = np.array(
        [
            [0.0, 0.0, 0.0],
            [4.0, 1.0, 0.0],
            [1.0, 5.0, 0.0],
            [-3.0, 2.0, 0.0],
            [2.0, -4.0, 0.0],
        ]
    )
    tgt = src * np.array([-1.0, 1.0, 1.0])

    T_est, err = estimate_transform(src, tgt, RegistrationMode.RIGID)

    assert is_proper_rotation(T_est[:3, :3])
    assert err < 1e-9


def test_collinear_points_are_best_effort():
    src = np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 1.0], [2.0, 2.0, 2.0], [5.0, 5.0, 5.0]])
    tgt = src + np.array([1.0, -1.0, 2.0])

    T_est, err = estimate_transform(src, tgt, RegistrationMode.SIMILARITY)

    assert np.isfinite(T_est).all()
    assert np.linalg.det(T_est[:3, :3]) > 0
    assert err < 1e-8


def test_coincident_targets_give_zero_scale():
    src = _make_landmarks(seed=10)
    tgt = np.tile([1.0, -2.0, 3.0], (len(src), 1))

    T_est, err = estimate_transform(src, tgt, RegistrationMode.SIMILARITY)

    np.testing.assert_allclose(T_est[:3, :3], np.zeros((3, 3)), atol=1e-12)
    np.testing.assert_allclose(T_est[:3, 3], [1.0, -2.0, 3.0], atol=1e-12)
    assert transform_scale(T_est) == pytest.approx(0.0, abs=1e-12)
    assert err < 1e-12


def test_inverse_transform_round_trip():
    src = _make_landmarks(seed=5)
    T_true = make_transform(rotation_matrix([0.2, -1.0, 0.4], 65.0), [1.0, 2.0, 3.0], scale=0.8)
    tgt = apply_transform(src, T_true)

    T_est, _ = estimate_transform(src, tgt)
    recovered = apply_transform(tgt, invert_transform(T_est))

    np.testing.assert_allclose(recovered, src, atol=1e-8)


def test_affine_recovers_linear_map():
    src = _make_landmarks(seed=6)
    A = np.array([[1.2, 0.3, 0.0], [0.1, 0.9, 0.2], [0.0, 0.4, 1.5]])
    T_true = make_transform(A, [5.0, -1.0, 0.25])
    tgt = apply_transform(src, T_true)

    T_est, err = estimate_transform(src, tgt, RegistrationMode.AFFINE)

    np.testing.assert_allclose(T_est, T_true, atol=1e-8)
    assert err < 1e-8


def test_mismatched_lengths_raise():
    with pytest.raises(CorrespondenceMismatchError):
        estimate_transform(np.zeros((4, 3)), np.zeros((3, 3)))


def test_too_few_points_raise():
    src = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0]])
    with pytest.raises(InsufficientCorrespondencesError):
        estimate_transform(src, src)


def test_coincident_source_points_raise():
    src = np.ones((4, 3))
    tgt = _make_landmarks(n=4)
    with pytest.raises(DegenerateGeometryError):
        estimate_transform(src, tgt, RegistrationMode.RIGID)


class TestLandmarkRegistration:
    def test_default_mode_is_similarity(self):
        reg = LandmarkRegistration()
        assert reg.mode is RegistrationMode.SIMILARITY
        reg.set_mode_to_rigid()
        assert reg.mode is RegistrationMode.RIGID
        reg.set_mode_to_affine()
        assert reg.mode is RegistrationMode.AFFINE
        reg.mode = "similarity"
        assert reg.mode is RegistrationMode.SIMILARITY

    def test_error_is_none_until_computed(self):
        src = _make_landmarks()
        reg = LandmarkRegistration()
        assert reg.error is None

        reg.set_source_landmarks(src)
        reg.set_target_landmarks(src + 1.0)
        reg.compute()

        assert reg.error == pytest.approx(0.0, abs=1e-9)

    def test_accepts_flat_buffers(self):
        src = _make_landmarks(seed=7)
        T_true = make_transform(rotation_matrix([0, 1, 0], 30.0), [0.0, 1.0, 0.0])
        tgt = apply_transform(src, T_true)

        reg = LandmarkRegistration(mode="rigid")
        reg.set_source_landmarks(src.ravel())
        reg.set_target_landmarks(tgt.tolist())

        np.testing.assert_allclose(reg.compute(), T_true, atol=1e-8)

    def test_inverse_swaps_direction(self):
        src = _make_landmarks(seed=8)
        T_true = make_transform(rotation_matrix([1, 1, 0], 25.0), [4.0, -3.0, 2.0], scale=1.5)
        tgt = apply_transform(src, T_true)

        reg = LandmarkRegistration()
        reg.set_source_landmarks(src)
        reg.set_target_landmarks(tgt)
        forward = reg.compute()

        reg.inverse()
        backward = reg.compute()

        np.testing.assert_allclose(backward, invert_transform(forward), atol=1e-8)

    def test_detection_frames_are_averaged(self):
        src = _make_landmarks(n=6, seed=9)
        frames = [src + 0.25, src - 0.25, src]
        np.testing.assert_allclose(average_detection_frames(frames), src, atol=1e-12)

        T_true = make_transform(rotation_matrix([0, 0, 1], 15.0), [1.0, 1.0, 1.0])
        reg = LandmarkRegistration(mode=RegistrationMode.RIGID)
        reg.set_source_landmarks(frames)
        reg.set_target_landmarks(apply_transform(src, T_true))

        np.testing.assert_allclose(reg.compute(), T_true, atol=1e-8)
