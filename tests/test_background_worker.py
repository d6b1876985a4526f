"""
Tests for running registrations on the background worker thread.
"""

from concurrent.futures import CancelledError
from pathlib import Path
import sys
import threading

import numpy as np
import pytest

# Ensure src is importable
sys.path.append(str(Path(__file__).parent.parent / "src"))

from fiducial_registration.alignment import PointToLineRegistration, RegistrationWorker
from fiducial_registration.alignment.session import CorrespondenceSession
from fiducial_registration.errors import CorrespondenceMismatchError, RegistrationCancelled
from fiducial_registration.geometry import Line
from fiducial_registration.geometry.transforms import apply_transform, make_transform, rotation_matrix


def _make_registration() -> PointToLineRegistration:
    points = np.array([[0.0, 0.0, 0.0], [10.0, 0.0, 0.0], [0.0, 10.0, 0.0], [0.0, 0.0, 10.0]])
    directions = np.array([[0.0, 0.0, 1.0], [1.0, 1.0, 0.0], [0.0, 1.0, -1.0], [1.0, 0.0, 2.0]])
    T = make_transform(rotation_matrix([0, 0, 1], 30.0), [10.0, 0.0, 0.0])
    reg = PointToLineRegistration()
    for x, q, d in zip(points, apply_transform(points, T), directions):
        # Origins away from T(x), so the solve has to iterate
        reg.add_correspondence(x, Line(q + 4.0 * d / np.linalg.norm(d), d))
    return reg


class _BlockingRegistration(CorrespondenceSession):
    """Stands in for a long solve; runs until its cancel event is set."""

    def __init__(self):
        super().__init__()
        self.started = threading.Event()

    def compute(self, cancel_event=None):
        self.started.set()
        cancel_event.wait(timeout=5.0)
        self._check_cancel(cancel_event, 1)
        raise AssertionError("cancel event was never set")


class TestRegistrationWorker:
    def test_result_matches_synchronous_compute(self):
        expected = _make_registration().compute()

        with RegistrationWorker() as worker:
            result = worker.submit(_make_registration()).result(timeout=10)

        np.testing.assert_allclose(result.transform, expected.transform, atol=1e-12)
        assert result.iterations == expected.iterations

    def test_errors_surface_through_future(self):
        reg = _make_registration()
        reg.add_point([0.0, 0.0, 0.0])

        with RegistrationWorker() as worker:
            future = worker.submit(reg)
            with pytest.raises(CorrespondenceMismatchError):
                future.result(timeout=10)

    def test_on_complete_callback(self):
        done = threading.Event()
        seen = []

        def on_complete(future):
            seen.append(future.result().converged)
            done.set()

        with RegistrationWorker() as worker:
            worker.submit(_make_registration(), on_complete=on_complete)
            assert done.wait(timeout=10)

        assert seen == [True]

    def test_cancel_running_solve(self):
        blocking = _BlockingRegistration()

        with RegistrationWorker() as worker:
            future = worker.submit(blocking)
            assert blocking.started.wait(timeout=5)
            worker.cancel(future)

            with pytest.raises(RegistrationCancelled):
                future.result(timeout=10)

    def test_cancel_queued_solve(self):
        blocking = _BlockingRegistration()

        worker = RegistrationWorker()
        try:
            running = worker.submit(blocking)
            assert blocking.started.wait(timeout=5)
            queued = worker.submit(_make_registration())
            worker.cancel(queued)
            worker.cancel(running)

            with pytest.raises(CancelledError):
                queued.result(timeout=10)
        finally:
            worker.shutdown(wait=True, cancel_pending=True)
