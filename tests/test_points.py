from __future__ import annotations

import numpy as np
import pytest

from cicada.core.points import CalibrationPoint, reference_positions, vector_differences


def _point(label: int = 1) -> CalibrationPoint:
    return CalibrationPoint(label=label, positions=[[10.0, 20.0, 3.0], [10.5, 19.0, 3.25], [9.0, 21.0, 2.0]])


def test_vector_difference_is_target_minus_reference():
    p = _point()
    np.testing.assert_allclose(p.vector_difference(0, 1), [0.5, -1.0, 0.25])
    np.testing.assert_allclose(p.vector_difference(1, 0), [-0.5, 1.0, -0.25])
    assert p.n_channels == 3


def test_position_rejects_missing_channel():
    p = _point()
    with pytest.raises(ValueError):
        p.position(3)
    with pytest.raises(ValueError):
        p.position(-1)


def test_positions_are_read_only_copies():
    src = np.array([[1.0, 2.0, 3.0], [1.0, 2.0, 3.0]])
    p = CalibrationPoint(label=7, positions=src)
    src[0, 0] = 100.0
    assert p.positions[0, 0] == 1.0
    with pytest.raises(ValueError):
        p.positions[0, 0] = 5.0


def test_rejects_bad_shapes_and_non_finite():
    with pytest.raises(ValueError):
        CalibrationPoint(label=1, positions=[[1.0, 2.0], [3.0, 4.0]])
    with pytest.raises(ValueError):
        CalibrationPoint(label=1, positions=[[1.0, 2.0, np.nan], [3.0, 4.0, 5.0]])
    with pytest.raises(ValueError):
        CalibrationPoint(label=1, positions=np.zeros((2, 3)), fit_errors=np.zeros((3, 3)))


def test_stacking_helpers():
    pts = [_point(1), _point(2)]
    assert reference_positions(pts, 0).shape == (2, 3)
    np.testing.assert_allclose(vector_differences(pts, 0, 2)[1], [-1.0, 1.0, -1.0])
    assert vector_differences([], 0, 1).shape == (0, 3)
