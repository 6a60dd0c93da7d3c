from __future__ import annotations

import numpy as np
import pytest

from cicada.core.points import CalibrationPoint
from cicada.correction.apply import apply_correction, scalar_distances
from cicada.correction.builder import build_correction
from cicada.sim.synthetic import make_synthetic_calibration


def test_apply_removes_the_aberration_and_flags_uncovered_points():
    calib = make_synthetic_calibration(n_side=10, spacing=24.0, jitter_px=3.0, seed=0)
    field = build_correction(calib, 0, 1, 12)
    experiment = make_synthetic_calibration(n_side=5, spacing=40.0, origin=(30.0, 30.0, 5.0), jitter_px=5.0, seed=9)
    far = CalibrationPoint(label=-1, positions=[[5000.0, 5000.0, 1.0], [5000.0, 5000.0, 1.0]])

    out = apply_correction(field, experiment + [far], pixel_to_distance=(80.0, 80.0, 100.0))
    assert len(out) == len(experiment) + 1
    assert all(c.succeeded for c in out[:-1])
    assert max(c.distance for c in out[:-1]) < 1e-4
    assert not out[-1].succeeded
    assert out[-1].label == -1
    with pytest.raises(ValueError):
        out[-1].distance


def test_apply_scales_to_physical_units():
    calib = make_synthetic_calibration(n_side=8, spacing=24.0, jitter_px=3.0, seed=0)
    field = build_correction(calib, 0, 1, 12)
    p = CalibrationPoint(label=1, positions=[[90.0, 90.0, 2.0], [90.0, 90.0, 3.0]])
    (c1,) = apply_correction(field, [p])
    (c80,) = apply_correction(field, [p], pixel_to_distance=(80.0, 80.0, 100.0))
    np.testing.assert_allclose(c80.difference, c1.difference * [80.0, 80.0, 100.0])


def test_scalar_distances():
    np.testing.assert_allclose(scalar_distances(np.array([[3.0, 4.0, 0.0], [0.0, 0.0, -2.0]])), [5.0, 2.0])
