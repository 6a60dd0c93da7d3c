from __future__ import annotations

import numpy as np
import pytest

from cicada.correction.builder import build_correction
from cicada.eval.aberration_map import aberration_map, load_aberration_map, save_aberration_map
from cicada.sim.synthetic import make_synthetic_calibration

PIXEL_TO_NM = (80.0, 80.0, 100.0)


def _field():
    pts = make_synthetic_calibration(n_side=8, spacing=24.0, jitter_px=3.0, noise_px=0.02, seed=6)
    return build_correction(pts, 0, 1, 12)


def test_map_matches_point_queries_in_physical_units():
    field = _field()
    ab = aberration_map(field, (20, 60), (10, 50), PIXEL_TO_NM)
    assert ab.shape == (3, 40, 40)
    for ix, iy in [(0, 0), (13, 27), (39, 39), (5, 33)]:
        expected = field.correct(20 + ix, 10 + iy) * np.asarray(PIXEL_TO_NM)
        np.testing.assert_allclose(ab[:, iy, ix], expected, rtol=1e-12, atol=1e-12)


def test_map_is_nan_outside_coverage():
    field = _field()
    ab = aberration_map(field, (150, 600), (100, 102))
    assert np.isfinite(ab[:, :, 0]).all()
    assert np.isnan(ab[:, :, -1]).all()


def test_map_rejects_empty_bounds():
    with pytest.raises(ValueError):
        aberration_map(_field(), (10, 10), (0, 5))


def test_tiff_round_trip(tmp_path):
    ab = aberration_map(_field(), (20, 52), (20, 45), PIXEL_TO_NM)
    path = save_aberration_map(tmp_path / "map.tif", ab)
    back = load_aberration_map(path)
    assert back.shape == ab.shape
    assert back.dtype == np.float32
    np.testing.assert_array_equal(back, ab.astype(np.float32))
