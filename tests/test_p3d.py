from __future__ import annotations

import numpy as np
import pytest

from cicada.eval.p3d import fit_p3d, p3d, p3d_negative_log_likelihood


def _sample_distances(m: float, s: float, n: int, seed: int) -> np.ndarray:
    rng = np.random.default_rng(seed)
    v = np.array([m, 0.0, 0.0]) + rng.normal(0.0, s, size=(n, 3))
    return np.linalg.norm(v, axis=1)


def test_p3d_density_value():
    assert abs(float(p3d(10.0, 5.0, 10.0)) - 0.04451) < 1e-5


def test_p3d_density_integrates_to_one():
    r = np.linspace(0.0, 200.0, 200001)
    assert float(np.sum(p3d(r, 30.0, 10.0)) * (r[1] - r[0])) == pytest.approx(1.0, abs=1e-6)


def test_negative_parameters_score_float_max():
    d = np.array([1.0, 2.0])
    assert p3d_negative_log_likelihood(d, -1.0, 1.0) == np.finfo(np.float64).max
    assert p3d_negative_log_likelihood(d, 1.0, 0.0) == np.finfo(np.float64).max


def test_fit_recovers_mean_and_width():
    fit = fit_p3d(_sample_distances(30.0, 10.0, 4000, seed=0))
    assert abs(fit.mean - 30.0) < 1.0
    assert abs(fit.std - 10.0) < 1.0
    assert np.isfinite(fit.negative_log_likelihood)


def test_robust_cutoff_bounds_outlier_influence():
    d = np.concatenate([_sample_distances(30.0, 10.0, 2000, seed=1), np.full(40, 500.0)])
    plain = fit_p3d(d)
    robust = fit_p3d(d, robust_cutoff=12.0)
    assert abs(robust.mean - 30.0) < 1.5
    assert abs(robust.std - 10.0) < 1.5
    assert plain.std > robust.std + 5.0


def test_fixed_width_fits_only_the_mean():
    fit = fit_p3d(_sample_distances(30.0, 10.0, 2000, seed=2), fixed_s=10.0)
    assert fit.std == 10.0
    assert abs(fit.mean - 30.0) < 1.0


def test_fit_needs_two_distances():
    with pytest.raises(ValueError):
        fit_p3d(np.array([1.0]))
    with pytest.raises(ValueError):
        fit_p3d(np.array([1.0, 2.0]), fixed_s=0.0)
