from __future__ import annotations

import numpy as np
import pytest

from cicada.core.linalg import eval_quadratic, fit_bisquare_line, quadratic_design_matrix, solve_normal_equations


def test_design_matrix_basis_order():
    A = quadratic_design_matrix(np.array([2.0]), np.array([3.0]))
    np.testing.assert_allclose(A, [[1.0, 2.0, 3.0, 4.0, 9.0, 6.0]])


def test_normal_equations_recover_exact_quadratic():
    rng = np.random.default_rng(0)
    dx = rng.uniform(-5, 5, size=20)
    dy = rng.uniform(-5, 5, size=20)
    A = quadratic_design_matrix(dx, dy)
    c_true = np.array([[0.1, -0.2], [0.01, 0.02], [-0.03, 0.0], [1e-3, 2e-3], [-1e-3, 0.0], [5e-4, -5e-4]])
    C = solve_normal_equations(A, A @ c_true)
    np.testing.assert_allclose(C, c_true, atol=1e-10)
    np.testing.assert_allclose(eval_quadratic(np.tile(C[:, 0], (20, 1)), dx, dy), A @ c_true[:, 0], atol=1e-10)


def test_normal_equations_reject_rank_deficient_design():
    # Two rows of points: dy^2 is proportional to dy.
    dx = np.array([0.0, 1.0, 2.0, 3.0, 0.0, 1.0, 2.0, 3.0])
    dy = np.array([0.0, 0.0, 0.0, 0.0, 1.0, 1.0, 1.0, 1.0])
    with pytest.raises(np.linalg.LinAlgError):
        solve_normal_equations(quadratic_design_matrix(dx, dy), np.zeros((8, 3)))
    with pytest.raises(np.linalg.LinAlgError):
        solve_normal_equations(quadratic_design_matrix(dx[:4], dy[:4] + [0, 1, 2, 3]), np.zeros((4, 3)))


def test_bisquare_line_ignores_gross_outliers():
    rng = np.random.default_rng(3)
    x = rng.uniform(-0.5, 0.5, size=40)
    y = 1.5 * x + 0.2 + rng.normal(0.0, 1e-3, size=40)
    y[[3, 17, 29]] += 3.0
    slope, intercept = fit_bisquare_line(x, y)
    assert abs(slope - 1.5) < 1e-2
    assert abs(intercept - 0.2) < 1e-2


def test_bisquare_line_without_intercept():
    x = np.linspace(-1.0, 1.0, 11)
    slope, intercept = fit_bisquare_line(x, 2.0 * x, fit_intercept=False)
    assert intercept == 0.0
    assert slope == pytest.approx(2.0, abs=1e-12)
