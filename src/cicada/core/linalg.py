from __future__ import annotations

import numpy as np

NUM_CORR_PARAM = 6

# Bisquare tuning constant (95% efficiency at the normal distribution).
BISQUARE_TUNING = 4.685
# MAD -> standard deviation for normally distributed residuals.
MAD_TO_SIGMA = 0.6745


def quadratic_design_matrix(dx: np.ndarray, dy: np.ndarray) -> np.ndarray:
    """
    Design matrix (N,6) for the local basis [1, dx, dy, dx^2, dy^2, dx*dy].
    """
    dx = np.asarray(dx, dtype=np.float64).reshape(-1)
    dy = np.asarray(dy, dtype=np.float64).reshape(-1)
    if dx.shape != dy.shape:
        raise ValueError("dx and dy must have the same length")
    return np.stack([np.ones_like(dx), dx, dy, dx * dx, dy * dy, dx * dy], axis=1)


def eval_quadratic(coeffs: np.ndarray, dx: np.ndarray, dy: np.ndarray) -> np.ndarray:
    """
    Evaluate per-row quadratics: coeffs (M,6) at offsets dx, dy (M,) -> (M,).
    """
    A = quadratic_design_matrix(dx, dy)
    coeffs = np.asarray(coeffs, dtype=np.float64).reshape(A.shape[0], NUM_CORR_PARAM)
    return np.sum(A * coeffs, axis=1)


def solve_normal_equations(A: np.ndarray, Y: np.ndarray) -> np.ndarray:
    """
    Least squares via the normal equations: solve (A^T A) C = A^T Y.

    Y may hold several right-hand sides as columns. Raises np.linalg.LinAlgError
    when A does not have full column rank.
    """
    A = np.asarray(A, dtype=np.float64)
    Y = np.asarray(Y, dtype=np.float64)
    if A.ndim != 2:
        raise ValueError("A must be 2D")
    if A.shape[0] != Y.shape[0]:
        raise ValueError("A and Y row counts must match")
    if A.shape[0] < A.shape[1] or np.linalg.matrix_rank(A) < A.shape[1]:
        raise np.linalg.LinAlgError("design matrix is rank deficient")
    ATA = A.T @ A
    ATY = A.T @ Y
    return np.linalg.solve(ATA, ATY)


def _weighted_lstsq(X: np.ndarray, y: np.ndarray, w: np.ndarray) -> np.ndarray:
    sw = np.sqrt(w)
    params, *_ = np.linalg.lstsq(X * sw[:, None], y * sw, rcond=None)
    return params


def fit_bisquare_line(
    x: np.ndarray,
    y: np.ndarray,
    *,
    fit_intercept: bool = True,
    tuning: float = BISQUARE_TUNING,
    tol: float = 1e-10,
    max_iter: int = 50,
) -> tuple[float, float]:
    """
    Robust fit of y = slope * x + intercept by iteratively reweighted least squares.

    Residuals are leverage-adjusted and scaled by their MAD; each IRLS step uses
    Tukey bisquare weights w = (1 - u^2)^2 for |u| < 1, else 0.
    Returns (slope, intercept); the intercept is 0.0 when `fit_intercept` is False.
    """
    x = np.asarray(x, dtype=np.float64).reshape(-1)
    y = np.asarray(y, dtype=np.float64).reshape(-1)
    if x.shape != y.shape:
        raise ValueError("x and y must have the same length")
    if fit_intercept:
        X = np.stack([x, np.ones_like(x)], axis=1)
    else:
        X = x[:, None]
    n, p = X.shape
    if n < p:
        raise ValueError(f"need at least {p} samples, got {n}")

    # Leverage of the unweighted fit; capped so exact-fit points keep a finite adjustment.
    Q, _ = np.linalg.qr(X)
    h = np.minimum(np.sum(Q * Q, axis=1), 1.0 - 1e-4)
    adj = 1.0 / np.sqrt(1.0 - h)

    w = np.ones((n,), dtype=np.float64)
    params = _weighted_lstsq(X, y, w)
    for _ in range(int(max_iter)):
        r = (y - X @ params) * adj
        s = float(np.median(np.abs(r))) / MAD_TO_SIGMA
        if s <= 1e-15 * max(1.0, float(np.max(np.abs(y)))):
            break
        u = r / (float(tuning) * s)
        w = np.where(np.abs(u) < 1.0, (1.0 - u * u) ** 2, 0.0)
        if np.count_nonzero(w) < p:
            break
        new_params = _weighted_lstsq(X, y, w)
        done = np.max(np.abs(new_params - params)) <= tol * max(1.0, float(np.max(np.abs(params))))
        params = new_params
        if done:
            break

    slope = float(params[0])
    intercept = float(params[1]) if fit_intercept else 0.0
    return slope, intercept
