from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

LOGGER = logging.getLogger(__name__)

_FLOAT_MAX = float(np.finfo(np.float64).max)
_TINY = float(np.finfo(np.float64).tiny)


@dataclass(frozen=True)
class P3DFit:
    mean: float
    std: float
    negative_log_likelihood: float
    success: bool


def p3d(r: np.ndarray, m: float, s: float) -> np.ndarray:
    """
    Density of the distance between two points whose true separation is `m`,
    each localized with isotropic 3D Gaussian error (combined width `s`).
    """
    r = np.asarray(r, dtype=np.float64)
    return (
        np.sqrt(2.0 / np.pi)
        * r
        / (2.0 * m * s)
        * (np.exp(-((m - r) ** 2) / (2.0 * s**2)) - np.exp(-((m + r) ** 2) / (2.0 * s**2)))
    )


def p3d_negative_log_likelihood(
    distances: np.ndarray,
    m: float,
    s: float,
    robust_cutoff: float | None = None,
) -> float:
    if m < 0 or s <= 0:
        return _FLOAT_MAX
    with np.errstate(divide="ignore", over="ignore", invalid="ignore"):
        p = p3d(distances, m, s)
    nll = -np.log(np.clip(np.nan_to_num(p, nan=0.0), _TINY, None))
    if robust_cutoff is not None:
        nll = np.minimum(nll, float(robust_cutoff))
    return float(np.sum(nll))


def fit_p3d(
    distances: np.ndarray,
    robust_cutoff: float | None = None,
    fixed_s: float | None = None,
) -> P3DFit:
    """
    Maximum-likelihood (mean, std) of the P3D distribution for a set of distances.

    Nelder-Mead starts from the sample mean and standard deviation. With
    `robust_cutoff`, each point contributes at most that much to the negative log
    likelihood, which bounds the influence of outliers. With `fixed_s`, only the
    mean is fitted.
    """
    from scipy.optimize import minimize  # type: ignore

    d = np.asarray(distances, dtype=np.float64).reshape(-1)
    d = d[np.isfinite(d)]
    if d.size < 2:
        raise ValueError("need at least 2 finite distances for a P3D fit")
    if fixed_s is not None and not fixed_s > 0:
        raise ValueError("fixed_s must be > 0")

    m0 = float(np.mean(d))
    s0 = float(np.std(d))
    if not s0 > 0:
        s0 = max(abs(m0), 1.0) * 1e-3

    if fixed_s is None:
        x0 = np.array([m0, s0], dtype=np.float64)

        def objective(x: np.ndarray) -> float:
            return p3d_negative_log_likelihood(d, float(x[0]), float(x[1]), robust_cutoff)

    else:
        x0 = np.array([m0], dtype=np.float64)

        def objective(x: np.ndarray) -> float:
            return p3d_negative_log_likelihood(d, float(x[0]), float(fixed_s), robust_cutoff)

    res = minimize(
        objective,
        x0,
        method="Nelder-Mead",
        options={"xatol": 1e-10, "fatol": 1e-12, "maxiter": 20000, "maxfev": 40000},
    )
    mean = float(res.x[0])
    std = float(res.x[1]) if fixed_s is None else float(fixed_s)
    fit = P3DFit(mean=mean, std=std, negative_log_likelihood=float(res.fun), success=bool(res.success))
    LOGGER.info("p3d fit parameters: mean %.6g, std %.6g", fit.mean, fit.std)
    if not fit.success:
        LOGGER.warning("p3d fit did not converge: %s", res.message)
    return fit
