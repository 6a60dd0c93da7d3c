from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from cicada.core.linalg import NUM_CORR_PARAM, quadratic_design_matrix, solve_normal_equations
from cicada.core.points import CalibrationPoint, reference_positions, vector_differences
from cicada.correction.field import CorrectionField
from cicada.errors import InsufficientData, SingularFit

LOGGER = logging.getLogger(__name__)


def pairwise_xy_distances(xy: np.ndarray) -> np.ndarray:
    xy = np.asarray(xy, dtype=np.float64).reshape(-1, 2)
    d = xy[:, None, :] - xy[None, :, :]
    return np.sqrt(np.sum(d * d, axis=-1))


def neighbour_cutoff(distances_to_others: np.ndarray, num_points: int) -> tuple[float, float]:
    """
    Adaptive radius from the distances of one point to all *other* points.

    Returns (radius, d_k): radius is the midpoint between the k-th and (k+1)-th
    smallest distance (1-based); when only k other points exist, the missing
    (k+1)-th distance is taken as 2 * d_k.
    """
    d = np.sort(np.asarray(distances_to_others, dtype=np.float64).reshape(-1))
    k = int(num_points)
    if d.size < k:
        raise InsufficientData(d.size + 1, k + 1)
    d_k = float(d[k - 1])
    d_next = float(d[k]) if d.size > k else 2.0 * d_k
    return 0.5 * (d_k + d_next), d_k


def _fit_local(
    index: int,
    label: int,
    xy: np.ndarray,
    diffs: np.ndarray,
    dist_row: np.ndarray,
    num_points: int,
) -> tuple[float, np.ndarray]:
    others = np.delete(np.arange(xy.shape[0]), index)
    radius, d_k = neighbour_cutoff(dist_row[others], num_points)
    if not radius > 0:
        raise SingularFit(index, label, "zero neighbourhood radius (coincident points)")

    # Inside the radius; neighbours tied with the k-th distance are all kept.
    members = others[(dist_row[others] < radius) | (dist_row[others] <= d_k)]
    fit_idx = np.concatenate([[index], members])
    if fit_idx.size < NUM_CORR_PARAM:
        raise SingularFit(index, label, f"{fit_idx.size} points in neighbourhood, need {NUM_CORR_PARAM}")

    A = quadratic_design_matrix(xy[fit_idx, 0] - xy[index, 0], xy[fit_idx, 1] - xy[index, 1])
    try:
        C = solve_normal_equations(A, diffs[fit_idx])  # (6,3)
    except np.linalg.LinAlgError as e:
        raise SingularFit(index, label, str(e)) from e
    if not np.all(np.isfinite(C)):
        raise SingularFit(index, label, "non-finite coefficients")
    LOGGER.debug("point %d: radius %.4g, %d points in fit", label, radius, fit_idx.size)
    return radius, C


def build_correction(
    points: Sequence[CalibrationPoint],
    reference_channel: int,
    correction_channel: int,
    num_points: int,
) -> CorrectionField:
    """
    Build a correction field from calibration points.

    For every point, a local quadratic model of the channel difference is fitted
    by least squares over the point and its adaptive neighbourhood (at least
    `num_points` nearest neighbours in the reference-channel xy plane).
    """
    if int(num_points) < 1:
        raise ValueError("num_points must be >= 1")
    if reference_channel == correction_channel:
        raise ValueError("reference_channel and correction_channel must differ")
    n = len(points)
    if n < int(num_points) + 1:
        raise InsufficientData(n, int(num_points) + 1)

    positions = reference_positions(points, reference_channel)
    diffs = vector_differences(points, reference_channel, correction_channel)
    xy = positions[:, :2]
    dist = pairwise_xy_distances(xy)

    coeffs = np.empty((n, NUM_CORR_PARAM, 3), dtype=np.float64)
    radii = np.empty((n,), dtype=np.float64)
    for i, p in enumerate(points):
        radii[i], coeffs[i] = _fit_local(i, p.label, xy, diffs, dist[i], int(num_points))

    LOGGER.debug(
        "built correction %d -> %d from %d points (k=%d, median radius %.4g)",
        reference_channel,
        correction_channel,
        n,
        int(num_points),
        float(np.median(radii)),
    )
    return CorrectionField(
        reference_channel=int(reference_channel),
        correction_channel=int(correction_channel),
        positions=positions,
        coeffs_x=coeffs[:, :, 0],
        coeffs_y=coeffs[:, :, 1],
        coeffs_z=coeffs[:, :, 2],
        radii=radii,
    )
