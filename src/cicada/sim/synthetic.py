from __future__ import annotations

from collections.abc import Callable

import numpy as np

from cicada.core.points import CalibrationPoint

AberrationFn = Callable[[np.ndarray, np.ndarray], np.ndarray]


def reference_aberration(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """
    Reference aberration (correction - reference channel) in pixel/section units.

    x and y shift linearly with their own coordinate, z with both; returns (..., 3).
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    ab_x = (1024.0 - x * 4.0 - 1.0) * 0.01 / 80.0 / 4.0
    ab_y = (1024.0 - y * 4.0 - 1.0) * 0.01 / 80.0 / 4.0
    ab_z = ((x * 4.0 + 1.0) * 0.04 + (1024.0 - y * 4.0 - 1.0) * 0.04) / 100.0 / 2.0
    return np.stack(np.broadcast_arrays(ab_x, ab_y, ab_z), axis=-1)


def quadratic_aberration(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """Aberration with curvature in x and y and a cross term in z; returns (..., 3)."""
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    ab_x = 1e-4 * (x - 100.0) ** 2
    ab_y = -2e-4 * (y - 90.0) ** 2
    ab_z = 3e-5 * x * y
    return np.stack(np.broadcast_arrays(ab_x, ab_y, ab_z), axis=-1)


def make_synthetic_calibration(
    n_side: int = 10,
    spacing: float = 24.0,
    origin: tuple[float, float, float] = (12.0, 12.0, 8.0),
    jitter_px: float = 0.0,
    noise_px: float = 0.0,
    n_channels: int = 2,
    reference_channel: int = 0,
    correction_channel: int = 1,
    proxy_scale: float = 0.5,
    seed: int = 0,
    aberration: AberrationFn = reference_aberration,
) -> list[CalibrationPoint]:
    """
    Calibration points on an n_side x n_side grid imaged in `n_channels` channels.

    The correction channel is displaced from the reference by
    `aberration(x, y)`; every other non-reference channel by `proxy_scale`
    times that aberration, which makes it usable as an in situ proxy. Grid nodes
    are jittered uniformly by up to `jitter_px` and every channel position gets
    Gaussian localization noise of `noise_px`.
    """
    if n_side < 2:
        raise ValueError("n_side must be >= 2")
    if n_channels < 2:
        raise ValueError("n_channels must be >= 2")
    for ch in (reference_channel, correction_channel):
        if not 0 <= ch < n_channels:
            raise ValueError(f"channel {ch} out of range for {n_channels} channels")
    if reference_channel == correction_channel:
        raise ValueError("reference_channel and correction_channel must differ")

    rng = np.random.default_rng(seed)
    ox, oy, oz = (float(v) for v in origin)
    iy, ix = np.mgrid[0:n_side, 0:n_side]
    ref = np.stack(
        [
            ox + ix.reshape(-1) * float(spacing),
            oy + iy.reshape(-1) * float(spacing),
            np.full((n_side * n_side,), oz),
        ],
        axis=1,
    )
    if jitter_px > 0:
        ref[:, :2] += rng.uniform(-jitter_px, jitter_px, size=(ref.shape[0], 2))

    aberr = aberration(ref[:, 0], ref[:, 1])
    positions = np.empty((ref.shape[0], n_channels, 3), dtype=np.float64)
    for ch in range(n_channels):
        if ch == reference_channel:
            positions[:, ch] = ref
        elif ch == correction_channel:
            positions[:, ch] = ref + aberr
        else:
            positions[:, ch] = ref + float(proxy_scale) * aberr
    if noise_px > 0:
        positions += rng.normal(0.0, noise_px, size=positions.shape)

    fit_errors = np.full(positions.shape, max(float(noise_px), 1e-3), dtype=np.float64)
    return [
        CalibrationPoint(label=i + 1, positions=positions[i], fit_errors=fit_errors[i])
        for i in range(positions.shape[0])
    ]
