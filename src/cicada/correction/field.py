from __future__ import annotations

from dataclasses import dataclass, replace

import numpy as np

from cicada.core.linalg import NUM_CORR_PARAM, eval_quadratic
from cicada.errors import UnableToCorrect


def blending_weights(dist_ratio: np.ndarray) -> np.ndarray:
    """
    Hermite kernel w(e) = 2e^3 - 3e^2 + 1 on [0, 1], zero beyond.
    """
    e = np.asarray(dist_ratio, dtype=np.float64)
    w = 2.0 * e**3 - 3.0 * e**2 + 1.0
    return np.where(e > 1.0, 0.0, w)


@dataclass(frozen=True, eq=False)
class CorrectionField:
    """
    Spatially varying aberration correction between two channels.

    Each calibration point i carries a local quadratic model of the channel
    difference (correction - reference), one per output dimension:

      d(x, y) = c0 + c1 dx + c2 dy + c3 dx^2 + c4 dy^2 + c5 dx dy,   dx = x - x_i, dy = y - y_i

    and a radius r_i limiting where that model contributes. A query blends the
    local models of all points within their radius.
    """

    reference_channel: int
    correction_channel: int
    positions: np.ndarray  # (N,3) reference-channel positions
    coeffs_x: np.ndarray  # (N,6)
    coeffs_y: np.ndarray  # (N,6)
    coeffs_z: np.ndarray  # (N,6)
    radii: np.ndarray  # (N,)
    tre_3d: float | None = None
    tre_2d: float | None = None

    def __post_init__(self) -> None:
        positions = np.array(self.positions, dtype=np.float64).reshape(-1, 3)
        n = positions.shape[0]
        if n == 0:
            raise ValueError("a correction field needs at least one calibration point")
        arrays = {"positions": positions}
        for name in ("coeffs_x", "coeffs_y", "coeffs_z"):
            c = np.array(getattr(self, name), dtype=np.float64)
            if c.shape != (n, NUM_CORR_PARAM):
                raise ValueError(f"{name} must have shape ({n},{NUM_CORR_PARAM})")
            arrays[name] = c
        radii = np.array(self.radii, dtype=np.float64).reshape(-1)
        if radii.shape != (n,):
            raise ValueError(f"radii must have shape ({n},)")
        if not np.all(radii > 0):
            raise ValueError("radii must be > 0")
        arrays["radii"] = radii
        for name, arr in arrays.items():
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)
        object.__setattr__(self, "reference_channel", int(self.reference_channel))
        object.__setattr__(self, "correction_channel", int(self.correction_channel))

    @property
    def n_points(self) -> int:
        return int(self.positions.shape[0])

    @property
    def has_tre(self) -> bool:
        return self.tre_3d is not None

    def with_tre(self, tre_3d: float, tre_2d: float) -> "CorrectionField":
        return replace(self, tre_3d=float(tre_3d), tre_2d=float(tre_2d))

    def _candidates(self, x: float, y: float) -> tuple[np.ndarray, np.ndarray]:
        dx = x - self.positions[:, 0]
        dy = y - self.positions[:, 1]
        w = blending_weights(np.sqrt(dx * dx + dy * dy) / self.radii)
        keep = w > 0
        cand = np.stack(
            [
                eval_quadratic(self.coeffs_x[keep], dx[keep], dy[keep]),
                eval_quadratic(self.coeffs_y[keep], dx[keep], dy[keep]),
                eval_quadratic(self.coeffs_z[keep], dx[keep], dy[keep]),
            ],
            axis=1,
        )
        return w[keep], cand

    def correct(self, x: float, y: float) -> np.ndarray:
        """
        Correction (dx, dy, dz) at reference-channel position (x, y), in pixel/section units.

        Raises UnableToCorrect when (x, y) lies outside every calibration radius.
        """
        x = float(x)
        y = float(y)
        w, cand = self._candidates(x, y)
        if w.size == 0:
            raise UnableToCorrect(x, y)
        return (w[:, None] * cand).sum(axis=0) / float(np.sum(w))

    def correct_points(self, xy: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """
        Vectorized query for many positions.

        Returns (corrections (M,3), covered (M,)); rows without coverage are NaN and
        flagged False.
        """
        xy = np.asarray(xy, dtype=np.float64).reshape(-1, 2)
        dx = xy[:, 0:1] - self.positions[None, :, 0]  # (M,N)
        dy = xy[:, 1:2] - self.positions[None, :, 1]
        w = blending_weights(np.sqrt(dx * dx + dy * dy) / self.radii[None, :])
        A = np.stack([np.ones_like(dx), dx, dy, dx * dx, dy * dy, dx * dy], axis=-1)  # (M,N,6)
        cand = np.stack(
            [
                np.sum(A * self.coeffs_x[None], axis=-1),
                np.sum(A * self.coeffs_y[None], axis=-1),
                np.sum(A * self.coeffs_z[None], axis=-1),
            ],
            axis=-1,
        )  # (M,N,3)
        wsum = np.sum(w, axis=1)
        covered = wsum > 0
        out = np.full((xy.shape[0], 3), np.nan, dtype=np.float64)
        out[covered] = np.sum(w[covered, :, None] * cand[covered], axis=1) / wsum[covered, None]
        return out, covered
