from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np


def _frozen_array(x: np.ndarray, name: str) -> np.ndarray:
    x = np.array(x, dtype=np.float64)
    if x.ndim != 2 or x.shape[1] != 3:
        raise ValueError(f"{name} must have shape (C,3)")
    if x.shape[0] < 1:
        raise ValueError(f"{name} must hold at least one channel")
    x.setflags(write=False)
    return x


@dataclass(frozen=True, eq=False)
class CalibrationPoint:
    """
    One localized object: its (x, y, z) position in every imaged channel.

    Positions are in pixel/section units, row `c` holds channel `c`.
    `fit_errors` optionally carries the per-dimension localization error of each channel.
    """

    label: int
    positions: np.ndarray  # (C,3)
    fit_errors: np.ndarray | None = None  # (C,3)

    def __post_init__(self) -> None:
        positions = _frozen_array(self.positions, "positions")
        if not np.all(np.isfinite(positions)):
            raise ValueError(f"point {self.label}: non-finite positions")
        object.__setattr__(self, "positions", positions)
        object.__setattr__(self, "label", int(self.label))
        if self.fit_errors is not None:
            fit_errors = _frozen_array(self.fit_errors, "fit_errors")
            if fit_errors.shape != positions.shape:
                raise ValueError("fit_errors must have the same shape as positions")
            object.__setattr__(self, "fit_errors", fit_errors)

    @property
    def n_channels(self) -> int:
        return int(self.positions.shape[0])

    def position(self, channel: int) -> np.ndarray:
        if channel < 0 or channel >= self.n_channels:
            raise ValueError(f"point {self.label} has no channel {channel}")
        return self.positions[channel]

    def vector_difference(self, reference_channel: int, target_channel: int) -> np.ndarray:
        """Position in `target_channel` minus position in `reference_channel`."""
        return self.position(target_channel) - self.position(reference_channel)


def reference_positions(points: Sequence[CalibrationPoint], channel: int) -> np.ndarray:
    """Stack the positions of one channel into an (N,3) array."""
    if len(points) == 0:
        return np.zeros((0, 3), dtype=np.float64)
    return np.stack([p.position(channel) for p in points], axis=0)


def vector_differences(points: Sequence[CalibrationPoint], reference_channel: int, target_channel: int) -> np.ndarray:
    """Stack per-point channel differences into an (N,3) array."""
    if len(points) == 0:
        return np.zeros((0, 3), dtype=np.float64)
    return np.stack([p.vector_difference(reference_channel, target_channel) for p in points], axis=0)
