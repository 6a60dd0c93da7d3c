from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from cicada.core.points import CalibrationPoint
from cicada.correction.builder import build_correction
from cicada.errors import CorrectionError, InsufficientData

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TRETrial:
    index: int
    label: int
    succeeded: bool
    error_3d: float | None = None
    error_2d: float | None = None
    failure: str | None = None


@dataclass(frozen=True)
class TREReport:
    """
    Leave-one-out target registration error, in the units of `pixel_to_distance`.

    Means are taken over successful trials only.
    """

    tre_3d: float
    tre_2d: float
    trials: tuple[TRETrial, ...]

    @property
    def n_succeeded(self) -> int:
        return sum(1 for t in self.trials if t.succeeded)

    @property
    def n_failed(self) -> int:
        return sum(1 for t in self.trials if not t.succeeded)


def _leave_one_out_trial(
    points: Sequence[CalibrationPoint],
    index: int,
    reference_channel: int,
    correction_channel: int,
    num_points: int,
    scale: np.ndarray,
) -> TRETrial:
    held_out = points[index]
    remaining = [p for j, p in enumerate(points) if j != index]
    x, y = held_out.position(reference_channel)[:2]
    try:
        field = build_correction(remaining, reference_channel, correction_channel, num_points)
        predicted = field.correct(x, y)
    except CorrectionError as e:
        LOGGER.debug("TRE trial for point %d failed: %s", held_out.label, e)
        return TRETrial(index=index, label=held_out.label, succeeded=False, failure=str(e))

    measured = held_out.vector_difference(reference_channel, correction_channel)
    residual = (predicted - measured) * scale
    return TRETrial(
        index=index,
        label=held_out.label,
        succeeded=True,
        error_3d=float(np.linalg.norm(residual)),
        error_2d=float(np.linalg.norm(residual[:2])),
    )


def determine_tre(
    points: Sequence[CalibrationPoint],
    reference_channel: int,
    correction_channel: int,
    num_points: int,
    pixel_to_distance: Sequence[float] = (1.0, 1.0, 1.0),
    max_workers: int = 1,
) -> TREReport:
    """
    Leave-one-out target registration error of the correction.

    Each calibration point in turn is removed, a field is built from the others and
    queried at the removed point's reference position; the residual against its
    measured channel difference is converted with `pixel_to_distance` (x, y, z scale).
    Trials are independent and run on up to `max_workers` threads.
    """
    points = list(points)
    n = len(points)
    if n < int(num_points) + 2:
        raise InsufficientData(n, int(num_points) + 2)
    if int(max_workers) < 1:
        raise ValueError("max_workers must be >= 1")
    scale = np.asarray(pixel_to_distance, dtype=np.float64).reshape(3)

    with ThreadPoolExecutor(max_workers=int(max_workers)) as executor:
        futures = [
            executor.submit(
                _leave_one_out_trial, points, i, reference_channel, correction_channel, int(num_points), scale
            )
            for i in range(n)
        ]
        trials = tuple(f.result() for f in futures)

    ok = [t for t in trials if t.succeeded]
    if not ok:
        raise CorrectionError(f"all {n} leave-one-out trials failed")
    tre_3d = math.fsum(t.error_3d for t in ok) / len(ok)
    tre_2d = math.fsum(t.error_2d for t in ok) / len(ok)
    LOGGER.info("TRE over %d/%d trials: 3D %.4g, 2D %.4g", len(ok), n, tre_3d, tre_2d)
    if len(ok) < n:
        LOGGER.warning("%d leave-one-out trials could not be corrected", n - len(ok))
    return TREReport(tre_3d=tre_3d, tre_2d=tre_2d, trials=trials)
