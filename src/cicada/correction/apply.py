from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from cicada.core.points import CalibrationPoint
from cicada.correction.field import CorrectionField
from cicada.errors import UnableToCorrect

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class CorrectedPoint:
    """
    Outcome of correcting one point: its aberration-corrected channel difference
    in physical units, or `succeeded=False` when the field does not cover it.
    """

    label: int
    succeeded: bool
    difference: np.ndarray | None = None  # (3,)

    @property
    def distance(self) -> float:
        if self.difference is None:
            raise ValueError(f"point {self.label} was not corrected")
        return float(np.linalg.norm(self.difference))


def correct_point(field: CorrectionField, point: CalibrationPoint) -> np.ndarray:
    """Corrected channel difference of one point, in pixel/section units."""
    x, y = point.position(field.reference_channel)[:2]
    measured = point.vector_difference(field.reference_channel, field.correction_channel)
    return measured - field.correct(x, y)


def apply_correction(
    field: CorrectionField,
    points: Sequence[CalibrationPoint],
    pixel_to_distance: Sequence[float] = (1.0, 1.0, 1.0),
) -> tuple[CorrectedPoint, ...]:
    scale = np.asarray(pixel_to_distance, dtype=np.float64).reshape(3)
    out: list[CorrectedPoint] = []
    for p in points:
        try:
            diff = correct_point(field, p)
        except UnableToCorrect as e:
            LOGGER.debug("point %d left uncorrected: %s", p.label, e)
            out.append(CorrectedPoint(label=p.label, succeeded=False))
            continue
        out.append(CorrectedPoint(label=p.label, succeeded=True, difference=diff * scale))
    n_ok = sum(1 for c in out if c.succeeded)
    LOGGER.info("corrected %d/%d points", n_ok, len(out))
    return tuple(out)


def scalar_distances(vectors: np.ndarray) -> np.ndarray:
    """Euclidean norm of each row of an (N,3) array."""
    vectors = np.asarray(vectors, dtype=np.float64).reshape(-1, 3)
    return np.sqrt(np.sum(vectors * vectors, axis=1))
