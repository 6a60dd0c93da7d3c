from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from cicada.core.linalg import fit_bisquare_line
from cicada.core.points import CalibrationPoint, vector_differences
from cicada.errors import InsufficientData

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class InSituModel:
    """
    Per-dimension linear relation between two channel differences:

      target_diff ~ slope * proxy_diff + intercept

    where proxy_diff is measured between the reference channel and an auxiliary
    (proxy) channel, and target_diff between the reference and the channel being
    corrected. With `disable_intercept`, intercepts are exactly zero and never added.
    """

    reference_channel: int
    proxy_channel: int
    target_channel: int
    slopes: np.ndarray  # (3,)
    intercepts: np.ndarray  # (3,)
    disable_intercept: bool = False

    def __post_init__(self) -> None:
        slopes = np.array(self.slopes, dtype=np.float64).reshape(3)
        intercepts = np.array(self.intercepts, dtype=np.float64).reshape(3)
        if self.disable_intercept:
            intercepts = np.zeros((3,), dtype=np.float64)
        slopes.setflags(write=False)
        intercepts.setflags(write=False)
        object.__setattr__(self, "slopes", slopes)
        object.__setattr__(self, "intercepts", intercepts)

    @classmethod
    def fit(
        cls,
        proxy_diffs: np.ndarray,
        target_diffs: np.ndarray,
        *,
        reference_channel: int = 0,
        proxy_channel: int = 1,
        target_channel: int = 2,
        disable_intercept: bool = False,
    ) -> "InSituModel":
        proxy_diffs = np.asarray(proxy_diffs, dtype=np.float64).reshape(-1, 3)
        target_diffs = np.asarray(target_diffs, dtype=np.float64).reshape(-1, 3)
        if proxy_diffs.shape != target_diffs.shape:
            raise ValueError("proxy_diffs and target_diffs must have the same shape")
        required = 2 if disable_intercept else 3
        if proxy_diffs.shape[0] < required:
            raise InsufficientData(proxy_diffs.shape[0], required, what="in situ calibration points")

        slopes = np.empty((3,), dtype=np.float64)
        intercepts = np.zeros((3,), dtype=np.float64)
        for dim in range(3):
            slopes[dim], intercepts[dim] = fit_bisquare_line(
                proxy_diffs[:, dim], target_diffs[:, dim], fit_intercept=not disable_intercept
            )
        LOGGER.info(
            "in situ correction slopes %s, intercepts %s",
            np.array2string(slopes, precision=4),
            np.array2string(intercepts, precision=4),
        )
        return cls(
            reference_channel=int(reference_channel),
            proxy_channel=int(proxy_channel),
            target_channel=int(target_channel),
            slopes=slopes,
            intercepts=intercepts,
            disable_intercept=bool(disable_intercept),
        )

    def predict(self, proxy_diffs: np.ndarray) -> np.ndarray:
        proxy_diffs = np.asarray(proxy_diffs, dtype=np.float64).reshape(-1, 3)
        if self.disable_intercept:
            return proxy_diffs * self.slopes[None, :]
        return proxy_diffs * self.slopes[None, :] + self.intercepts[None, :]

    def apply(self, proxy_diffs: np.ndarray, target_diffs: np.ndarray) -> np.ndarray:
        """Corrected target differences (M,3): target - (slope * proxy + intercept)."""
        target_diffs = np.asarray(target_diffs, dtype=np.float64).reshape(-1, 3)
        correction = self.predict(proxy_diffs)
        if correction.shape != target_diffs.shape:
            raise ValueError("proxy_diffs and target_diffs must have the same shape")
        return target_diffs - correction


def fit_in_situ(
    points: Sequence[CalibrationPoint],
    reference_channel: int,
    proxy_channel: int,
    target_channel: int,
    disable_intercept: bool = False,
) -> InSituModel:
    """Fit an in situ correction from points imaged in the reference, proxy and target channels."""
    return InSituModel.fit(
        vector_differences(points, reference_channel, proxy_channel),
        vector_differences(points, reference_channel, target_channel),
        reference_channel=reference_channel,
        proxy_channel=proxy_channel,
        target_channel=target_channel,
        disable_intercept=disable_intercept,
    )


def apply_in_situ(model: InSituModel, points: Sequence[CalibrationPoint]) -> np.ndarray:
    """In situ corrected differences (N,3) between the model's reference and target channels."""
    return model.apply(
        vector_differences(points, model.reference_channel, model.proxy_channel),
        vector_differences(points, model.reference_channel, model.target_channel),
    )
