from __future__ import annotations


class CorrectionError(Exception):
    """Base class for numerical and coverage failures of the correction core."""


class UnableToCorrect(CorrectionError):
    """
    No calibration point covers the query position (all blending weights are zero).
    """

    def __init__(self, x: float, y: float) -> None:
        self.x = float(x)
        self.y = float(y)
        super().__init__(f"unable to correct position ({self.x}, {self.y}): no calibration coverage")


class SingularFit(CorrectionError):
    """The local neighbourhood of a calibration point cannot support a quadratic fit."""

    def __init__(self, index: int, label: int, reason: str) -> None:
        self.index = int(index)
        self.label = int(label)
        self.reason = str(reason)
        super().__init__(f"singular local fit for calibration point {self.label} (index {self.index}): {self.reason}")


class InsufficientData(CorrectionError):
    def __init__(self, n_points: int, required: int, what: str = "calibration points") -> None:
        self.n_points = int(n_points)
        self.required = int(required)
        super().__init__(f"need at least {self.required} {what}, got {self.n_points}")
