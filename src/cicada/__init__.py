from cicada import parameters
from cicada.api import load_points, read_correction, save_points, write_correction
from cicada.core.points import CalibrationPoint
from cicada.correction import (
    CorrectionField,
    InSituModel,
    TREReport,
    apply_correction,
    apply_in_situ,
    build_correction,
    determine_tre,
    fit_in_situ,
)
from cicada.errors import CorrectionError, InsufficientData, SingularFit, UnableToCorrect

__version__ = "0.1.0"

__all__ = [
    "parameters",
    "CalibrationPoint",
    "CorrectionField",
    "build_correction",
    "determine_tre",
    "TREReport",
    "apply_correction",
    "InSituModel",
    "fit_in_situ",
    "apply_in_situ",
    "read_correction",
    "write_correction",
    "load_points",
    "save_points",
    "CorrectionError",
    "UnableToCorrect",
    "SingularFit",
    "InsufficientData",
]
