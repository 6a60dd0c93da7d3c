from cicada.correction.apply import CorrectedPoint, apply_correction, scalar_distances
from cicada.correction.builder import build_correction
from cicada.correction.field import CorrectionField
from cicada.correction.in_situ import InSituModel, apply_in_situ, fit_in_situ
from cicada.correction.tre import TREReport, TRETrial, determine_tre

__all__ = [
    "CorrectionField",
    "build_correction",
    "determine_tre",
    "TREReport",
    "TRETrial",
    "apply_correction",
    "CorrectedPoint",
    "scalar_distances",
    "InSituModel",
    "fit_in_situ",
    "apply_in_situ",
]
