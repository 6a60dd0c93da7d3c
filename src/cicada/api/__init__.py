from cicada.api.correction_io import correction_from_xml, correction_to_xml, read_correction, write_correction
from cicada.api.position_io import load_points, save_points

__all__ = [
    "correction_to_xml",
    "correction_from_xml",
    "read_correction",
    "write_correction",
    "load_points",
    "save_points",
]
