from __future__ import annotations

from pathlib import Path
from typing import Sequence

import numpy as np

from cicada.core.points import CalibrationPoint
from cicada.parameters import AnalysisParameters

POSITIONS_SCHEMA = "cicada.positions.v0"

POS_DATA_EXTENSION = "_position_data.npz"
CORR_XML_EXTENSION = "_correction.xml"
DIFFS_TXT_EXTENSION = "_diffs.txt"
IN_SITU_DIFFS_TXT_EXTENSION = "_in_situ_diffs.txt"


def save_points(path: Path, points: Sequence[CalibrationPoint]) -> Path:
    """
    Save localized points into a single `.npz`:

      labels (N,), positions (N,C,3) and, if every point has them, fit_errors (N,C,3).
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if len(points) == 0:
        raise ValueError("no points to save")
    n_channels = {p.n_channels for p in points}
    if len(n_channels) != 1:
        raise ValueError("all points must have the same number of channels")

    arrays: dict[str, np.ndarray] = {
        "schema_version": np.array(POSITIONS_SCHEMA),
        "labels": np.asarray([p.label for p in points], dtype=np.int64),
        "positions": np.stack([p.positions for p in points], axis=0),
    }
    if all(p.fit_errors is not None for p in points):
        arrays["fit_errors"] = np.stack([p.fit_errors for p in points], axis=0)
    np.savez_compressed(path, **arrays)
    return path


def load_points(path: Path) -> list[CalibrationPoint]:
    with np.load(Path(path), allow_pickle=False) as data:
        if str(data["schema_version"]) != POSITIONS_SCHEMA:
            raise ValueError("unsupported position data schema")
        labels = np.asarray(data["labels"], dtype=np.int64).reshape(-1)
        positions = np.asarray(data["positions"], dtype=np.float64)
        fit_errors = np.asarray(data["fit_errors"], dtype=np.float64) if "fit_errors" in data else None
    if positions.ndim != 3 or positions.shape[0] != labels.shape[0] or positions.shape[2] != 3:
        raise ValueError("positions must have shape (N,C,3) matching labels")
    return [
        CalibrationPoint(
            label=int(labels[i]),
            positions=positions[i],
            fit_errors=None if fit_errors is None else fit_errors[i],
        )
        for i in range(labels.shape[0])
    ]


def position_data_filename(p: AnalysisParameters) -> Path:
    return p.data_directory / (p.basename + POS_DATA_EXTENSION)


def in_situ_position_data_filename(p: AnalysisParameters) -> Path:
    if p.in_situ_aberr_corr_basename is None:
        raise ValueError("in_situ_aberr_corr_basename is not set")
    return p.data_directory / (p.in_situ_aberr_corr_basename + POS_DATA_EXTENSION)


def correction_filename(p: AnalysisParameters) -> Path:
    return p.data_directory / (p.correction_date + CORR_XML_EXTENSION)


def differences_filename(p: AnalysisParameters, in_situ: bool = False) -> Path:
    ext = IN_SITU_DIFFS_TXT_EXTENSION if in_situ else DIFFS_TXT_EXTENSION
    return p.output_directory / (p.basename + ext)


def write_differences(path: Path, diffs: np.ndarray) -> Path:
    """One difference per line: a scalar, or whitespace-separated vector components."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    diffs = np.asarray(diffs, dtype=np.float64)
    if diffs.ndim == 1:
        lines = [repr(float(d)) for d in diffs]
    else:
        lines = [" ".join(repr(float(v)) for v in row) for row in diffs.reshape(diffs.shape[0], -1)]
    path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
    return path
