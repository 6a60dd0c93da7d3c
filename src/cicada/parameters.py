from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

PARAMETERS_SCHEMA = "cicada.parameters.v0"


class ParameterValidationError(ValueError):
    pass


@dataclass(frozen=True)
class AnalysisParameters:
    reference_channel: int
    channel_to_correct: int
    num_points: int
    pixelsize_nm: float
    z_sectionsize_nm: float
    data_directory: Path
    basename: str
    correction_date: str
    output_directory: Path
    determine_correction: bool = True
    determine_tre: bool = False
    correct_images: bool = True
    max_threads: int = 1
    in_situ_aberr_corr_channel: int | None = None
    in_situ_aberr_corr_basename: str | None = None
    disable_in_situ_intercept: bool = False
    robust_p3d_fit_cutoff: float | None = None
    log_to_file: Path | None = None
    log_detailed_messages: bool = False

    @property
    def pixel_to_distance(self) -> tuple[float, float, float]:
        return (self.pixelsize_nm, self.pixelsize_nm, self.z_sectionsize_nm)

    @property
    def in_situ_enabled(self) -> bool:
        return self.in_situ_aberr_corr_channel is not None and self.in_situ_aberr_corr_basename is not None


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ParameterValidationError(msg)


def _bool(data: dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    _require(isinstance(value, bool), f"{key} must be true or false")
    return value


def _int(data: dict[str, Any], key: str) -> int:
    value = data.get(key)
    _require(value is not None, f"{key} is required")
    _require(isinstance(value, int) and not isinstance(value, bool), f"{key} must be an integer")
    return int(value)


def _optional(data: dict[str, Any], key: str) -> Any:
    value = data.get(key)
    return None if value is None else value


def load_parameters(path: Path) -> AnalysisParameters:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return parse_parameters(data, base_dir=Path(path).resolve().parent)


def parse_parameters(data: dict[str, Any], base_dir: Path | None = None) -> AnalysisParameters:
    """
    Validate a parameter dictionary (the content of a JSON parameter file).

    Relative directories are resolved against `base_dir` when given.
    """
    _require(isinstance(data, dict), "parameters must be a JSON object")
    schema_version = data.get("schema_version", PARAMETERS_SCHEMA)
    _require(schema_version == PARAMETERS_SCHEMA, f"schema_version must be {PARAMETERS_SCHEMA}")

    ref_ch = _int(data, "reference_channel")
    corr_ch = _int(data, "channel_to_correct")
    _require(ref_ch >= 0 and corr_ch >= 0, "channel indices must be >= 0")
    _require(ref_ch != corr_ch, "reference_channel and channel_to_correct must differ")

    num_points = _int(data, "num_points")
    _require(num_points >= 1, "num_points must be >= 1")

    pixelsize_raw = data.get("pixelsize_nm")
    z_raw = data.get("z_sectionsize_nm")
    _require(pixelsize_raw is not None, "pixelsize_nm is required")
    _require(z_raw is not None, "z_sectionsize_nm is required")
    pixelsize_nm = float(pixelsize_raw)
    z_sectionsize_nm = float(z_raw)
    _require(pixelsize_nm > 0.0 and z_sectionsize_nm > 0.0, "pixelsize_nm and z_sectionsize_nm must be > 0")

    def _dir(value: Any) -> Path:
        p = Path(str(value)).expanduser()
        if base_dir is not None and not p.is_absolute():
            p = base_dir / p
        return p

    for key in ("data_directory", "basename", "correction_date"):
        _require(bool(data.get(key)), f"{key} is required")
    data_directory = _dir(data["data_directory"])
    output_directory = _dir(data["output_directory"]) if data.get("output_directory") else data_directory

    max_threads = int(data.get("max_threads", 1))
    _require(max_threads >= 1, "max_threads must be >= 1")

    in_situ_ch = _optional(data, "in_situ_aberr_corr_channel")
    if in_situ_ch is not None:
        in_situ_ch = _int(data, "in_situ_aberr_corr_channel")
        _require(in_situ_ch >= 0, "in_situ_aberr_corr_channel must be >= 0")
        _require(in_situ_ch not in (ref_ch, corr_ch), "in_situ_aberr_corr_channel must differ from the corrected pair")
    in_situ_basename = _optional(data, "in_situ_aberr_corr_basename")

    robust_cutoff = _optional(data, "robust_p3d_fit_cutoff")
    if robust_cutoff is not None:
        robust_cutoff = float(robust_cutoff)
        _require(robust_cutoff > 0.0, "robust_p3d_fit_cutoff must be > 0")

    log_to_file = _optional(data, "log_to_file")

    return AnalysisParameters(
        reference_channel=ref_ch,
        channel_to_correct=corr_ch,
        num_points=num_points,
        pixelsize_nm=pixelsize_nm,
        z_sectionsize_nm=z_sectionsize_nm,
        data_directory=data_directory,
        basename=str(data["basename"]),
        correction_date=str(data["correction_date"]),
        output_directory=output_directory,
        determine_correction=_bool(data, "determine_correction", True),
        determine_tre=_bool(data, "determine_tre", False),
        correct_images=_bool(data, "correct_images", True),
        max_threads=max_threads,
        in_situ_aberr_corr_channel=in_situ_ch,
        in_situ_aberr_corr_basename=None if in_situ_basename is None else str(in_situ_basename),
        disable_in_situ_intercept=_bool(data, "disable_in_situ_intercept", False),
        robust_p3d_fit_cutoff=robust_cutoff,
        log_to_file=None if log_to_file is None else _dir(log_to_file),
        log_detailed_messages=_bool(data, "log_detailed_messages", False),
    )
