from __future__ import annotations

import logging
from dataclasses import dataclass, field as dc_field
from pathlib import Path

import numpy as np

from cicada.api.correction_io import read_correction, write_correction
from cicada.api.position_io import (
    correction_filename,
    differences_filename,
    in_situ_position_data_filename,
    load_points,
    position_data_filename,
    write_differences,
)
from cicada.correction.apply import CorrectedPoint, apply_correction, scalar_distances
from cicada.correction.builder import build_correction
from cicada.correction.field import CorrectionField
from cicada.correction.in_situ import InSituModel, apply_in_situ, fit_in_situ
from cicada.correction.tre import TREReport, determine_tre
from cicada.eval.p3d import P3DFit, fit_p3d
from cicada.parameters import AnalysisParameters

LOGGER = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    field: CorrectionField
    tre: TREReport | None = None
    corrected: tuple[CorrectedPoint, ...] = ()
    distances: np.ndarray | None = None  # (M,) physical units, successfully corrected points
    p3d: P3DFit | None = None
    in_situ: InSituModel | None = None
    in_situ_distances: np.ndarray | None = None
    in_situ_p3d: P3DFit | None = None
    written: list[Path] = dc_field(default_factory=list)


def _try_fit_p3d(distances: np.ndarray, p: AnalysisParameters, stage: str) -> P3DFit | None:
    try:
        return fit_p3d(distances, robust_cutoff=p.robust_p3d_fit_cutoff)
    except ValueError as e:
        LOGGER.warning("unable to fit p3d distribution %s: %s", stage, e)
        return None


def run_analysis(p: AnalysisParameters) -> AnalysisResult:
    """
    Full correction run driven by a parameter set.

    1. load the localized points (`<basename>_position_data.npz`);
    2. build the correction from them, or read `<correction_date>_correction.xml`;
    3. optionally determine the TRE and store it with the correction, then write it;
    4. correct the points and fit the P3D distribution to the corrected distances;
    5. optionally fit and apply an in situ correction from a second point file.

    The in situ stage works on the raw reference/target channel differences of
    the points the field corrected successfully. Its distances replace the
    field-corrected ones rather than refine them; both are written and fitted
    separately.
    """
    points = load_points(position_data_filename(p))
    LOGGER.info("loaded %d points from %s", len(points), position_data_filename(p))

    if p.determine_correction:
        corr_field = build_correction(points, p.reference_channel, p.channel_to_correct, p.num_points)
        LOGGER.info(
            "built correction %d -> %d from %d points (median radius %.4g)",
            corr_field.reference_channel,
            corr_field.correction_channel,
            corr_field.n_points,
            float(np.median(corr_field.radii)),
        )
    else:
        corr_field = read_correction(correction_filename(p))
        LOGGER.info("read correction from %s", correction_filename(p))

    result = AnalysisResult(field=corr_field)

    if p.determine_tre and p.determine_correction:
        report = determine_tre(
            points,
            p.reference_channel,
            p.channel_to_correct,
            p.num_points,
            pixel_to_distance=p.pixel_to_distance,
            max_workers=p.max_threads,
        )
        corr_field = corr_field.with_tre(report.tre_3d, report.tre_2d)
        result.field = corr_field
        result.tre = report
    elif corr_field.has_tre:
        LOGGER.info("stored TRE: 3D %.4g, 2D %.4g", corr_field.tre_3d, corr_field.tre_2d)

    if p.determine_correction:
        result.written.append(write_correction(correction_filename(p), corr_field))

    if not p.correct_images:
        return result

    corrected = apply_correction(corr_field, points, p.pixel_to_distance)
    result.corrected = corrected
    ok = [c for c in corrected if c.succeeded]
    diffs = np.stack([c.difference for c in ok], axis=0) if ok else np.empty((0, 3))
    result.distances = scalar_distances(diffs)
    result.written.append(write_differences(differences_filename(p), result.distances))
    result.p3d = _try_fit_p3d(result.distances, p, "after correction")

    if p.in_situ_enabled:
        in_situ_points = load_points(in_situ_position_data_filename(p))
        model = fit_in_situ(
            in_situ_points,
            p.reference_channel,
            int(p.in_situ_aberr_corr_channel),
            p.channel_to_correct,
            disable_intercept=p.disable_in_situ_intercept,
        )
        ok_points = [pt for pt, c in zip(points, corrected, strict=True) if c.succeeded]
        scale = np.asarray(p.pixel_to_distance, dtype=np.float64)
        vector_diffs = apply_in_situ(model, ok_points) * scale[None, :] if ok_points else np.empty((0, 3))
        result.in_situ = model
        result.in_situ_distances = scalar_distances(vector_diffs)
        result.written.append(write_differences(differences_filename(p, in_situ=True), result.in_situ_distances))
        result.in_situ_p3d = _try_fit_p3d(result.in_situ_distances, p, "after in situ correction")

    return result
