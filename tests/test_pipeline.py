from __future__ import annotations

import numpy as np
import pytest

from cicada.api.position_io import load_points, save_points
from cicada.correction.apply import scalar_distances
from cicada.correction.in_situ import apply_in_situ
from cicada.parameters import parse_parameters
from cicada.pipeline import run_analysis
from cicada.sim.synthetic import make_synthetic_calibration


def _params(tmp_path, **overrides):
    data = {
        "reference_channel": 0,
        "channel_to_correct": 1,
        "num_points": 12,
        "pixelsize_nm": 80,
        "z_sectionsize_nm": 100,
        "data_directory": str(tmp_path),
        "output_directory": str(tmp_path / "out"),
        "basename": "beads",
        "correction_date": "2024-01-01",
        "determine_tre": True,
        "max_threads": 2,
    }
    data.update(overrides)
    return parse_parameters(data)


def _write_beads(tmp_path, n_channels: int = 2) -> None:
    pts = make_synthetic_calibration(
        n_side=9, spacing=24.0, jitter_px=3.0, noise_px=0.02, n_channels=n_channels, seed=31
    )
    save_points(tmp_path / "beads_position_data.npz", pts)


def test_run_builds_corrects_and_fits(tmp_path):
    _write_beads(tmp_path)
    p = _params(tmp_path)
    result = run_analysis(p)

    assert result.tre is not None
    assert result.field.has_tre
    assert result.field.tre_3d == result.tre.tre_3d
    assert (tmp_path / "2024-01-01_correction.xml").exists()
    diffs_path = tmp_path / "out" / "beads_diffs.txt"
    assert diffs_path in result.written
    assert len(diffs_path.read_text(encoding="utf-8").splitlines()) == len(result.distances)
    assert len(result.corrected) == 81
    assert result.p3d is not None
    assert result.in_situ is None


def test_run_reads_an_existing_correction(tmp_path):
    _write_beads(tmp_path)
    first = run_analysis(_params(tmp_path))
    second = run_analysis(_params(tmp_path, determine_correction=False, determine_tre=False))
    np.testing.assert_array_equal(second.field.coeffs_x, first.field.coeffs_x)
    assert second.field.tre_3d == first.field.tre_3d
    assert second.tre is None
    np.testing.assert_array_equal(second.distances, first.distances)


def test_run_without_correcting_images(tmp_path):
    _write_beads(tmp_path)
    result = run_analysis(_params(tmp_path, correct_images=False, determine_tre=False))
    assert result.corrected == ()
    assert result.distances is None
    assert result.written == [tmp_path / "2024-01-01_correction.xml"]


def test_run_with_in_situ_correction(tmp_path):
    _write_beads(tmp_path, n_channels=3)
    in_situ = make_synthetic_calibration(n_side=6, spacing=30.0, jitter_px=2.0, n_channels=3, seed=32)
    save_points(tmp_path / "cells_position_data.npz", in_situ)
    p = _params(
        tmp_path,
        determine_tre=False,
        in_situ_aberr_corr_channel=2,
        in_situ_aberr_corr_basename="cells",
    )
    result = run_analysis(p)
    assert result.in_situ is not None
    np.testing.assert_allclose(result.in_situ.slopes, [2.0, 2.0, 2.0], atol=1e-6)
    assert (tmp_path / "out" / "beads_in_situ_diffs.txt").exists()
    assert result.in_situ_distances.shape == result.distances.shape
    # In situ distances come from the raw channel differences of the corrected points.
    beads = load_points(tmp_path / "beads_position_data.npz")
    ok = [pt for pt, c in zip(beads, result.corrected, strict=True) if c.succeeded]
    expected = scalar_distances(apply_in_situ(result.in_situ, ok) * np.array([80.0, 80.0, 100.0]))
    np.testing.assert_allclose(result.in_situ_distances, expected)


def test_run_missing_position_data(tmp_path):
    with pytest.raises(FileNotFoundError):
        run_analysis(_params(tmp_path))
