from __future__ import annotations

import json

import numpy as np

from cicada.api.correction_io import read_correction
from cicada.cli.main import main
from cicada.eval.aberration_map import load_aberration_map


def test_cli_generate_build_correct_map(tmp_path, capsys):
    points = tmp_path / "beads_position_data.npz"
    corr = tmp_path / "corr.xml"
    tif = tmp_path / "map.tif"

    assert main(["generate-synthetic", "--out", str(points), "--n-side", "8", "--jitter-px", "2"]) == 0
    assert main(["build", str(points), "--out", str(corr), "--num-points", "12", "--tre"]) == 0
    assert read_correction(corr).has_tre

    assert main(["correct", str(corr), "100", "100"]) == 0
    out = capsys.readouterr().out
    values = [float(v) for v in out.strip().splitlines()[-1].split()]
    np.testing.assert_allclose(values, read_correction(corr).correct(100.0, 100.0))

    assert main(["correct", str(corr), "1e6", "1e6"]) == 1
    assert "unable to correct" in capsys.readouterr().err

    assert main(["aberration-map", str(corr), "--out", str(tif), "--bounds-x", "20", "40", "--bounds-y", "30", "45"]) == 0
    assert load_aberration_map(tif).shape == (3, 15, 20)

    assert main(["tre", str(points), "--num-points", "12", "--pixelsize-nm", "80", "--z-sectionsize-nm", "100"]) == 0
    assert "tre_3d=" in capsys.readouterr().out


def test_cli_run(tmp_path, capsys):
    points = tmp_path / "beads_position_data.npz"
    assert main(["generate-synthetic", "--out", str(points), "--n-side", "8", "--jitter-px", "2", "--noise-px", "0.02"]) == 0
    params = tmp_path / "params.json"
    params.write_text(
        json.dumps(
            {
                "reference_channel": 0,
                "channel_to_correct": 1,
                "num_points": 12,
                "pixelsize_nm": 80,
                "z_sectionsize_nm": 100,
                "data_directory": ".",
                "basename": "beads",
                "correction_date": "2024-01-01",
                "log_to_file": "logs/run.log",
            }
        ),
        encoding="utf-8",
    )
    assert main(["run", str(params)]) == 0
    out = capsys.readouterr().out
    assert "2024-01-01_correction.xml" in out
    assert (tmp_path / "beads_diffs.txt").exists()
    assert (tmp_path / "logs" / "run.log").exists()
