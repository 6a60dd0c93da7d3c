import json

import pytest

from cicada.parameters import ParameterValidationError, load_parameters, parse_parameters


def _params(**overrides):
    data = {
        "schema_version": "cicada.parameters.v0",
        "reference_channel": 0,
        "channel_to_correct": 1,
        "num_points": 36,
        "pixelsize_nm": 80,
        "z_sectionsize_nm": 100,
        "data_directory": "/data/run1",
        "basename": "beads",
        "correction_date": "2013-07-01",
    }
    data.update(overrides)
    return data


def test_parse_parameters_ok():
    p = parse_parameters(_params())
    assert p.pixel_to_distance == (80.0, 80.0, 100.0)
    assert p.output_directory == p.data_directory
    assert p.determine_correction and p.correct_images and not p.determine_tre
    assert p.max_threads == 1
    assert not p.in_situ_enabled


def test_parse_parameters_in_situ():
    p = parse_parameters(_params(in_situ_aberr_corr_channel=2, in_situ_aberr_corr_basename="cells"))
    assert p.in_situ_enabled
    assert p.in_situ_aberr_corr_channel == 2


@pytest.mark.parametrize(
    "overrides",
    [
        {"pixelsize_nm": None},
        {"pixelsize_nm": 0},
        {"channel_to_correct": 0},
        {"num_points": 0},
        {"num_points": 2.5},
        {"reference_channel": -1},
        {"basename": ""},
        {"max_threads": 0},
        {"determine_tre": "yes"},
        {"in_situ_aberr_corr_channel": 1},
        {"robust_p3d_fit_cutoff": -1.0},
        {"schema_version": "cicada.parameters.v9"},
    ],
)
def test_parse_parameters_rejects(overrides):
    with pytest.raises(ParameterValidationError):
        parse_parameters(_params(**overrides))


def test_load_parameters_resolves_relative_directories(tmp_path):
    path = tmp_path / "params.json"
    path.write_text(json.dumps(_params(data_directory="data", output_directory="out")), encoding="utf-8")
    p = load_parameters(path)
    assert p.data_directory == tmp_path.resolve() / "data"
    assert p.output_directory == tmp_path.resolve() / "out"
