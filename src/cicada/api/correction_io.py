from __future__ import annotations

import base64
import io
import xml.etree.ElementTree as ET
from pathlib import Path

import numpy as np

from cicada.core.linalg import NUM_CORR_PARAM
from cicada.correction.field import CorrectionField

CORRECTION_ELEMENT = "correction"
POINT_ELEMENT = "point"
N_POINTS_ATTR = "n"
REF_CHANNEL_ATTR = "reference_channel"
CORR_CHANNEL_ATTR = "correction_channel"
POSITION_ATTRS = ("x_position", "y_position", "z_position")
PARAM_ELEMENTS = ("x_dimension_parameters", "y_dimension_parameters", "z_dimension_parameters")
BINARY_DATA_ELEMENT = "serialized_form"
ENCODING_ATTR = "encoding"
ENCODING_NAME = "base64"

SNAPSHOT_VERSION = 1
_HEADER_SIZE = 6
_ROW_SIZE = 4 + 3 * NUM_CORR_PARAM


class CorrectionFileError(ValueError):
    pass


def _fmt(x: float) -> str:
    return repr(float(x))


def _snapshot(field: CorrectionField) -> np.ndarray:
    """
    Flat float64 vector: header [version, n, ref, corr, tre_3d, tre_2d] followed by
    one row [x, y, z, radius, cx(6), cy(6), cz(6)] per calibration point.
    """
    header = np.array(
        [
            SNAPSHOT_VERSION,
            field.n_points,
            field.reference_channel,
            field.correction_channel,
            np.nan if field.tre_3d is None else field.tre_3d,
            np.nan if field.tre_2d is None else field.tre_2d,
        ],
        dtype=np.float64,
    )
    rows = np.concatenate(
        [field.positions, field.radii[:, None], field.coeffs_x, field.coeffs_y, field.coeffs_z], axis=1
    )
    return np.concatenate([header, rows.reshape(-1)])


def _from_snapshot(data: np.ndarray) -> CorrectionField:
    try:
        data = np.asarray(data, dtype=np.float64).reshape(-1)
    except (TypeError, ValueError) as e:
        raise CorrectionFileError(f"invalid correction snapshot: {e}") from e
    if data.size < _HEADER_SIZE:
        raise CorrectionFileError("unsupported correction snapshot")
    # version, n and both channels are whole numbers
    if not all(np.isfinite(v) and float(v).is_integer() for v in data[:4]):
        raise CorrectionFileError(f"invalid correction snapshot header: {data[:4].tolist()}")
    if int(data[0]) != SNAPSHOT_VERSION:
        raise CorrectionFileError("unsupported correction snapshot")
    n = int(data[1])
    if n < 1:
        raise CorrectionFileError(f"correction snapshot holds no points (n={n})")
    if data.size != _HEADER_SIZE + n * _ROW_SIZE:
        raise CorrectionFileError(f"snapshot size {data.size} does not match {n} points")
    rows = data[_HEADER_SIZE:].reshape(n, _ROW_SIZE)
    tre_3d = None if np.isnan(data[4]) else float(data[4])
    tre_2d = None if np.isnan(data[5]) else float(data[5])
    p = NUM_CORR_PARAM
    try:
        return CorrectionField(
            reference_channel=int(data[2]),
            correction_channel=int(data[3]),
            positions=rows[:, 0:3],
            radii=rows[:, 3],
            coeffs_x=rows[:, 4 : 4 + p],
            coeffs_y=rows[:, 4 + p : 4 + 2 * p],
            coeffs_z=rows[:, 4 + 2 * p : 4 + 3 * p],
            tre_3d=tre_3d,
            tre_2d=tre_2d,
        )
    except ValueError as e:
        raise CorrectionFileError(f"invalid correction snapshot: {e}") from e


def correction_to_xml(field: CorrectionField) -> str:
    """
    Serialize a correction field to XML.

    Point positions and coefficients are written for inspection only; reading
    uses the embedded base64 `.npy` snapshot.
    """
    root = ET.Element(CORRECTION_ELEMENT)
    root.set(N_POINTS_ATTR, str(field.n_points))
    root.set(REF_CHANNEL_ATTR, str(field.reference_channel))
    root.set(CORR_CHANNEL_ATTR, str(field.correction_channel))

    coeffs = (field.coeffs_x, field.coeffs_y, field.coeffs_z)
    for i in range(field.n_points):
        pt = ET.SubElement(root, POINT_ELEMENT)
        for attr, value in zip(POSITION_ATTRS, field.positions[i], strict=True):
            pt.set(attr, _fmt(value))
        for name, c in zip(PARAM_ELEMENTS, coeffs, strict=True):
            ET.SubElement(pt, name).text = ", ".join(_fmt(v) for v in c[i])

    buf = io.BytesIO()
    np.save(buf, _snapshot(field), allow_pickle=False)
    bd = ET.SubElement(root, BINARY_DATA_ELEMENT)
    bd.set(ENCODING_ATTR, ENCODING_NAME)
    bd.text = base64.b64encode(buf.getvalue()).decode("ascii")

    return ET.tostring(root, encoding="unicode")


def correction_from_xml(xml_string: str) -> CorrectionField:
    try:
        root = ET.fromstring(xml_string)
    except ET.ParseError as e:
        raise CorrectionFileError(f"invalid correction XML: {e}") from e
    if root.tag != CORRECTION_ELEMENT:
        raise CorrectionFileError(f"root element must be <{CORRECTION_ELEMENT}>")
    bd = root.find(BINARY_DATA_ELEMENT)
    if bd is None or not bd.text:
        raise CorrectionFileError(f"missing <{BINARY_DATA_ELEMENT}>")
    if bd.get(ENCODING_ATTR) != ENCODING_NAME:
        raise CorrectionFileError(f"unsupported encoding: {bd.get(ENCODING_ATTR)}")
    try:
        raw = base64.b64decode(bd.text.strip(), validate=True)
        data = np.load(io.BytesIO(raw), allow_pickle=False)
    except ValueError as e:
        raise CorrectionFileError(f"invalid serialized correction: {e}") from e
    return _from_snapshot(data)


def write_correction(path: Path, field: CorrectionField) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(correction_to_xml(field), encoding="utf-8")
    return path


def read_correction(path: Path) -> CorrectionField:
    return correction_from_xml(Path(path).read_text(encoding="utf-8"))
