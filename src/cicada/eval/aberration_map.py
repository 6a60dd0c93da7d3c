from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

import numpy as np
from PIL import Image

from cicada.correction.field import CorrectionField

LOGGER = logging.getLogger(__name__)

# Rows of the map evaluated per vectorized query.
_ROWS_PER_CHUNK = 16


def aberration_map(
    field: CorrectionField,
    bounds_x: tuple[int, int],
    bounds_y: tuple[int, int],
    pixel_to_distance: Sequence[float] = (1.0, 1.0, 1.0),
) -> np.ndarray:
    """
    Correction evaluated on the integer pixel grid [x0, x1) x [y0, y1).

    Returns a (3, H, W) float64 array (x, y, z planes) in physical units;
    positions outside the calibration coverage are NaN.
    """
    x0, x1 = (int(v) for v in bounds_x)
    y0, y1 = (int(v) for v in bounds_y)
    if x1 <= x0 or y1 <= y0:
        raise ValueError("bounds must be increasing (lo, hi) pairs")
    scale = np.asarray(pixel_to_distance, dtype=np.float64).reshape(3)

    w = x1 - x0
    h = y1 - y0
    xs = np.arange(x0, x1, dtype=np.float64)
    out = np.empty((3, h, w), dtype=np.float64)
    n_uncovered = 0
    for r0 in range(0, h, _ROWS_PER_CHUNK):
        r1 = min(h, r0 + _ROWS_PER_CHUNK)
        ys = np.arange(y0 + r0, y0 + r1, dtype=np.float64)
        gx, gy = np.meshgrid(xs, ys)
        corr, covered = field.correct_points(np.stack([gx.reshape(-1), gy.reshape(-1)], axis=1))
        n_uncovered += int(np.count_nonzero(~covered))
        out[:, r0:r1, :] = (corr * scale[None, :]).T.reshape(3, r1 - r0, w)

    if n_uncovered:
        LOGGER.info("aberration map: %d/%d pixels outside calibration coverage", n_uncovered, w * h)
    return out


def save_aberration_map(path: Path, ab_map: np.ndarray) -> Path:
    """Write a (3,H,W) map as a 3-page float32 TIFF (x, y, z pages)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    ab_map = np.asarray(ab_map)
    if ab_map.ndim != 3 or ab_map.shape[0] != 3:
        raise ValueError("aberration map must have shape (3,H,W)")
    pages = [Image.fromarray(np.ascontiguousarray(ab_map[i], dtype=np.float32)) for i in range(3)]
    pages[0].save(path, format="TIFF", save_all=True, append_images=pages[1:])
    return path


def load_aberration_map(path: Path) -> np.ndarray:
    pages: list[np.ndarray] = []
    with Image.open(Path(path)) as im:
        for i in range(getattr(im, "n_frames", 1)):
            im.seek(i)
            pages.append(np.asarray(im, dtype=np.float32).copy())
    return np.stack(pages, axis=0)
