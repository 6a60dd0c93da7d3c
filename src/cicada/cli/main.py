from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from cicada.api.correction_io import read_correction, write_correction
from cicada.api.position_io import load_points, save_points
from cicada.correction.builder import build_correction
from cicada.correction.tre import determine_tre
from cicada.errors import CorrectionError
from cicada.eval.aberration_map import aberration_map, save_aberration_map
from cicada.parameters import load_parameters
from cicada.pipeline import run_analysis
from cicada.sim.synthetic import make_synthetic_calibration

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(log_to_file: Path | None = None, detailed: bool = False) -> None:
    """Root handler for command-line runs: stderr, or `log_to_file` when given."""
    level = logging.DEBUG if detailed else logging.INFO
    if log_to_file is not None:
        Path(log_to_file).parent.mkdir(parents=True, exist_ok=True)
        logging.basicConfig(level=level, format=LOG_FORMAT, filename=str(log_to_file), force=True)
    else:
        logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr, force=True)


def _add_channel_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--reference-channel", type=int, default=0)
    p.add_argument("--correction-channel", type=int, default=1)
    p.add_argument("--num-points", type=int, default=36, help="Neighbours used by each local fit.")


def _add_scale_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--pixelsize-nm", type=float, default=1.0)
    p.add_argument("--z-sectionsize-nm", type=float, default=1.0)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="cicada")
    parser.add_argument("--log-file", type=Path, default=None, help="Write log messages to this file.")
    parser.add_argument("--verbose", action="store_true", help="Log detailed (DEBUG) messages.")
    sub = parser.add_subparsers(dest="cmd", required=True)

    run = sub.add_parser("run", help="Run a full correction analysis from a JSON parameter file.")
    run.add_argument("params", type=Path)

    build = sub.add_parser("build", help="Build a correction from localized calibration points.")
    build.add_argument("points", type=Path)
    build.add_argument("--out", type=Path, required=True, help="Output correction XML.")
    _add_channel_args(build)
    build.add_argument("--tre", action="store_true", help="Also determine and store the TRE.")
    _add_scale_args(build)
    build.add_argument("--threads", type=int, default=1)

    tre = sub.add_parser("tre", help="Leave-one-out target registration error of a calibration set.")
    tre.add_argument("points", type=Path)
    _add_channel_args(tre)
    _add_scale_args(tre)
    tre.add_argument("--threads", type=int, default=1)

    corr = sub.add_parser("correct", help="Print the correction at a reference-channel position.")
    corr.add_argument("correction", type=Path)
    corr.add_argument("x", type=float)
    corr.add_argument("y", type=float)

    ab = sub.add_parser("aberration-map", help="Write the correction over a pixel grid as a 3-page TIFF.")
    ab.add_argument("correction", type=Path)
    ab.add_argument("--out", type=Path, required=True)
    ab.add_argument("--bounds-x", type=int, nargs=2, metavar=("X0", "X1"), required=True)
    ab.add_argument("--bounds-y", type=int, nargs=2, metavar=("Y0", "Y1"), required=True)
    _add_scale_args(ab)

    gen = sub.add_parser("generate-synthetic", help="Write a synthetic calibration point set.")
    gen.add_argument("--out", type=Path, required=True)
    gen.add_argument("--n-side", type=int, default=10)
    gen.add_argument("--spacing", type=float, default=24.0)
    gen.add_argument("--jitter-px", type=float, default=0.0)
    gen.add_argument("--noise-px", type=float, default=0.0)
    gen.add_argument("--channels", type=int, default=2)
    gen.add_argument("--seed", type=int, default=0)

    args = parser.parse_args(argv)

    if args.cmd == "run":
        params = load_parameters(args.params)
        configure_logging(
            args.log_file if args.log_file is not None else params.log_to_file,
            args.verbose or params.log_detailed_messages,
        )
        result = run_analysis(params)
        for path in result.written:
            print(f"Wrote {path}")
        if result.p3d is not None:
            print(f"p3d mean={result.p3d.mean:.6g} std={result.p3d.std:.6g}")
        if result.in_situ_p3d is not None:
            print(f"p3d after in situ correction mean={result.in_situ_p3d.mean:.6g} std={result.in_situ_p3d.std:.6g}")
        return 0

    configure_logging(args.log_file, args.verbose)

    if args.cmd == "build":
        points = load_points(args.points)
        field = build_correction(points, args.reference_channel, args.correction_channel, args.num_points)
        if args.tre:
            report = determine_tre(
                points,
                args.reference_channel,
                args.correction_channel,
                args.num_points,
                pixel_to_distance=(args.pixelsize_nm, args.pixelsize_nm, args.z_sectionsize_nm),
                max_workers=args.threads,
            )
            field = field.with_tre(report.tre_3d, report.tre_2d)
        write_correction(args.out, field)
        print(f"Wrote {args.out}")
        return 0

    if args.cmd == "tre":
        points = load_points(args.points)
        report = determine_tre(
            points,
            args.reference_channel,
            args.correction_channel,
            args.num_points,
            pixel_to_distance=(args.pixelsize_nm, args.pixelsize_nm, args.z_sectionsize_nm),
            max_workers=args.threads,
        )
        print(f"tre_3d={report.tre_3d:.6g} tre_2d={report.tre_2d:.6g} failed={report.n_failed}/{len(report.trials)}")
        return 0

    if args.cmd == "correct":
        field = read_correction(args.correction)
        try:
            c = field.correct(args.x, args.y)
        except CorrectionError as e:
            print(f"error: {e}", file=sys.stderr)
            return 1
        print(" ".join(repr(float(v)) for v in c))
        return 0

    if args.cmd == "aberration-map":
        field = read_correction(args.correction)
        ab_map = aberration_map(
            field,
            tuple(args.bounds_x),
            tuple(args.bounds_y),
            pixel_to_distance=(args.pixelsize_nm, args.pixelsize_nm, args.z_sectionsize_nm),
        )
        save_aberration_map(args.out, ab_map)
        print(f"Wrote {args.out}")
        return 0

    if args.cmd == "generate-synthetic":
        points = make_synthetic_calibration(
            n_side=args.n_side,
            spacing=args.spacing,
            jitter_px=args.jitter_px,
            noise_px=args.noise_px,
            n_channels=args.channels,
            seed=args.seed,
        )
        save_points(args.out, points)
        print(f"Wrote {args.out}")
        return 0

    raise AssertionError(f"Unhandled cmd: {args.cmd}")
