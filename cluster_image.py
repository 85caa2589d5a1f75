#!/usr/bin/env python3
"""
cluster_image.py
Reduce image(s) to a small palette with k-means clustering and re-render them.

Usage:
  python cluster_image.py SRC [--outdir DIR] [-k K] [--space NAME ...] [--iterations N]
                          [--preview] [--histogram] [--seed S] [--jobs J] [--workers W] [--debug]

Colour spaces:
  sRGB, CIELAB, CIELUV, CIEXYZ, HSL. Several may be given; they run concurrently.

Input:
  Any Pillow-readable image, or a folder of them. Alpha is dropped.

Output:
  <stem>_<SPACE>@<k>.png next to SRC (or in --outdir). With --histogram, also
  colorHistograms/<stem>_<SPACE>@<k>.json holding the weighted colours.

Notes:
  Fewer than 16 colours: a 16-cluster coarse pass seeds the final pass.
  CPU bound. ThreadPoolExecutor is used for conversion, assignment and jobs.
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional

from kmeans_palette.batch import ClusterSettings, run_batch, run_single
from kmeans_palette.colour_space import available_colour_spaces
from kmeans_palette.constants import (
    DEFAULT_CLUSTERS,
    DEFAULT_COLOUR_SPACE,
    FINAL_MAX_ITERATIONS,
    MAX_CLUSTERS,
    MIN_CLUSTERS,
)
from kmeans_palette.core_types import InvalidArgumentError
from kmeans_palette.utils import (
    debug_log,
    default_workers,
    enable_line_buffered_stdout,
    error,
    key_value_pairs_to_string,
    print_config_line,
)


def parse_cli_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse CLI arguments.

    Returns:
      argparse.Namespace with:
        src: Path to image or folder
        outdir: optional Path for outputs
        colours: cluster count k
        space: list of colour-space names
        iterations: cap for the final pass
        preview: write the render after every iteration
        histogram: also write the JSON histogram
        seed: optional RNG seed
        jobs: files processed in parallel
        workers: internal threads per clustering run
        debug: bool for verbose details
    """
    parser = argparse.ArgumentParser(
        prog="cluster_image",
        description="Quantize image(s) to k representative colours.",
    )
    parser.add_argument("src", type=Path, help="Input image or folder")
    parser.add_argument(
        "--outdir", type=Path, default=None, help="Output directory (optional)"
    )
    parser.add_argument(
        "-k",
        "--colours",
        type=int,
        default=DEFAULT_CLUSTERS,
        help=f"Number of colours, {MIN_CLUSTERS}..{MAX_CLUSTERS}",
    )
    parser.add_argument(
        "--space",
        nargs="+",
        default=[DEFAULT_COLOUR_SPACE],
        metavar="NAME",
        help=f"Colour space(s): {', '.join(available_colour_spaces())}",
    )
    parser.add_argument(
        "--iterations",
        type=int,
        default=FINAL_MAX_ITERATIONS,
        help="Iteration cap for the final pass",
    )
    parser.add_argument(
        "--preview",
        action="store_true",
        help="Rewrite the output image after every iteration",
    )
    parser.add_argument(
        "--histogram", action="store_true", help="Also save the colour histogram"
    )
    parser.add_argument("--seed", type=int, default=None, help="RNG seed")
    parser.add_argument(
        "--jobs", type=int, default=1, help="Files processed in parallel"
    )
    parser.add_argument(
        "--workers", type=int, default=default_workers(), help="Internal workers"
    )
    parser.add_argument("--debug", action="store_true", help="Verbose details")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entry point.

    Exit status: 0 on success, 1 when any image failed, 2 for bad arguments.
    """
    enable_line_buffered_stdout()
    args = parse_cli_args(argv)

    print_config_line(
        "run",
        [
            ("CPU cores", os.cpu_count() or 1),
            ("Workers", args.workers),
            ("Jobs", args.jobs),
        ],
        debug=False,
    )

    src: Path = args.src
    if not src.exists():
        error(f"not found: {src}")
        return 2

    try:
        settings = ClusterSettings(
            colour_spaces=tuple(args.space),
            cluster_count=args.colours,
            max_iterations=args.iterations,
            preview=args.preview,
            save_histogram=args.histogram,
            workers=args.workers,
            seed=args.seed,
            debug=args.debug,
        )
    except InvalidArgumentError as e:
        error(str(e))
        return 2

    if settings.debug:
        debug_log(
            key_value_pairs_to_string(
                [
                    ("Colours", settings.cluster_count),
                    ("Spaces", ", ".join(settings.colour_spaces)),
                    ("Iterations", settings.max_iterations),
                    ("Preview", settings.preview),
                    ("Histogram", settings.save_histogram),
                    ("Seed", "-" if settings.seed is None else settings.seed),
                ]
            )
        )

    if src.is_dir():
        outcomes = run_batch(src, args.outdir, settings, jobs=max(1, args.jobs))
    else:
        outcomes = [run_single(src, args.outdir, settings)]

    return 0 if all(o.ok for o in outcomes) else 1


if __name__ == "__main__":
    sys.exit(main())
