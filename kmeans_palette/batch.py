# kmeans_palette/batch.py
from __future__ import annotations

"""
Single-image and folder processing around the clustering core.

For every source image and every requested colour space this writes
  <outdir>/<stem>_<SPACE>@<k>.png
and, when histograms are enabled,
  <outdir>/colorHistograms/<stem>_<SPACE>@<k>.json

Worker functions return outcome records and never print; reporting happens
on the calling thread so output stays in file order when --jobs > 1.
Unreadable images are reported and skipped; the batch carries on.
"""

import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from .clustering.run import quantize_image
from .colour_space import COLOUR_SPACES, ColourSpace, get_colour_space
from .constants import (
    DEFAULT_CLUSTERS,
    DEFAULT_COLOUR_SPACE,
    FINAL_MAX_ITERATIONS,
    HISTOGRAM_DIRNAME,
    IMAGE_EXTENSIONS,
    MAX_CLUSTERS,
    MIN_CLUSTERS,
)
from .core_types import InvalidArgumentError, U8Image, WeightedColourSet
from .histogram import save_histogram
from .image_io import load_image_rgb, save_image_rgb
from .utils import (
    debug_log,
    error,
    format_percentage,
    format_seconds_compact,
    format_total_duration_compact,
    histogram_report,
    key_value_pairs_to_string,
    log,
    print_banner,
    print_progress_line,
    warn,
)

ProgressHook = Callable[[str, str, int], None]  # (space, phase, iteration)

_OUTPUT_STEM = re.compile(
    r"_(?:" + "|".join(re.escape(name) for name in COLOUR_SPACES) + r")@\d+$"
)


@dataclass(frozen=True)
class ClusterSettings:
    """Run configuration shared by every file in a batch."""

    colour_spaces: Tuple[str, ...] = (DEFAULT_COLOUR_SPACE,)
    cluster_count: int = DEFAULT_CLUSTERS
    max_iterations: int = FINAL_MAX_ITERATIONS
    preview: bool = False
    save_histogram: bool = False
    workers: int = 1
    seed: Optional[int] = None
    debug: bool = False

    def __post_init__(self) -> None:
        if not self.colour_spaces:
            raise InvalidArgumentError("at least one colour space is required")
        if not MIN_CLUSTERS <= int(self.cluster_count) <= MAX_CLUSTERS:
            raise InvalidArgumentError(
                f"colour count must be in [{MIN_CLUSTERS}, {MAX_CLUSTERS}], "
                f"got {self.cluster_count}"
            )
        if int(self.max_iterations) < 1:
            raise InvalidArgumentError("max_iterations must be >= 1")
        if int(self.workers) < 1:
            raise InvalidArgumentError("workers must be >= 1")
        # Fail fast on unknown names and drop duplicates, keeping order.
        names: List[str] = []
        for name in self.colour_spaces:
            resolved = get_colour_space(name).name
            if resolved not in names:
                names.append(resolved)
        object.__setattr__(self, "colour_spaces", tuple(names))

    def spaces(self) -> List[ColourSpace]:
        return [get_colour_space(name) for name in self.colour_spaces]


@dataclass(frozen=True)
class SpaceOutcome:
    space: str
    image_path: Path
    histogram_path: Optional[Path]
    histogram: WeightedColourSet
    iterations: int
    coarse_iterations: int
    converged: bool
    seconds: float


@dataclass(frozen=True)
class FileOutcome:
    source: Path
    width: int
    height: int
    spaces: Tuple[SpaceOutcome, ...]
    error: Optional[str]
    seconds: float

    @property
    def ok(self) -> bool:
        return self.error is None


def output_name(src: Path, space: ColourSpace, cluster_count: int, suffix: str) -> str:
    return f"{src.stem}_{space.name}@{int(cluster_count)}{suffix}"


def is_output_artifact(path: Path) -> bool:
    """True for files this tool wrote, e.g. 'photo_CIELAB@8.png'."""
    return bool(_OUTPUT_STEM.search(path.stem))


def list_image_files(folder: Path) -> List[Path]:
    """
    Images directly inside `folder`, sorted by name, skipping our own outputs.
    When two files share a stem only the first is kept, with a warning.
    """
    files = [
        p
        for p in folder.iterdir()
        if p.is_file()
        and p.suffix.lower() in IMAGE_EXTENSIONS
        and not is_output_artifact(p)
    ]
    files.sort(key=lambda p: p.name.lower())

    # photo.png and photo.jpg would write the same photo_<SPACE>@<k>.png
    owners: Dict[str, Path] = {}
    unique: List[Path] = []
    for p in files:
        key = p.stem.lower()
        if key in owners:
            warn(f"skipping {p.name}: same output names as {owners[key].name}")
            continue
        owners[key] = p
        unique.append(p)
    return unique


def _cluster_one_space(
    image: U8Image,
    src: Path,
    outdir: Path,
    space: ColourSpace,
    settings: ClusterSettings,
    progress: Optional[ProgressHook],
    stop: Optional[threading.Event],
) -> SpaceOutcome:
    t_start = time.perf_counter()
    k = int(settings.cluster_count)
    png_path = outdir / output_name(src, space, k, ".png")

    def on_iteration(phase: str, iteration: int, clusterer) -> None:
        if settings.preview:
            save_image_rgb(png_path, clusterer.render())
        if progress is not None:
            progress(space.name, phase, iteration)

    result = quantize_image(
        image,
        space,
        k,
        max_iterations=settings.max_iterations,
        rng=np.random.default_rng(settings.seed),
        workers=settings.workers,
        on_iteration=on_iteration,
        should_stop=stop.is_set if stop is not None else None,
        debug=settings.debug,
    )

    png_path = save_image_rgb(png_path, result.image)
    hist_path: Optional[Path] = None
    if settings.save_histogram:
        hist_path = save_histogram(
            outdir / HISTOGRAM_DIRNAME / output_name(src, space, k, ".json"),
            result.histogram,
        )

    return SpaceOutcome(
        space=space.name,
        image_path=png_path,
        histogram_path=hist_path,
        histogram=result.histogram,
        iterations=result.iterations,
        coarse_iterations=result.coarse_iterations,
        converged=result.converged,
        seconds=time.perf_counter() - t_start,
    )


def cluster_file(
    src: Path,
    outdir: Optional[Path],
    settings: ClusterSettings,
    progress: Optional[ProgressHook] = None,
    stop: Optional[threading.Event] = None,
) -> FileOutcome:
    """
    Load one image and cluster it in every configured colour space.

    Colour spaces run concurrently. Load failures and invalid inputs (e.g. an
    image with fewer pixels than colours) come back as FileOutcome.error.
    A set `stop` makes running clusterers finish at their next iteration and
    files not yet loaded come back as "interrupted".
    """
    t_start = time.perf_counter()
    target_dir = outdir if outdir is not None else src.parent
    if stop is None:
        stop = threading.Event()
    if stop.is_set():
        return FileOutcome(src, 0, 0, (), "interrupted", 0.0)

    try:
        image = load_image_rgb(src)
    except (OSError, ValueError) as e:
        return FileOutcome(
            src, 0, 0, (), f"could not read image: {e}", time.perf_counter() - t_start
        )
    height, width = int(image.shape[0]), int(image.shape[1])

    spaces = settings.spaces()
    try:
        if len(spaces) == 1:
            outcomes = [
                _cluster_one_space(
                    image, src, target_dir, spaces[0], settings, progress, stop
                )
            ]
        else:
            with ThreadPoolExecutor(max_workers=len(spaces)) as ex:
                futures = [
                    ex.submit(
                        _cluster_one_space,
                        image,
                        src,
                        target_dir,
                        space,
                        settings,
                        progress,
                        stop,
                    )
                    for space in spaces
                ]
                try:
                    outcomes = [f.result() for f in futures]
                except KeyboardInterrupt:
                    stop.set()
                    ex.shutdown(wait=True, cancel_futures=True)
                    raise
    except (OSError, ValueError) as e:
        return FileOutcome(
            src, width, height, (), str(e), time.perf_counter() - t_start
        )

    return FileOutcome(
        src, width, height, tuple(outcomes), None, time.perf_counter() - t_start
    )


def report_file(outcome: FileOutcome, debug: bool = False) -> None:
    """Print the per-file summary block."""
    print_banner(outcome.source.name)
    if not outcome.ok:
        error(f"{outcome.source.name}: {outcome.error}")
        return

    for sp in outcome.spaces:
        log(
            f"[{sp.space}] Wrote {sp.image_path.name} | size={outcome.width}x{outcome.height}"
            f" | colours={len(sp.histogram)} | iterations={sp.iterations}"
        )
        if sp.histogram_path is not None:
            log(f"[{sp.space}] Histogram {sp.histogram_path.name}")
        if not sp.converged:
            warn(
                f"[{sp.space}] stopped after {sp.iterations} iterations without converging"
            )
        if debug:
            debug_log(
                key_value_pairs_to_string(
                    [
                        ("Space", sp.space),
                        ("Coarse iterations", sp.coarse_iterations),
                        ("Final iterations", sp.iterations),
                        ("Time", format_seconds_compact(sp.seconds)),
                    ]
                )
            )
        log(f"[{sp.space}] Colours:")
        for hex_code, count, share in histogram_report(sp.histogram):
            log(f"  {hex_code}: {count:,}  ({format_percentage(share)})")

    log(f"Total time {format_total_duration_compact(outcome.seconds)}")


def _progress_printer(space: str, phase: str, iteration: int) -> None:
    print_progress_line(f"[{space}] {phase} pass, iteration {iteration}")


def run_single(
    src: Path, outdir: Optional[Path], settings: ClusterSettings
) -> FileOutcome:
    """Process one image with a live progress line, then report."""
    stop = threading.Event()
    try:
        outcome = cluster_file(src, outdir, settings, _progress_printer, stop)
    except KeyboardInterrupt:
        stop.set()
        print_progress_line("", final=True)
        warn("interrupted")
        raise
    print_progress_line("", final=True)
    report_file(outcome, settings.debug)
    return outcome


def run_batch(
    folder: Path,
    outdir: Optional[Path],
    settings: ClusterSettings,
    jobs: int = 1,
    stop: Optional[threading.Event] = None,
) -> List[FileOutcome]:
    """
    Process every image in `folder`. Reports stream in file order; with
    jobs > 1 several files are clustered at once. Ctrl-C sets `stop`, cancels
    files still queued and waits for running clusterers to wind down.
    """
    files = list_image_files(folder)
    if settings.debug:
        debug_log(
            key_value_pairs_to_string(
                [
                    ("Images", len(files)),
                    ("Jobs", jobs),
                    ("Spaces", ", ".join(settings.colour_spaces)),
                ]
            )
        )
    if outdir is not None:
        outdir.mkdir(parents=True, exist_ok=True)

    if stop is None:
        stop = threading.Event()
    outcomes: List[FileOutcome] = []
    try:
        if jobs <= 1:
            for p in files:
                outcome = cluster_file(p, outdir, settings, stop=stop)
                report_file(outcome, settings.debug)
                outcomes.append(outcome)
        else:
            with ThreadPoolExecutor(max_workers=jobs) as ex:
                futures = [
                    ex.submit(cluster_file, p, outdir, settings, None, stop)
                    for p in files
                ]
                try:
                    for f in futures:
                        outcome = f.result()
                        report_file(outcome, settings.debug)
                        outcomes.append(outcome)
                except KeyboardInterrupt:
                    # queued files never start; running ones see the stop flag
                    stop.set()
                    ex.shutdown(wait=True, cancel_futures=True)
                    raise
    except KeyboardInterrupt:
        stop.set()
        warn("interrupted; running jobs stop at their next iteration")
        raise

    failed = sum(1 for o in outcomes if not o.ok)
    log(f"\nProcessed {len(outcomes)} image(s), {failed} failed")
    return outcomes


__all__ = [
    "ClusterSettings",
    "SpaceOutcome",
    "FileOutcome",
    "output_name",
    "is_output_artifact",
    "list_image_files",
    "cluster_file",
    "report_file",
    "run_single",
    "run_batch",
]
