"""Scan cleanup pipeline: single pages, directories and batches."""

import argparse
import logging
import signal
import sys
import threading
import time
import traceback
from collections import deque
from dataclasses import dataclass, field
from functools import partial
from multiprocessing import Pool, cpu_count
from multiprocessing.pool import AsyncResult
from pathlib import Path
from typing import Callable, Deque, Dict, List, Optional, Sequence

import numpy as np
from tqdm import tqdm

from .config import (
    Config,
    CleanupConfig,
    get_default_config,
    load_config,
    load_config_from_dict,
)
from .exceptions import ConfigurationError, DirectoryError
from .processors import (
    AnalyzedImage,
    ImageAnalyzer,
    ImageCleaner,
    Overrides,
    get_image_files,
    load_image,
    save_image,
    to_rgb,
)
from .utils.logging_utils import log_processing_stats, setup_logging

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class PageResult:
    """Outcome of cleaning one page."""

    input_path: Path
    output_path: Optional[Path] = None
    error: Optional[str] = None
    cancelled: bool = False
    elapsed: float = 0.0
    removal_summary: Dict[str, int] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.output_path is not None and self.error is None


@dataclass
class BatchResult:
    """Outcome of a batch; one entry per input page, in input order."""

    pages: List[PageResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.pages)

    @property
    def successful(self) -> List[PageResult]:
        return [p for p in self.pages if p.succeeded]

    @property
    def failed(self) -> List[PageResult]:
        return [p for p in self.pages if p.error is not None]

    @property
    def cancelled(self) -> List[PageResult]:
        return [p for p in self.pages if p.cancelled]

    @property
    def output_paths(self) -> List[Path]:
        return [p.output_path for p in self.successful]


def _process_page_worker(image_path: Path, config: Config) -> PageResult:
    """Clean one page and report the outcome instead of raising.

    This function must be at module level for multiprocessing to work on Windows.
    """
    start_time = time.time()
    pipeline = CleanupPipeline(config)
    try:
        output_path = pipeline.process_image(image_path)
        return PageResult(
            input_path=image_path,
            output_path=output_path,
            elapsed=time.time() - start_time,
            removal_summary=pipeline.cleaner.removal_summary(),
        )
    except Exception as e:
        logger.debug("Page %s failed:\n%s", image_path, traceback.format_exc())
        return PageResult(
            input_path=image_path,
            error=f"{type(e).__name__}: {e}",
            elapsed=time.time() - start_time,
        )


class CleanupPipeline:
    """Scan cleanup pipeline.

    Holds one analyzer and one cleaner configured from ``config``. Use
    :meth:`analyze` and :meth:`clean_analyzed` separately when only the
    cleanup thresholds change between runs; the analysis does not depend
    on them.
    """

    def __init__(self, config: Optional[Config] = None):
        """Initialize pipeline with configuration."""
        self.config = config or get_default_config()
        self.analyzer = ImageAnalyzer(self.config.analysis)
        self.cleaner = ImageCleaner(self.config.cleanup)

        save_debug = self.config.batch.save_debug_images
        self.analyzer.save_debug = save_debug
        self.cleaner.save_debug = save_debug

    def analyze(self, image: np.ndarray) -> AnalyzedImage:
        """Segment an in-memory image (greyscale, RGB or RGBA)."""
        return self.analyzer.process(to_rgb(image))

    def clean_analyzed(
        self,
        analyzed: AnalyzedImage,
        overrides: Optional[Overrides] = None,
        cleanup: Optional[CleanupConfig] = None,
    ) -> np.ndarray:
        """Render a cleaned page from an existing analysis.

        Args:
            analyzed: Result of :meth:`analyze`
            overrides: Optional reviewer overrides
            cleanup: Thresholds to use instead of the pipeline's own
        """
        cleaner = self.cleaner if cleanup is None else ImageCleaner(cleanup)
        return cleaner.process(analyzed, overrides=overrides)

    def clean(self, image: np.ndarray, overrides: Optional[Overrides] = None) -> np.ndarray:
        """Analyze and clean an in-memory image."""
        return self.clean_analyzed(self.analyze(image), overrides=overrides)

    def output_path_for(self, image_path: Path) -> Path:
        """Where the cleaned version of ``image_path`` is written.

        Without an output directory pages are overwritten in place.
        """
        batch = self.config.batch
        if batch.output_dir is None:
            if batch.output_suffix:
                return image_path.with_name(f"{image_path.stem}{batch.output_suffix}{image_path.suffix}")
            return image_path
        return Path(batch.output_dir) / f"{image_path.stem}{batch.output_suffix}{image_path.suffix}"

    def debug_dir(self) -> Path:
        batch = self.config.batch
        if batch.debug_dir:
            return Path(batch.debug_dir)
        if batch.output_dir:
            return Path(batch.output_dir) / "debug"
        return Path("debug")

    def process_image(self, image_path: Path) -> Path:
        """Load, clean and save one page.

        Returns:
            Path of the cleaned page

        Raises:
            ImageLoadError: If the page cannot be decoded
            InvalidImageError: If the decoded page is empty
            ImageSaveError: If the cleaned page cannot be written
        """
        image_path = Path(image_path)
        logger.debug("Processing: %s", image_path)

        image = load_image(image_path)
        cleaned = self.clean(image)

        output_path = self.output_path_for(image_path)
        save_image(cleaned, output_path, jpeg_quality=self.config.batch.jpeg_quality)

        if self.config.batch.save_debug_images:
            debug_dir = self.debug_dir()
            self.analyzer.save_debug_images_to_dir(debug_dir, prefix=image_path.stem)
            self.cleaner.save_debug_images_to_dir(debug_dir, prefix=image_path.stem)

        logger.debug("Saved: %s", output_path)
        return output_path

    def process_directory(
        self,
        input_dir: Path,
        progress: Optional[ProgressCallback] = None,
        cancel: Optional[threading.Event] = None,
        show_progress: bool = True,
    ) -> BatchResult:
        """Clean every image in ``input_dir``."""
        input_dir = Path(input_dir)
        if not input_dir.is_dir():
            raise DirectoryError("Input directory does not exist", {"path": str(input_dir)})

        image_files = get_image_files(input_dir)
        if not image_files:
            logger.warning("No image files found in: %s", input_dir)
            return BatchResult()

        logger.info("Found %d images to process", len(image_files))
        return self.run_batch(image_files, progress=progress, cancel=cancel,
                              show_progress=show_progress)

    def run_batch(
        self,
        image_paths: Sequence[Path],
        parallel: Optional[bool] = None,
        max_workers: Optional[int] = None,
        progress: Optional[ProgressCallback] = None,
        cancel: Optional[threading.Event] = None,
        show_progress: bool = True,
    ) -> BatchResult:
        """Clean a list of pages.

        Pages are independent: a page that fails is recorded and the batch
        continues. ``cancel`` is checked between pages: pages already
        running when it is set are finished and saved, pages not started
        are reported as cancelled.

        Args:
            image_paths: Pages to clean
            parallel: Use worker processes (default: config)
            max_workers: Worker count (default: config, then CPU count - 1)
            progress: Called with ``(completed, total)`` after each page
            cancel: Event that stops the batch between pages
            show_progress: Whether to show a progress bar

        Returns:
            Batch result with one entry per page, in input order
        """
        paths = [Path(p) for p in image_paths]
        if not paths:
            return BatchResult()

        batch = self.config.batch
        parallel = batch.parallel if parallel is None else parallel
        max_workers = max_workers or batch.max_workers or max(1, cpu_count() - 1)

        with log_processing_stats(f"cleanup of {len(paths)} pages", logger) as stats:
            if parallel and len(paths) > 1 and max_workers > 1:
                result = self._run_parallel(paths, max_workers, progress, cancel, show_progress)
            else:
                result = self._run_sequential(paths, progress, cancel, show_progress)

            stats["files_processed"] = len(result.successful)
            stats["files_failed"] = len(result.failed)
            stats["files_cancelled"] = len(result.cancelled)

        for page in result.failed:
            logger.error("Failed %s: %s", page.input_path, page.error)
        return result

    def _run_sequential(
        self,
        paths: List[Path],
        progress: Optional[ProgressCallback],
        cancel: Optional[threading.Event],
        show_progress: bool,
    ) -> BatchResult:
        result = BatchResult()
        with tqdm(total=len(paths), desc="Cleaning pages", unit="page",
                  disable=not show_progress) as pbar:
            for image_path in paths:
                if cancel is not None and cancel.is_set():
                    break
                result.pages.append(_process_page_worker(image_path, self.config))
                pbar.update(1)
                if progress is not None:
                    progress(len(result.pages), len(paths))

        _mark_cancelled(result, paths)
        return result

    def _run_parallel(
        self,
        paths: List[Path],
        max_workers: int,
        progress: Optional[ProgressCallback],
        cancel: Optional[threading.Event],
        show_progress: bool,
    ) -> BatchResult:
        workers = min(max_workers, len(paths))
        logger.info("Processing %d pages using %d workers", len(paths), workers)

        process_func = partial(_process_page_worker, config=self.config)
        result = BatchResult()
        remaining = iter(paths)
        # At most one page per worker is handed out, so a page that has been
        # submitted is already running and is always allowed to finish
        in_flight: Deque[AsyncResult] = deque()

        def submit_next() -> None:
            if cancel is not None and cancel.is_set():
                return
            image_path = next(remaining, None)
            if image_path is not None:
                in_flight.append(pool.apply_async(process_func, (image_path,)))

        with tqdm(total=len(paths), desc="Cleaning pages", unit="page",
                  disable=not show_progress) as pbar:
            with Pool(processes=workers) as pool:
                for _ in range(workers):
                    submit_next()

                while in_flight:
                    result.pages.append(in_flight.popleft().get())
                    pbar.update(1)
                    if progress is not None:
                        progress(len(result.pages), len(paths))
                    submit_next()

                pool.close()
                pool.join()

        _mark_cancelled(result, paths)
        return result


def _mark_cancelled(result: BatchResult, paths: List[Path]) -> None:
    for image_path in paths[len(result.pages):]:
        result.pages.append(PageResult(input_path=image_path, cancelled=True))


def _build_config(args: argparse.Namespace) -> Config:
    config = load_config(args.config) if args.config else get_default_config()

    analysis_updates = {
        "off_white_threshold": args.off_white,
        "lightness_threshold": args.lightness,
        "lightness_distance": args.lightness_distance,
    }
    cleanup_updates = {
        "speck_size_threshold": args.speck_size,
        "speck_lightness_threshold": args.speck_lightness,
        "page_margins": tuple(args.margins) if args.margins else None,
        "isolation_size_threshold": args.isolation_size,
        "isolation_distance_threshold": args.isolation_distance,
    }

    data = config.model_dump()
    data["analysis"].update({k: v for k, v in analysis_updates.items() if v is not None})
    data["cleanup"].update({k: v for k, v in cleanup_updates.items() if v is not None})

    if args.output:
        data["batch"]["output_dir"] = args.output
    if args.parallel:
        data["batch"]["parallel"] = True
    if args.workers:
        data["batch"]["max_workers"] = args.workers
    if args.debug:
        data["batch"]["save_debug_images"] = True
    if args.verbose:
        data["logging"]["level"] = "DEBUG"
    elif args.quiet:
        data["logging"]["level"] = "WARNING"

    # Re-validate so command line values get the same checks as file values
    config = load_config_from_dict(data)

    if args.preview:
        config = config.model_copy(update={"cleanup": config.cleanup.preview()})
    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Command line interface."""
    parser = argparse.ArgumentParser(description="Remove specks and background haze from scanned pages")
    parser.add_argument("input", help="Input image file or directory")
    parser.add_argument("-o", "--output", help="Output directory (default: overwrite input files)")
    parser.add_argument("-c", "--config", help="Configuration file (JSON, YAML or TOML)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("--quiet", action="store_true", help="Only show warnings and errors")
    parser.add_argument("--debug", action="store_true", help="Save mask and classification images")
    parser.add_argument("--parallel", action="store_true", help="Enable parallel processing")
    parser.add_argument("--workers", type=int, help="Number of worker processes")
    parser.add_argument("--preview", action="store_true", help="Paint removed specks magenta")

    thresholds = parser.add_argument_group("thresholds")
    thresholds.add_argument("--off-white", type=int, help="Off-white threshold (0-255)")
    thresholds.add_argument("--lightness", type=int, help="Lightness threshold (0-255)")
    thresholds.add_argument("--lightness-distance", type=int, help="Darker-neighbour search radius")
    thresholds.add_argument("--speck-size", type=int, help="Speck size threshold in pixels")
    thresholds.add_argument("--speck-lightness", type=int, help="Speck lightness threshold (0-255)")
    thresholds.add_argument("--margins", type=int, nargs=2, metavar=("H", "V"),
                            help="Page margins in pixels")
    thresholds.add_argument("--isolation-size", type=int, help="Isolation size threshold in pixels")
    thresholds.add_argument("--isolation-distance", type=int,
                            help="Isolation distance threshold in pixels")

    args = parser.parse_args(argv)

    try:
        config = _build_config(args)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    setup_logging(
        level=config.logging.level.value,
        log_file=config.logging.log_file,
        use_rich=config.logging.use_rich,
        format_style=config.logging.format_style,
    )

    input_path = Path(args.input)
    pipeline = CleanupPipeline(config)

    cancel = threading.Event()
    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: cancel.set())

    try:
        if input_path.is_dir():
            result = pipeline.process_directory(input_path, cancel=cancel)
        else:
            result = pipeline.run_batch([input_path], cancel=cancel)
    except DirectoryError as e:
        logger.error(str(e))
        return 1
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    if result.cancelled:
        logger.warning("Cancelled: %d pages were not processed", len(result.cancelled))
    logger.info("Cleaned %d of %d pages", len(result.successful), result.total)
    return 0 if not result.failed and not result.cancelled else 1


if __name__ == "__main__":
    # Required for multiprocessing on Windows
    from multiprocessing import freeze_support
    freeze_support()
    sys.exit(main())
