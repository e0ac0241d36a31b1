"""
Command-line entry point.

Usage:
    sizefit compress photo.jpg scan.png --target-mb 0.5 --format webp --out out/
    sizefit config --write sizefit_settings.json
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Column

from . import __version__
from .batch import BatchResult, ImageJob, process_batch
from .compression import get_encoder
from .errors import ValidationError
from .logger import configure_logging, log_separator
from .request import CompressionRequest, CompressionStrategy, OutputFormat, ResamplingAlgorithm
from .response import build_response, save_response_json
from .settings import EngineSettings, load_settings, save_settings


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_INVALID = 2

OUTPUT_SUFFIX = "_compressed"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sizefit",
        description="Compress images to fit a target file size",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    comp = sub.add_parser("compress", help="Compress images to a target size")
    comp.add_argument("files", nargs="+", help="Image files to compress")
    comp.add_argument("--target-mb", type=float, required=True, help="Target size per image in MB")
    comp.add_argument("--quality", type=int, default=None,
                      help="Fixed quality 10-95 (skips the quality search)")
    comp.add_argument("--format", default=OutputFormat.JPEG.value,
                      help="Output format: jpeg, png or webp (default: jpeg)")
    comp.add_argument("--strategy", default=CompressionStrategy.AUTO.value,
                      choices=[s.value for s in CompressionStrategy],
                      help="Compression strategy (default: auto)")
    comp.add_argument("--resampling", default=ResamplingAlgorithm.LANCZOS.value,
                      choices=[a.value for a in ResamplingAlgorithm],
                      help="Downscaling filter (default: lanczos)")
    comp.add_argument("--no-aspect", action="store_true",
                      help="Allow width and height to shrink independently")
    comp.add_argument("--preserve-metadata", action="store_true",
                      help="Keep EXIF, ICC profile and DPI in the output")
    comp.add_argument("--no-progressive", action="store_true", help="Baseline JPEG encoding")
    comp.add_argument("--no-optimize-png", action="store_true", help="Skip the PNG optimizer pass")
    comp.add_argument("--out", default=None,
                      help="Output directory (default: next to each input)")
    comp.add_argument("--report", default=None, help="Write a JSON report to this path")
    comp.add_argument("--workers", type=int, default=None, help="Worker threads (default: CPU count)")
    comp.add_argument("--config", default=None, help="Settings JSON file")
    comp.add_argument("--log-file", default=None, help="Also write the log to this file")
    comp.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    conf = sub.add_parser("config", help="Settings file helpers")
    conf.add_argument("--write", required=True, help="Write default settings to this path")

    return parser


def _output_path(source: Path, out_dir: Optional[Path], output_format: OutputFormat) -> Path:
    directory = out_dir if out_dir is not None else source.parent
    extension = get_encoder(output_format).file_extension
    return directory / f"{source.stem}{OUTPUT_SUFFIX}{extension}"


def _read_jobs(files: List[str]) -> List[ImageJob]:
    """Read input files. Unreadable paths raise ValidationError."""
    jobs = []
    for name in files:
        path = Path(name)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise ValidationError(f"Cannot read {path}: {e}") from e
        jobs.append(ImageJob(filename=str(path), data=data))
    return jobs


def _make_progress(total: int) -> Progress:
    """Batch progress bar on stderr; hidden for a single file."""
    text_column = TextColumn("{task.description}", table_column=Column(ratio=1))
    bar_column = BarColumn(bar_width=60, table_column=Column(ratio=5))
    return Progress(
        text_column,
        bar_column,
        expand=True,
        transient=True,
        console=Console(stderr=True),
        disable=total < 2,
    )


def _write_outputs(batch: BatchResult, out_dir: Optional[Path], output_format: OutputFormat) -> int:
    """Write successful results; returns the number of files written."""
    written = 0
    for outcome in batch.outcomes:
        if not outcome.ok:
            continue
        target = _output_path(Path(outcome.filename), out_dir, output_format)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(outcome.result.encoded_bytes)
        logger.debug(f"Wrote {target}")
        written += 1
    return written


def _print_summary(batch: BatchResult) -> None:
    analytics = batch.analytics

    print("\n=== Batch Summary ===")
    print(batch.message)
    print(f"Original   : {analytics.total_original_size_mb:.3f} MB")
    print(f"Compressed : {analytics.total_processed_size_mb:.3f} MB "
          f"({analytics.saved_percent:.1f}% saved)")
    print(f"Avg ratio  : {analytics.average_compression_ratio:.2f}x")
    print(f"Trials     : {analytics.total_iterations}")
    print(f"Time       : {batch.processing_time_ms} ms")

    for outcome in batch.outcomes:
        name = Path(outcome.filename).name
        if not outcome.ok:
            print(f"\n{name}: FAILED ({outcome.error.code}) {outcome.error.message}")
            continue
        result = outcome.result
        quality = result.analytics.quality_achieved
        print(
            f"\n{name}: {result.original_size_mb:.3f} MB -> {result.achieved_size_mb:.3f} MB, "
            f"{result.width}x{result.height} {result.format_used}"
            f"{'' if quality is None else f' q{quality}'} "
            f"[{result.analytics.processing_strategy}]"
        )
        for recommendation in result.recommendations:
            print(f"  - {recommendation}")


def _compress(args: argparse.Namespace) -> int:
    settings = load_settings(args.config) if args.config else EngineSettings()
    if args.workers is not None:
        if args.workers < 1:
            raise ValidationError(f"--workers must be >= 1, got {args.workers}")
        settings = replace(settings, max_workers=args.workers)

    request = CompressionRequest.from_mb(
        args.target_mb,
        quality_override=args.quality,
        output_format=args.format,
        maintain_aspect_ratio=not args.no_aspect,
        compression_strategy=args.strategy,
        preserve_metadata=args.preserve_metadata,
        resampling_algorithm=args.resampling,
        progressive_jpeg=not args.no_progressive,
        optimize_png=not args.no_optimize_png,
    )
    jobs = _read_jobs(args.files)

    progress = _make_progress(len(jobs))
    task_id = progress.add_task("", total=len(jobs))

    def on_progress(current: int, total: int, filename: str) -> None:
        progress.update(task_id, completed=current, description=Path(filename).name)

    progress.start()
    try:
        batch = process_batch(jobs, request, settings=settings, progress_callback=on_progress)
    finally:
        progress.stop()

    out_dir = Path(args.out) if args.out else None
    _write_outputs(batch, out_dir, request.output_format)
    _print_summary(batch)

    if args.report:
        save_response_json(build_response(batch, include_files=False), args.report)
        print(f"\nReport written: {args.report}")

    return EXIT_OK if batch.success else EXIT_PARTIAL


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "config":
        if save_settings(EngineSettings(), args.write):
            print(f"Default settings written to {args.write}")
            return EXIT_OK
        return EXIT_PARTIAL

    level = logging.DEBUG if args.verbose else logging.INFO
    configure_logging(args.log_file, level=level)
    log_separator()

    try:
        return _compress(args)
    except ValueError as e:
        # ValidationError, or an out-of-range value in a settings file
        logger.error(f"Invalid request: {e}")
        print(f"error: {e}", file=sys.stderr)
        return EXIT_INVALID


if __name__ == "__main__":
    sys.exit(main())
