"""
Main transcoding orchestration module for scene_transcode.

This module coordinates a batch run:
- Argument parsing and validation into TranscodeSettings
- File discovery and catalog classification
- Per-file dispatch to the chunked or whole-file pipeline
- Failure isolation between files and the final run summary
"""

import argparse
import subprocess
import sys
import time
import uuid
from pathlib import Path
from typing import List, Optional

from ..config import MODES, TranscodeSettings, get_config
from ..utils.logging import get_logger, set_debug_mode, set_quiet_mode
from .modules.analysis.vmaf_evaluator import VMAF_POOL_METHODS
from .modules.config.encoder_config import EncoderConfigBuilder, SUPPORTED_ENCODERS
from .modules.interface.user_interface import (
    ProgressRenderer, display_file_result, display_run_summary, display_settings
)
from .modules.optimization.quality_target import find_crf_for_target, transcode_whole_file
from .modules.processing.chunked_pipeline import FILE_DONE, FILE_FAILED, ChunkedTranscoder, FileOutcome
from .modules.processing.file_manager import (
    FileManager, STATUS_PROCESSING, VIDEO_WORK_STATUSES, pending_entries
)
from .modules.processing.progress import ProgressAggregator, default_registry
from .modules.system.errors import CheckpointIOError, TranscodeError
from .modules.system.system_utils import available_concurrency

logger = get_logger("transcode_main")


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"'{value}' is not an integer")
    if number <= 0:
        raise argparse.ArgumentTypeError("must be a positive integer")
    return number


def thread_count(value: str) -> int:
    number = positive_int(value)
    cpus = available_concurrency()
    if number > cpus:
        raise argparse.ArgumentTypeError(f"must not exceed available concurrency ({cpus})")
    return number


def positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"'{value}' is not a number")
    if not number > 0:
        raise argparse.ArgumentTypeError("must be greater than 0")
    return number


def build_parser() -> argparse.ArgumentParser:
    defaults = get_config()
    parser = argparse.ArgumentParser(
        description="Scene Transcode - scene-parallel transcoding to a target VMAF")

    # Input/output
    parser.add_argument("input", help="Input file or directory")
    parser.add_argument("-o", "--output-folder", help="Output directory (default: next to each input)")
    parser.add_argument("--work-dir", default=".", help="Directory for checkpoints and scene files (default: .)")
    parser.add_argument("--extensions", default="mkv,mp4,mov,ts", help="Video extensions to discover")

    # Mode selection
    parser.add_argument("-m", "--mode", choices=MODES, default="default",
                        help="default: whole-file crf-search, chunked: scene-parallel (default: default)")
    parser.add_argument("--all", action="store_true",
                        help="Process every discovered file regardless of catalog status")

    # Quality targeting
    parser.add_argument("-v", "--vmaf", type=positive_int, default=defaults['vmaf_target'],
                        help="Target VMAF score (default: %(default)s)")
    parser.add_argument("--vmaf-pool", choices=VMAF_POOL_METHODS, default="mean",
                        help="libvmaf pooling method (default: mean)")
    parser.add_argument("--vmaf-threads", type=thread_count,
                        default=min(defaults['vmaf_threads'], available_concurrency()),
                        help="libvmaf threads per measurement (default: %(default)s)")
    parser.add_argument("--vmaf-subsample", type=positive_int, default=1,
                        help="Score every Nth frame (default: 1)")
    parser.add_argument("--max-crf", type=int, default=28, help="Highest CRF for crf-search (default: 28)")
    parser.add_argument("--sample-every", default="3m", help="crf-search sample interval (default: 3m)")
    parser.add_argument("--max-attempts", type=positive_int, default=5,
                        help="crf-search attempts, lowering the target by 1 each time (default: 5)")

    # Encoder
    parser.add_argument("-e", "--encoder", choices=SUPPORTED_ENCODERS, default=defaults['encoder'],
                        help="ffmpeg encoder (default: %(default)s)")
    parser.add_argument("--preset", help="Override the encoder preset")
    parser.add_argument("--params", help="Override the encoder's extra ffmpeg parameters")
    parser.add_argument("--pix-fmt", default="yuv420p10le", help="Output pixel format (default: yuv420p10le)")

    # Chunked mode
    parser.add_argument("-s", "--scene-split-min", type=positive_float, default=defaults['scene_split_min'],
                        help="Minimum scene length in seconds (default: %(default)s)")
    parser.add_argument("-w", "--workers", type=thread_count,
                        help="Concurrent scenes (default: same as --vmaf-threads)")

    # Progress and output
    parser.add_argument("-d", "--task-id", default="", help="Task id used by the progress API")
    parser.add_argument("--web-port", type=int, help="Serve progress JSON on this port")
    parser.add_argument("--verbose", action="store_true", help="Show external tool output")
    parser.add_argument("--quiet", action="store_true", help="Only show warnings and errors")
    parser.add_argument("--no-progress", action="store_true", help="Disable progress bars")
    parser.add_argument("--debug", action="store_true", default=defaults['debug'], help="Enable debug output")
    return parser


def settings_from_args(args: argparse.Namespace) -> TranscodeSettings:
    """Map parsed arguments onto validated settings; raises ValueError."""
    return TranscodeSettings(
        mode=args.mode,
        vmaf_target=args.vmaf,
        encoder=args.encoder,
        vmaf_pool=args.vmaf_pool,
        vmaf_threads=args.vmaf_threads,
        vmaf_subsample=args.vmaf_subsample,
        workers=args.workers,
        pix_fmt=args.pix_fmt,
        scene_split_min=args.scene_split_min,
        max_crf=args.max_crf,
        sample_every=args.sample_every,
        max_attempts=args.max_attempts,
        preset=args.preset,
        params=args.params,
        output_folder=Path(args.output_folder) if args.output_folder else None,
        work_dir=Path(args.work_dir),
        task_id=args.task_id or uuid.uuid4().hex[:8],
        verbose=args.verbose,
    ).validate()


def transcode_default(settings: TranscodeSettings, input_file: Path,
                      progress: ProgressAggregator) -> FileOutcome:
    """Whole-file mode: crf-search ladder, then a single encode."""
    builder = EncoderConfigBuilder(settings.encoder, settings.pix_fmt, settings.preset, settings.params)
    crf, reached = find_crf_for_target(input_file, builder, settings.vmaf_target,
                                       max_crf=settings.max_crf, sample_every=settings.sample_every,
                                       vmaf_threads=settings.vmaf_threads, max_attempts=settings.max_attempts,
                                       progress=progress)
    if reached != settings.vmaf_target:
        logger.warn(f"{input_file.name}: settled for VMAF {reached} instead of {settings.vmaf_target}")
    output = transcode_whole_file(input_file, settings.output_path(input_file), crf, builder, progress=progress)
    return FileOutcome(input_file, FILE_DONE, output=output)


def run_batch(settings: TranscodeSettings, files: List[Path], progress: ProgressAggregator,
              show_progress: bool = True, outcomes: Optional[List[FileOutcome]] = None) -> List[FileOutcome]:
    """
    Process ``files`` one after another.

    A TranscodeError, a timed out tool or a filesystem error aborts only the
    file it came from; checkpoint I/O errors and interrupts end the run.
    Outcomes are appended to ``outcomes`` as each file finishes so callers
    can report partial runs.
    """
    chunked = ChunkedTranscoder(settings, progress, show_progress=show_progress) \
        if settings.mode == "chunked" else None
    outcomes = outcomes if outcomes is not None else []

    for number, input_file in enumerate(files, 1):
        logger.info(f"[{number}/{len(files)}] {input_file.name}")
        try:
            if chunked is not None:
                outcome = chunked.transcode_file(input_file, number, len(files))
            else:
                progress.start_file(input_file.name, number, len(files))
                outcome = transcode_default(settings, input_file, progress)
        except CheckpointIOError:
            raise
        except (TranscodeError, subprocess.TimeoutExpired, OSError) as e:
            logger.error(f"{input_file.name}: {e}")
            outcome = FileOutcome(input_file, FILE_FAILED, message=str(e))

        outcomes.append(outcome)
        display_file_result(outcome)
    return outcomes


def select_files(args: argparse.Namespace) -> List[Path]:
    file_manager = FileManager()
    discovered = file_manager.discover_video_files(Path(args.input), args.extensions).files
    if args.all or not discovered:
        return discovered

    catalog = file_manager.build_catalog(discovered)
    for entry in catalog:
        if entry.status not in VIDEO_WORK_STATUSES:
            logger.info(f"SKIP {entry.path.name}: {entry.status} ({entry.bitrate_kbps} kbps)")
    selected = pending_entries(catalog, VIDEO_WORK_STATUSES)
    for entry in selected:
        entry.status = STATUS_PROCESSING
    return [entry.path for entry in selected]


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the transcoding application."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.debug:
        set_debug_mode(True)
    if args.quiet:
        set_quiet_mode(True)

    try:
        settings = settings_from_args(args)
    except ValueError as e:
        parser.error(str(e))

    try:
        files = select_files(args)
    except ValueError as e:
        logger.error(str(e))
        return 1
    if not files:
        logger.info("No video files need processing")
        return 0

    display_settings(settings, files)
    progress = default_registry.register(ProgressAggregator(settings.task_id))
    if args.web_port:
        from ..web.app import serve_in_background
        serve_in_background(args.web_port)

    show_progress = not (args.no_progress or args.quiet)
    renderer = ProgressRenderer(progress).start() if show_progress else None
    started = time.monotonic()
    outcomes: List[FileOutcome] = []
    try:
        run_batch(settings, files, progress, show_progress=show_progress, outcomes=outcomes)
    except KeyboardInterrupt:
        print("\n[INTERRUPTED] Completed scenes are checkpointed; rerun to resume")
        return 130
    except CheckpointIOError as e:
        logger.error(f"Checkpoint failure, stopping run: {e}")
        return 1
    finally:
        if renderer is not None:
            renderer.stop()
        completed = sum(1 for o in outcomes if o.status == FILE_DONE)
        display_run_summary(completed, time.monotonic() - started)
        default_registry.unregister(settings.task_id)

    return 0 if completed == len(files) else 1


if __name__ == "__main__":
    sys.exit(main())
