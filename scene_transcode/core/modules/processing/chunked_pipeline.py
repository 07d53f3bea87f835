"""
Per-file orchestration of the chunked (scene-parallel) mode.

probe -> segment -> load checkpoint (reset when the scene plan changed) ->
extract side streams -> pool (search + encode per scene) -> assemble ->
clear checkpoint

Each input gets its own state directory below the working directory, so a
rerun of the same file resumes from its checkpoint while other files in the
batch are unaffected.
"""

import hashlib
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ....utils.logging import get_logger, get_debug_mode
from ..analysis.media_utils import probe_media
from ..analysis.scene_detector import (
    Scene, SceneFrames, SceneSegmenter, build_frame_map, measure_scene_size
)
from ..analysis.vmaf_evaluator import VMAfEvaluator
from ..config.encoder_config import EncoderConfigBuilder, format_crf, format_timestamp
from ..optimization.crf_search import MeasureFn, ProbeLog, QualitySearch
from ..system.checkpoint_store import CheckpointStore
from ..system.process_runner import ProcessRunner
from ..system.system_utils import remove_files, start_cpu_monitor
from .assembler import Assembler
from .progress import ProgressAggregator
from .scene_encoder import ARTIFACT_PREFIX, ARTIFACT_SUFFIX, encode_scene, scene_artifact_name
from .worker_pool import PoolReport, SceneResult, SceneWorkerPool

logger = get_logger("chunked_pipeline")

STATE_DIR = ".scene_transcode"
PROBE_LOG = "debug.txt"

FILE_DONE = "done"
FILE_SKIPPED = "skipped"
FILE_INCOMPLETE = "incomplete"
FILE_FAILED = "failed"


@dataclass
class FileOutcome:
    path: Path
    status: str
    output: Optional[Path] = None
    report: Optional[PoolReport] = None
    message: str = ""


def state_dir_for(work_dir: Path, input_file: Path) -> Path:
    """Stable per-input directory: sanitized stem plus a short hash of the absolute path."""
    input_file = Path(input_file)
    digest = hashlib.sha1(str(input_file.resolve()).encode("utf-8")).hexdigest()[:8]
    stem = re.sub(r"[^A-Za-z0-9._-]+", "_", input_file.stem)[:60]
    return Path(work_dir) / STATE_DIR / f"{stem}-{digest}"


def scene_plan(scenes: List[Scene], settings) -> str:
    """Text identifying what the scene files of a run were encoded from."""
    lines = [f"encoder: {settings.encoder}, preset: {settings.preset}, pix_fmt: {settings.pix_fmt}, "
             f"params: {settings.params}, vmaf_target: {settings.vmaf_target}"]
    lines += [f"scene {s.index}: {format_timestamp(s.start)}-{format_timestamp(s.end)}" for s in scenes]
    return "\n".join(lines)


def resume_position(frame_map: List[SceneFrames], completed: frozenset) -> int:
    """Frames already covered by checkpointed scenes: total minus what is left to encode."""
    if not frame_map:
        return 0
    total = frame_map[-1].cumulative_frames
    remaining = sum(f.frames for f in frame_map if f.index not in completed)
    return total - remaining


class ChunkedTranscoder:
    """Runs the scene-parallel pipeline for one file at a time."""

    def __init__(self, settings, progress: ProgressAggregator, runner: Optional[ProcessRunner] = None,
                 measure: Optional[MeasureFn] = None, show_progress: bool = True):
        self.settings = settings
        self.progress = progress
        self.runner = runner or ProcessRunner()
        self.measure = measure
        self.show_progress = show_progress
        self.builder = EncoderConfigBuilder(settings.encoder, settings.pix_fmt, settings.preset, settings.params)

    def transcode_file(self, input_file: Path, file_number: int = 1, total_files: int = 1) -> FileOutcome:
        input_file = Path(input_file)
        settings = self.settings
        info = probe_media(input_file)
        if info.duration <= 0:
            logger.warn(f"Skipping {input_file.name}: could not determine duration")
            return FileOutcome(input_file, FILE_SKIPPED, message="unknown duration")
        fps = info.fps or (info.frame_count / info.duration if info.frame_count else 0.0)
        if fps <= 0:
            logger.warn(f"Skipping {input_file.name}: could not determine frame rate")
            return FileOutcome(input_file, FILE_SKIPPED, message="unknown frame rate")

        segmenter = SceneSegmenter(self.runner, settings.scene_split_min, show_progress=self.show_progress)
        scenes = segmenter.segment(input_file, info.duration)
        if scenes is None:
            return FileOutcome(input_file, FILE_SKIPPED, message="unknown duration")

        state_dir = state_dir_for(settings.work_dir, input_file)
        state_dir.mkdir(parents=True, exist_ok=True)
        checkpoint = CheckpointStore(state_dir).load()
        self._reconcile_checkpoint(input_file, state_dir, checkpoint, scene_plan(scenes, settings))
        completed = checkpoint.completed_indices

        frame_map = build_frame_map(scenes, fps)
        self.progress.start_file(input_file.name, file_number, total_files,
                                 frames_total=frame_map[-1].cumulative_frames, total_scenes=len(scenes))
        self.progress.seed(resume_position(frame_map, completed),
                           sum(1 for s in scenes if s.index in completed))

        assembler = Assembler(state_dir, checkpoint, self.runner)
        side = assembler.extract_side_container(input_file)
        side_bytes = side.stat().st_size if side is not None else 0

        probe_log = ProbeLog(state_dir / PROBE_LOG if get_debug_mode() else None)
        search = QualitySearch(self.measure or self._evaluator_measure(input_file, fps), probe_log)

        def process_scene(scene: Scene) -> SceneResult:
            original = measure_scene_size(self.runner, input_file, scene, info.bitrate_kbps)
            found = search.search(scene, settings.vmaf_target, original)
            encoded = encode_scene(self.runner, self.builder, input_file, scene, found.crf, fps, state_dir,
                                   max_frames=frame_map[scene.index].frames,
                                   on_frames=self.progress.add_frames)
            return SceneResult(scene.index, found.crf, found.vmaf, original, encoded)

        pool = SceneWorkerPool(process_scene, checkpoint, self.progress, settings.effective_workers,
                               side_bytes=side_bytes, input_bytes=info.size_bytes)
        pool.update_estimate()

        stop_monitor = start_cpu_monitor()[1] if get_debug_mode() else None
        try:
            report = pool.run(scenes)
        finally:
            if stop_monitor is not None:
                stop_monitor.set()

        self._print_scene_summary(probe_log)
        if not report.all_succeeded:
            message = f"{len(report.failed)} scene(s) failed; rerun to resume"
            logger.warn(f"{input_file.name}: {message}")
            return FileOutcome(input_file, FILE_INCOMPLETE, report=report, message=message)

        output = assembler.assemble(input_file, len(scenes), settings.output_path(input_file))
        self._remove_state_dir(state_dir)
        return FileOutcome(input_file, FILE_DONE, output=output, report=report)

    def _reconcile_checkpoint(self, input_file: Path, state_dir: Path, checkpoint: CheckpointStore,
                              plan: str):
        if not checkpoint.bind_plan(plan):
            stale = remove_files(state_dir.glob(f"{ARTIFACT_PREFIX}*{ARTIFACT_SUFFIX}"))
            logger.warn(f"{input_file.name}: scenes or encode settings changed since the last run; "
                        f"removed {stale} stale scene file(s)")

        orphaned = sorted(i for i in checkpoint.completed_indices
                          if not (state_dir / scene_artifact_name(i)).exists())
        if orphaned:
            logger.warn(f"{input_file.name}: scene(s) {orphaned} checkpointed without an encoded file; "
                        f"encoding them again")
            checkpoint.forget(orphaned)

    def _evaluator_measure(self, input_file: Path, fps: float) -> MeasureFn:
        evaluator = VMAfEvaluator(input_file, fps, self.builder, self.runner,
                                  pool=self.settings.vmaf_pool, threads=self.settings.vmaf_threads,
                                  subsample=self.settings.vmaf_subsample)
        return lambda scene, crf: evaluator.measure_scene(scene, crf).vmaf_score

    def _print_scene_summary(self, probe_log: ProbeLog):
        closest = probe_log.closest_per_scene(self.settings.vmaf_target)
        if closest:
            logger.result(f"Closest probe per scene (target VMAF {self.settings.vmaf_target}):")
        for index, probe in closest.items():
            logger.info(f"Scene {index}: CRF {format_crf(probe.crf)}, VMAF {probe.vmaf:.2f}, "
                        f"iteration {probe.iteration}")

    def _remove_state_dir(self, state_dir: Path):
        probe_log = state_dir / PROBE_LOG
        if probe_log.exists():
            # Keep the probe log next to the state root for inspection
            probe_log.replace(state_dir.parent / f"{state_dir.name}.{PROBE_LOG}")
        try:
            state_dir.rmdir()
        except OSError as e:
            logger.warn(f"Could not remove state directory {state_dir}: {e}")
