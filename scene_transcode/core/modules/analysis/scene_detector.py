"""
Scene segmentation for chunked transcoding.

One ffmpeg pass with ``select='gt(scene,0.4)',showinfo`` reports the
timestamp of every frame whose content differs enough from its predecessor.
Those timestamps are merged against a minimum scene duration and turned into
contiguous scenes that partition ``[0, duration]``.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from ....utils.logging import get_logger, create_progress_bar
from ..config.encoder_config import scene_size_cmd
from ..system.errors import ParseFailure
from ..system.process_runner import ProcessRunner
from .media_utils import get_duration_sec
from .output_parsers import is_output_summary, parse_pts_time, parse_video_size_bytes

logger = get_logger("scene_detector")

SCENE_THRESHOLD = 0.4


@dataclass(frozen=True)
class Scene:
    index: int
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass(frozen=True)
class SceneFrames:
    """Position of one scene on the file-wide frame axis."""
    index: int
    start_frame: int
    end_frame: int
    frames: int
    cumulative_frames: int


def merge_boundaries(timestamps: Iterable[float], min_duration: float, duration: float) -> List[float]:
    """
    Build the boundary list ``[0.0, ..., duration]`` from detected timestamps.

    A timestamp closer than ``min_duration`` to the previously kept boundary
    is dropped, as is anything at or beyond ``duration``. Only the final
    scene, which ends at the synthetic ``duration`` boundary, may be shorter
    than ``min_duration``.
    """
    boundaries = [0.0]
    for ts in timestamps:
        if ts >= duration:
            continue
        if ts - boundaries[-1] < min_duration:
            continue
        boundaries.append(float(ts))
    boundaries.append(float(duration))
    return boundaries


def build_scenes(boundaries: List[float]) -> List[Scene]:
    """Consecutive boundary pairs become scenes, indexed from 0."""
    return [Scene(i, boundaries[i], boundaries[i + 1]) for i in range(len(boundaries) - 1)]


def build_frame_map(scenes: List[Scene], fps: float) -> List[SceneFrames]:
    frame_map = []
    cumulative = 0
    for scene in scenes:
        start_frame = int(round(scene.start * fps))
        end_frame = int(round(scene.end * fps))
        frames = max(0, end_frame - start_frame)
        cumulative += frames
        frame_map.append(SceneFrames(scene.index, start_frame, end_frame, frames, cumulative))
    return frame_map


def measure_scene_size(runner: ProcessRunner, input_file: Path, scene: Scene, bitrate_kbps: int = 0) -> int:
    """
    Size in bytes of the scene's untouched video stream.

    Falls back to a bitrate-times-duration estimate when ffmpeg reports no
    size, and to 0 when neither is available.
    """
    outcome = runner.run(scene_size_cmd(input_file, scene.start, scene.end))
    size = parse_video_size_bytes(outcome.stderr)
    if size is not None:
        return size
    if bitrate_kbps > 0:
        estimate = int(bitrate_kbps * 1000 / 8 * scene.duration)
        logger.debug(f"scene {scene.index}: no size reported, estimating {estimate} bytes from bitrate")
        return estimate
    logger.warn(f"Scene {scene.index}: could not determine original size (ffmpeg status {outcome.returncode})")
    return 0


class SceneSegmenter:
    """Detects scene boundaries and builds the scene list for one file."""

    def __init__(self, runner: Optional[ProcessRunner] = None, min_scene_duration: float = 2.0,
                 show_progress: bool = True):
        if min_scene_duration <= 0:
            raise ValueError("min_scene_duration must be > 0")
        self.runner = runner or ProcessRunner()
        self.min_scene_duration = min_scene_duration
        self.show_progress = show_progress

    def detect_scene_changes(self, input_file: Path, duration: float) -> List[float]:
        """
        Run the scene filter over the whole file and return raw change timestamps.

        Raises SpawnFailure when ffmpeg cannot be started and ParseFailure
        when the scan exits with an error.
        """
        cmd = ["ffmpeg", "-hide_banner", "-i", str(input_file),
               "-vf", f"select='gt(scene,{SCENE_THRESHOLD})',showinfo",
               "-f", "null", "-"]
        timestamps: List[float] = []
        bar = create_progress_bar(total=int(duration), desc="[scd]", unit="s", leave=False) \
            if self.show_progress else None
        position = 0

        def on_line(line: str) -> bool:
            nonlocal position
            pts = parse_pts_time(line)
            if pts is not None:
                timestamps.append(pts)
                if bar is not None and int(pts) > position:
                    bar.update(int(pts) - position)
                    position = int(pts)
            return is_output_summary(line)

        try:
            outcome = self.runner.stream(cmd, on_line)
        finally:
            if bar is not None:
                bar.close()

        if not outcome.ok:
            raise ParseFailure(f"scene changes (ffmpeg exited with status {outcome.returncode})", outcome.tail)
        return timestamps

    def segment(self, input_file: Path, duration: Optional[float] = None) -> Optional[List[Scene]]:
        """
        Scenes partitioning the whole file, or None when the duration is unknown.
        """
        input_file = Path(input_file)
        if duration is None:
            duration = get_duration_sec(input_file)
        if not duration or duration <= 0:
            logger.warn(f"Skipping {input_file.name}: could not determine duration")
            return None

        logger.scene(f"Detecting scene changes in {input_file.name} ({duration:.1f}s)")
        raw = self.detect_scene_changes(input_file, duration)
        boundaries = merge_boundaries(raw, self.min_scene_duration, duration)
        scenes = build_scenes(boundaries)
        logger.scene(f"{len(raw)} scene change(s) detected, {len(scenes)} scene(s) after merging "
                     f"(min {self.min_scene_duration:g}s)")
        return scenes
