"""
Live progress state shared by scene workers, the terminal renderer and
the HTTP endpoint.

ProgressAggregator holds one snapshot behind a lock. Writers update single
fields (last value wins), readers receive a copy. Nothing is queued and no
history is kept, so display consumers never influence correctness.
"""

import threading
import time
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple


@dataclass
class ProgressSnapshot:
    task_id: str = ""
    frames_done: int = 0
    frames_total: int = 0
    fps: float = 0.0
    current_scene_count: int = 0
    total_scene_count: int = 0
    estimated_output_bytes: int = 0
    size_reduction_pct: float = 0.0
    current_file_count: int = 0
    total_files: int = 0
    current_file_name: str = ""
    last_scene: Optional[int] = None
    last_vmaf: float = 0.0
    last_crf: float = 0.0

    @property
    def percentage(self) -> float:
        if self.frames_total <= 0:
            return 0.0
        return min(100.0, self.frames_done / self.frames_total * 100)

    @property
    def eta_seconds(self) -> Optional[float]:
        if self.fps <= 0 or self.frames_total <= 0:
            return None
        return max(0, self.frames_total - self.frames_done) / self.fps

    def to_dict(self) -> dict:
        """Field names served by the HTTP endpoint."""
        eta = self.eta_seconds
        return {
            "id": self.task_id,
            "fps": round(self.fps, 2),
            "frame": self.frames_done,
            "frames": self.frames_total,
            "percentage": round(self.percentage, 2),
            "eta": int(eta) if eta is not None else None,
            "size": self.estimated_output_bytes,
            "reduction": round(self.size_reduction_pct, 2),
            "current_scene_count": self.current_scene_count,
            "total_scene_count": self.total_scene_count,
            "current_file_count": self.current_file_count,
            "total_files": self.total_files,
            "current_file_name": self.current_file_name,
        }


def estimate_output(original_bytes: int, encoded_bytes: int, side_bytes: int,
                    input_bytes: int) -> Tuple[int, float]:
    """
    Project the final output size from the scenes finished so far.

    The reduction measured on completed scenes (with the side container
    counted on both sides) is applied to the still-unencoded remainder of
    the input. Returns ``(estimated_output_bytes, reduction_pct)``.
    """
    final_original = side_bytes + original_bytes
    final_encoded = side_bytes + encoded_bytes
    if final_original <= 0:
        return input_bytes, 0.0
    reduction = (final_original - final_encoded) / final_original * 100
    video_bytes = max(0, input_bytes - side_bytes)
    estimate = side_bytes + video_bytes * (100 - reduction) / 100
    return int(estimate), reduction


class ProgressAggregator:
    """Thread-safe, last-value-wins progress snapshot for one task."""

    def __init__(self, task_id: str = ""):
        self._lock = threading.Lock()
        self._state = ProgressSnapshot(task_id=task_id)
        self._session_frames = 0
        self._session_start = time.monotonic()

    @property
    def task_id(self) -> str:
        return self._state.task_id

    def start_file(self, name: str, file_number: int, total_files: int,
                   frames_total: int = 0, total_scenes: int = 0):
        """Reset per-file counters for the next input."""
        with self._lock:
            self._state = replace(
                self._state,
                current_file_name=name,
                current_file_count=file_number,
                total_files=total_files,
                frames_total=frames_total,
                frames_done=0,
                fps=0.0,
                total_scene_count=total_scenes,
                current_scene_count=0,
                estimated_output_bytes=0,
                size_reduction_pct=0.0,
                last_scene=None,
                last_vmaf=0.0,
                last_crf=0.0,
            )
            self._session_frames = 0
            self._session_start = time.monotonic()

    def set_totals(self, frames_total: int, total_scenes: int):
        with self._lock:
            self._state.frames_total = frames_total
            self._state.total_scene_count = total_scenes

    def seed(self, frames_done: int, scenes_done: int):
        """Start position when resuming; not counted toward throughput."""
        with self._lock:
            self._state.frames_done = frames_done
            self._state.current_scene_count = scenes_done

    def add_frames(self, count: int = 1):
        with self._lock:
            self._state.frames_done += count
            if self._state.frames_total:
                self._state.frames_done = min(self._state.frames_done, self._state.frames_total)
            self._session_frames += count
            elapsed = time.monotonic() - self._session_start
            if elapsed > 0:
                self._state.fps = self._session_frames / elapsed

    def set_frames(self, frames_done: int, fps: Optional[float] = None):
        """Absolute position, used by single-pass encodes that report ``frame=``."""
        with self._lock:
            self._state.frames_done = frames_done
            if fps is not None:
                self._state.fps = fps

    def scene_completed(self, scene_index: int, vmaf: float, crf: float):
        with self._lock:
            self._state.current_scene_count += 1
            self._state.last_scene = scene_index
            self._state.last_vmaf = vmaf
            self._state.last_crf = crf

    def set_estimate(self, estimated_output_bytes: int, reduction_pct: float):
        with self._lock:
            self._state.estimated_output_bytes = estimated_output_bytes
            self._state.size_reduction_pct = reduction_pct

    def set_status(self, name: str):
        """Free-form label shown in place of the file name (e.g. while searching)."""
        with self._lock:
            self._state.current_file_name = name

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return replace(self._state)


class ProgressRegistry:
    """Aggregators keyed by task id, for consumers that only know the id."""

    def __init__(self):
        self._lock = threading.Lock()
        self._tasks: Dict[str, ProgressAggregator] = {}
        self._current: Optional[str] = None

    def register(self, aggregator: ProgressAggregator) -> ProgressAggregator:
        with self._lock:
            self._tasks[aggregator.task_id] = aggregator
            self._current = aggregator.task_id
        return aggregator

    def unregister(self, task_id: str):
        with self._lock:
            self._tasks.pop(task_id, None)
            if self._current == task_id:
                self._current = next(iter(self._tasks), None)

    def get(self, task_id: str) -> ProgressSnapshot:
        """Snapshot for ``task_id``; unknown ids get an empty snapshot."""
        with self._lock:
            aggregator = self._tasks.get(task_id)
        if aggregator is None:
            return ProgressSnapshot(task_id=task_id)
        return aggregator.snapshot()

    def current(self) -> ProgressSnapshot:
        with self._lock:
            task_id = self._current
        return self.get(task_id) if task_id is not None else ProgressSnapshot()

    def all(self) -> List[ProgressSnapshot]:
        with self._lock:
            aggregators = list(self._tasks.values())
        return [a.snapshot() for a in aggregators]


default_registry = ProgressRegistry()
