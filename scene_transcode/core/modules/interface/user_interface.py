"""
User interface module for scene_transcode.

This module handles terminal output including:
- Live frame and estimate bars fed from a ProgressAggregator
- Run configuration and summary display
"""

import threading
from typing import List, Optional

from ....utils.logging import create_progress_bar, format_elapsed
from ..config.encoder_config import format_crf
from ..processing.progress import ProgressAggregator, ProgressSnapshot
from ..system.system_utils import format_size


def format_info_line(snapshot: ProgressSnapshot) -> str:
    """One-line summary shown under the frame bar."""
    parts = [
        f"{snapshot.current_scene_count}/{snapshot.total_scene_count} scenes",
        f"est. {snapshot.estimated_output_bytes / (1024 * 1024):.1f} MB",
        f"{snapshot.size_reduction_pct:.1f}% smaller",
    ]
    if snapshot.last_scene is not None:
        parts.append(f"last scene {snapshot.last_scene}: VMAF {snapshot.last_vmaf:.2f} "
                     f"@ CRF {format_crf(snapshot.last_crf)}")
    return " | ".join(parts)


class ProgressRenderer:
    """
    Polls an aggregator from a daemon thread and draws two tqdm bars:
    ``[frames]`` for encoded frames and ``[info]`` for scene/size status.
    """

    def __init__(self, aggregator: ProgressAggregator, interval: float = 0.5):
        self.aggregator = aggregator
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._frames_bar = None
        self._info_bar = None
        self._file_name = None

    def start(self) -> "ProgressRenderer":
        self._thread = threading.Thread(target=self._loop, daemon=True, name="progress-renderer")
        self._thread.start()
        return self

    def stop(self):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval * 4)
        self._close_bars()

    def __enter__(self) -> "ProgressRenderer":
        return self.start()

    def __exit__(self, *exc):
        self.stop()
        return False

    def _loop(self):
        while not self._stop.wait(self.interval):
            self.render(self.aggregator.snapshot())

    def _close_bars(self):
        for bar in (self._frames_bar, self._info_bar):
            if bar is not None:
                bar.close()
        self._frames_bar = self._info_bar = None

    def render(self, snapshot: ProgressSnapshot):
        if snapshot.current_file_name != self._file_name or self._frames_bar is None:
            self._close_bars()
            self._file_name = snapshot.current_file_name
            self._frames_bar = create_progress_bar(total=snapshot.frames_total or None, desc="[frames]",
                                                   unit="frame", position=0)
            self._info_bar = create_progress_bar(desc="[info]", position=1, bar_format="{desc}")
        if snapshot.frames_total and self._frames_bar.total != snapshot.frames_total:
            self._frames_bar.total = snapshot.frames_total
        self._frames_bar.n = snapshot.frames_done
        self._frames_bar.set_postfix_str(f"{snapshot.fps:.1f} fps", refresh=False)
        self._frames_bar.refresh()
        self._info_bar.set_description_str(
            f"[info] [{snapshot.current_file_count}/{snapshot.total_files}] {format_info_line(snapshot)}")


def display_settings(settings, files: List) -> None:
    """Display the effective run configuration."""
    print(f"[MODE] {settings.mode} | encoder {settings.encoder} | target VMAF {settings.vmaf_target} "
          f"| pool {settings.vmaf_pool}")
    if settings.mode == "chunked":
        print(f"[MODE] {settings.effective_workers} worker(s), {settings.vmaf_threads} VMAF thread(s), "
              f"subsample {settings.vmaf_subsample}, min scene {settings.scene_split_min:g}s")
    print(f"[INFO] {len(files)} file(s) to process")


def display_file_result(outcome) -> None:
    if outcome.status == "done" and outcome.output is not None and outcome.output.exists():
        print(f"  ✓ {outcome.path.name} -> {outcome.output.name} ({format_size(outcome.output.stat().st_size)})")
    elif outcome.status == "done":
        print(f"  ✓ {outcome.path.name}")
    else:
        print(f"  ✗ {outcome.path.name}: {outcome.status}" + (f" ({outcome.message})" if outcome.message else ""))


def display_run_summary(completed: int, elapsed_seconds: float) -> str:
    """Print and return the final ``done N files in Hh:Mm:Ss`` line."""
    line = f"done {completed} files in {format_elapsed(elapsed_seconds)}"
    print(line)
    return line
