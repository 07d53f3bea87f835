"""
Bounded-concurrency execution of per-scene work.

Scenes are dispatched once, shortest first, to a ThreadPoolExecutor. Each
worker runs the CRF search and the final encode for its scene and returns a
SceneResult. Only the dispatching thread touches the checkpoint and the
size estimate: it consumes results as they complete, so checkpoint appends
never race with each other.
"""

import concurrent.futures
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Iterable, List

from ....utils.logging import get_logger
from ..analysis.scene_detector import Scene
from ..config.encoder_config import format_crf
from ..system.checkpoint_store import CheckpointStore
from ..system.errors import ConvergenceExhaustion, TranscodeError
from .progress import ProgressAggregator, estimate_output

logger = get_logger("worker_pool")


@dataclass(frozen=True)
class SceneResult:
    scene_index: int
    chosen_crf: float
    achieved_vmaf: float
    original_size_bytes: int
    encoded_size_bytes: int


@dataclass
class PoolReport:
    """What happened to the scenes handed to one pool run."""
    dispatched: List[int] = field(default_factory=list)
    completed: List[int] = field(default_factory=list)
    failed: Dict[int, str] = field(default_factory=dict)
    already_done: List[int] = field(default_factory=list)

    @property
    def all_succeeded(self) -> bool:
        return not self.failed


def plan_dispatch(scenes: Iterable[Scene], completed: FrozenSet[int]) -> List[Scene]:
    """Scenes still to encode, ordered by duration ascending (index breaks ties)."""
    remaining = [s for s in scenes if s.index not in completed]
    return sorted(remaining, key=lambda s: (s.duration, s.index))


class SceneWorkerPool:
    """Runs ``process_scene`` over every unfinished scene with a fixed worker count."""

    def __init__(self, process_scene: Callable[[Scene], SceneResult], checkpoint: CheckpointStore,
                 progress: ProgressAggregator, max_workers: int = 2,
                 side_bytes: int = 0, input_bytes: int = 0):
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.process_scene = process_scene
        self.checkpoint = checkpoint
        self.progress = progress
        self.max_workers = max_workers
        self.side_bytes = side_bytes
        self.input_bytes = input_bytes

    def update_estimate(self):
        """Recompute the projected output size from every completed scene."""
        original, encoded = self.checkpoint.size_totals()
        estimate, reduction = estimate_output(original, encoded, self.side_bytes, self.input_bytes)
        self.progress.set_estimate(estimate, reduction)

    def run(self, scenes: List[Scene]) -> PoolReport:
        completed = self.checkpoint.completed_indices
        pending = plan_dispatch(scenes, completed)
        report = PoolReport(
            dispatched=[s.index for s in pending],
            already_done=sorted(s.index for s in scenes if s.index in completed),
        )
        if report.already_done:
            logger.checkpoint(f"Skipping {len(report.already_done)} checkpointed scene(s)")
        if not pending:
            return report

        logger.info(f"Dispatching {len(pending)} scene(s) to {self.max_workers} worker(s)")
        executor = concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers,
                                                         thread_name_prefix="scene")
        try:
            future_to_scene = {executor.submit(self.process_scene, scene): scene for scene in pending}

            for future in concurrent.futures.as_completed(future_to_scene):
                scene = future_to_scene[future]
                try:
                    result = future.result()
                except ConvergenceExhaustion as e:
                    logger.warn(f"{e}; scene will be retried on the next run")
                    report.failed[scene.index] = str(e)
                    continue
                except TranscodeError as e:
                    logger.error(f"Scene {scene.index} failed: {e}")
                    report.failed[scene.index] = str(e)
                    continue
                except Exception as e:
                    logger.error(f"Scene {scene.index} failed with exception: {e}")
                    report.failed[scene.index] = str(e)
                    continue

                self.checkpoint.record(result.scene_index, result.original_size_bytes,
                                       result.encoded_size_bytes)
                self.progress.scene_completed(result.scene_index, result.achieved_vmaf, result.chosen_crf)
                self.update_estimate()
                report.completed.append(result.scene_index)
                logger.debug(f"scene {result.scene_index} done: CRF {format_crf(result.chosen_crf)}, "
                             f"VMAF {result.achieved_vmaf:.2f}")
        except BaseException as e:
            if isinstance(e, KeyboardInterrupt):
                logger.warn("Interrupted: cancelling scenes that have not started")
            executor.shutdown(wait=False, cancel_futures=True)
            raise
        executor.shutdown(wait=True)
        return report
