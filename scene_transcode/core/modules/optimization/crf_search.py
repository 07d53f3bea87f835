"""
Per-scene CRF search toward a target VMAF.

The search starts at CRF 23 inside a [10, 45] window and spends at most
three quality probes. After each probe the absolute error to the target
selects the next move:

    e <= 0.5        accept
    2.0 < e <= 3.0  step 3.0
    1.0 < e <= 2.0  step 2.0
    0.8 < e <= 1.0  step 1.0
    0.5 < e <= 0.8  step 0.5
    e > 3.0         bisect the window

Steps raise the CRF when the measured score is above target and lower it
when below. The probe closest to the target is returned even when the
budget runs out before reaching tolerance.
"""

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ....utils.logging import get_logger
from ..analysis.scene_detector import Scene
from ..config.encoder_config import format_crf
from ..system.errors import ConvergenceExhaustion

logger = get_logger("crf_search")

INITIAL_CRF = 23.0
CRF_MIN = 10.0
CRF_MAX = 45.0
MAX_ITERATIONS = 3
TOLERANCE = 0.5

# (lower exclusive, upper inclusive, step), checked in order
STEP_BANDS = (
    (2.0, 3.0, 3.0),
    (1.0, 2.0, 2.0),
    (0.8, 1.0, 1.0),
    (0.5, 0.8, 0.5),
)

MeasureFn = Callable[[Scene, float], Optional[float]]


@dataclass(frozen=True)
class QualityProbe:
    scene_index: int
    crf: float
    vmaf: float
    iteration: int


@dataclass(frozen=True)
class SearchResult:
    scene_index: int
    crf: float
    vmaf: float
    iterations: int
    converged: bool


def step_for_error(error: float) -> Optional[float]:
    """Fixed CRF step for an absolute error, or None when bisection applies."""
    for lower, upper, step in STEP_BANDS:
        if lower < error <= upper:
            return step
    return None


class ProbeLog:
    """Append-only, thread-safe log of every quality probe."""

    def __init__(self, debug_file: Optional[Path] = None):
        self._lock = threading.Lock()
        self._probes: List[QualityProbe] = []
        self.debug_file = Path(debug_file) if debug_file else None

    def append(self, probe: QualityProbe, scene_size_bytes: int = 0):
        with self._lock:
            self._probes.append(probe)
            if self.debug_file is not None:
                with open(self.debug_file, "a", encoding="utf-8") as f:
                    f.write(f"Scene: {probe.scene_index}, CRF: {format_crf(probe.crf)}, "
                            f"VMAF: {probe.vmaf:.2f}, Iterations: {probe.iteration}, "
                            f"Scene Size: {scene_size_bytes // 1024}kB\n")

    def probes(self) -> List[QualityProbe]:
        with self._lock:
            return list(self._probes)

    def closest_per_scene(self, target: float) -> Dict[int, QualityProbe]:
        """The probe nearest to ``target`` for every scene, ignoring failed measurements."""
        closest: Dict[int, QualityProbe] = {}
        for probe in self.probes():
            if probe.vmaf <= 0:
                continue
            current = closest.get(probe.scene_index)
            if current is None or abs(target - probe.vmaf) < abs(target - current.vmaf):
                closest[probe.scene_index] = probe
        return dict(sorted(closest.items()))

    def __len__(self) -> int:
        with self._lock:
            return len(self._probes)


class QualitySearch:
    """Finds the CRF whose measured VMAF lands within tolerance of a target."""

    def __init__(self, measure: MeasureFn, probe_log: Optional[ProbeLog] = None,
                 max_iterations: int = MAX_ITERATIONS, tolerance: float = TOLERANCE):
        self.measure = measure
        self.probe_log = probe_log if probe_log is not None else ProbeLog()
        self.max_iterations = max_iterations
        self.tolerance = tolerance

    def search(self, scene: Scene, target: float, scene_size_bytes: int = 0) -> SearchResult:
        """
        Run the probe loop for one scene.

        Raises ConvergenceExhaustion when no probe produced a measurement.
        """
        crf, low, high = INITIAL_CRF, CRF_MIN, CRF_MAX
        best: Optional[QualityProbe] = None
        iteration = 0

        while iteration < self.max_iterations:
            iteration += 1
            measured = self.measure(scene, crf)
            vmaf = measured if measured is not None else 0.0
            probe = QualityProbe(scene.index, crf, vmaf, iteration)
            self.probe_log.append(probe, scene_size_bytes)

            error = abs(target - vmaf)
            if vmaf > 0 and (best is None or error < abs(target - best.vmaf)):
                best = probe
            logger.search(f"Scene {scene.index}: iteration {iteration}, CRF {format_crf(crf)} -> "
                          f"VMAF {vmaf:.2f} (target {target:g}, error {error:.2f})")

            if error <= self.tolerance:
                break

            overshoot = vmaf > target
            step = step_for_error(error)
            if step is not None:
                crf = crf + step if overshoot else crf - step
            else:
                if overshoot:
                    low = crf - 1
                else:
                    high = crf + 1
                crf = low + (high - low) / 2
                logger.search_debug(f"Scene {scene.index}: bisect window [{low:g}, {high:g}] -> CRF {crf:g}")

            if low > high:
                logger.search_debug(f"Scene {scene.index}: window collapsed, stopping")
                break

        if best is None:
            raise ConvergenceExhaustion(scene.index, iteration)

        converged = abs(target - best.vmaf) <= self.tolerance
        if not converged:
            logger.search(f"Scene {scene.index}: budget spent, using closest CRF {format_crf(best.crf)} "
                          f"(VMAF {best.vmaf:.2f})")
        return SearchResult(scene.index, best.crf, best.vmaf, iteration, converged)
