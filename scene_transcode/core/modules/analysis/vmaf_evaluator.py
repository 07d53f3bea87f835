"""
VMAfEvaluator Module

Measures the perceptual quality of a scene encoded at a given CRF without
writing the trial encode to disk: the encoder writes NUT to stdout, which
is piped straight into a second ffmpeg running libvmaf against the
untouched source range.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from ....utils.logging import get_logger
from ..config.encoder_config import EncoderConfigBuilder, format_crf
from ..system.process_runner import ProcessRunner
from .output_parsers import parse_vmaf_score
from .scene_detector import Scene

logger = get_logger("vmaf_evaluator")

VMAF_POOL_METHODS = ("mean", "harmonic_mean", "min")


@dataclass
class VMAfResult:
    """Result of one encode-and-measure cycle."""
    vmaf_score: Optional[float]
    encode_status: int
    measure_status: int
    tail: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.vmaf_score is not None


class VMAfEvaluator:
    """Encodes a scene at a trial CRF and scores it against the source."""

    def __init__(self, input_file: Path, fps: float, builder: EncoderConfigBuilder,
                 runner: Optional[ProcessRunner] = None, pool: str = "mean",
                 threads: int = 2, subsample: int = 1):
        if pool not in VMAF_POOL_METHODS:
            raise ValueError(f"Unknown VMAF pool method '{pool}'")
        self.input_file = Path(input_file)
        self.fps = fps
        self.builder = builder
        self.runner = runner or ProcessRunner()
        self.pool = pool
        self.threads = threads
        self.subsample = subsample

    def measure_scene(self, scene: Scene, crf: float) -> VMAfResult:
        """
        Score ``scene`` encoded at ``crf``.

        A missing score (either process failed, or libvmaf printed nothing
        recognisable) is returned as ``vmaf_score=None`` rather than raised.
        """
        encode_cmd = self.builder.probe_encode_cmd(self.input_file, scene.start, scene.end, crf, self.fps)
        vmaf_cmd = self.builder.vmaf_cmd(self.input_file, scene.start, scene.end, self.fps,
                                         pool=self.pool, threads=self.threads, subsample=self.subsample)
        encode_status, outcome = self.runner.pipe(encode_cmd, vmaf_cmd)
        score = parse_vmaf_score(outcome.stderr)

        if score is None:
            logger.warn(f"Scene {scene.index}: no VMAF score at CRF {format_crf(crf)} "
                        f"(encoder status {encode_status}, vmaf status {outcome.returncode})")
            for line in outcome.tail[-3:]:
                logger.debug(f"  {line}")
        return VMAfResult(score, encode_status, outcome.returncode, outcome.tail)
