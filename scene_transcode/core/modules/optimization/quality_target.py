"""
Whole-file quality targeting (the non-chunked ``default`` mode).

``ab-av1 crf-search`` samples the file and reports the CRF that reaches a
minimum VMAF. When it cannot satisfy the target, the target is lowered by
one point and the search retried, up to ``max_attempts`` searches. The
whole file is then encoded once at the CRF found.
"""

from pathlib import Path
from typing import Optional, Tuple

from ....utils.logging import get_logger
from ..analysis.output_parsers import parse_crf_search, parse_fps, parse_frame
from ..config.encoder_config import EncoderConfigBuilder, format_crf
from ..processing.progress import ProgressAggregator
from ..system.errors import EncodeFailure, TranscodeError
from ..system.process_runner import ProcessRunner

logger = get_logger("quality_target")

AB_AV1 = "ab-av1"


class QualityTargetExhausted(TranscodeError):
    """Raised when no attempt of the crf-search ladder succeeded."""

    def __init__(self, first_target: int, last_target: int, attempts: int):
        self.first_target = first_target
        self.last_target = last_target
        self.attempts = attempts
        super().__init__(f"No CRF found for VMAF {first_target}..{last_target} after {attempts} attempt(s)")


def build_crf_search_cmd(input_file: Path, builder: EncoderConfigBuilder, vmaf: int, max_crf: int,
                         sample_every: str, vmaf_threads: int) -> list[str]:
    return [AB_AV1, "crf-search",
            "-i", str(input_file),
            "--min-vmaf", str(vmaf),
            "--max-crf", str(max_crf),
            "--sample-every", sample_every,
            "-e", builder.encoder,
            "--pix-format", builder.pix_fmt,
            "--preset", builder.preset,
            "--vmaf", f"n_threads={vmaf_threads}"]


def find_crf_for_target(input_file: Path, builder: EncoderConfigBuilder, target: int,
                        runner: Optional[ProcessRunner] = None, max_crf: int = 28,
                        sample_every: str = "3m", vmaf_threads: int = 2, max_attempts: int = 5,
                        progress: Optional[ProgressAggregator] = None) -> Tuple[float, int]:
    """
    Return ``(crf, vmaf_target_reached)``, lowering the target by one per failed search.

    Raises QualityTargetExhausted after ``max_attempts`` failures or when the
    target would drop below zero.
    """
    runner = runner or ProcessRunner()
    vmaf = target
    attempts = 0
    while attempts < max_attempts and vmaf >= 0:
        attempts += 1
        logger.info(f"Searching for best CRF for VMAF {vmaf} (attempt {attempts}/{max_attempts})")
        if progress is not None:
            progress.set_status(f"Searching for best CRF for VMAF {vmaf}...")
        outcome = runner.run(build_crf_search_cmd(input_file, builder, vmaf, max_crf, sample_every, vmaf_threads))
        for line in outcome.tail:
            logger.debug(line)

        parsed = parse_crf_search(outcome.stdout) if outcome.ok else None
        if parsed is not None:
            crf, predicted = parsed
            logger.result(f"Found CRF {format_crf(crf)} for VMAF {vmaf} (predicted {predicted:.2f})")
            return crf, vmaf

        logger.warn(f"crf-search for VMAF {vmaf} failed (status {outcome.returncode})")
        vmaf -= 1

    raise QualityTargetExhausted(target, vmaf + 1, attempts)


def transcode_whole_file(input_file: Path, output_file: Path, crf: float, builder: EncoderConfigBuilder,
                         runner: Optional[ProcessRunner] = None,
                         progress: Optional[ProgressAggregator] = None) -> Path:
    """Encode the whole file at ``crf``, copying audio and subtitles. Raises EncodeFailure."""
    runner = runner or ProcessRunner()
    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    if progress is not None:
        progress.set_status(Path(input_file).name)

    def on_line(line: str) -> bool:
        frame = parse_frame(line)
        if frame is not None and progress is not None:
            progress.set_frames(frame, parse_fps(line))
        return False

    logger.info(f"Encoding {Path(input_file).name} at CRF {format_crf(crf)}")
    outcome = runner.stream(builder.whole_file_encode_cmd(Path(input_file), output_file, crf), on_line)
    if not outcome.ok:
        if output_file.exists():
            output_file.unlink()
        raise EncodeFailure(None, outcome.returncode, outcome.tail[-1] if outcome.tail else "")
    return output_file
