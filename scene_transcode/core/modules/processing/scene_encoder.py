"""
Full-quality encode of one scene at its chosen CRF.

The encode runs with a ``showinfo`` filter so that every encoded frame
produces one stderr line; those lines are the progress ticks forwarded to
the caller. The ``out#0`` summary at the end reports the encoded size.
"""

from pathlib import Path
from typing import Callable, Optional

from ....utils.logging import get_logger
from ..analysis.output_parsers import is_frame_tick, parse_video_size_bytes
from ..analysis.scene_detector import Scene
from ..config.encoder_config import EncoderConfigBuilder, format_crf
from ..system.errors import EncodeFailure
from ..system.process_runner import ProcessRunner

logger = get_logger("scene_encoder")

ARTIFACT_PREFIX = "scene_"
ARTIFACT_SUFFIX = "_encoded.mkv"


def scene_artifact_name(index: int) -> str:
    """``scene_007_encoded.mkv``; zero padding keeps lexical order equal to index order."""
    return f"{ARTIFACT_PREFIX}{index:03d}{ARTIFACT_SUFFIX}"


def encode_scene(runner: ProcessRunner, builder: EncoderConfigBuilder, input_file: Path, scene: Scene,
                 crf: float, fps: float, work_dir: Path, max_frames: int = 0,
                 on_frames: Optional[Callable[[int], None]] = None) -> int:
    """
    Encode ``scene`` into its artifact in ``work_dir`` and return the encoded size in bytes.

    ``on_frames`` receives one call per frame tick, never more than
    ``max_frames`` in total when a cap is given.

    Raises EncodeFailure on a non-zero exit or a missing artifact.
    """
    output_file = Path(work_dir) / scene_artifact_name(scene.index)
    cmd = builder.scene_encode_cmd(input_file, output_file, scene.start, scene.end, crf, fps)
    ticks = 0
    reported_size: Optional[int] = None

    def on_line(line: str) -> bool:
        nonlocal ticks, reported_size
        if is_frame_tick(line):
            if not max_frames or ticks < max_frames:
                ticks += 1
                if on_frames is not None:
                    on_frames(1)
        elif "video:" in line:
            size = parse_video_size_bytes(line)
            if size is not None:
                reported_size = size
        return False

    logger.encode(f"Scene {scene.index}: encoding {scene.start:.3f}-{scene.end:.3f}s at CRF {format_crf(crf)}")
    outcome = runner.stream(cmd, on_line)

    if not outcome.ok:
        detail = outcome.tail[-1] if outcome.tail else ""
        raise EncodeFailure(scene.index, outcome.returncode, detail)
    if not output_file.exists():
        raise EncodeFailure(scene.index, outcome.returncode, f"{output_file.name} was not written")

    if reported_size is None:
        reported_size = output_file.stat().st_size
        logger.debug(f"scene {scene.index}: size not reported, using file size {reported_size}")
    return reported_size
