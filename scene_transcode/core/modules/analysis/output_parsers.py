"""
Parsers for the textual output of ffmpeg, ffprobe and ab-av1.

Every function takes a line (or a whole output string) and returns the
extracted value, or None when the expected pattern is absent. None means
"no signal" and callers choose their own fallback.
"""

import re
from typing import Optional, Tuple

_PTS_TIME = re.compile(r"pts_time:\s*(-?\d+(?:\.\d+)?)")
_FRAME = re.compile(r"frame=\s*(\d+)")
_FPS = re.compile(r"fps=\s*(\d+(?:\.\d+)?)")
# showinfo prints one "n:   42 pts: ..." line per frame
_FRAME_TICK = re.compile(r"\bn:\s*\d+")
_VMAF_SCORE = re.compile(r"VMAF score[:=]\s*(\d+(?:\.\d+)?)")
# "[out#0/matroska @ 0x...] video:470kB audio:0kB ..." (newer builds print KiB)
_VIDEO_SIZE = re.compile(r"video:\s*(\d+(?:\.\d+)?)\s*(?:kB|KiB)")
_CRF_SEARCH = re.compile(r"^\s*crf\s+(\d+(?:\.\d+)?)\s+VMAF\s+(\d+(?:\.\d+)?)", re.MULTILINE)


def parse_pts_time(line: str) -> Optional[float]:
    """Timestamp of a frame selected by the scene filter."""
    match = _PTS_TIME.search(line)
    return float(match.group(1)) if match else None


def is_output_summary(line: str) -> bool:
    """ffmpeg prints its ``out#0`` summary once the input is exhausted."""
    return "out#0" in line


def parse_frame(line: str) -> Optional[int]:
    """Frame counter from an ffmpeg status line (``frame=  123 fps=...``)."""
    match = _FRAME.search(line)
    return int(match.group(1)) if match else None


def parse_fps(line: str) -> Optional[float]:
    """Encoding speed from an ffmpeg status line."""
    match = _FPS.search(line)
    return float(match.group(1)) if match else None


def is_frame_tick(line: str) -> bool:
    """True for a per-frame showinfo line."""
    return bool(_FRAME_TICK.search(line))


def parse_vmaf_score(text: str) -> Optional[float]:
    """Aggregate score reported by the libvmaf filter."""
    match = _VMAF_SCORE.search(text)
    return float(match.group(1)) if match else None


def parse_video_size_bytes(text: str) -> Optional[int]:
    """Video stream size from the ``out#0`` summary, converted from kB to bytes."""
    match = _VIDEO_SIZE.search(text)
    if not match:
        return None
    return int(float(match.group(1)) * 1024)


def parse_frame_rate(value: str) -> Optional[float]:
    """Parse ffprobe rates such as ``24000/1001`` or ``25``."""
    value = (value or "").strip()
    if not value:
        return None
    try:
        if "/" in value:
            num, den = value.split("/", 1)
            den_f = float(den)
            return float(num) / den_f if den_f else None
        return float(value)
    except ValueError:
        return None


def parse_crf_search(stdout: str) -> Optional[Tuple[float, float]]:
    """
    Extract (crf, vmaf) from ``ab-av1 crf-search`` output.

    The first summary line looks like:
        crf 21 VMAF 97.15 predicted video stream size 6.60 GiB (72%) taking 21 minutes
    """
    match = _CRF_SEARCH.search(stdout)
    if not match:
        return None
    return float(match.group(1)), float(match.group(2))
