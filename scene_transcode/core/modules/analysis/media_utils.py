"""
Media utilities for scene_transcode.

This module provides ffprobe/ffmpeg based probing of input files:
- Duration, frame rate, bitrate and container size
- Frame count with tag, copy-decode and full-decode fallbacks
- Audio and video stream details
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from ....utils.logging import get_logger
from ..system.system_utils import run_command
from .output_parsers import parse_frame, parse_frame_rate

logger = get_logger("media_utils")

# Probes that have to read the whole file may take a long time
LONG_PROBE_TIMEOUT = None


@dataclass
class AudioStream:
    index: int
    codec: str
    channels: int
    channel_layout: str = ""


@dataclass
class VideoStream:
    index: int
    codec: str
    width: int
    height: int


@dataclass
class MediaInfo:
    """Technical facts about one input file."""
    path: Path
    duration: float
    fps: float
    # Only probed when the frame rate is unknown, 0 otherwise
    frame_count: int
    bitrate_kbps: int
    size_bytes: int
    audio_streams: List[AudioStream] = field(default_factory=list)
    video_streams: List[VideoStream] = field(default_factory=list)

    @property
    def audio_codec(self) -> Optional[str]:
        return self.audio_streams[0].codec if self.audio_streams else None


def ffprobe_field(file: Path, entries: str, stream: Optional[str] = "v:0",
                  timeout: Optional[int] = 30, extra: Optional[List[str]] = None) -> Optional[str]:
    """Read ``-show_entries`` values with ffprobe. Returns None on failure or empty output."""
    cmd = ["ffprobe", "-v", "error"]
    if stream:
        cmd += ["-select_streams", stream]
    cmd += extra or []
    cmd += ["-show_entries", entries, "-of", "default=nk=1:nw=1", "-i", str(file)]
    result = run_command(cmd, timeout=timeout)
    if result.returncode != 0:
        logger.probe(f"ffprobe {entries} failed for {file.name} (status {result.returncode})")
        return None
    out = (result.stdout or "").strip()
    if not out or out.lower() in ("unknown", "n/a"):
        return None
    return out


def get_duration_sec(file: Path) -> float:
    """Container duration in seconds, 0.0 when unknown."""
    value = ffprobe_field(file, "format=duration", stream=None)
    try:
        return float(value) if value else 0.0
    except ValueError:
        return 0.0


def get_fps(file: Path) -> float:
    """Average frame rate of the first video stream, 0.0 when unknown."""
    value = ffprobe_field(file, "stream=r_frame_rate")
    if not value:
        return 0.0
    return parse_frame_rate(value.splitlines()[0]) or 0.0


def _as_frame_count(value: Optional[str]) -> int:
    if not value:
        return 0
    try:
        return int(value.splitlines()[0].strip())
    except ValueError:
        return 0


def _count_frames_by_copy(file: Path) -> int:
    """Remux the video stream to null and read the final ``frame=`` counter."""
    cmd = ["ffmpeg", "-hide_banner", "-i", str(file), "-map", "0:v:0", "-c", "copy", "-f", "null", "-"]
    result = run_command(cmd, timeout=LONG_PROBE_TIMEOUT)
    frames = 0
    for line in (result.stderr or "").replace("\r", "\n").splitlines():
        parsed = parse_frame(line)
        if parsed is not None:
            frames = parsed
    return frames


def get_frame_count(file: Path) -> int:
    """
    Number of video frames, trying progressively more expensive sources:

    1. ``NUMBER_OF_FRAMES-eng`` stream tag (mkvmerge statistics)
    2. ``NUMBER_OF_FRAMES`` stream tag
    3. stream copy to null, last ``frame=`` counter
    4. ``ffprobe -count_frames`` full decode

    Returns 0 when no source yields a count.
    """
    for tag in ("NUMBER_OF_FRAMES-eng", "NUMBER_OF_FRAMES"):
        frames = _as_frame_count(ffprobe_field(file, f"stream_tags={tag}"))
        if frames > 0:
            return frames

    logger.probe(f"No frame count tag in {file.name}, counting by stream copy")
    frames = _count_frames_by_copy(file)
    if frames > 0:
        return frames

    logger.probe(f"Stream copy count failed for {file.name}, decoding all frames")
    return _as_frame_count(ffprobe_field(file, "stream=nb_read_frames", extra=["-count_frames"],
                                         timeout=LONG_PROBE_TIMEOUT))


def get_bitrate_kbps(file: Path) -> int:
    """Video bitrate in kbps, falling back to the container bitrate."""
    value = ffprobe_field(file, "stream=bit_rate")
    if not value:
        value = ffprobe_field(file, "format=bit_rate", stream=None)
    try:
        return int(value.splitlines()[0]) // 1000 if value else 0
    except ValueError:
        return 0


def _csv_rows(file: Path, stream: str, entries: str) -> List[List[str]]:
    cmd = ["ffprobe", "-v", "error", "-select_streams", stream,
           "-show_entries", entries, "-of", "csv=p=0", "-i", str(file)]
    result = run_command(cmd)
    if result.returncode != 0:
        return []
    return [line.strip().split(",") for line in (result.stdout or "").splitlines() if line.strip()]


def _int_or_zero(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


def get_audio_details(file: Path) -> List[AudioStream]:
    """Codec, channel count and channel layout for every audio stream."""
    streams = []
    for i, row in enumerate(_csv_rows(file, "a", "stream=codec_name,channels,channel_layout")):
        row = row + [""] * (3 - len(row))
        streams.append(AudioStream(i, row[0], _int_or_zero(row[1]), row[2]))
    return streams


def get_video_details(file: Path) -> List[VideoStream]:
    """Codec and dimensions for every video stream."""
    streams = []
    for i, row in enumerate(_csv_rows(file, "v", "stream=codec_name,width,height")):
        row = row + [""] * (3 - len(row))
        streams.append(VideoStream(i, row[0], _int_or_zero(row[1]), _int_or_zero(row[2])))
    return streams


def get_file_size(file: Path) -> int:
    try:
        return Path(file).stat().st_size
    except OSError:
        return 0


def probe_media(file: Path) -> MediaInfo:
    """Collect every fact the pipeline needs about ``file``."""
    file = Path(file)
    fps = get_fps(file)
    info = MediaInfo(
        path=file,
        duration=get_duration_sec(file),
        fps=fps,
        frame_count=get_frame_count(file) if fps <= 0 else 0,
        bitrate_kbps=get_bitrate_kbps(file),
        size_bytes=get_file_size(file),
        audio_streams=get_audio_details(file),
        video_streams=get_video_details(file),
    )
    logger.probe(f"{file.name}: {info.duration:.2f}s, {info.fps:.3f} fps, {info.frame_count} frames, "
                 f"{info.bitrate_kbps} kbps")
    return info
