"""
EncoderConfigBuilder: Centralized FFmpeg command construction

Every ffmpeg invocation that touches an encoder goes through this module so
the probe encode (piped into libvmaf) and the final scene encode always use
identical presets, parameters and rate control.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

DEFAULT_PIX_FMT = "yuv420p10le"


@dataclass(frozen=True)
class EncoderProfile:
    """Preset and extra parameters used with one ffmpeg encoder."""
    preset: str
    params: str = ""


ENCODER_PROFILES: Dict[str, EncoderProfile] = {
    "libx265": EncoderProfile("slow", "-x265-params limit-sao:bframes=8:psy-rd=1:aq-mode=3"),
    "hevc_nvenc": EncoderProfile("p7", "-rc-lookahead 100 -b_ref_mode each -tune hq"),
    "hevc_qsv": EncoderProfile(
        "veryslow", "-init_hw_device qsv=intel,child_device=0 -b_strategy 1 -look_ahead 1 -async_depth 100"),
    "av1_qsv": EncoderProfile(
        "1", "-init_hw_device qsv=intel,child_device=0 -b_strategy 1 -look_ahead 1 -async_depth 100"),
    "libsvtav1": EncoderProfile("5"),
    "libaom-av1": EncoderProfile("4"),
}

SUPPORTED_ENCODERS = tuple(ENCODER_PROFILES)


def format_crf(crf: float) -> str:
    """Render a CRF without a trailing '.0' for whole numbers."""
    return str(int(crf)) if float(crf).is_integer() else f"{crf:g}"


def format_timestamp(seconds: float) -> str:
    return f"{seconds:.3f}"


class EncoderConfigBuilder:
    """Builds FFmpeg encoder commands with consistent configuration across all modes."""

    def __init__(self, encoder: str = "libx265", pix_fmt: str = DEFAULT_PIX_FMT,
                 preset: Optional[str] = None, params: Optional[str] = None):
        if encoder not in ENCODER_PROFILES:
            raise ValueError(f"Unsupported encoder '{encoder}' (choose from {', '.join(SUPPORTED_ENCODERS)})")
        profile = ENCODER_PROFILES[encoder]
        self.encoder = encoder
        self.pix_fmt = pix_fmt
        self.preset = preset if preset is not None else profile.preset
        self.params = params if params is not None else profile.params

    def encoder_args(self) -> List[str]:
        """``-c:v``, preset and the encoder's extra parameters."""
        return ["-c:v", self.encoder, "-preset", self.preset] + self.params.split()

    def quality_args(self, crf: float) -> List[str]:
        """Rate-control flags that pin the encoder to a constant quality."""
        value = format_crf(crf)
        if self.encoder == "hevc_nvenc":
            return ["-rc:v", "vbr", "-cq:v", value, "-qmin", value, "-qmax", value]
        if self.encoder in ("hevc_qsv", "av1_qsv"):
            return ["-global_quality", value]
        return ["-crf", value]

    def probe_encode_cmd(self, input_file: Path, start: float, end: float, crf: float, fps: float) -> List[str]:
        """Trial encode of one scene written as NUT to stdout."""
        return (["ffmpeg", "-hide_banner", "-loglevel", "error", "-y",
                 "-r", f"{fps:g}",
                 "-ss", format_timestamp(start), "-to", format_timestamp(end),
                 "-an", "-sn", "-dn", "-i", str(input_file)]
                + self.encoder_args()
                + self.quality_args(crf)
                + ["-pix_fmt", self.pix_fmt, "-f", "nut", "pipe:1"])

    def vmaf_cmd(self, input_file: Path, start: float, end: float, fps: float,
                 pool: str = "mean", threads: int = 2, subsample: int = 1) -> List[str]:
        """libvmaf comparison of the untouched scene against a NUT stream on stdin."""
        lavfi = ("[0:v]setpts=PTS-STARTPTS[reference];"
                 "[1:v]setpts=PTS-STARTPTS[distorted];"
                 f"[reference][distorted]libvmaf='pool={pool}:n_threads={threads}:n_subsample={subsample}'")
        return ["ffmpeg", "-hide_banner",
                "-r", f"{fps:g}",
                "-ss", format_timestamp(start), "-to", format_timestamp(end),
                "-an", "-sn", "-dn", "-i", str(input_file),
                "-thread_queue_size", "4096",
                "-f", "nut", "-i", "pipe:0",
                "-lavfi", lavfi,
                "-f", "null", "-"]

    def scene_encode_cmd(self, input_file: Path, output_file: Path, start: float, end: float,
                         crf: float, fps: float) -> List[str]:
        """Final encode of one scene; showinfo prints a line per encoded frame."""
        gop = max(1, int(round(fps * 10)))
        return (["ffmpeg", "-hide_banner", "-y", "-i", str(input_file),
                 "-map_metadata", "-1",
                 "-ss", format_timestamp(start), "-to", format_timestamp(end)]
                + self.encoder_args()
                + ["-g", str(gop)]
                + self.quality_args(crf)
                + ["-pix_fmt", self.pix_fmt, "-an", "-sn", "-dn",
                   "-vf", "showinfo", str(output_file)])

    def whole_file_encode_cmd(self, input_file: Path, output_file: Path, crf: float) -> List[str]:
        """Single-pass encode of a full file, copying every audio and subtitle stream."""
        return (["ffmpeg", "-hide_banner", "-y", "-i", str(input_file),
                 "-map", "0:v:0", "-map", "0:a?", "-map", "0:s?",
                 "-map_metadata", "0"]
                + self.encoder_args()
                + self.quality_args(crf)
                + ["-pix_fmt", self.pix_fmt, "-c:a", "copy", "-c:s", "copy", str(output_file)])


def scene_size_cmd(input_file: Path, start: float, end: float) -> List[str]:
    """Copy-only pass over a scene range; the summary line reports its video size."""
    return ["ffmpeg", "-hide_banner", "-an", "-dn", "-sn",
            "-ss", format_timestamp(start), "-to", format_timestamp(end),
            "-i", str(input_file), "-c:v", "copy", "-f", "null", "-"]
