"""
File discovery and catalog classification.

Discovers input videos and assigns each a processing status from its
probed bitrate and first audio codec:

- skipped: video bitrate below 3000 kbps and an accepted audio codec
- pending_video: bitrate above the threshold, audio fine
- pending_audio: audio codec not one of aac/opus/mp3, bitrate fine
- pending_all: both apply

The catalog itself is an in-memory list; persisting it is left to callers.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from ....utils.logging import get_logger
from ..analysis.media_utils import get_audio_details, get_bitrate_kbps

logger = get_logger("file_manager")

BITRATE_THRESHOLD_KBPS = 3000
ACCEPTED_AUDIO_CODECS = frozenset({"aac", "opus", "mp3"})

STATUS_SKIPPED = "skipped"
STATUS_PENDING_VIDEO = "pending_video"
STATUS_PENDING_AUDIO = "pending_audio"
STATUS_PENDING_ALL = "pending_all"
STATUS_PROCESSING = "processing"

PENDING_STATUSES = (STATUS_PENDING_VIDEO, STATUS_PENDING_AUDIO, STATUS_PENDING_ALL)
# Audio-only work is not done here
VIDEO_WORK_STATUSES = (STATUS_PENDING_VIDEO, STATUS_PENDING_ALL)

_OUTPUT_NAME = re.compile(r"\.vmaf\d+\.[a-z_]+\.subsample\d+$")
_WORK_FILES = re.compile(r"^(scene_\d{3}_encoded|merged_scenes|temp)$")


@dataclass
class CatalogEntry:
    path: Path
    status: str
    bitrate_kbps: int = 0
    audio_codec: Optional[str] = None


@dataclass
class FileDiscoveryResult:
    """Result of file discovery operation."""
    files: List[Path]
    hidden_files_skipped: int
    artifacts_skipped: int
    total_files_found: int


def classify_status(bitrate_kbps: int, audio_codec: Optional[str]) -> str:
    """Catalog status for a file's video bitrate and first audio codec."""
    needs_video = bitrate_kbps > BITRATE_THRESHOLD_KBPS
    needs_audio = bool(audio_codec) and audio_codec.lower() not in ACCEPTED_AUDIO_CODECS
    if needs_video and needs_audio:
        return STATUS_PENDING_ALL
    if needs_video:
        return STATUS_PENDING_VIDEO
    if needs_audio:
        return STATUS_PENDING_AUDIO
    return STATUS_SKIPPED


class FileManager:
    """Finds input videos and builds the catalog the batch runs from."""

    def __init__(self, bitrate_probe: Callable[[Path], int] = get_bitrate_kbps,
                 audio_probe: Callable[[Path], list] = get_audio_details):
        self.bitrate_probe = bitrate_probe
        self.audio_probe = audio_probe

    def discover_video_files(self, base_path: Path, extensions: str = "mkv,mp4,mov,ts") -> FileDiscoveryResult:
        """
        Discover video files below ``base_path`` (or just ``base_path`` if it is a file).

        Hidden files and this tool's own intermediates and outputs are left out.
        """
        base_path = Path(base_path)
        if not base_path.exists():
            raise ValueError(f"Path not found: {base_path}")
        if base_path.is_file():
            return FileDiscoveryResult([base_path], 0, 0, 1)

        patterns = [f"*.{ext.strip().lower()}" for ext in extensions.split(",") if ext.strip()]
        files: List[Path] = []
        for pattern in patterns:
            files.extend(base_path.rglob(pattern))
        files = sorted(set(files))
        total_found = len(files)

        visible = [f for f in files if not f.name.startswith('.')]
        hidden_skipped = total_found - len(visible)
        inputs = [f for f in visible if not self._is_artifact(f)]

        logger.discovery(f"Found {len(inputs)} video file(s) in {base_path}")
        return FileDiscoveryResult(
            files=inputs,
            hidden_files_skipped=hidden_skipped,
            artifacts_skipped=len(visible) - len(inputs),
            total_files_found=total_found,
        )

    def _is_artifact(self, file_path: Path) -> bool:
        stem = file_path.stem
        return bool(_WORK_FILES.match(stem) or _OUTPUT_NAME.search(stem))

    def classify(self, file_path: Path) -> CatalogEntry:
        bitrate = self.bitrate_probe(file_path)
        audio = self.audio_probe(file_path)
        audio_codec = audio[0].codec if audio else None
        status = classify_status(bitrate, audio_codec)
        logger.debug(f"{file_path.name}: {bitrate} kbps, audio {audio_codec or 'none'} -> {status}")
        return CatalogEntry(file_path, status, bitrate, audio_codec)

    def build_catalog(self, files: List[Path]) -> List[CatalogEntry]:
        return [self.classify(f) for f in files]


def pending_entries(catalog: List[CatalogEntry], statuses: Tuple[str, ...] = PENDING_STATUSES) -> List[CatalogEntry]:
    """Entries whose status asks for work."""
    return [entry for entry in catalog if entry.status in statuses]
