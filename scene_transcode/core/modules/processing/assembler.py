"""
Final assembly of a chunked transcode.

Scene artifacts are concatenated in index order, then remuxed with a side
container holding the source's audio, subtitle and attachment streams.
Intermediates and the checkpoint are removed only after the remux succeeds;
any earlier failure leaves everything in place for the next run.
"""

from pathlib import Path
from typing import List, Optional

from ....utils.logging import get_logger
from ..system.checkpoint_store import CheckpointStore
from ..system.errors import AssemblyFailure, AssemblyIncomplete
from ..system.process_runner import ProcessOutcome, ProcessRunner
from ..system.system_utils import remove_files
from .scene_encoder import scene_artifact_name

logger = get_logger("assembler")

SIDE_CONTAINER = "temp.mkv"
MERGED_VIDEO = "merged_scenes.mkv"
CONCAT_LIST = "list.txt"


def _last_line(outcome: ProcessOutcome) -> str:
    return outcome.tail[-1] if outcome.tail else ""


class Assembler:
    """Verifies scene coverage and produces the final container."""

    def __init__(self, work_dir: Path, checkpoint: CheckpointStore, runner: Optional[ProcessRunner] = None):
        self.work_dir = Path(work_dir)
        self.checkpoint = checkpoint
        self.runner = runner or ProcessRunner()
        self.side_path = self.work_dir / SIDE_CONTAINER
        self.merged_path = self.work_dir / MERGED_VIDEO
        self.list_path = self.work_dir / CONCAT_LIST

    def artifact_paths(self, total_scenes: int) -> List[Path]:
        return [self.work_dir / scene_artifact_name(i) for i in range(total_scenes)]

    def missing_scenes(self, total_scenes: int) -> List[int]:
        """Indices in ``[0, total_scenes)`` lacking a checkpoint entry or an artifact."""
        completed = self.checkpoint.completed_indices
        return [i for i, path in enumerate(self.artifact_paths(total_scenes))
                if i not in completed or not path.exists()]

    def extract_side_container(self, input_file: Path) -> Optional[Path]:
        """
        Copy every non-video stream of ``input_file`` into the side container.

        Returns None when the source has no audio, subtitle or attachment
        streams at all.
        """
        cmd = ["ffmpeg", "-hide_banner", "-y", "-i", str(input_file),
               "-map", "0:a?", "-map", "0:s?", "-map", "0:t?", "-vn", "-c", "copy",
               str(self.side_path)]
        outcome = self.runner.run(cmd)
        if outcome.ok:
            logger.assemble(f"Extracted non-video streams to {self.side_path.name}")
            return self.side_path
        if "does not contain any stream" in outcome.stderr:
            logger.info(f"{Path(input_file).name} has no non-video streams")
            if self.side_path.exists():
                self.side_path.unlink()
            return None
        raise AssemblyFailure("extract non-video streams", outcome.returncode, _last_line(outcome))

    def assemble(self, input_file: Path, total_scenes: int, output_file: Path) -> Path:
        """
        Build ``output_file`` from all scene artifacts.

        Raises AssemblyIncomplete if any scene is missing and AssemblyFailure
        if ffmpeg fails; neither deletes intermediates or clears the checkpoint.
        """
        missing = self.missing_scenes(total_scenes)
        if missing:
            raise AssemblyIncomplete(missing, total_scenes)

        side = self.side_path if self.side_path.exists() else self.extract_side_container(input_file)
        artifacts = self.artifact_paths(total_scenes)

        with open(self.list_path, "w", encoding="utf-8") as f:
            for path in artifacts:
                escaped = str(path.resolve()).replace("'", "'\\''")
                f.write(f"file '{escaped}'\n")

        logger.assemble(f"Concatenating {total_scenes} scene(s)")
        outcome = self.runner.run(["ffmpeg", "-hide_banner", "-y", "-f", "concat", "-safe", "0",
                                   "-i", str(self.list_path), "-c", "copy", str(self.merged_path)])
        if not outcome.ok:
            raise AssemblyFailure("concatenate scenes", outcome.returncode, _last_line(outcome))

        output_file = Path(output_file)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        cmd = ["ffmpeg", "-hide_banner", "-y", "-i", str(self.merged_path)]
        if side is not None:
            cmd += ["-i", str(side), "-map", "0:v", "-map", "1"]
        cmd += ["-c", "copy", str(output_file)]
        logger.assemble(f"Remuxing into {output_file.name}")
        outcome = self.runner.run(cmd)
        if not outcome.ok:
            if output_file.exists():
                output_file.unlink()
            raise AssemblyFailure("remux", outcome.returncode, _last_line(outcome))

        removed = remove_files(artifacts + [self.merged_path, self.list_path, self.side_path])
        logger.cleanup(f"Removed {removed} intermediate file(s)")
        self.checkpoint.clear()
        logger.result(f"Wrote {output_file}")
        return output_file
