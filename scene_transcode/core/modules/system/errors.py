"""
Exception hierarchy for scene_transcode.

Failure scopes:
- SpawnFailure: an external tool could not be started (aborts the current file)
- ParseFailure: tool output did not carry the expected pattern
- EncodeFailure: a full scene encode exited non-zero (scene left unmarked)
- ConvergenceExhaustion: no quality probe produced a measurement (scene left unmarked)
- AssemblyIncomplete: a scene artifact is missing at assembly time (state preserved)
- CheckpointIOError: checkpoint logs could not be read or appended (aborts the run)
"""

from typing import List, Optional, Sequence


class TranscodeError(Exception):
    """Base class for all scene_transcode failures."""


class SpawnFailure(TranscodeError):
    """Raised when an external tool is missing or cannot be started."""

    def __init__(self, cmd: Sequence[str], reason: str = ""):
        self.cmd = list(cmd)
        self.tool = self.cmd[0] if self.cmd else "<empty>"
        self.reason = reason
        super().__init__(f"Failed to start {self.tool}: {reason}" if reason else f"Failed to start {self.tool}")


class ParseFailure(TranscodeError):
    """Raised when tool output does not contain the expected value."""

    def __init__(self, what: str, tail: Optional[List[str]] = None):
        self.what = what
        self.tail = tail or []
        super().__init__(f"Could not parse {what} from tool output")


class EncodeFailure(TranscodeError):
    """Raised when encoding a scene exits with a non-zero status."""

    def __init__(self, scene_index: Optional[int], returncode: int, detail: str = ""):
        self.scene_index = scene_index
        self.returncode = returncode
        prefix = f"Scene {scene_index}: encoder" if scene_index is not None else "Encoder"
        message = f"{prefix} exited with status {returncode}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class ConvergenceExhaustion(TranscodeError):
    """Raised when a CRF search never obtained a usable measurement."""

    def __init__(self, scene_index: int, iterations: int):
        self.scene_index = scene_index
        self.iterations = iterations
        super().__init__(f"Scene {scene_index}: no VMAF measurement succeeded in {iterations} probes")


class AssemblyIncomplete(TranscodeError):
    """Raised when scene artifacts do not cover every scene index."""

    def __init__(self, missing: Sequence[int], total: int):
        self.missing = sorted(missing)
        self.total = total
        super().__init__(
            f"Cannot assemble: {len(self.missing)}/{total} scenes missing (indices {self.missing})"
        )


class CheckpointIOError(TranscodeError):
    """Raised when checkpoint logs cannot be read or written."""


class AssemblyFailure(TranscodeError):
    """Raised when a concat or remux step of the final assembly fails."""

    def __init__(self, step: str, returncode: int, detail: str = ""):
        self.step = step
        self.returncode = returncode
        message = f"Assembly step '{step}' failed with status {returncode}"
        if detail:
            message += f": {detail}"
        super().__init__(message)
