"""
Durable checkpoint for scene-level resume.

Two append-only, human-readable logs live in the working directory:

- ``done.txt``: one completed scene index per line
- ``chunks.txt``: ``index: N, scene_size: ORIGINAL, encoded_size: ENCODED`` (bytes)

A scene counts as complete only once its index is in ``done.txt``. The size
line is written first, so a crash between the two appends leaves the scene
pending and the duplicate size line is collapsed on the next load (last
entry per index wins). Lines without a trailing newline are the remains of
an interrupted write and are ignored; the next append terminates such a
fragment with a ``#`` marker so it stays unparseable on later loads.

A third file, ``plan.txt``, records the scene boundaries and encode settings
the logs were written for. Scene indices only mean something against that
plan, so a run with a different one starts from an empty checkpoint.
"""

import os
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Tuple

from ....utils.logging import get_logger
from .errors import CheckpointIOError

logger = get_logger("checkpoint")

DONE_LOG = "done.txt"
SIZE_LOG = "chunks.txt"
PLAN_FILE = "plan.txt"

_SIZE_LINE = re.compile(r"^index:\s*(\d+),\s*scene_size:\s*(\d+),\s*encoded_size:\s*(\d+)\s*$")


@dataclass(frozen=True)
class SizeEntry:
    """Original and encoded byte sizes of one completed scene."""
    index: int
    original_bytes: int
    encoded_bytes: int


def _size_line(entry: SizeEntry) -> str:
    return f"index: {entry.index}, scene_size: {entry.original_bytes}, encoded_size: {entry.encoded_bytes}"


class CheckpointStore:
    """Append-only record of completed scenes and their size outcomes."""

    def __init__(self, work_dir: Path):
        self.work_dir = Path(work_dir)
        self.done_path = self.work_dir / DONE_LOG
        self.size_path = self.work_dir / SIZE_LOG
        self.plan_path = self.work_dir / PLAN_FILE
        self._lock = threading.Lock()
        self._completed: set[int] = set()
        self._sizes: Dict[int, SizeEntry] = {}
        # Files whose last line was cut off; the next append voids it first
        self._dangling: set[Path] = set()

    def load(self) -> "CheckpointStore":
        """Parse existing logs, deduplicating by scene index."""
        with self._lock:
            self._completed.clear()
            self._sizes.clear()
            self._dangling.clear()

            for line in self._read_complete_lines(self.done_path):
                try:
                    self._completed.add(int(line))
                except ValueError:
                    logger.debug(f"ignoring malformed line in {DONE_LOG}: {line!r}")

            for line in self._read_complete_lines(self.size_path):
                match = _SIZE_LINE.match(line)
                if not match:
                    logger.debug(f"ignoring malformed line in {SIZE_LOG}: {line!r}")
                    continue
                index, original, encoded = (int(g) for g in match.groups())
                self._sizes[index] = SizeEntry(index, original, encoded)

        if self._completed:
            logger.checkpoint(f"Resuming: {len(self._completed)} scene(s) already complete")
        return self

    def _read_complete_lines(self, path: Path) -> List[str]:
        if not path.exists():
            return []
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise CheckpointIOError(f"Cannot read {path}: {e}") from e

        lines = content.split("\n")
        # split() leaves '' after a final newline; anything else is a partial write
        if lines[-1] != "":
            logger.warn(f"Ignoring partial trailing line in {path.name}: {lines[-1]!r}")
            self._dangling.add(path)
        return [line.strip() for line in lines[:-1] if line.strip()]

    @property
    def completed_indices(self) -> FrozenSet[int]:
        with self._lock:
            return frozenset(self._completed)

    def is_complete(self, index: int) -> bool:
        with self._lock:
            return index in self._completed

    def size_ledger(self) -> Dict[int, SizeEntry]:
        """Size entries for completed scenes only."""
        with self._lock:
            return {i: e for i, e in self._sizes.items() if i in self._completed}

    def size_totals(self) -> Tuple[int, int]:
        """Sum of (original, encoded) bytes over completed scenes."""
        ledger = self.size_ledger()
        return (sum(e.original_bytes for e in ledger.values()),
                sum(e.encoded_bytes for e in ledger.values()))

    def record(self, index: int, original_bytes: int, encoded_bytes: int):
        """Durably mark a scene complete. Re-recording an index is a no-op."""
        with self._lock:
            if index in self._completed:
                logger.debug(f"scene {index} already checkpointed")
                return
            entry = SizeEntry(index, original_bytes, encoded_bytes)
            self._append(self.size_path, _size_line(entry))
            self._append(self.done_path, str(index))
            self._sizes[index] = entry
            self._completed.add(index)

    def _append(self, path: Path, line: str):
        prefix = "#\n" if path in self._dangling else ""
        try:
            self.work_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(f"{prefix}{line}\n")
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise CheckpointIOError(f"Cannot append to {path}: {e}") from e
        self._dangling.discard(path)

    def clear(self):
        """Remove the logs and the plan. Called after a successful final assembly or a plan change."""
        with self._lock:
            for path in (self.done_path, self.size_path, self.plan_path):
                try:
                    if path.exists():
                        path.unlink()
                except OSError as e:
                    raise CheckpointIOError(f"Cannot remove {path}: {e}") from e
            self._completed.clear()
            self._sizes.clear()
            self._dangling.clear()
        logger.checkpoint("Checkpoint cleared")

    def bind_plan(self, plan: str) -> bool:
        """
        Tie the logs to ``plan``.

        Returns True when the logs were written for the same plan, or when
        there is nothing to resume. Otherwise the logs are cleared, the new
        plan is recorded and False is returned; the caller owns removing the
        old plan's scene files.
        """
        plan = plan.rstrip("\n") + "\n"
        try:
            previous = self.plan_path.read_text(encoding="utf-8") if self.plan_path.exists() else None
        except OSError as e:
            raise CheckpointIOError(f"Cannot read {self.plan_path}: {e}") from e

        if previous == plan:
            return True
        matches = previous is None and not self.completed_indices and not self.size_path.exists()
        if not matches:
            logger.checkpoint("Scene plan changed since the checkpoint was written; starting over")
            self.clear()
        self._rewrite(self.plan_path, plan)
        return matches

    def forget(self, indices: Iterable[int]):
        """Mark ``indices`` pending again by rewriting both logs without them."""
        with self._lock:
            dropped = set(indices) & self._completed
            if not dropped:
                return
            self._completed -= dropped
            for index in dropped:
                self._sizes.pop(index, None)
            kept = sorted(self._completed)
            sizes = "".join(f"{_size_line(self._sizes[i])}\n" for i in kept if i in self._sizes)
            self._rewrite(self.size_path, sizes)
            self._rewrite(self.done_path, "".join(f"{i}\n" for i in kept))
            self._dangling.clear()
        logger.checkpoint(f"Scene(s) {sorted(dropped)} marked pending again")

    def _rewrite(self, path: Path, content: str):
        temp = path.with_name(path.name + ".tmp")
        try:
            self.work_dir.mkdir(parents=True, exist_ok=True)
            with open(temp, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp, path)
        except OSError as e:
            raise CheckpointIOError(f"Cannot rewrite {path}: {e}") from e
